"""
批处理驱动：每次调用最多处理一个 pending 条目。

claim → 校验资料 → 打开会话 → 投递 → 落终态 → 关闭会话

- claim 失败（被别的驱动抢走）直接返回 processed=0
- 资料校验在打开会话之前做，缺字段不会消耗浏览器会话
- 会话关闭在所有路径上执行；关闭失败只记日志，不改变已落的终态
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Callable, Optional

from ..config import Settings, load_settings
from .actuation import ActuationClient, ProvisioningError
from ..models.queue_entry import QueueEntry
from .activity_log import LogFn, entry_logger
from .applier import apply_to_job
from .page_actuator import PageActuator
from .profile import ApplicantProfile, describe_missing_fields, validate_profile
from .profile_store import load_applicant_profile
from .queue_store import QueueError, QueueStore

EXTERNAL_SITE_REASON = "Redirected to an external application site - manual application required"

ClientFactory = Callable[[], ActuationClient]
ProfileLoader = Callable[[str], ApplicantProfile]


@dataclass
class BatchSummary:
    processed: int = 0
    entry_id: Optional[int] = None
    job_id: Optional[str] = None
    success: bool = False
    error: Optional[str] = None
    method: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def run_batch_once(
    store: QueueStore,
    client_factory: ClientFactory,
    profile_loader: ProfileLoader = load_applicant_profile,
    settings: Optional[Settings] = None,
) -> BatchSummary:
    settings = settings or load_settings()

    entry = store.next_pending()
    if entry is None:
        return BatchSummary(message="No pending applications")

    if not store.claim(entry.id):
        # 被实时驱动或另一个批处理抢先
        return BatchSummary(message="Entry already claimed by another driver")

    log = entry_logger(entry.id)
    summary = BatchSummary(processed=1, entry_id=entry.id, job_id=entry.job_id)
    try:
        _process_claimed(store, entry, client_factory, profile_loader, settings, log, summary)
    except Exception as exc:
        # claim 之后的任何异常都必须落终态，否则条目永远停在 claimed
        error = str(exc) or exc.__class__.__name__
        log(f"❌ 处理条目异常: {error}", "error")
        fail_claimed(store, entry.id, error, log)
        summary.success = False
        summary.error = error
    return summary


def fail_claimed(store: QueueStore, entry_id: int, error: str, log: LogFn) -> None:
    """把仍处于 claimed 的条目落为 failed；已落终态时只记日志。"""
    try:
        store.fail(entry_id, error)
    except QueueError as exc:
        log(f"⚠ 条目已是终态，未覆盖: {exc}", "warn")


def _process_claimed(
    store: QueueStore,
    entry: QueueEntry,
    client_factory: ClientFactory,
    profile_loader: ProfileLoader,
    settings: Settings,
    log: LogFn,
    summary: BatchSummary,
) -> None:
    profile = profile_loader(entry.owner_id)
    missing = validate_profile(profile)
    if missing:
        error = describe_missing_fields(missing)
        log(f"❌ {error}", "error")
        store.fail(entry.id, error)
        summary.error = error
        return

    client = client_factory()
    try:
        session = client.open(settings.session.time_budget_seconds)
    except ProvisioningError as exc:
        error = f"Browser session failed: {exc}"
        log(f"❌ {error}", "error")
        store.fail(entry.id, error)
        summary.error = error
        return

    try:
        store.attach_session(entry.id, session.session_id)
        log(f"ℹ 浏览器会话: {session.session_id}")

        result = apply_to_job(
            client, session, entry.job_ref(), profile, settings=settings, log_fn=log
        )
        summary.method = result.method
        if result.success:
            store.complete(entry.id, result.to_record())
            summary.success = True
        elif result.is_redirect:
            store.skip(entry.id, EXTERNAL_SITE_REASON, duration_ms=result.duration_ms)
            summary.error = EXTERNAL_SITE_REASON
        else:
            error = result.error or "Application failed"
            store.fail(entry.id, error, method=result.method, duration_ms=result.duration_ms)
            summary.error = error
    finally:
        try:
            client.close(session)
        except Exception as exc:
            log(f"⚠ 关闭浏览器会话失败: {exc}", "warn")


def default_client_factory(settings: Optional[Settings] = None) -> ClientFactory:
    resolved = settings or load_settings()
    return lambda: PageActuator(resolved)

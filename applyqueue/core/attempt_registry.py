"""
投递尝试注册表（实时模式的服务端）。

/api/agent/attempts 收到请求后：在后台线程打开浏览器会话并执行投递，
把进度写入注册表，客户端按 session_id 轮询。
记录在 30 分钟后过期清理。
"""

from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass
from typing import Callable, Optional

from ..config import Settings, load_settings
from .activity_log import LogFn, entry_logger
from .actuation import ActuationClient, ProvisioningError
from .applier import apply_to_job
from .profile import ApplicantProfile
from .strategies import ApplicationResult

STALE_AFTER_SECONDS = 30 * 60

RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
SKIPPED = "skipped"
FINISHED_STATUSES = (COMPLETED, FAILED, SKIPPED)


@dataclass
class AttemptRecord:
    session_id: str
    entry_id: Optional[int]
    job_id: str
    status: str
    started_at: float
    updated_at: float
    method: Optional[str] = None
    confirmation_text: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def status_for_result(result: ApplicationResult) -> str:
    if result.success:
        return COMPLETED
    if result.is_redirect:
        return SKIPPED
    return FAILED


class AttemptRegistry:
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._records: dict[str, AttemptRecord] = {}

    def create(self, session_id: str, entry_id: Optional[int], job_id: str) -> AttemptRecord:
        now = self._clock()
        record = AttemptRecord(
            session_id=session_id,
            entry_id=entry_id,
            job_id=job_id,
            status=RUNNING,
            started_at=now,
            updated_at=now,
        )
        with self._lock:
            self._records[session_id] = record
        return record

    def finish(self, session_id: str, result: ApplicationResult) -> None:
        with self._lock:
            record = self._records.get(session_id)
            if record is None:
                return
            record.status = status_for_result(result)
            record.method = result.method
            record.confirmation_text = result.confirmation_text
            record.error = result.error
            record.duration_ms = result.duration_ms
            record.updated_at = self._clock()

    def fail(self, session_id: str, error: str) -> None:
        with self._lock:
            record = self._records.get(session_id)
            if record is None:
                return
            record.status = FAILED
            record.error = error
            record.updated_at = self._clock()

    def get(self, session_id: str) -> Optional[AttemptRecord]:
        with self._lock:
            return self._records.get(session_id)

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for r in self._records.values() if r.status == RUNNING)

    def cleanup(self, max_age_seconds: float = STALE_AFTER_SECONDS) -> int:
        cutoff = self._clock() - max_age_seconds
        with self._lock:
            stale = [sid for sid, r in self._records.items() if r.started_at < cutoff]
            for sid in stale:
                del self._records[sid]
        return len(stale)


def _start_thread(target: Callable[[], None]) -> None:
    threading.Thread(target=target, daemon=True).start()


class _SessionHandoff:
    """后台线程打开会话后把 session_id（或打开失败的异常）交回请求线程。"""

    def __init__(self) -> None:
        self._ready = threading.Event()
        self._lock = threading.Lock()
        self.session_id: Optional[str] = None
        self.error: Optional[BaseException] = None
        self.abandoned = False

    def resolve(self, session_id: str) -> bool:
        """请求线程已放弃等待时返回 False。"""
        with self._lock:
            if self.abandoned:
                return False
            self.session_id = session_id
        self._ready.set()
        return True

    def reject(self, error: BaseException) -> None:
        self.error = error
        self._ready.set()

    def wait(self, timeout: float) -> str:
        if not self._ready.wait(timeout):
            with self._lock:
                if self.session_id is None:
                    self.abandoned = True
                    raise ProvisioningError(f"Browser session not ready after {timeout:.0f}s")
        if self.error is not None:
            raise self.error
        return self.session_id


class AttemptRunner:
    """
    在后台线程里完成一次投递：打开会话 → 投递 → 关闭会话。

    Playwright 同步 API 的对象只能在创建它的线程上使用，所以 open / navigate /
    act / close 全部在同一个工作线程内执行；请求线程只等待 session_id。
    """

    def __init__(
        self,
        registry: AttemptRegistry,
        client_factory: Callable[[], ActuationClient],
        settings: Optional[Settings] = None,
        spawn: Callable[[Callable[[], None]], None] = _start_thread,
    ) -> None:
        self.registry = registry
        self._client_factory = client_factory
        self._settings = settings or load_settings()
        self._spawn = spawn

    def start(
        self, entry_id: Optional[int], job_ref: dict, profile: ApplicantProfile
    ) -> str:
        """返回 session_id；打开会话失败（ProvisioningError 等）原样抛给调用方。"""
        self.registry.cleanup()
        job_id = str(job_ref.get("id") or job_ref.get("apply_url") or "")
        handoff = _SessionHandoff()
        log = entry_logger(entry_id)
        self._spawn(lambda: self._run(handoff, entry_id, job_id, job_ref, profile, log))
        return handoff.wait(self._settings.browser.open_timeout_seconds)

    def _run(
        self,
        handoff: _SessionHandoff,
        entry_id: Optional[int],
        job_id: str,
        job_ref: dict,
        profile: ApplicantProfile,
        log: LogFn,
    ) -> None:
        try:
            client = self._client_factory()
            session = client.open(self._settings.session.time_budget_seconds)
        except Exception as exc:
            handoff.reject(exc)
            return

        try:
            # 先登记再交回 session_id，调用方拿到 id 后立即可查询
            self.registry.create(session.session_id, entry_id, job_id)
            if not handoff.resolve(session.session_id):
                log("⚠ 请求方已超时放弃，直接关闭会话", "warn")
                self.registry.fail(session.session_id, "Browser session not ready in time")
                return
            result = apply_to_job(
                client, session, job_ref, profile, settings=self._settings, log_fn=log
            )
            self.registry.finish(session.session_id, result)
        except Exception as exc:
            log(f"❌ 投递线程异常: {exc}", "error")
            self.registry.fail(session.session_id, str(exc))
        finally:
            try:
                client.close(session)
            except Exception as exc:
                log(f"⚠ 关闭浏览器会话失败: {exc}", "warn")

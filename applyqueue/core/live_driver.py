"""
实时驱动：用户在线时逐条处理自己的 pending 条目。

- 同一时刻最多一个尝试在途（单飞锁）
- 尝试本身在远端（/api/agent/attempts）执行，这里只负责 claim、派发与轮询
- 轮询有上限：超过上限按超时失败处理
- disable() 只停止拉取新条目，在途尝试照常完成
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

import httpx

from ..config import Settings, load_settings
from ..models.queue_entry import QueueEntry
from .activity_log import LogFn, entry_logger
from .attempt_registry import COMPLETED, FINISHED_STATUSES, SKIPPED
from .batch_driver import EXTERNAL_SITE_REASON, fail_claimed
from .profile import ApplicantProfile, describe_missing_fields, validate_profile
from .queue_store import QueueStore, build_result_record
from .strategies import TIMEOUT_PREFIX


class DispatchError(Exception):
    """远端拒绝或无法启动投递尝试。"""


class AttemptTimeout(Exception):
    pass


class RemoteAttemptDispatcher:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._http = http_client or httpx.Client(base_url=base_url, timeout=timeout)

    def start(self, entry_id: int, job_ref: dict, profile: ApplicantProfile) -> str:
        try:
            resp = self._http.post(
                "/api/agent/attempts",
                json={"entry_id": entry_id, "job": job_ref, "profile": profile.to_dict()},
            )
        except httpx.HTTPError as exc:
            raise DispatchError(f"Attempt endpoint unreachable: {exc}") from exc
        data = _json_or_empty(resp)
        if resp.status_code >= 400 or not data.get("session_id"):
            raise DispatchError(data.get("error") or f"Attempt endpoint returned {resp.status_code}")
        return str(data["session_id"])

    def status(self, session_id: str) -> dict:
        resp = self._http.get(f"/api/agent/attempts/{session_id}")
        if resp.status_code == 404:
            return {"status": "failed", "error": "Attempt not found"}
        resp.raise_for_status()
        return _json_or_empty(resp)


def _json_or_empty(resp: httpx.Response) -> dict:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def poll_for_completion(
    dispatcher: RemoteAttemptDispatcher,
    session_id: str,
    *,
    max_attempts: int,
    interval_s: float,
    sleep: Callable[[float], None] = time.sleep,
    log: Callable[..., None] = lambda msg, level="info": None,
) -> dict:
    for _ in range(max_attempts):
        sleep(interval_s)
        try:
            data = dispatcher.status(session_id)
        except httpx.HTTPError as exc:
            # 单次查询失败继续轮询
            log(f"⚠ 查询尝试状态失败: {exc}", "warn")
            continue
        if data.get("status") in FINISHED_STATUSES:
            return data
    raise AttemptTimeout(f"{TIMEOUT_PREFIX} no completion after {max_attempts} polls")


class LiveDriver:
    def __init__(
        self,
        store: QueueStore,
        dispatcher: RemoteAttemptDispatcher,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.settings = settings or load_settings()
        self._sleep = sleep
        self._flight = threading.Lock()
        self._stop_event = threading.Event()
        self._watcher: Optional[threading.Thread] = None
        self.user_id: Optional[str] = None
        self.profile: Optional[ApplicantProfile] = None
        self.current_entry_id: Optional[int] = None
        self.current_job: Optional[dict] = None
        self.session_id: Optional[str] = None
        self.last_error: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return self.user_id is not None

    @property
    def is_processing(self) -> bool:
        return self._flight.locked()

    def enable(self, user_id: str, profile: ApplicantProfile, *, watch: bool = True) -> None:
        self.user_id = user_id
        self.profile = profile
        self.last_error = None
        if watch:
            self._start_watcher()

    def disable(self) -> None:
        self.user_id = None
        self._stop_event.set()

    def process_next(self) -> bool:
        """处理一条 pending 条目；没有可处理条目或已有尝试在途时返回 False。"""
        if not self.enabled or self.profile is None:
            return False
        if not self._flight.acquire(blocking=False):
            return False
        try:
            return self._process_one(self.user_id, self.profile)
        finally:
            self.current_entry_id = None
            self.current_job = None
            self.session_id = None
            self._flight.release()

    def _process_one(self, user_id: str, profile: ApplicantProfile) -> bool:
        entry = self.store.next_pending(owner_id=user_id)
        if entry is None:
            return False
        if not self.store.claim(entry.id):
            return False

        log = entry_logger(entry.id)
        self.current_entry_id = entry.id
        self.current_job = entry.job_ref()
        try:
            self._run_claimed(entry, profile, log)
        except Exception as exc:
            # claim 之后的任何异常都必须落终态，否则条目永远停在 claimed
            error = str(exc) or exc.__class__.__name__
            log(f"❌ 实时投递异常: {error}", "error")
            fail_claimed(self.store, entry.id, error, log)
            self.last_error = error
        return True

    def _run_claimed(self, entry: QueueEntry, profile: ApplicantProfile, log: LogFn) -> None:
        missing = validate_profile(profile)
        if missing:
            self._fail(entry.id, describe_missing_fields(missing), log)
            return

        try:
            session_id = self.dispatcher.start(entry.id, entry.job_ref(), profile)
        except DispatchError as exc:
            self._fail(entry.id, str(exc), log)
            return

        self.session_id = session_id
        self.store.attach_session(entry.id, session_id)
        log(f"ℹ 实时投递已启动: session={session_id}")

        try:
            data = poll_for_completion(
                self.dispatcher,
                session_id,
                max_attempts=self.settings.live.max_poll_attempts,
                interval_s=self.settings.live.poll_interval_seconds,
                sleep=self._sleep,
                log=log,
            )
        except AttemptTimeout as exc:
            self._fail(entry.id, str(exc), log)
            return

        status = data.get("status")
        duration_ms = int(data.get("duration_ms") or 0)
        if status == COMPLETED:
            self.store.complete(
                entry.id,
                build_result_record(
                    success=True,
                    method=data.get("method"),
                    confirmation_text=data.get("confirmation_text"),
                    duration_ms=duration_ms,
                ),
            )
            log("✓ 实时投递完成")
        elif status == SKIPPED:
            self.store.skip(entry.id, EXTERNAL_SITE_REASON, duration_ms=duration_ms)
            log("↪ 外部投递站点，已跳过", "warn")
        else:
            self.store.fail(
                entry.id,
                data.get("error") or "Application failed",
                method=data.get("method"),
                duration_ms=duration_ms,
            )
            self.last_error = data.get("error") or "Application failed"

    def _fail(self, entry_id: int, error: str, log: LogFn) -> None:
        log(f"❌ {error}", "error")
        self.store.fail(entry_id, error)
        self.last_error = error

    def status(self) -> dict:
        stats = self.store.stats(self.user_id) if self.user_id else {}
        return {
            "enabled": self.enabled,
            "user_id": self.user_id,
            "pending_count": stats.get("pending", 0),
            "is_processing": self.is_processing,
            "current_job": self.current_job,
            "session_id": self.session_id,
            "stats": stats,
            "last_error": self.last_error,
        }

    # -- 后台监听 -------------------------------------------------------

    def _start_watcher(self) -> None:
        if self._watcher and self._watcher.is_alive() and not self._stop_event.is_set():
            return
        # 每个监听线程持有自己的停止信号，disable 后再 enable 不会复活旧线程
        self._stop_event = threading.Event()
        self._watcher = threading.Thread(
            target=self._watch, args=(self._stop_event,), daemon=True
        )
        self._watcher.start()

    def _watch(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                processed = self.process_next()
            except Exception as exc:
                print(f"[live] [ERROR] 实时驱动异常: {exc}")
                self.last_error = str(exc)
                processed = False
            if not processed:
                stop_event.wait(self.settings.live.watch_interval_seconds)

"""
批处理调度器：按固定间隔触发一次 run_batch_once。

每个间隔最多处理一个条目；HTTP 入口 /api/cron/apply 与本调度器互为替代，
两者同时运行也安全（claim 保证同一条目只被处理一次）。
"""

from __future__ import annotations

from threading import Event, Thread
from typing import Callable, Optional

from ..config import Settings, load_settings
from .batch_driver import BatchSummary, default_client_factory, run_batch_once
from .queue_store import QueueStore


class BatchScheduler:
    def __init__(
        self,
        store: Optional[QueueStore] = None,
        settings: Optional[Settings] = None,
        run_once: Optional[Callable[[], BatchSummary]] = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.store = store or QueueStore.from_settings(self.settings)
        self._run_once = run_once or (
            lambda: run_batch_once(
                self.store,
                default_client_factory(self.settings),
                settings=self.settings,
            )
        )
        self._stop_event = Event()
        self._thread: Optional[Thread] = None
        self.last_summary: Optional[BatchSummary] = None

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = Thread(target=self._run_loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()

    def tick(self) -> BatchSummary:
        summary = self._run_once()
        self.last_summary = summary
        if summary.processed:
            state = "✓" if summary.success else "❌"
            print(f"[batch] {state} entry={summary.entry_id} method={summary.method} error={summary.error}")
        return summary

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as exc:
                # 单次失败不终止调度线程
                print(f"[batch] [ERROR] 批处理执行异常: {exc}")
            self._stop_event.wait(self.settings.batch.interval_seconds)

"""
投递队列存储（Queue Store）。

职责：
- 队列条目状态机：pending → claimed → completed / failed / skipped
- claim 必须是单条条件写（UPDATE ... WHERE status='pending'），不允许先读后写
- 终态只能从 claimed 进入；重新处理只能走显式 retry
- 只读投影（list / stats / current_processing）供观察方使用

条目永不物理删除，取消本身也是一种终态（skipped）。
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import func, null, select, update

from ..db import database
from ..models.queue_entry import EntryStatus, QueueEntry, utcnow


class QueueError(Exception):
    """队列存储相关错误基类。"""


class EntryNotFoundError(QueueError):
    pass


class InvalidTransitionError(QueueError):
    """非法状态迁移（例如对 pending 条目写终态）。属于调用方逻辑错误。"""


CANCELLED_REASON = "Cancelled by user"


def build_result_record(
    *,
    success: bool,
    method: Optional[str] = None,
    confirmation_text: Optional[str] = None,
    error: Optional[str] = None,
    duration_ms: int = 0,
) -> dict:
    return {
        "success": bool(success),
        "method": method,
        "confirmation_text": confirmation_text,
        "error": error,
        "duration_ms": int(duration_ms or 0),
    }


class QueueStore:
    """
    队列条目的唯一真相来源。所有写操作都在单条目粒度上原子完成。

    session_factory 缺省时在调用时取 database.SessionLocal，便于测试替换数据库。
    """

    def __init__(
        self,
        session_factory: Optional[Callable] = None,
        *,
        dedupe_window_hours: Optional[float] = 720.0,
        allow_skip_retry: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self.dedupe_window_hours = dedupe_window_hours
        self.allow_skip_retry = allow_skip_retry
        self._clock = clock

    @classmethod
    def from_settings(cls, settings) -> "QueueStore":
        return cls(
            dedupe_window_hours=settings.queue.dedupe_window_hours,
            allow_skip_retry=settings.queue.allow_skip_retry,
        )

    def _session(self):
        factory = self._session_factory or database.SessionLocal
        return factory()

    # ------------------------------------------------------------------
    # 写操作
    # ------------------------------------------------------------------

    def enqueue(self, owner_id: str, job_ref: dict) -> int:
        """
        为已批准的岗位创建 pending 条目，返回条目 id。

        同一 owner + job_id 在去重窗口内重复批准时直接返回已有条目 id。
        """
        apply_url = str(job_ref.get("apply_url") or "").strip()
        if not apply_url:
            raise ValueError("apply_url is required to enqueue a job")
        job_id = str(job_ref.get("id") or "").strip() or apply_url
        now = self._clock()

        with self._session() as session:
            query = select(QueueEntry.id).where(
                QueueEntry.owner_id == owner_id,
                QueueEntry.job_id == job_id,
            )
            if self.dedupe_window_hours:
                cutoff = now - timedelta(hours=float(self.dedupe_window_hours))
                query = query.where(QueueEntry.created_at >= cutoff)
            existing = session.execute(
                query.order_by(QueueEntry.created_at.desc()).limit(1)
            ).scalar()
            if existing is not None:
                return existing

            match_score = job_ref.get("match_score")
            entry = QueueEntry(
                owner_id=owner_id,
                job_id=job_id,
                title=job_ref.get("title") or None,
                company=job_ref.get("company") or None,
                location=job_ref.get("location") or None,
                apply_url=apply_url,
                description=job_ref.get("description") or None,
                match_score=float(match_score) if match_score is not None else None,
                cover_letter=job_ref.get("cover_letter") or None,
                status=EntryStatus.PENDING,
                retry_count=0,
                created_at=now,
                updated_at=now,
            )
            session.add(entry)
            session.commit()
            return entry.id

    def claim(self, entry_id: int, session_id: Optional[str] = None) -> bool:
        """pending → claimed 的条件写；条目当前不是 pending 时返回 False。"""
        now = self._clock()
        stmt = (
            update(QueueEntry)
            .where(
                QueueEntry.id == entry_id,
                QueueEntry.status == EntryStatus.PENDING,
                QueueEntry.apply_url != "",
            )
            .values(
                status=EntryStatus.CLAIMED,
                claimed_session_id=session_id,
                claimed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        with self._session() as session:
            res = session.execute(stmt)
            session.commit()
            return res.rowcount == 1

    def attach_session(self, entry_id: int, session_id: str) -> bool:
        """记录处理该条目的 actuation 会话 id（仅 claimed 时有效）。"""
        stmt = (
            update(QueueEntry)
            .where(QueueEntry.id == entry_id, QueueEntry.status == EntryStatus.CLAIMED)
            .values(claimed_session_id=session_id, updated_at=self._clock())
            .execution_options(synchronize_session=False)
        )
        with self._session() as session:
            res = session.execute(stmt)
            session.commit()
            return res.rowcount == 1

    def complete(self, entry_id: int, result: dict) -> None:
        record = build_result_record(
            success=result.get("success", True),
            method=result.get("method"),
            confirmation_text=result.get("confirmation_text"),
            error=result.get("error"),
            duration_ms=result.get("duration_ms", 0),
        )
        self._finish(entry_id, EntryStatus.COMPLETED, record)

    def fail(
        self,
        entry_id: int,
        error: str,
        *,
        method: Optional[str] = None,
        duration_ms: int = 0,
    ) -> None:
        record = build_result_record(
            success=False, method=method, error=error, duration_ms=duration_ms
        )
        self._finish(entry_id, EntryStatus.FAILED, record)

    def skip(
        self,
        entry_id: int,
        reason: str,
        *,
        method: Optional[str] = "redirect",
        duration_ms: int = 0,
    ) -> None:
        record = build_result_record(
            success=False, method=method, error=reason, duration_ms=duration_ms
        )
        self._finish(entry_id, EntryStatus.SKIPPED, record)

    def _finish(self, entry_id: int, target: EntryStatus, record: dict) -> None:
        now = self._clock()
        stmt = (
            update(QueueEntry)
            .where(QueueEntry.id == entry_id, QueueEntry.status == EntryStatus.CLAIMED)
            .values(
                status=target,
                result=record,
                claimed_session_id=None,
                updated_at=now,
                completed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        with self._session() as session:
            res = session.execute(stmt)
            session.commit()
            if res.rowcount == 1:
                return
            current = session.get(QueueEntry, entry_id)
        if current is None:
            raise EntryNotFoundError(f"Queue entry {entry_id} not found")
        raise InvalidTransitionError(
            f"Cannot move entry {entry_id} from {current.status.value} to {target.value}"
        )

    def retry(self, entry_id: int) -> bool:
        """
        failed → pending，retry_count +1，清空 result。

        claimed / completed / pending 一律拒绝；skipped 仅在 allow_skip_retry 时允许。
        """
        retryable = [EntryStatus.FAILED]
        if self.allow_skip_retry:
            retryable.append(EntryStatus.SKIPPED)
        stmt = (
            update(QueueEntry)
            .where(QueueEntry.id == entry_id, QueueEntry.status.in_(retryable))
            .values(
                status=EntryStatus.PENDING,
                retry_count=QueueEntry.retry_count + 1,
                result=null(),
                claimed_session_id=None,
                claimed_at=None,
                completed_at=None,
                updated_at=self._clock(),
            )
            .execution_options(synchronize_session=False)
        )
        with self._session() as session:
            res = session.execute(stmt)
            session.commit()
            return res.rowcount == 1

    def cancel(self, entry_id: int, reason: str = CANCELLED_REASON) -> bool:
        """仅 pending 可取消；取消落为 skipped 终态而不是删除。"""
        now = self._clock()
        stmt = (
            update(QueueEntry)
            .where(QueueEntry.id == entry_id, QueueEntry.status == EntryStatus.PENDING)
            .values(
                status=EntryStatus.SKIPPED,
                result=build_result_record(
                    success=False, method="cancelled", error=reason
                ),
                updated_at=now,
                completed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        with self._session() as session:
            res = session.execute(stmt)
            session.commit()
            return res.rowcount == 1

    # ------------------------------------------------------------------
    # 只读投影
    # ------------------------------------------------------------------

    def get(self, entry_id: int) -> Optional[QueueEntry]:
        with self._session() as session:
            return session.get(QueueEntry, entry_id)

    def next_pending(self, owner_id: Optional[str] = None) -> Optional[QueueEntry]:
        """最早的 pending 条目（FIFO）。只读，不做 claim。"""
        query = select(QueueEntry).where(QueueEntry.status == EntryStatus.PENDING)
        if owner_id is not None:
            query = query.where(QueueEntry.owner_id == owner_id)
        query = query.order_by(QueueEntry.created_at.asc(), QueueEntry.id.asc()).limit(1)
        with self._session() as session:
            return session.execute(query).scalars().first()

    def list_by_owner(
        self, owner_id: str, status: Optional[EntryStatus] = None
    ) -> list[QueueEntry]:
        query = select(QueueEntry).where(QueueEntry.owner_id == owner_id)
        if status is not None:
            query = query.where(QueueEntry.status == status)
        query = query.order_by(QueueEntry.created_at.desc(), QueueEntry.id.desc())
        with self._session() as session:
            return list(session.execute(query).scalars().all())

    def stats(self, owner_id: str) -> dict[str, int]:
        counts = {status.value: 0 for status in EntryStatus}
        query = (
            select(QueueEntry.status, func.count(QueueEntry.id))
            .where(QueueEntry.owner_id == owner_id)
            .group_by(QueueEntry.status)
        )
        with self._session() as session:
            for status, count in session.execute(query).all():
                key = status.value if isinstance(status, EntryStatus) else str(status)
                counts[key] = int(count)
        counts["total"] = sum(counts[s.value] for s in EntryStatus)
        return counts

    def current_processing(self, owner_id: str) -> Optional[QueueEntry]:
        query = (
            select(QueueEntry)
            .where(
                QueueEntry.owner_id == owner_id,
                QueueEntry.status == EntryStatus.CLAIMED,
            )
            .order_by(QueueEntry.claimed_at.asc())
            .limit(1)
        )
        with self._session() as session:
            return session.execute(query).scalars().first()

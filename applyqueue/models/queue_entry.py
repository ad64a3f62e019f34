from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    JSON,
    DateTime,
    Enum as SQLEnum,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..db.database import Base


class EntryStatus(str, Enum):
    PENDING = "pending"
    CLAIMED = "claimed"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QueueEntry(Base):
    """投递队列条目，对应 queue_entries 表。岗位信息在 enqueue 时整体拷贝。"""

    __tablename__ = "queue_entries"
    __table_args__ = (
        Index("ix_queue_entries_status_created", "status", "created_at"),
        Index("ix_queue_entries_owner_job", "owner_id", "job_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    owner_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)

    # job_ref 快照
    job_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    apply_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    match_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    cover_letter: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[EntryStatus] = mapped_column(
        SQLEnum(EntryStatus),
        default=EntryStatus.PENDING,
        index=True,
        nullable=False,
    )
    claimed_session_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def job_ref(self) -> dict:
        return {
            "id": self.job_id,
            "title": self.title,
            "company": self.company,
            "location": self.location,
            "apply_url": self.apply_url,
            "description": self.description,
            "match_score": self.match_score,
            "cover_letter": self.cover_letter,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "job": {
                "id": self.job_id,
                "title": self.title,
                "company": self.company,
                "location": self.location,
                "apply_url": self.apply_url,
                "match_score": self.match_score,
            },
            "status": self.status.value
            if isinstance(self.status, EntryStatus)
            else self.status,
            "claimed_session_id": self.claimed_session_id,
            "claimed_at": self.claimed_at.isoformat() if self.claimed_at else None,
            "result": self.result,
            "retry_count": self.retry_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat()
            if self.completed_at
            else None,
        }

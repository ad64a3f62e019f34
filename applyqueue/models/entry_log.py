from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Integer, Text, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from ..db.database import Base


class EntryLog(Base):
    """投递尝试执行日志，按 entry_id 追踪。"""

    __tablename__ = "entry_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    entry_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("queue_entries.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    level: Mapped[str] = mapped_column(String(16), default="info", nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    create_time: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entry_id": self.entry_id,
            "level": self.level,
            "message": self.message,
            "create_time": self.create_time.isoformat() if self.create_time else None,
        }

"""
条目级执行日志：写入 entry_logs 表并同步打印，便于 UI 与排查。
"""

from __future__ import annotations

from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from ..db import database
from ..models.entry_log import EntryLog

LogFn = Callable[..., None]


def log_entry(entry_id: int | None, message: str, level: str = "info") -> None:
    """写入日志"""
    print(f"[entry={entry_id}] [{level.upper()}] {message}")
    if entry_id is None:
        return
    try:
        with database.SessionLocal() as session:
            session.add(EntryLog(entry_id=entry_id, level=level, message=message))
            session.commit()
    except SQLAlchemyError as e:
        # 日志落库失败不影响投递流程
        print(f"[entry={entry_id}] [ERROR] 日志写入失败: {e}")


def entry_logger(entry_id: int | None) -> LogFn:
    """返回绑定 entry_id 的 log_fn(msg, level="info")。"""
    return lambda msg, level="info": log_entry(entry_id, msg, level)


def list_entry_logs(entry_id: int) -> list[dict]:
    with database.SessionLocal() as session:
        logs = (
            session.query(EntryLog)
            .filter(EntryLog.entry_id == entry_id)
            .order_by(EntryLog.create_time.asc(), EntryLog.id.asc())
            .all()
        )
        return [log.to_dict() for log in logs]

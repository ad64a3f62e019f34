from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from ..config import get_database_url


DATABASE_URL = get_database_url()


class Base(DeclarativeBase):
    """SQLAlchemy Base."""


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        # 两个驱动线程共享同一个 sqlite 文件；写锁等待而不是立即报 locked
        return {"check_same_thread": False, "timeout": 15}
    return {}


engine = create_engine(
    DATABASE_URL,
    connect_args=_connect_args(DATABASE_URL),
)

# 禁用 expire_on_commit，避免离开 Session 后对象属性失效导致 DetachedInstanceError
SessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
)


def init_db() -> None:
    """初始化数据库表结构。"""
    from ..models.queue_entry import QueueEntry  # noqa: F401
    from ..models.entry_log import EntryLog  # noqa: F401
    from ..models.user_profile import UserProfile  # noqa: F401

    Base.metadata.create_all(bind=engine)


@contextmanager
def get_session():
    """提供一个上下文管理的 Session，便于在业务代码中使用 with get_session()."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

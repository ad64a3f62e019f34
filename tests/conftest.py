from __future__ import annotations

from contextlib import contextmanager

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


@pytest.fixture()
def isolated_db(monkeypatch, tmp_path):
    """
    Create an isolated sqlite database for store/driver/API integration tests.
    """
    from applyqueue.db import database as db_module
    from applyqueue.db.database import Base
    from applyqueue.models import entry_log, queue_entry, user_profile  # noqa: F401

    db_file = tmp_path / "test_applyqueue.db"
    test_engine = create_engine(
        f"sqlite:///{db_file}",
        connect_args={"check_same_thread": False, "timeout": 15},
    )
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_engine,
        expire_on_commit=False,
    )

    @contextmanager
    def testing_get_session():
        s = TestingSessionLocal()
        try:
            yield s
            s.commit()
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()

    # 其他模块都通过 database.<symbol> 在调用时取值，只需替换 db 模块
    monkeypatch.setattr(db_module, "engine", test_engine, raising=True)
    monkeypatch.setattr(db_module, "SessionLocal", TestingSessionLocal, raising=True)
    monkeypatch.setattr(db_module, "get_session", testing_get_session, raising=True)

    Base.metadata.create_all(bind=test_engine)
    return TestingSessionLocal


@pytest.fixture()
def complete_profile():
    from applyqueue.core.profile import ApplicantProfile

    return ApplicantProfile(
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
        phone="555-0100",
        city="London",
        resume_text="Analytical engine programmer.",
        salary_min=120000,
        salary_max=150000,
        salary_expectation="$120k - $150k",
        years_of_experience=7,
        skills=("python", "sql"),
    )

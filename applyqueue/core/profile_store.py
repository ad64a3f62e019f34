"""
用户资料读写（user_profiles 表）。
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select

from ..db import database
from ..models.queue_entry import utcnow
from ..models.user_profile import UserProfile
from .profile import ApplicantProfile, build_applicant_profile


def get_owner_profile(owner_id: str) -> Optional[UserProfile]:
    with database.get_session() as session:
        return session.execute(
            select(UserProfile).where(UserProfile.owner_id == owner_id)
        ).scalar_one_or_none()


def load_applicant_profile(owner_id: str) -> ApplicantProfile:
    """每次调用都重新读库；找不到记录时返回空资料。"""
    return build_applicant_profile(get_owner_profile(owner_id))


def save_owner_profile(owner_id: str, data: dict) -> UserProfile:
    """只更新 EDITABLE_FIELDS 中出现的键，其他键忽略。"""
    with database.get_session() as session:
        record = session.execute(
            select(UserProfile).where(UserProfile.owner_id == owner_id)
        ).scalar_one_or_none()
        if record is None:
            record = UserProfile(owner_id=owner_id)
            session.add(record)
        for name in UserProfile.EDITABLE_FIELDS:
            if name in data:
                setattr(record, name, data[name])
        record.updated_at = utcnow()
        session.flush()
        return record

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..db.database import Base


class UserProfile(Base):
    """用户记录：批处理驱动据此构建 ApplicantProfile。每个 owner 一条。"""

    __tablename__ = "user_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    owner_id: Mapped[str] = mapped_column(
        String(128), unique=True, index=True, nullable=False
    )
    first_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    state: Mapped[str | None] = mapped_column(String(128), nullable=True)
    country: Mapped[str | None] = mapped_column(String(128), nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String(32), nullable=True)

    linkedin_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    portfolio_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    github_url: Mapped[str | None] = mapped_column(String(512), nullable=True)

    authorized_to_work: Mapped[bool] = mapped_column(Boolean, default=True)
    requires_sponsorship: Mapped[bool] = mapped_column(Boolean, default=False)
    visa_status: Mapped[str | None] = mapped_column(String(128), nullable=True)

    start_date_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    custom_start_date: Mapped[str | None] = mapped_column(String(64), nullable=True)
    salary_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    salary_max: Mapped[int | None] = mapped_column(Integer, nullable=True)

    resume_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    optimized_resume_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    resume_file_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    skills: Mapped[list | None] = mapped_column(JSON, nullable=True)
    years_of_experience: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    current_company: Mapped[str | None] = mapped_column(String(255), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    EDITABLE_FIELDS = (
        "first_name",
        "last_name",
        "email",
        "phone",
        "city",
        "state",
        "country",
        "zip_code",
        "linkedin_url",
        "portfolio_url",
        "github_url",
        "authorized_to_work",
        "requires_sponsorship",
        "visa_status",
        "start_date_type",
        "custom_start_date",
        "salary_min",
        "salary_max",
        "resume_text",
        "optimized_resume_text",
        "resume_file_path",
        "skills",
        "years_of_experience",
        "current_title",
        "current_company",
    )

    def to_dict(self) -> dict:
        data = {"id": self.id, "owner_id": self.owner_id}
        for name in self.EDITABLE_FIELDS:
            data[name] = getattr(self, name)
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data

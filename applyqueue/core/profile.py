"""
申请人资料（ApplicantProfile）。

职责：
- 从用户记录构建只读的 ApplicantProfile
- 最小必填字段校验（打开浏览器会话之前强制执行）
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

StartDateType = Literal["immediately", "two_weeks", "one_month", "custom"]

# 对外契约：缺任一字段都不会打开浏览器会话
REQUIRED_PROFILE_FIELDS = ("first_name", "last_name", "email", "resume_text")

_PROFILE_FIELD_LABELS = {
    "first_name": "firstName",
    "last_name": "lastName",
    "email": "email",
    "resume_text": "resumeText",
}


@dataclass(frozen=True)
class ApplicantProfile:
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""

    city: str = ""
    state: str = ""
    country: str = "United States"
    zip_code: str = ""

    linkedin_url: Optional[str] = None
    portfolio_url: Optional[str] = None
    github_url: Optional[str] = None

    authorized_to_work: bool = True
    requires_sponsorship: bool = False
    visa_status: Optional[str] = None

    start_date_type: StartDateType = "two_weeks"
    custom_start_date: Optional[str] = None

    salary_min: Optional[int] = None
    salary_max: Optional[int] = None
    salary_expectation: Optional[str] = None

    resume_text: str = ""
    resume_file_path: Optional[str] = None

    skills: tuple[str, ...] = field(default_factory=tuple)
    years_of_experience: Optional[int] = None
    current_title: Optional[str] = None
    current_company: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict:
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "zip_code": self.zip_code,
            "linkedin_url": self.linkedin_url,
            "portfolio_url": self.portfolio_url,
            "github_url": self.github_url,
            "authorized_to_work": self.authorized_to_work,
            "requires_sponsorship": self.requires_sponsorship,
            "visa_status": self.visa_status,
            "start_date_type": self.start_date_type,
            "custom_start_date": self.custom_start_date,
            "salary_min": self.salary_min,
            "salary_max": self.salary_max,
            "salary_expectation": self.salary_expectation,
            "resume_text": self.resume_text,
            "resume_file_path": self.resume_file_path,
            "skills": list(self.skills),
            "years_of_experience": self.years_of_experience,
            "current_title": self.current_title,
            "current_company": self.current_company,
        }


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def format_salary_expectation(
    salary_min: Optional[int], salary_max: Optional[int]
) -> Optional[str]:
    """把薪资区间格式化为 "$120k - $150k"；只有下限时只给下限。"""
    if not salary_min:
        return None
    low = f"${salary_min / 1000:.0f}k"
    if not salary_max:
        return low
    return f"{low} - ${salary_max / 1000:.0f}k"


def build_applicant_profile(record: Any) -> ApplicantProfile:
    """
    从用户记录（UserProfile ORM 对象或 dict）构建 ApplicantProfile。

    记录缺失（None）时返回空资料，由 validate_profile 报出缺失字段。
    """
    if record is None:
        return ApplicantProfile()
    if isinstance(record, ApplicantProfile):
        return record

    def get(name: str, default: Any = None) -> Any:
        if isinstance(record, dict):
            return record.get(name, default)
        return getattr(record, name, default)

    start_date_type = _text(get("start_date_type")) or "two_weeks"
    if start_date_type not in ("immediately", "two_weeks", "one_month", "custom"):
        start_date_type = "two_weeks"

    salary_min = get("salary_min")
    salary_max = get("salary_max")
    authorized = get("authorized_to_work")
    sponsorship = get("requires_sponsorship")

    return ApplicantProfile(
        first_name=_text(get("first_name")),
        last_name=_text(get("last_name")),
        email=_text(get("email")),
        phone=_text(get("phone")),
        city=_text(get("city")),
        state=_text(get("state")),
        country=_text(get("country")) or "United States",
        zip_code=_text(get("zip_code")),
        linkedin_url=_text(get("linkedin_url")) or None,
        portfolio_url=_text(get("portfolio_url")) or None,
        github_url=_text(get("github_url")) or None,
        authorized_to_work=True if authorized is None else bool(authorized),
        requires_sponsorship=False if sponsorship is None else bool(sponsorship),
        visa_status=_text(get("visa_status")) or None,
        start_date_type=start_date_type,
        custom_start_date=_text(get("custom_start_date")) or None,
        salary_min=salary_min,
        salary_max=salary_max,
        salary_expectation=_text(get("salary_expectation"))
        or format_salary_expectation(salary_min, salary_max),
        # 优化后的简历文本优先
        resume_text=_text(get("optimized_resume_text")) or _text(get("resume_text")),
        resume_file_path=_text(get("resume_file_path")) or None,
        skills=tuple(get("skills") or ()),
        years_of_experience=get("years_of_experience"),
        current_title=_text(get("current_title")) or None,
        current_company=_text(get("current_company")) or None,
    )


def validate_profile(profile: ApplicantProfile) -> list[str]:
    """返回缺失的必填字段（对外展示名，如 firstName）；空列表表示通过。"""
    missing: list[str] = []
    for name in REQUIRED_PROFILE_FIELDS:
        if not _text(getattr(profile, name, "")):
            missing.append(_PROFILE_FIELD_LABELS[name])
    return missing


def describe_missing_fields(missing: list[str]) -> str:
    return f"Missing required profile fields: {', '.join(missing)}"

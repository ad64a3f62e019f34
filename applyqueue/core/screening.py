"""
筛选问题（screening questions）回答模块

职责：
- 把常见筛选问题建模为一个小的 tagged union（QuestionKind）
- 从 ApplicantProfile 解析出每类问题的答案与对应的页面指令
- 无资料可依的 yes/no、下拉题的"保守默认值"启发式单独放在
  ambiguous_default_directives 中，可整体替换或关闭
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .profile import ApplicantProfile


class QuestionKind(str, Enum):
    WORK_AUTH = "work_auth"
    SPONSORSHIP = "sponsorship"
    START_DATE = "start_date"
    SALARY = "salary"
    YEARS_EXPERIENCE = "years_experience"
    FREEFORM = "freeform"


@dataclass(frozen=True)
class ScreeningAnswer:
    kind: QuestionKind
    value: str
    directive: str


_START_DATE_TEXT = {
    "immediately": "immediately",
    "two_weeks": "in 2 weeks",
    "one_month": "in 1 month",
}

AmbiguousDefaults = Callable[[], list[str]]


def start_date_text(profile: ApplicantProfile) -> str:
    if profile.start_date_type == "custom" and profile.custom_start_date:
        return profile.custom_start_date
    return _START_DATE_TEXT.get(profile.start_date_type, "flexible")


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def resolve_answer(kind: QuestionKind, profile: ApplicantProfile) -> Optional[ScreeningAnswer]:
    """按问题类型从资料中解析答案；资料里没有依据时返回 None。"""
    if kind == QuestionKind.WORK_AUTH:
        value = _yes_no(profile.authorized_to_work)
        return ScreeningAnswer(
            kind,
            value,
            f"If there's a question about authorization to work in the US, select '{value}'",
        )
    if kind == QuestionKind.SPONSORSHIP:
        value = _yes_no(profile.requires_sponsorship)
        return ScreeningAnswer(
            kind,
            value,
            f"If there's a question about requiring visa sponsorship, select '{value}'",
        )
    if kind == QuestionKind.START_DATE:
        value = start_date_text(profile)
        return ScreeningAnswer(
            kind,
            value,
            f"If there's a question about start date or availability, indicate: {value}",
        )
    if kind == QuestionKind.SALARY:
        value = profile.salary_expectation or (
            str(profile.salary_min) if profile.salary_min else ""
        )
        if not value:
            return None
        return ScreeningAnswer(
            kind, value, f"If there's a salary expectation field, enter: {value}"
        )
    if kind == QuestionKind.YEARS_EXPERIENCE:
        if profile.years_of_experience is None:
            return None
        value = str(profile.years_of_experience)
        return ScreeningAnswer(
            kind, value, f"If there's a years of experience field, enter: {value}"
        )
    if kind == QuestionKind.FREEFORM:
        if not profile.skills:
            return None
        value = ", ".join(profile.skills[:5])
        return ScreeningAnswer(
            kind,
            value,
            f"If there's a question asking about your key skills, enter: {value}",
        )
    return None


def resolve_answers(profile: ApplicantProfile) -> list[ScreeningAnswer]:
    answers: list[ScreeningAnswer] = []
    for kind in QuestionKind:
        answer = resolve_answer(kind, profile)
        if answer is not None:
            answers.append(answer)
    return answers


def ambiguous_default_directives() -> list[str]:
    """
    无资料可依时的保守默认值启发式。

    注意：该行为可能以用户未预期的方式回答资质类问题，是否保留需产品决策。
    """
    return [
        "For any unanswered yes/no questions about qualifications, select 'Yes' if it seems beneficial",
        "For any required dropdown fields that are empty, select the first reasonable option",
    ]


def screening_directives(
    profile: ApplicantProfile,
    *,
    ambiguous_defaults: Optional[AmbiguousDefaults] = ambiguous_default_directives,
) -> list[str]:
    """资料驱动的指令在前，默认值启发式在后；ambiguous_defaults=None 时关闭启发式。"""
    directives = [answer.directive for answer in resolve_answers(profile)]
    if ambiguous_defaults is not None:
        directives.extend(ambiguous_defaults())
    return directives

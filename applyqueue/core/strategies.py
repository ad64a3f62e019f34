"""
平台投递策略

每个策略都是一段确定性的指令序列（共用字段填写 + 筛选问题子流程），
区别只在轮数与提前退出条件：
- generic（greenhouse / lever / other）：单轮填写后提交
- indeed：点击 Apply；跳出 indeed 域名即按 redirect 提前结束
- linkedin：Easy Apply 多步表单，循环有硬上限，超过上限视为失败

策略只依赖 ActuationClient 的 {performed: bool} 契约，不关心其内部实现。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from .activity_log import LogFn
from .actuation import ActuationClient, ActuationSession
from .confirmation import detect_confirmation
from .platforms import PLATFORM_DOMAINS, Platform, is_on_domain
from .profile import ApplicantProfile
from .screening import AmbiguousDefaults, ambiguous_default_directives, screening_directives

TIMEOUT_PREFIX = "Timeout:"
REDIRECT_ERROR = "Redirected to external application site"
NO_CONFIRMATION_ERROR = "No confirmation detected after submission"
DEFAULT_LINKEDIN_MAX_STEPS = 10

REVIEW_STEP_MARKERS = ("Review your application", "Submit application")
COVER_LETTER_LIMIT = 500


class BudgetExhausted(Exception):
    """会话接近时间预算，主动放弃下一段子流程。"""


@dataclass
class JobToApply:
    id: str
    title: str
    company: str
    apply_url: str
    platform: Platform
    cover_letter: Optional[str] = None


@dataclass
class ApplicationResult:
    success: bool
    job_id: str
    platform: str
    method: Optional[str] = None
    confirmation_text: Optional[str] = None
    error: Optional[str] = None
    screenshot: Optional[bytes] = None
    duration_ms: int = 0

    @property
    def is_redirect(self) -> bool:
        return self.method == "redirect"

    @property
    def is_timeout(self) -> bool:
        return bool(self.error and self.error.startswith(TIMEOUT_PREFIX))

    def to_record(self) -> dict:
        return {
            "success": self.success,
            "method": self.method,
            "confirmation_text": self.confirmation_text,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


def timeout_error(step: str) -> str:
    return f"{TIMEOUT_PREFIX} session time budget nearly exhausted before {step}"


@dataclass
class StrategyContext:
    client: ActuationClient
    session: ActuationSession
    job: JobToApply
    profile: ApplicantProfile
    budget_buffer_s: float = 10.0
    ambiguous_defaults: Optional[AmbiguousDefaults] = ambiguous_default_directives
    log: LogFn = lambda msg, level="info": None

    def act(self, intent: str) -> bool:
        result = self.client.act(self.session, intent)
        self.log(f"{'✓' if result.performed else '·'} {intent[:120]}")
        return result.performed

    def ensure_budget(self, step: str) -> None:
        if self.client.is_near_budget(self.session, self.budget_buffer_s):
            raise BudgetExhausted(step)

    def settle(self) -> None:
        self.client.wait_for_settle(self.session)

    def left_platform(self, platform: Platform) -> bool:
        current = self.client.current_url(self.session)
        return not is_on_domain(current, PLATFORM_DOMAINS[platform])

    def result(self, success: bool, **kwargs) -> ApplicationResult:
        return ApplicationResult(
            success=success,
            job_id=self.job.id,
            platform=self.job.platform.value,
            **kwargs,
        )


# ----------------------------------------------------------------------
# 共用子流程
# ----------------------------------------------------------------------


def fill_contact_fields(ctx: StrategyContext) -> None:
    ctx.ensure_budget("contact fields")
    profile = ctx.profile
    if profile.email:
        ctx.act(f"If there's an email field that's empty, fill it with: {profile.email}")
    if profile.phone:
        ctx.act(f"If there's a phone number field that's empty, fill it with: {profile.phone}")


def fill_identity_fields(ctx: StrategyContext) -> None:
    ctx.ensure_budget("identity fields")
    profile = ctx.profile
    ctx.act(f"Fill the first name field with: {profile.first_name}")
    ctx.act(f"Fill the last name field with: {profile.last_name}")
    ctx.act(f"Fill the email field with: {profile.email}")
    if profile.phone:
        ctx.act(f"Fill the phone field with: {profile.phone}")


def fill_common_fields(ctx: StrategyContext) -> None:
    """跨平台常见字段：地址与职业链接，均为"若存在且为空则填写"。"""
    ctx.ensure_budget("common fields")
    profile = ctx.profile
    optional_fields = [
        ("city", profile.city),
        ("state", profile.state),
        ("zip code or postal code", profile.zip_code),
        ("LinkedIn URL", profile.linkedin_url),
        ("portfolio or website URL", profile.portfolio_url),
        ("GitHub URL", profile.github_url),
    ]
    for label, value in optional_fields:
        if value:
            ctx.act(f"If there's a {label} field that's empty, fill it with: {value}")


def upload_resume(ctx: StrategyContext) -> None:
    ctx.ensure_budget("resume upload")
    profile = ctx.profile
    if profile.resume_file_path:
        ctx.act(
            "If there's a resume or CV upload field, upload the file: "
            f"{profile.resume_file_path}"
        )
        return
    # 没有简历文件时，只处理可粘贴文本的简历框
    ctx.act(
        "If there's a resume text area, paste this resume text: "
        f"{profile.resume_text[:1500]}"
    )


def handle_screening_questions(ctx: StrategyContext) -> None:
    ctx.ensure_budget("screening questions")
    for directive in screening_directives(
        ctx.profile, ambiguous_defaults=ctx.ambiguous_defaults
    ):
        ctx.act(directive)


def submit_and_confirm(
    ctx: StrategyContext, submit_intent: str, method: str
) -> ApplicationResult:
    ctx.ensure_budget("submit")
    ctx.act(submit_intent)
    ctx.settle()
    confirmation = detect_confirmation(ctx.client, ctx.session, ctx.log)
    if confirmation:
        ctx.log(f"✓ 检测到提交确认: {confirmation[:120]}")
        return ctx.result(True, method=method, confirmation_text=confirmation)
    ctx.log("⚠ 提交后未检测到确认信号，结果未知", "warn")
    return ctx.result(False, method=method, error=NO_CONFIRMATION_ERROR)


# ----------------------------------------------------------------------
# 平台策略
# ----------------------------------------------------------------------


def apply_via_generic_form(ctx: StrategyContext) -> ApplicationResult:
    """Greenhouse / Lever / 其他 ATS 的单页表单。"""
    fill_identity_fields(ctx)
    fill_common_fields(ctx)
    upload_resume(ctx)

    cover_letter = ctx.job.cover_letter
    if cover_letter:
        ctx.ensure_budget("cover letter")
        snippet = cover_letter[:COVER_LETTER_LIMIT]
        if len(cover_letter) > COVER_LETTER_LIMIT:
            snippet += "..."
        ctx.act(f"If there's a cover letter text area, fill it with: {snippet}")

    handle_screening_questions(ctx)
    return submit_and_confirm(
        ctx,
        "Click the 'Submit Application' or 'Apply' or 'Submit' button",
        method="form_fill",
    )


def apply_via_indeed(ctx: StrategyContext) -> ApplicationResult:
    ctx.ensure_budget("indeed apply entry")
    ctx.act("Click the 'Apply now' or 'Apply on company site' button")
    ctx.settle()

    # 外部站点无法自动完成：这是刻意的提前结束，不是失败
    if ctx.left_platform(Platform.INDEED):
        ctx.log("↪ 已跳转到 Indeed 之外的外部投递站点，按 redirect 结束")
        return ctx.result(False, method="redirect", error=REDIRECT_ERROR)

    fill_contact_fields(ctx)
    upload_resume(ctx)
    fill_common_fields(ctx)
    handle_screening_questions(ctx)
    return submit_and_confirm(
        ctx,
        "Click the 'Submit your application' or 'Apply' or 'Continue' button to submit the application",
        method="easy_apply",
    )


def is_review_step(page_text: str | None) -> bool:
    text = page_text or ""
    return any(marker in text for marker in REVIEW_STEP_MARKERS)


def apply_via_linkedin(
    ctx: StrategyContext, max_steps: int = DEFAULT_LINKEDIN_MAX_STEPS
) -> ApplicationResult:
    ctx.ensure_budget("linkedin apply entry")
    if not ctx.act("Click the 'Easy Apply' button on the job posting"):
        ctx.act("Click the 'Apply' button on the job posting")
    ctx.settle()

    if ctx.left_platform(Platform.LINKEDIN):
        ctx.log("↪ 已跳转到 LinkedIn 之外的外部投递站点，按 redirect 结束")
        return ctx.result(False, method="redirect", error=REDIRECT_ERROR)

    fill_contact_fields(ctx)

    # 多步表单：硬上限防止表单无限翻页/循环
    submitted = False
    for step in range(max_steps):
        ctx.ensure_budget(f"linkedin form step {step + 1}")
        page_text = ctx.client.visible_text(ctx.session)
        if is_review_step(page_text):
            ctx.log(f"ℹ 第 {step + 1} 步到达 review/submit 页")
            ctx.act("Click the 'Submit application' button")
            submitted = True
            break

        fill_common_fields(ctx)
        handle_screening_questions(ctx)

        if ctx.act(
            "Click the 'Next' or 'Continue' or 'Review' button to proceed to the next step"
        ):
            ctx.settle()
            continue

        # 找不到前进按钮：直接尝试提交
        ctx.act("Click the 'Submit application' or 'Submit' button")
        submitted = True
        break

    if not submitted:
        ctx.log(f"❌ 超过 {max_steps} 步仍未到达提交页", "error")
        return ctx.result(
            False,
            method="easy_apply",
            error=f"Exceeded {max_steps} form steps without reaching submission",
        )

    ctx.settle()
    confirmation = detect_confirmation(ctx.client, ctx.session, ctx.log)
    if confirmation:
        return ctx.result(True, method="easy_apply", confirmation_text=confirmation)
    return ctx.result(False, method="easy_apply", error=NO_CONFIRMATION_ERROR)


Strategy = Callable[[StrategyContext], ApplicationResult]


def select_strategy(
    platform: Platform, *, linkedin_max_steps: int = DEFAULT_LINKEDIN_MAX_STEPS
) -> Strategy:
    if platform == Platform.LINKEDIN:
        return lambda ctx: apply_via_linkedin(ctx, max_steps=linkedin_max_steps)
    if platform == Platform.INDEED:
        return apply_via_indeed
    return apply_via_generic_form


def run_strategy(
    ctx: StrategyContext, *, linkedin_max_steps: int = DEFAULT_LINKEDIN_MAX_STEPS
) -> ApplicationResult:
    """在策略边界统一收口：超时与异常都转为失败结果，不向外抛。"""
    strategy = select_strategy(ctx.job.platform, linkedin_max_steps=linkedin_max_steps)
    try:
        return strategy(ctx)
    except BudgetExhausted as exc:
        ctx.log(f"⏱ 接近时间预算，放弃后续步骤: {exc}", "warn")
        return ctx.result(False, error=timeout_error(str(exc)))
    except Exception as exc:
        ctx.log(f"❌ 策略执行异常: {exc}", "error")
        return ctx.result(False, error=str(exc) or exc.__class__.__name__)

"""
单岗位投递执行模块。

流程：
1. 打开投递链接
2. 检查时间预算，按链接识别平台并选择策略
3. 执行策略（共用字段 + 筛选问题 + 提交 + 确认识别）
4. 尽力截取最终页面截图，记录耗时

会话的打开与关闭由调用方（批处理/实时驱动）负责，这里只使用会话。
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from ..config import Settings, load_settings
from .activity_log import LogFn
from .actuation import ActuationClient, ActuationSession
from .platforms import classify
from .profile import ApplicantProfile
from .screening import ambiguous_default_directives
from .strategies import (
    ApplicationResult,
    JobToApply,
    StrategyContext,
    run_strategy,
    timeout_error,
)


def job_from_ref(job_ref: dict) -> JobToApply:
    apply_url = str(job_ref.get("apply_url") or "").strip()
    return JobToApply(
        id=str(job_ref.get("id") or apply_url),
        title=str(job_ref.get("title") or ""),
        company=str(job_ref.get("company") or ""),
        apply_url=apply_url,
        platform=classify(apply_url),
        cover_letter=job_ref.get("cover_letter") or None,
    )


def apply_to_job(
    client: ActuationClient,
    session: ActuationSession,
    job_ref: dict,
    profile: ApplicantProfile,
    settings: Optional[Settings] = None,
    log_fn: Optional[LogFn] = None,
    clock: Callable[[], float] = time.monotonic,
) -> ApplicationResult:
    """
    在已打开的会话里投递一个岗位。不抛异常：所有错误都落在返回结果里。
    """
    settings = settings or load_settings()
    log = log_fn or (lambda msg, level="info": None)
    started = clock()
    job = job_from_ref(job_ref)

    log("=" * 50)
    log("🚀 开始自动投递")
    log(f"   申请人: {profile.full_name}")
    log(f"   岗位: {job.title or '未命名'}")
    log(f"   公司: {job.company or '未知'}")
    log(f"   平台: {job.platform.value}")
    log(f"   链接: {job.apply_url}")
    log("=" * 50)

    ctx = StrategyContext(
        client=client,
        session=session,
        job=job,
        profile=profile,
        budget_buffer_s=settings.session.near_budget_buffer_seconds,
        ambiguous_defaults=ambiguous_default_directives if settings.ambiguous_defaults else None,
        log=log,
    )

    try:
        client.navigate(session, job.apply_url)
        log("✓ 页面加载成功")
        if client.is_near_budget(session, settings.session.near_budget_buffer_seconds):
            log("⏱ 页面加载后已接近时间预算", "warn")
            result = ctx.result(False, error=timeout_error("platform strategy"))
        else:
            result = run_strategy(ctx, linkedin_max_steps=settings.linkedin_max_steps)
    except Exception as exc:
        log(f"❌ 投递过程异常: {exc}", "error")
        result = ctx.result(False, error=str(exc) or exc.__class__.__name__)

    try:
        result.screenshot = client.screenshot(session)
    except Exception as exc:
        log(f"⚠ 截图失败: {exc}", "warn")

    result.duration_ms = int((clock() - started) * 1000)
    if result.success:
        log(f"✓ 投递成功 ({result.duration_ms}ms)")
    elif result.is_redirect:
        log("↪ 外部投递站点，需要手动投递", "warn")
    else:
        log(f"❌ 投递未完成: {result.error}", "error")
    return result

"""
提交确认识别模块

职责：
- 提交后确认文案识别（结构化读取优先，失败时退回文本短语扫描）
- 没有任何确认信号时返回 None：表示"未知"，不是成功
"""

from __future__ import annotations

from typing import Optional

from .activity_log import LogFn
from .actuation import ActuationClient, ActuationError, ActuationSession

CONFIRMATION_PHRASES = (
    "application submitted",
    "thank you for applying",
    "thanks for applying",
    "application received",
    "application has been received",
    "successfully applied",
    "successfully submitted",
    "application sent",
    "your application has been submitted",
    "thanks for your application",
)

CONFIRMATION_INSTRUCTION = (
    "Extract any confirmation message that indicates the application was "
    "submitted successfully. Look for text like 'Application submitted', "
    "'Thank you for applying', 'Your application has been received'. "
    "Return is_confirmed as false if no confirmation is found."
)

CONFIRMATION_SCHEMA = {
    "confirmation_message": "The confirmation message text",
    "is_confirmed": "Whether a confirmation was found (boolean)",
}


def find_confirmation_phrase(page_text: str | None) -> Optional[str]:
    """在可见文本中查找已知确认短语，返回命中的短语。"""
    lower = (page_text or "").lower()
    for phrase in CONFIRMATION_PHRASES:
        if phrase in lower:
            return phrase
    return None


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def detect_confirmation(
    client: ActuationClient,
    session: ActuationSession,
    log_fn: Optional[LogFn] = None,
) -> Optional[str]:
    """
    提交后的确认检测。

    结构化读取出错时不会直接放弃：退回到可见文本短语扫描，
    避免仅因为读取失败而漏掉一次真实的确认。
    """
    log = log_fn or (lambda msg, level="info": None)
    try:
        data = client.extract(session, CONFIRMATION_INSTRUCTION, CONFIRMATION_SCHEMA)
    except Exception as exc:
        log(f"⚠ 结构化确认读取失败，改用文本扫描: {exc}", "warn")
        try:
            return find_confirmation_phrase(client.visible_text(session))
        except ActuationError as text_exc:
            log(f"⚠ 页面文本读取失败: {text_exc}", "warn")
            return None

    if data and _as_bool(data.get("is_confirmed")):
        message = str(data.get("confirmation_message") or "").strip()
        return message or "Application submitted"
    return None

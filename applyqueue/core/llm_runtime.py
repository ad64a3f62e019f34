"""
LLM 调用运行时

职责：
- 在候选模型列表上回退调用（限流/能力不匹配时切换下一个模型）
- 其他错误立即返回失败，不重试
- 解析模型返回的 JSON（容忍 ```json 代码块包裹）
"""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from openai import OpenAI

from ..config import LLMConfig

_CAPABILITY_MARKERS = (
    "does not support",
    "unsupported",
    "response_format",
    "invalid model",
    "model_not_found",
    "not found",
)


@dataclass
class LLMCallResult:
    ok: bool
    raw: str = ""
    model: str = ""
    error_summary: str | None = None
    error_code: str | None = None


def classify_llm_error(exc: Exception) -> str:
    """rate_limit / unsupported / other"""
    text = str(exc)
    lower = text.lower()
    if "429" in text or "rate_limit" in lower or "rate limit" in lower:
        return "rate_limit"
    if any(marker in lower for marker in _CAPABILITY_MARKERS):
        return "unsupported"
    return "other"


def build_client(config: Optional[LLMConfig] = None, api_key: str | None = None) -> OpenAI:
    """OPENAI_API_KEY 由 .env / 环境变量提供；超时与重试次数取自配置。"""
    config = config or LLMConfig()
    kwargs: dict[str, Any] = {
        "timeout": config.request_timeout_seconds,
        "max_retries": config.max_retries,
    }
    if api_key:
        kwargs["api_key"] = api_key
    return OpenAI(**kwargs)


def run_chat_with_fallback(
    *,
    client,
    models: list[str],
    messages: list[dict],
    temperature: float = 0.0,
    max_tokens: int = 400,
    json_mode: bool = True,
    on_log: Optional[Callable[[str, str], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
    sleep_seconds: float = 1.0,
) -> LLMCallResult:
    def _log(level: str, message: str) -> None:
        if on_log:
            on_log(level, message)

    if not models:
        return LLMCallResult(ok=False, error_summary="未配置模型", error_code="llm_no_model")

    exhausted_code = "llm_no_result"
    for index, model in enumerate(models):
        kwargs: dict[str, Any] = {
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "messages": messages,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            completion = client.chat.completions.create(**kwargs)
        except Exception as exc:
            kind = classify_llm_error(exc)
            if kind == "other":
                return LLMCallResult(
                    ok=False,
                    model=model,
                    error_summary=f"LLM 调用失败: {exc}",
                    error_code="llm_call_failed",
                )
            if kind == "rate_limit":
                _log("warn", f"⚠️ 模型 {model} 遇到速率限制")
                exhausted_code = "rate_limit_exhausted"
            else:
                _log("warn", f"⚠️ 模型 {model} 能力不匹配或不可用，尝试回退")
                exhausted_code = "model_unsupported_exhausted"
            if index + 1 < len(models):
                _log("info", f"🔄 切换到模型: {models[index + 1]}")
                sleep(max(0.0, sleep_seconds))
            continue

        raw = completion.choices[0].message.content or ""
        return LLMCallResult(ok=True, raw=raw, model=model)

    return LLMCallResult(
        ok=False,
        model=models[-1],
        error_summary="所有候选模型都不可用",
        error_code=exhausted_code,
    )


def chat_with_config(
    client,
    config: LLMConfig,
    messages: list[dict],
    on_log: Optional[Callable[[str, str], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> LLMCallResult:
    return run_chat_with_fallback(
        client=client,
        models=config.ordered_models(),
        messages=messages,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        on_log=on_log,
        sleep=sleep,
    )


_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_json_object(raw: str | None) -> Optional[dict]:
    """解析模型输出中的 JSON 对象；解析不了返回 None。"""
    text = _FENCE_RE.sub("", (raw or "").strip())
    if not text:
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start < 0 or end <= start:
            return None
        try:
            data = json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            return None
    return data if isinstance(data, dict) else None

"""
Configuration module for loading queue / session / driver settings.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml


# Config directory path
CONFIG_DIR = Path(__file__).parent
SETTINGS_PATH = CONFIG_DIR / "settings.yaml"

DEFAULT_FALLBACK_MODELS = ["gpt-4o", "gpt-4o-mini"]


@dataclass
class QueueConfig:
    # 同一 owner + job_id 在该窗口内重复 enqueue 视为同一条
    dedupe_window_hours: float = 720.0
    # skipped（外部投递站点）默认永久终态
    allow_skip_retry: bool = False


@dataclass
class SessionConfig:
    # 刻意短于宿主 60s 硬上限
    time_budget_seconds: float = 55.0
    near_budget_buffer_seconds: float = 10.0
    navigation_timeout_ms: int = 30000
    settle_timeout_ms: int = 10000


@dataclass
class BrowserConfig:
    provider: str = "browserbase"
    # 后台线程打开会话的等待上限
    open_timeout_seconds: float = 45.0
    headless: bool = True
    slow_mo: int = 0
    executable_path: Optional[str] = None


@dataclass
class LLMConfig:
    model: str = "gpt-4o"
    fallback_models: list[str] = field(
        default_factory=lambda: list(DEFAULT_FALLBACK_MODELS)
    )
    temperature: float = 0.0
    max_tokens: int = 400
    # 单次请求上限；SDK 默认 600s 会远超会话预算
    request_timeout_seconds: float = 15.0
    max_retries: int = 1

    def ordered_models(self) -> list[str]:
        models = list(self.fallback_models or DEFAULT_FALLBACK_MODELS)
        if self.model and self.model in models:
            return [self.model] + [m for m in models if m != self.model]
        if self.model:
            return [self.model] + models
        return models


@dataclass
class BatchConfig:
    interval_seconds: float = 120.0


@dataclass
class LiveConfig:
    watch_interval_seconds: float = 2.0
    poll_interval_seconds: float = 1.0
    max_poll_attempts: int = 120
    actuation_endpoint: str = "http://127.0.0.1:8000"
    request_timeout_seconds: float = 10.0


@dataclass
class Settings:
    queue: QueueConfig = field(default_factory=QueueConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    live: LiveConfig = field(default_factory=LiveConfig)
    ambiguous_defaults: bool = True
    linkedin_max_steps: int = 10

    @classmethod
    def from_dict(cls, raw: dict) -> "Settings":
        raw = raw or {}
        screening = raw.get("screening", {}) or {}
        strategies = raw.get("strategies", {}) or {}
        return cls(
            queue=_build(QueueConfig, raw.get("queue")),
            session=_build(SessionConfig, raw.get("session")),
            browser=_build(BrowserConfig, raw.get("browser")),
            llm=_build(LLMConfig, raw.get("llm")),
            batch=_build(BatchConfig, raw.get("batch")),
            live=_build(LiveConfig, raw.get("live")),
            ambiguous_defaults=bool(screening.get("ambiguous_defaults", True)),
            linkedin_max_steps=int(strategies.get("linkedin_max_steps", 10)),
        )


def _build(config_cls, section: dict | None):
    """只取已声明字段，忽略 YAML 中的未知键。"""
    section = section or {}
    known = config_cls.__dataclass_fields__.keys()
    return config_cls(**{k: v for k, v in section.items() if k in known})


_settings_cache: Optional[Settings] = None


def load_settings(force_reload: bool = False) -> Settings:
    """
    Load settings from YAML file.
    Caches the result for performance.

    Returns:
        Settings: parsed settings (defaults when file missing or invalid)
    """
    global _settings_cache

    if _settings_cache is not None and not force_reload:
        return _settings_cache

    if not SETTINGS_PATH.exists():
        print(f"⚠️ Settings not found: {SETTINGS_PATH}, using defaults")
        _settings_cache = Settings()
        return _settings_cache

    try:
        with open(SETTINGS_PATH, "r", encoding="utf-8") as f:
            _settings_cache = Settings.from_dict(yaml.safe_load(f) or {})
    except (OSError, yaml.YAMLError, TypeError, ValueError) as e:
        print(f"❌ Failed to load settings: {e}")
        _settings_cache = Settings()
    return _settings_cache


def get_cron_secret() -> str | None:
    """批处理入口的共享密钥；未设置时入口不做鉴权。"""
    return os.getenv("CRON_SECRET") or None


def get_database_url() -> str:
    return os.getenv("APPLYQUEUE_DATABASE_URL", "sqlite:///./applyqueue/applyqueue.db")

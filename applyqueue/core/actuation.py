"""
浏览器驱动能力边界（Browser Actuation Client 契约）。

策略层只依赖这里定义的接口：
- act() 只返回 {performed: bool}，"找不到匹配元素" 是正常结果而不是异常
- is_near_budget() 是协作式取消点：每个多步子流程开始前检查
- close() 由持有会话的驱动在所有退出路径上调用

具体实现见 page_actuator.PageActuator（Playwright + LLM）。
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable


class ActuationError(Exception):
    """页面驱动过程中的错误。"""


class ProvisioningError(ActuationError):
    """无法获取浏览器会话（供应方不可用或凭据缺失）。对当前尝试是致命且不可重试的。"""


class ExtractionError(ActuationError):
    """结构化读取失败（调用方应走文本兜底）。"""


@dataclass
class ActResult:
    performed: bool
    detail: str = ""


@dataclass
class ActuationSession:
    session_id: str
    started_at: float
    time_budget_s: float
    handle: Any = None
    metadata: dict = field(default_factory=dict)


def new_session_id(prefix: str = "as") -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


class ActuationClient:
    """
    浏览器驱动客户端基类。

    子类实现 open / navigate / act / extract / screenshot / current_url /
    visible_text / wait_for_settle / close；预算判断由基类统一提供。
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock

    # -- 生命周期 -------------------------------------------------------

    def open(self, time_budget_s: float) -> ActuationSession:
        raise NotImplementedError

    def close(self, session: ActuationSession) -> None:
        raise NotImplementedError

    # -- 页面操作 -------------------------------------------------------

    def navigate(self, session: ActuationSession, url: str) -> None:
        raise NotImplementedError

    def wait_for_settle(self, session: ActuationSession) -> None:
        raise NotImplementedError

    def act(self, session: ActuationSession, intent: str) -> ActResult:
        raise NotImplementedError

    def extract(
        self, session: ActuationSession, instruction: str, schema: dict[str, str]
    ) -> dict:
        raise NotImplementedError

    def screenshot(self, session: ActuationSession) -> bytes:
        raise NotImplementedError

    def current_url(self, session: ActuationSession) -> str:
        raise NotImplementedError

    def visible_text(self, session: ActuationSession) -> str:
        raise NotImplementedError

    # -- 时间预算 -------------------------------------------------------

    def make_session(
        self, time_budget_s: float, handle: Any = None, session_id: str | None = None
    ) -> ActuationSession:
        return ActuationSession(
            session_id=session_id or new_session_id(),
            started_at=self._clock(),
            time_budget_s=float(time_budget_s),
            handle=handle,
        )

    def elapsed_seconds(self, session: ActuationSession) -> float:
        return max(0.0, self._clock() - session.started_at)

    def is_near_budget(self, session: ActuationSession, buffer_s: float) -> bool:
        """已用时间进入 (budget - buffer) 区间即返回 True。"""
        return self.elapsed_seconds(session) >= session.time_budget_s - buffer_s

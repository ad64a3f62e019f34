"""
PageActuator：ActuationClient 的 Playwright + LLM 实现。

act() 的流程：
1. build_ui_snapshot 生成当前页面可交互元素列表（带 ref）
2. 把意图和快照交给 LLM，要求返回 JSON 决策
3. 决策 performed=false 或 ref 不存在 → {performed: False}
4. 否则按 ref 定位元素并执行 click / fill / select / check / upload
"""

from __future__ import annotations

import json
import os
import time
from typing import Callable, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from ..config import Settings, load_settings
from .activity_log import LogFn
from .actuation import (
    ActResult,
    ActuationClient,
    ActuationError,
    ActuationSession,
    ExtractionError,
)
from .browser_manager import BrowserManager, BrowserSession
from .llm_runtime import build_client, chat_with_config, parse_json_object
from .ui_snapshot import SnapshotItem, build_ui_snapshot

ACTION_TIMEOUT_MS = 5000
PAGE_TEXT_LIMIT = 6000

ACT_SYSTEM_PROMPT = """你是网页表单操作助手。根据用户给出的一条操作指令和当前页面的可交互元素列表，决定是否以及如何执行。

只输出 JSON：
{"performed": true/false, "ref": "e3", "action": "click|fill|select|check|upload", "value": "..."}

规则：
- 指令以 "If there's ..." 开头时，页面上没有对应元素就返回 {"performed": false}
- 字段已经有正确的值时返回 {"performed": false}
- 只能使用列表中存在的 ref，不要编造
- fill / select / upload 必须给出 value；select 的 value 使用 options 中的原文
"""

EXTRACT_SYSTEM_PROMPT = """你是网页信息抽取助手。根据页面可见文本回答抽取指令。
只输出一个 JSON 对象，且必须包含 schema 中的所有键。"""


class PageActuator(ActuationClient):
    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        llm_client=None,
        browser_manager: Optional[BrowserManager] = None,
        log_fn: Optional[LogFn] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(clock=clock)
        self._settings = settings or load_settings()
        self._log = log_fn or (lambda msg, level="info": None)
        self._llm = llm_client
        self._browsers = browser_manager or BrowserManager(self._settings.browser, self._log)

    # -- 生命周期 -------------------------------------------------------

    def open(self, time_budget_s: float) -> ActuationSession:
        # ProvisioningError 原样抛出，由驱动标记为失败
        browser = self._browsers.launch()
        browser.page.set_default_navigation_timeout(self._settings.session.navigation_timeout_ms)
        browser.page.set_default_timeout(ACTION_TIMEOUT_MS)
        return self.make_session(
            time_budget_s,
            handle=browser,
            session_id=browser.remote_session_id,
        )

    def close(self, session: ActuationSession) -> None:
        browser: BrowserSession = session.handle
        if browser is None:
            return
        try:
            browser.close()
        except PlaywrightError as exc:
            raise ActuationError(f"Browser close failed: {exc}") from exc
        finally:
            session.handle = None

    # -- 页面操作 -------------------------------------------------------

    def navigate(self, session: ActuationSession, url: str) -> None:
        page = self._page(session)
        try:
            page.goto(url, wait_until="domcontentloaded")
        except PlaywrightError as exc:
            raise ActuationError(f"Navigation failed: {exc}") from exc
        self.wait_for_settle(session)

    def wait_for_settle(self, session: ActuationSession) -> None:
        page = self._page(session)
        try:
            page.wait_for_load_state(
                "networkidle", timeout=self._settings.session.settle_timeout_ms
            )
        except PlaywrightTimeoutError:
            # 长连接页面永远不会 networkidle，超时后照常继续
            pass

    def act(self, session: ActuationSession, intent: str) -> ActResult:
        page = self._page(session)
        snapshot_text, ref_map = build_ui_snapshot(page)
        if not ref_map:
            return ActResult(False, "no interactive elements")

        decision = self._ask(
            ACT_SYSTEM_PROMPT,
            f"操作指令：{intent}\n\n当前页面元素：\n{snapshot_text}",
        )
        if not decision or not decision.get("performed"):
            return ActResult(False, "no matching element")

        item = ref_map.get(str(decision.get("ref") or ""))
        if item is None:
            return ActResult(False, f"unknown ref: {decision.get('ref')}")

        action = str(decision.get("action") or "click").lower()
        value = str(decision.get("value") or "")
        try:
            performed = self._perform(page, item, action, value)
        except PlaywrightError as exc:
            self._log(f"⚠ 执行 {action} {item.ref} 失败: {exc}", "warn")
            return ActResult(False, str(exc))
        return ActResult(performed, f"{action} {item.role}:{item.name}")

    def extract(
        self, session: ActuationSession, instruction: str, schema: dict[str, str]
    ) -> dict:
        page_text = self.visible_text(session)[:PAGE_TEXT_LIMIT]
        data = self._ask(
            EXTRACT_SYSTEM_PROMPT,
            f"抽取指令：{instruction}\n\nschema：{json.dumps(schema, ensure_ascii=False)}"
            f"\n\n页面文本：\n{page_text}",
        )
        if data is None:
            raise ExtractionError("Model returned non-JSON output")
        missing = [key for key in schema if key not in data]
        if missing:
            raise ExtractionError(f"Extraction missing keys: {', '.join(missing)}")
        return data

    def screenshot(self, session: ActuationSession) -> bytes:
        try:
            return self._page(session).screenshot(type="png")
        except PlaywrightError as exc:
            raise ActuationError(f"Screenshot failed: {exc}") from exc

    def current_url(self, session: ActuationSession) -> str:
        return self._page(session).url

    def visible_text(self, session: ActuationSession) -> str:
        try:
            return self._page(session).inner_text("body")
        except PlaywrightError as exc:
            raise ActuationError(f"Reading page text failed: {exc}") from exc

    # -- 内部 -----------------------------------------------------------

    def _page(self, session: ActuationSession) -> Page:
        browser: BrowserSession = session.handle
        if browser is None:
            raise ActuationError("Session is closed")
        return browser.page

    def _ask(self, system_prompt: str, user_prompt: str) -> Optional[dict]:
        if self._llm is None:
            self._llm = build_client(self._settings.llm)
        result = chat_with_config(
            self._llm,
            self._settings.llm,
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            on_log=lambda level, msg: self._log(msg, level),
        )
        if not result.ok:
            raise ActuationError(result.error_summary or "LLM call failed")
        return parse_json_object(result.raw)

    def _perform(self, page: Page, item: SnapshotItem, action: str, value: str) -> bool:
        if item.role == "file_input":
            locator = page.locator("input[type='file']").nth(item.nth)
        else:
            locator = page.get_by_role(item.role, name=item.name, exact=True).nth(item.nth)

        if action == "fill":
            locator.fill(value)
        elif action == "select":
            locator.select_option(label=value)
        elif action == "check":
            locator.check()
        elif action == "upload":
            if not value or not os.path.exists(value):
                self._log(f"⚠ 上传文件不存在: {value}", "warn")
                return False
            locator.set_input_files(value)
        else:
            locator.click()
        return True

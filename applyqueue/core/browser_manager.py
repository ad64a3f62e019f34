"""
浏览器管理模块：统一获取 Playwright 浏览器会话。

- browserbase：云端托管浏览器（Browserbase SDK 创建会话，CDP 连接）
- local：本机 chromium，便于调试

打开过程中任一步失败都会回收已创建的资源（远端会话、浏览器、Playwright 驱动），
再以 ProvisioningError 抛出。
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Callable, Optional

from browserbase import Browserbase
from playwright.sync_api import Browser, BrowserContext, Page, sync_playwright
from playwright.sync_api import Error as PlaywrightError

from ..config import BrowserConfig
from .activity_log import LogFn
from .actuation import ProvisioningError

RELEASE_STATUS = "REQUEST_RELEASE"


@dataclass
class BrowserSession:
    playwright: Any
    browser: Browser
    context: BrowserContext
    page: Page
    provider: str
    remote_session_id: Optional[str] = None
    release: Optional[Callable[[], None]] = None

    def close(self) -> None:
        try:
            self.browser.close()
        finally:
            try:
                self.playwright.stop()
            finally:
                if self.release is not None:
                    self.release()


class BrowserManager:
    """管理浏览器生命周期与供应方选择，业务流程只拿到 BrowserSession。"""

    def __init__(
        self,
        config: Optional[BrowserConfig] = None,
        log_fn: Optional[LogFn] = None,
        *,
        playwright_factory: Callable[[], Any] = sync_playwright,
        browserbase_factory: Callable[..., Any] = Browserbase,
    ) -> None:
        self._config = config or BrowserConfig()
        self._log = log_fn or (lambda msg, level="info": None)
        self._playwright_factory = playwright_factory
        self._browserbase_factory = browserbase_factory

    def launch(self) -> BrowserSession:
        provider = (self._config.provider or "browserbase").lower()
        if provider == "local":
            return self._launch_local()
        if provider == "browserbase":
            return self._launch_browserbase()
        raise ProvisioningError(f"Unknown browser provider: {provider}")

    def _launch_local(self) -> BrowserSession:
        launch_args = {
            "headless": self._config.headless,
            "slow_mo": self._config.slow_mo if self._config.slow_mo > 0 else None,
            "executable_path": self._config.executable_path,
        }
        # 清理 None 参数
        launch_args = {k: v for k, v in launch_args.items() if v is not None}

        playwright = self._playwright_factory().start()
        browser = None
        try:
            browser = playwright.chromium.launch(**launch_args)
            context = browser.new_context()
            page = context.new_page()
        except PlaywrightError as exc:
            self._teardown(playwright, browser)
            raise ProvisioningError(f"Local browser launch failed: {exc}") from exc

        self._attach_listeners(page)
        self._log("✓ 已启动本地浏览器")
        return BrowserSession(playwright, browser, context, page, provider="local")

    def _launch_browserbase(self) -> BrowserSession:
        api_key = os.getenv("BROWSERBASE_API_KEY")
        project_id = os.getenv("BROWSERBASE_PROJECT_ID")
        if not api_key or not project_id:
            raise ProvisioningError("BROWSERBASE_API_KEY and BROWSERBASE_PROJECT_ID required")

        bb = self._browserbase_factory(api_key=api_key)
        try:
            remote = bb.sessions.create(project_id=project_id)
        except Exception as exc:
            raise ProvisioningError(f"Browserbase session create failed: {exc}") from exc

        def release() -> None:
            self._release_remote(bb, remote.id, project_id)

        playwright = None
        browser = None
        try:
            playwright = self._playwright_factory().start()
            browser = playwright.chromium.connect_over_cdp(remote.connect_url)
            context = browser.contexts[0] if browser.contexts else browser.new_context()
            page = context.pages[0] if context.pages else context.new_page()
        except PlaywrightError as exc:
            # 远端会话按时长计费，连不上也必须释放
            self._teardown(playwright, browser)
            release()
            raise ProvisioningError(f"Browserbase connect failed: {exc}") from exc

        self._attach_listeners(page)
        self._log(f"✓ 已连接 Browserbase 会话: {remote.id}")
        return BrowserSession(
            playwright,
            browser,
            context,
            page,
            provider="browserbase",
            remote_session_id=remote.id,
            release=release,
        )

    def _release_remote(self, bb: Any, remote_id: str, project_id: str) -> None:
        try:
            bb.sessions.update(remote_id, project_id=project_id, status=RELEASE_STATUS)
        except Exception as exc:
            self._log(f"⚠ 释放 Browserbase 会话失败: {remote_id}: {exc}", "warn")

    def _teardown(self, playwright: Any, browser: Optional[Browser]) -> None:
        """打开失败时回收已创建的本地资源；回收本身的错误只记日志。"""
        if browser is not None:
            try:
                browser.close()
            except PlaywrightError as exc:
                self._log(f"⚠ 关闭浏览器失败: {exc}", "warn")
        if playwright is not None:
            try:
                playwright.stop()
            except PlaywrightError as exc:
                self._log(f"⚠ 停止 Playwright 失败: {exc}", "warn")

    def _attach_listeners(self, page: Page) -> None:
        """页面错误写入日志，便于排查。"""
        page.on(
            "pageerror",
            lambda exc: self._log(f"[pageerror] {exc}", "warn"),
        )

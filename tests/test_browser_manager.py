from __future__ import annotations

from types import SimpleNamespace

import pytest
from playwright.sync_api import Error as PlaywrightError

from applyqueue.config import BrowserConfig
from applyqueue.core.actuation import ProvisioningError
from applyqueue.core.browser_manager import RELEASE_STATUS, BrowserManager


class _FakePage:
    def on(self, _event, _callback):
        pass


class _FakeContext:
    def __init__(self, page_error=None):
        self.pages = []
        self.page_error = page_error

    def new_page(self):
        if self.page_error:
            raise self.page_error
        page = _FakePage()
        self.pages.append(page)
        return page


class _FakeBrowser:
    def __init__(self, context):
        self.contexts = [context] if context.pages else []
        self._context = context
        self.closed = False

    def new_context(self):
        return self._context

    def close(self):
        self.closed = True


class _FakeChromium:
    def __init__(self, browser=None, error=None):
        self.browser = browser
        self.error = error
        self.connected_to = None

    def launch(self, **_kwargs):
        if self.error:
            raise self.error
        return self.browser

    def connect_over_cdp(self, url):
        self.connected_to = url
        if self.error:
            raise self.error
        return self.browser


class _FakePlaywright:
    def __init__(self, chromium):
        self.chromium = chromium
        self.stopped = 0

    def stop(self):
        self.stopped += 1


class _FakeSessions:
    def __init__(self, create_error=None):
        self.create_error = create_error
        self.released: list[tuple] = []

    def create(self, project_id):
        if self.create_error:
            raise self.create_error
        return SimpleNamespace(id="bb-42", connect_url="wss://connect.example/bb-42")

    def update(self, session_id, project_id, status):
        self.released.append((session_id, project_id, status))


def _manager(provider, playwright, sessions=None):
    bb = SimpleNamespace(sessions=sessions or _FakeSessions())
    return BrowserManager(
        BrowserConfig(provider=provider),
        playwright_factory=lambda: SimpleNamespace(start=lambda: playwright),
        browserbase_factory=lambda api_key: bb,
    )


@pytest.fixture()
def browserbase_env(monkeypatch):
    monkeypatch.setenv("BROWSERBASE_API_KEY", "bb_key")
    monkeypatch.setenv("BROWSERBASE_PROJECT_ID", "proj-1")


def test_browserbase_requires_credentials(monkeypatch):
    monkeypatch.delenv("BROWSERBASE_API_KEY", raising=False)
    monkeypatch.delenv("BROWSERBASE_PROJECT_ID", raising=False)
    with pytest.raises(ProvisioningError, match="BROWSERBASE_API_KEY"):
        _manager("browserbase", _FakePlaywright(_FakeChromium())).launch()


def test_unknown_provider_is_provisioning_error():
    with pytest.raises(ProvisioningError, match="Unknown browser provider"):
        _manager("firefox-grid", _FakePlaywright(_FakeChromium())).launch()


def test_browserbase_create_failure(browserbase_env):
    playwright = _FakePlaywright(_FakeChromium())
    sessions = _FakeSessions(create_error=RuntimeError("402 quota exceeded"))
    with pytest.raises(ProvisioningError, match="quota exceeded"):
        _manager("browserbase", playwright, sessions).launch()
    assert playwright.stopped == 0


def test_browserbase_connect_failure_releases_remote_session(browserbase_env):
    playwright = _FakePlaywright(_FakeChromium(error=PlaywrightError("ws closed")))
    sessions = _FakeSessions()

    with pytest.raises(ProvisioningError, match="Browserbase connect failed"):
        _manager("browserbase", playwright, sessions).launch()

    assert sessions.released == [("bb-42", "proj-1", RELEASE_STATUS)]
    assert playwright.stopped == 1


def test_browserbase_session_close_releases_remote_session(browserbase_env):
    browser = _FakeBrowser(_FakeContext())
    chromium = _FakeChromium(browser=browser)
    playwright = _FakePlaywright(chromium)
    sessions = _FakeSessions()

    session = _manager("browserbase", playwright, sessions).launch()

    assert session.remote_session_id == "bb-42"
    assert chromium.connected_to == "wss://connect.example/bb-42"
    assert sessions.released == []
    session.close()
    assert browser.closed is True
    assert playwright.stopped == 1
    assert sessions.released == [("bb-42", "proj-1", RELEASE_STATUS)]


def test_local_page_failure_closes_browser_and_driver():
    browser = _FakeBrowser(_FakeContext(page_error=PlaywrightError("page crashed")))
    playwright = _FakePlaywright(_FakeChromium(browser=browser))

    with pytest.raises(ProvisioningError, match="Local browser launch failed"):
        _manager("local", playwright).launch()

    assert browser.closed is True
    assert playwright.stopped == 1


def test_local_launch_failure_stops_driver():
    playwright = _FakePlaywright(_FakeChromium(error=PlaywrightError("executable missing")))
    with pytest.raises(ProvisioningError):
        _manager("local", playwright).launch()
    assert playwright.stopped == 1

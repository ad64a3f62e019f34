from __future__ import annotations

from applyqueue.core.actuation import ActResult, ActuationClient


class FakeClient(ActuationClient):
    """
    Scripted ActuationClient for strategy/driver tests.

    - performs: intent substring -> performed flag (first match wins); default False
    - urls: URL returned by current_url after each settle (last one sticks)
    - page_texts: visible_text results in order (last one sticks)
    - near_budget_after_acts: once this many act() calls happened, is_near_budget is True
    """

    def __init__(
        self,
        *,
        performs: dict[str, bool] | None = None,
        urls: list[str] | None = None,
        page_texts: list[str] | None = None,
        extract_result: dict | None = None,
        extract_error: Exception | None = None,
        near_budget_after_acts: int | None = None,
        open_error: Exception | None = None,
        close_error: Exception | None = None,
        act_error: Exception | None = None,
    ) -> None:
        super().__init__(clock=lambda: 0.0)
        self.performs = performs or {}
        self.urls = list(urls or ["https://boards.greenhouse.io/acme/jobs/1"])
        self.page_texts = list(page_texts or [""])
        self.extract_result = extract_result if extract_result is not None else {
            "confirmation_message": "",
            "is_confirmed": False,
        }
        self.extract_error = extract_error
        self.near_budget_after_acts = near_budget_after_acts
        self.open_error = open_error
        self.close_error = close_error
        self.act_error = act_error
        self.acts: list[str] = []
        self.navigated: list[str] = []
        self.opened = 0
        self.closed = 0
        self._url_index = 0
        self._text_index = 0

    def open(self, time_budget_s):
        self.opened += 1
        if self.open_error:
            raise self.open_error
        return self.make_session(time_budget_s, session_id=f"fake-{self.opened}")

    def close(self, session):
        self.closed += 1
        if self.close_error:
            raise self.close_error

    def navigate(self, session, url):
        self.navigated.append(url)

    def wait_for_settle(self, session):
        if self._url_index < len(self.urls) - 1:
            self._url_index += 1

    def act(self, session, intent):
        if self.act_error:
            raise self.act_error
        self.acts.append(intent)
        for marker, performed in self.performs.items():
            if marker in intent:
                return ActResult(performed)
        return ActResult(False)

    def extract(self, session, instruction, schema):
        if self.extract_error:
            raise self.extract_error
        return dict(self.extract_result)

    def screenshot(self, session):
        return b"png"

    def current_url(self, session):
        return self.urls[self._url_index]

    def visible_text(self, session):
        text = self.page_texts[min(self._text_index, len(self.page_texts) - 1)]
        self._text_index += 1
        return text

    def is_near_budget(self, session, buffer_s):
        if self.near_budget_after_acts is None:
            return False
        return len(self.acts) >= self.near_budget_after_acts


CONFIRMED = {"confirmation_message": "Thank you for applying!", "is_confirmed": True}

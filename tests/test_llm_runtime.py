from applyqueue.config import LLMConfig
from applyqueue.core.llm_runtime import (
    build_client,
    chat_with_config,
    classify_llm_error,
    parse_json_object,
    run_chat_with_fallback,
)


class _FakeMessage:
    def __init__(self, content: str):
        self.content = content


class _FakeChoice:
    def __init__(self, content: str):
        self.message = _FakeMessage(content)


class _FakeCompletion:
    def __init__(self, content: str):
        self.choices = [_FakeChoice(content)]


class _FakeCompletions:
    def __init__(self, handler):
        self._handler = handler
        self.calls: list[dict] = []

    @property
    def called_models(self) -> list[str]:
        return [c["model"] for c in self.calls]

    def create(self, **kwargs):
        self.calls.append(kwargs)
        result = self._handler(kwargs.get("model", ""))
        if isinstance(result, Exception):
            raise result
        return _FakeCompletion(result)


class _FakeChat:
    def __init__(self, handler):
        self.completions = _FakeCompletions(handler)


class _FakeClient:
    def __init__(self, handler):
        self.chat = _FakeChat(handler)


def test_run_chat_with_fallback_switches_on_rate_limit():
    def handler(model: str):
        if model == "m1":
            return Exception("429 rate_limit exceeded")
        return '{"performed": true}'

    client = _FakeClient(handler)
    logs: list[tuple[str, str]] = []
    slept: list[float] = []
    result = run_chat_with_fallback(
        client=client,
        models=["m1", "m2"],
        messages=[{"role": "user", "content": "hi"}],
        on_log=lambda level, message: logs.append((level, message)),
        sleep=slept.append,
    )

    assert result.ok is True
    assert result.model == "m2"
    assert result.raw == '{"performed": true}'
    assert client.chat.completions.called_models == ["m1", "m2"]
    assert any(level == "warn" for level, _ in logs)
    assert slept == [1.0]


def test_run_chat_with_fallback_stops_on_generic_error():
    client = _FakeClient(lambda _model: Exception("connection reset by peer"))
    result = run_chat_with_fallback(
        client=client,
        models=["m1", "m2"],
        messages=[{"role": "user", "content": "hi"}],
        sleep=lambda _s: None,
    )

    assert result.ok is False
    assert result.error_code == "llm_call_failed"
    assert "LLM 调用失败" in (result.error_summary or "")
    assert client.chat.completions.called_models == ["m1"]


def test_run_chat_with_fallback_exhausts_unsupported_models():
    client = _FakeClient(lambda _model: Exception("model_not_found"))
    result = run_chat_with_fallback(
        client=client,
        models=["m1", "m2"],
        messages=[{"role": "user", "content": "hi"}],
        sleep=lambda _s: None,
    )

    assert result.ok is False
    assert result.error_code == "model_unsupported_exhausted"
    assert client.chat.completions.called_models == ["m1", "m2"]


def test_run_chat_without_models_fails_fast():
    client = _FakeClient(lambda _model: "{}")
    result = run_chat_with_fallback(client=client, models=[], messages=[])
    assert result.ok is False
    assert result.error_code == "llm_no_model"
    assert client.chat.completions.calls == []


def test_chat_with_config_puts_selected_model_first_and_requests_json():
    client = _FakeClient(lambda _model: "{}")
    config = LLMConfig(model="gpt-4o-mini", fallback_models=["gpt-4o", "gpt-4o-mini"])

    result = chat_with_config(client, config, [{"role": "user", "content": "hi"}])

    assert result.ok is True
    call = client.chat.completions.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["response_format"] == {"type": "json_object"}
    assert call["max_tokens"] == config.max_tokens


def test_classify_llm_error():
    assert classify_llm_error(Exception("Error code: 429")) == "rate_limit"
    assert classify_llm_error(Exception("model does not support response_format")) == "unsupported"
    assert classify_llm_error(Exception("boom")) == "other"


def test_parse_json_object_handles_fenced_and_embedded_output():
    assert parse_json_object('```json\n{"performed": false}\n```') == {"performed": False}
    assert parse_json_object('Sure: {"ref": "e2", "action": "click"} done') == {
        "ref": "e2",
        "action": "click",
    }
    assert parse_json_object("[1, 2]") is None
    assert parse_json_object("not json") is None
    assert parse_json_object(None) is None


def test_build_client_bounds_request_time():
    config = LLMConfig(request_timeout_seconds=12.0, max_retries=0)
    client = build_client(config, api_key="sk-test")
    assert client.timeout == 12.0
    assert client.max_retries == 0

    default = build_client(api_key="sk-test")
    assert default.timeout == LLMConfig().request_timeout_seconds
    assert default.max_retries == 1

import httpx
import pytest

from relay_core.domain.models import AdapterConfig, ChatMessage, GenerationOptions
from relay_core.providers.catalog import CLAUDE_MODELS, GEMINI_MODELS, MISTRAL_MODELS, OPENAI_MODELS
from relay_core.providers.claude_client import ClaudeAdapter
from relay_core.providers.gemini_client import GeminiAdapter
from relay_core.providers.mistral_client import MistralAdapter
from relay_core.providers.openai_client import OpenAIAdapter


class Resp:
    def __init__(self, body, status_code=200, reason_phrase="OK"):
        self._body = body
        self.status_code = status_code
        self.reason_phrase = reason_phrase
        self.text = str(body)

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


def install_client(monkeypatch, resp, captured=None):
    class Client:
        def __init__(self, *a, **kw):
            if captured is not None:
                captured["client_kwargs"] = kw

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None, **kw):
            if captured is not None:
                captured["calls"] = captured.get("calls", 0) + 1
                captured["url"] = url
                captured["json"] = json
                captured["headers"] = headers
            if isinstance(resp, Exception):
                raise resp
            return resp

    monkeypatch.setattr("httpx.Client", Client)


def user(text):
    return [ChatMessage(role="user", content=text)]


@pytest.mark.parametrize(
    "adapter_cls, catalog",
    [
        (OpenAIAdapter, OPENAI_MODELS),
        (ClaudeAdapter, CLAUDE_MODELS),
        (MistralAdapter, MISTRAL_MODELS),
        (GeminiAdapter, GEMINI_MODELS),
    ],
)
def test_supports_model_follows_catalog(monkeypatch, adapter_cls, catalog):
    adapter = adapter_cls(AdapterConfig(api_key="k"))
    for model in catalog:
        assert adapter.is_model_supported(model.id)
    assert not adapter.is_model_supported("no-such-model")

    captured = {}
    install_client(monkeypatch, Resp({}), captured)
    res = adapter.generate_response(user("hi"), "no-such-model")
    assert res.success is False
    assert "not supported" in res.error
    assert res.provider == adapter.name
    assert captured.get("calls", 0) == 0


def test_blank_api_key_rejected():
    from relay_core.domain.exceptions import ConfigurationError

    with pytest.raises(ConfigurationError):
        OpenAIAdapter(AdapterConfig(api_key="  "))


def test_openai_end_to_end(monkeypatch):
    captured = {}
    body = {
        "choices": [{"message": {"role": "assistant", "content": "4"}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 5, "completion_tokens": 1, "total_tokens": 6},
    }
    install_client(monkeypatch, Resp(body), captured)
    adapter = OpenAIAdapter(AdapterConfig(api_key="sk-test"))
    res = adapter.generate_response(user("2+2?"), "gpt-4o-mini")
    assert res.success is True
    assert res.content == "4"
    assert res.provider == "openai"
    assert res.usage.total_tokens == 6
    assert captured["url"] == "https://api.openai.com/v1/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer sk-test"
    assert captured["json"]["max_tokens"] == 1000
    assert captured["json"]["temperature"] == 0.7
    assert captured["json"]["stream"] is False


def test_openai_empty_choices_is_failure(monkeypatch):
    install_client(monkeypatch, Resp({"choices": []}))
    res = OpenAIAdapter(AdapterConfig(api_key="k")).generate_response(user("hi"), "gpt-4o")
    assert res.success is False
    assert res.error == "No choices returned"


def test_mistral_uses_own_endpoint(monkeypatch):
    captured = {}
    body = {"choices": [{"message": {"content": "bonjour"}}], "usage": {}}
    install_client(monkeypatch, Resp(body), captured)
    res = MistralAdapter(AdapterConfig(api_key="m")).generate_response(user("hi"), "mistral-small-latest")
    assert res.success is True
    assert res.content == "bonjour"
    assert captured["url"] == "https://api.mistral.ai/v1/chat/completions"


def test_claude_elevates_system_message(monkeypatch):
    captured = {}
    body = {
        "content": [{"type": "text", "text": "hello"}],
        "usage": {"input_tokens": 3, "output_tokens": 2},
    }
    install_client(monkeypatch, Resp(body), captured)
    adapter = ClaudeAdapter(AdapterConfig(api_key="a"))
    messages = [
        ChatMessage(role="system", content="be brief"),
        ChatMessage(role="user", content="hi"),
    ]
    res = adapter.generate_response(messages, "claude-3-5-haiku-20241022", GenerationOptions(max_tokens=50))
    assert res.success is True
    assert res.content == "hello"
    assert res.usage.total_tokens == 5
    assert captured["json"]["system"] == "be brief"
    assert captured["json"]["messages"] == [{"role": "user", "content": "hi"}]
    assert captured["json"]["max_tokens"] == 50
    assert captured["headers"]["x-api-key"] == "a"
    assert captured["headers"]["anthropic-version"] == "2023-06-01"


def test_gemini_request_shape(monkeypatch):
    captured = {}
    body = {
        "candidates": [{"content": {"parts": [{"text": "hey"}]}, "finishReason": "STOP"}],
        "usageMetadata": {"promptTokenCount": 2, "candidatesTokenCount": 1, "totalTokenCount": 3},
    }
    install_client(monkeypatch, Resp(body), captured)
    adapter = GeminiAdapter(AdapterConfig(api_key="g"))
    messages = [
        ChatMessage(role="system", content="sys"),
        ChatMessage(role="user", content="hi"),
        ChatMessage(role="assistant", content="hello"),
        ChatMessage(role="user", content="again"),
    ]
    res = adapter.generate_response(messages, "gemini-1.5-flash")
    assert res.success is True
    assert res.content == "hey"
    assert res.usage.total_tokens == 3
    assert captured["url"].endswith("/gemini-1.5-flash:generateContent?key=g")
    assert [c["role"] for c in captured["json"]["contents"]] == ["user", "model", "user"]
    assert captured["json"]["systemInstruction"] == {"parts": [{"text": "sys"}]}
    assert captured["json"]["generationConfig"]["maxOutputTokens"] == 1000


def test_gemini_safety_block(monkeypatch):
    install_client(monkeypatch, Resp({"candidates": [{"finishReason": "SAFETY"}]}))
    res = GeminiAdapter(AdapterConfig(api_key="g")).generate_response(user("hi"), "gemini-1.5-pro")
    assert res.success is False
    assert res.error == "Response blocked due to safety filters"


def test_gemini_no_candidates(monkeypatch):
    install_client(monkeypatch, Resp({"candidates": []}))
    res = GeminiAdapter(AdapterConfig(api_key="g")).generate_response(user("hi"), "gemini-1.5-pro")
    assert res.success is False
    assert res.error == "No response generated"


def test_upstream_error_message_is_surfaced(monkeypatch):
    body = {"error": {"message": "Incorrect API key provided"}}
    install_client(monkeypatch, Resp(body, status_code=401, reason_phrase="Unauthorized"))
    res = OpenAIAdapter(AdapterConfig(api_key="bad")).generate_response(user("hi"), "gpt-4o")
    assert res.success is False
    assert res.error == "Incorrect API key provided"


def test_upstream_error_without_body_uses_status(monkeypatch):
    install_client(monkeypatch, Resp(ValueError("no json"), status_code=503, reason_phrase="Service Unavailable"))
    res = ClaudeAdapter(AdapterConfig(api_key="a")).generate_response(user("hi"), "claude-3-opus-20240229")
    assert res.success is False
    assert res.error == "HTTP 503: Service Unavailable"


def test_timeout_is_reported(monkeypatch):
    install_client(monkeypatch, httpx.ReadTimeout("timed out"))
    res = OpenAIAdapter(AdapterConfig(api_key="k", timeout=5.0)).generate_response(user("hi"), "gpt-4o")
    assert res.success is False
    assert res.error == "Request timed out after 5s"


def test_connection_error_is_reported(monkeypatch):
    install_client(monkeypatch, httpx.ConnectError("connection refused"))
    res = MistralAdapter(AdapterConfig(api_key="m")).generate_response(user("hi"), "open-mistral-7b")
    assert res.success is False
    assert "connection refused" in res.error


def test_client_timeout_and_retries_come_from_config(monkeypatch):
    captured = {}
    body = {"choices": [{"message": {"content": "ok"}}]}
    install_client(monkeypatch, Resp(body), captured)
    OpenAIAdapter(AdapterConfig(api_key="k", timeout=12.0, max_retries=2)).generate_response(user("hi"), "gpt-4o")
    assert captured["client_kwargs"]["timeout"] == 12.0
    assert captured["client_kwargs"]["trust_env"] is False
    assert isinstance(captured["client_kwargs"]["transport"], httpx.HTTPTransport)


@pytest.mark.parametrize(
    "adapter_cls, model, body",
    [
        (OpenAIAdapter, "gpt-4o", {"choices": [{"message": {"content": ""}}]}),
        (ClaudeAdapter, "claude-3-5-haiku-20241022", {"content": [{"type": "text", "text": ""}]}),
        (GeminiAdapter, "gemini-1.5-pro", {"candidates": [{"content": {"parts": [{"text": ""}]}}]}),
    ],
)
def test_empty_reply_text_is_failure(monkeypatch, adapter_cls, model, body):
    install_client(monkeypatch, Resp(body))
    res = adapter_cls(AdapterConfig(api_key="k")).generate_response(user("hi"), model)
    assert res.success is False
    assert res.error == "Empty response content"

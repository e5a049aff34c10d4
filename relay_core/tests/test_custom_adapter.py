import pytest

from relay_core.domain.exceptions import ConfigurationError
from relay_core.domain.models import ChatMessage, CustomEndpointConfig, GenerationOptions
from relay_core.providers import create_provider
from relay_core.providers.custom_client import CustomAdapter
from relay_core.providers.registry import ProviderRegistry
from relay_core.providers.translator import EXTRACTION_FAILED, NO_CONTENT_FOUND, RequestTranslator


class Resp:
    def __init__(self, body, status_code=200, reason_phrase="OK", text=""):
        self._body = body
        self.status_code = status_code
        self.reason_phrase = reason_phrase
        self.text = text

    def json(self):
        return self._body


def install_client(monkeypatch, resp, captured):
    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None, **kw):
            captured["url"] = url
            captured["json"] = json
            captured["headers"] = headers
            return resp

    monkeypatch.setattr("httpx.Client", Client)


def custom_config(**kw):
    base = {"base_url": "https://llm.internal.example/v1/generate"}
    base.update(kw)
    return CustomEndpointConfig(**base)


def test_template_substitution_keeps_numbers_unquoted():
    translator = RequestTranslator(
        custom_config(request_format="custom", request_template='{"q":"{{user_message}}","t":{{temperature}}}')
    )
    body = translator.build_request(
        [ChatMessage(role="user", content="hi")], "custom-model", GenerationOptions(temperature=0.2)
    )
    assert body == {"q": "hi", "t": 0.2}


def test_template_escapes_string_values():
    translator = RequestTranslator(
        custom_config(
            request_format="custom",
            request_template='{"sys":"{{system_message}}","q":"{{user_message}}","m":"{{model}}","n":{{max_tokens}}}',
        )
    )
    messages = [
        ChatMessage(role="system", content="say \"yes\""),
        ChatMessage(role="user", content="line1\nline2"),
    ]
    body = translator.build_request(messages, "custom-model")
    assert body == {"sys": 'say "yes"', "q": "line1\nline2", "m": "custom-model", "n": 1000}


def test_invalid_template_falls_back_to_prompt_body():
    translator = RequestTranslator(custom_config(request_format="custom", request_template="{not json"))
    body = translator.build_request([ChatMessage(role="user", content="hi")], "custom-model")
    assert body == {"prompt": "user: hi", "model": "custom-model"}


def test_openai_request_format():
    translator = RequestTranslator(custom_config())
    body = translator.build_request([ChatMessage(role="user", content="hi")], "custom-model")
    assert body["messages"] == [{"role": "user", "content": "hi"}]
    assert body["stream"] is False


def test_response_path_extraction():
    translator = RequestTranslator(custom_config(response_format="custom", response_path="data.answer"))
    assert translator.extract_content({"data": {"answer": "ok"}}) == "ok"
    assert translator.extract_content({"data": {}}) == EXTRACTION_FAILED


def test_response_path_supports_list_index():
    translator = RequestTranslator(custom_config(response_format="custom", response_path="outputs.0.text"))
    assert translator.extract_content({"outputs": [{"text": "first"}]}) == "first"


def test_response_probing_without_path():
    translator = RequestTranslator(custom_config(response_format="custom"))
    assert translator.extract_content({"text": "t"}) == "t"
    assert translator.extract_content({"result": "r", "output": "o"}) == "o"
    assert translator.extract_content({"other": 1}) == '{"other": 1}'


def test_openai_response_without_content():
    translator = RequestTranslator(custom_config())
    assert translator.extract_content({"choices": []}) == NO_CONTENT_FOUND


def test_custom_adapter_end_to_end(monkeypatch):
    captured = {}
    install_client(monkeypatch, Resp({"data": {"answer": "ok"}}), captured)
    adapter = CustomAdapter(
        custom_config(
            api_key="c",
            headers={"X-Team": "relay"},
            request_format="custom",
            request_template='{"q":"{{user_message}}"}',
            response_format="custom",
            response_path="data.answer",
        )
    )
    res = adapter.generate_response([ChatMessage(role="user", content="hi")], "custom-model")
    assert res.success is True
    assert res.content == "ok"
    assert res.provider == "custom"
    assert captured["url"] == "https://llm.internal.example/v1/generate"
    assert captured["json"] == {"q": "hi"}
    assert captured["headers"]["Authorization"] == "Bearer c"
    assert captured["headers"]["X-Team"] == "relay"


def test_custom_adapter_http_error_includes_body(monkeypatch):
    captured = {}
    install_client(monkeypatch, Resp(None, status_code=500, reason_phrase="Internal Server Error", text="boom"), captured)
    adapter = CustomAdapter(custom_config())
    res = adapter.generate_response([ChatMessage(role="user", content="hi")], "custom-model")
    assert res.success is False
    assert res.error == "HTTP 500: Internal Server Error - boom"


@pytest.mark.parametrize("url", ["", "not a url", "ftp://example.com/x"])
def test_custom_adapter_rejects_bad_base_url(url):
    with pytest.raises(ConfigurationError):
        CustomAdapter(CustomEndpointConfig(base_url=url))


def test_create_provider_custom_from_dict():
    class DummySettings:
        openai_api_key = None

    adapter = create_provider(
        "custom",
        ProviderRegistry(DummySettings()),
        {"baseUrl": "http://localhost:8080/generate", "customResponsePath": "out"},
    )
    assert isinstance(adapter, CustomAdapter)


def test_create_provider_custom_requires_config():
    class DummySettings:
        openai_api_key = None

    with pytest.raises(ConfigurationError) as exc:
        create_provider("custom", ProviderRegistry(DummySettings()))
    assert exc.value.message == "Provider custom not available or not configured"


@pytest.mark.parametrize(
    "data",
    [
        {"baseUrl": "https://x.example/v1", "timeout": "30s"},
        {"baseUrl": "https://x.example/v1", "timeout": 0},
        {"baseUrl": "https://x.example/v1", "headers": "X-Token: abc"},
        {"baseUrl": "https://x.example/v1", "requestFormat": "xml"},
        {"baseUrl": 42},
        ["https://x.example/v1"],
    ],
)
def test_from_dict_rejects_malformed_values(data):
    with pytest.raises(ConfigurationError) as exc:
        CustomEndpointConfig.from_dict(data)
    assert exc.value.code == "INVALID_CUSTOM_CONFIG"


def test_from_dict_accepts_numeric_timeout_string():
    config = CustomEndpointConfig.from_dict({"baseUrl": "https://x.example/v1", "timeout": "12.5"})
    assert config.timeout == 12.5


def test_create_provider_custom_bad_config_raises_configuration_error():
    class DummySettings:
        openai_api_key = None

    with pytest.raises(ConfigurationError):
        create_provider(
            "custom",
            ProviderRegistry(DummySettings()),
            {"baseUrl": "https://x.example/v1", "headers": ["a", "b"]},
        )


def test_hosted_format_is_openai_alias():
    config = custom_config(request_format="hosted", response_format="Hosted")
    assert config.request_format == "openai"
    assert config.response_format == "openai"

    translator = RequestTranslator(config)
    body = translator.build_request([ChatMessage(role="user", content="hi")], "custom-model")
    assert body["messages"] == [{"role": "user", "content": "hi"}]
    assert body["stream"] is False
    assert translator.extract_content({"choices": [{"message": {"content": "ok"}}]}) == "ok"

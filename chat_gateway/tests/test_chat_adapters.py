import logging

import httpx
import pytest

from chat_gateway.domain.exceptions import BackendResponseError, BackendUnavailableError, RateLimitError
from chat_gateway.domain.models import ChatMessage, ChatRequest
from chat_gateway.providers.hf_chat_client import TextChatAdapter, VisionChatAdapter
from chat_gateway.providers.registry import get_model_config


class SettingsStub:
    hf_token = "hf_test_token_123"
    http_timeout = 1.0
    hf_base_url = "https://router.example"


def _request(model="chat", image=None):
    return ChatRequest(
        model=model,
        messages=[
            ChatMessage(role="system", content="sys"),
            ChatMessage(role="user", content="Hello"),
            ChatMessage(role="assistant", content="Hi there"),
            ChatMessage(role="user", content="What is this?"),
        ],
        max_tokens=get_model_config(model).max_tokens,
        temperature=get_model_config(model).default_temperature,
        image=image,
    )


def _fake_client(monkeypatch, status_code=200, body=None, captured=None, error=None):
    class Resp:
        def __init__(self):
            self.status_code = status_code
            self.text = "upstream said no" if status_code >= 400 else ""

        def json(self):
            if isinstance(body, Exception):
                raise body
            return body

    class Client:
        def __init__(self, *a, **kw):
            if captured is not None:
                captured["timeout"] = kw.get("timeout")

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None, **_):
            if error is not None:
                raise error
            if captured is not None:
                captured["url"] = url
                captured["payload"] = json
                captured["headers"] = headers
            return Resp()

    monkeypatch.setattr("httpx.Client", Client)


def test_text_chat_returns_first_candidate(monkeypatch):
    captured = {}
    _fake_client(
        monkeypatch,
        body={
            "choices": [
                {"index": 0, "message": {"role": "assistant", "content": "first"}, "finish_reason": "stop"},
                {"index": 1, "message": {"role": "assistant", "content": "second"}},
            ],
            "usage": {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4},
        },
        captured=captured,
    )
    adapter = TextChatAdapter(get_model_config("chat"), SettingsStub())
    assert adapter.invoke(_request()) == "first"

    assert captured["url"] == "https://router.example/v1/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer hf_test_token_123"
    payload = captured["payload"]
    assert payload["model"] == "meta-llama/Llama-3.1-8B-Instruct"
    assert payload["max_tokens"] == 500
    assert "temperature" not in payload
    assert payload["messages"][0] == {"role": "system", "content": "sys"}
    assert len(payload["messages"]) == 4


def test_gemma_sends_temperature(monkeypatch):
    captured = {}
    _fake_client(monkeypatch, body={"choices": [{"message": {"content": "ok"}}]}, captured=captured)
    adapter = TextChatAdapter(get_model_config("gemma"), SettingsStub())
    adapter.invoke(_request("gemma"))
    assert captured["payload"]["temperature"] == 0.7
    assert captured["payload"]["max_tokens"] == 1000


def test_text_chat_ignores_image(monkeypatch):
    captured = {}
    _fake_client(monkeypatch, body={"choices": [{"message": {"content": "ok"}}]}, captured=captured)
    adapter = TextChatAdapter(get_model_config("chat"), SettingsStub())
    adapter.invoke(_request(image="data:image/png;base64,AAAA"))
    assert all(isinstance(m["content"], str) for m in captured["payload"]["messages"])


def test_chat_result_carries_usage(monkeypatch):
    _fake_client(
        monkeypatch,
        body={
            "choices": [{"message": {"content": "ok"}, "finish_reason": "stop"}],
            "usage": {"prompt_tokens": 1, "completion_tokens": 2, "total_tokens": 3},
        },
    )
    adapter = TextChatAdapter(get_model_config("chat"), SettingsStub())
    result = adapter.chat(_request())
    assert result.choices[0].finish_reason == "stop"
    assert result.usage.total_tokens == 3


def test_vision_attaches_image_to_latest_user_turn(monkeypatch):
    captured = {}
    _fake_client(monkeypatch, body={"choices": [{"message": {"content": "a cat"}}]}, captured=captured)
    adapter = VisionChatAdapter(get_model_config("qwen"), SettingsStub())
    image = "data:image/png;base64,AAAA"
    assert adapter.invoke(_request("qwen", image=image)) == "a cat"

    msgs = captured["payload"]["messages"]
    assert captured["payload"]["model"] == "Qwen/Qwen2.5-VL-7B-Instruct:hyperbolic"
    assert msgs[1] == {"role": "user", "content": "Hello"}
    assert msgs[-1]["content"] == [
        {"type": "text", "text": "What is this?"},
        {"type": "image_url", "image_url": {"url": image}},
    ]


def test_vision_without_image_matches_text_chat(monkeypatch):
    captured = {}
    _fake_client(monkeypatch, body={"choices": [{"message": {"content": "ok"}}]}, captured=captured)
    VisionChatAdapter(get_model_config("qwen"), SettingsStub()).invoke(_request("qwen"))
    vision_msgs = captured["payload"]["messages"]
    TextChatAdapter(get_model_config("qwen"), SettingsStub()).invoke(_request("qwen"))
    assert captured["payload"]["messages"] == vision_msgs


def test_vision_image_only_user_turn(monkeypatch):
    captured = {}
    _fake_client(monkeypatch, body={"choices": [{"message": {"content": "ok"}}]}, captured=captured)
    request = ChatRequest(
        model="qwen",
        messages=[ChatMessage(role="system", content="sys"), ChatMessage(role="user", content="")],
        image="data:image/png;base64,AAAA",
    )
    VisionChatAdapter(get_model_config("qwen"), SettingsStub()).invoke(request)
    assert captured["payload"]["messages"][-1]["content"] == [
        {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
    ]


def test_no_candidates_is_response_error(monkeypatch):
    _fake_client(monkeypatch, body={"choices": []})
    adapter = TextChatAdapter(get_model_config("chat"), SettingsStub())
    with pytest.raises(BackendResponseError) as exc:
        adapter.invoke(_request())
    assert exc.value.code == "NO_CANDIDATES"


def test_candidate_without_message_is_response_error(monkeypatch):
    _fake_client(monkeypatch, body={"choices": [{"text": "legacy"}]})
    adapter = TextChatAdapter(get_model_config("chat"), SettingsStub())
    with pytest.raises(BackendResponseError):
        adapter.invoke(_request())


def test_invalid_json_is_response_error(monkeypatch):
    _fake_client(monkeypatch, body=ValueError("not json"))
    adapter = TextChatAdapter(get_model_config("chat"), SettingsStub())
    with pytest.raises(BackendResponseError) as exc:
        adapter.invoke(_request())
    assert exc.value.code == "INVALID_JSON"


def test_http_error_is_unavailable(monkeypatch):
    _fake_client(monkeypatch, status_code=503)
    adapter = TextChatAdapter(get_model_config("chat"), SettingsStub())
    with pytest.raises(BackendUnavailableError) as exc:
        adapter.invoke(_request())
    assert exc.value.code == "API_ERROR"
    assert exc.value.extra["status_code"] == 503


def test_rate_limit_is_unavailable(monkeypatch):
    _fake_client(monkeypatch, status_code=429)
    adapter = TextChatAdapter(get_model_config("chat"), SettingsStub())
    with pytest.raises(RateLimitError) as exc:
        adapter.invoke(_request())
    assert isinstance(exc.value, BackendUnavailableError)
    assert exc.value.http_status == 429


def test_network_and_timeout_errors(monkeypatch):
    adapter = TextChatAdapter(get_model_config("chat"), SettingsStub())

    _fake_client(monkeypatch, error=httpx.ConnectError("connection refused"))
    with pytest.raises(BackendUnavailableError) as exc:
        adapter.invoke(_request())
    assert exc.value.code == "NETWORK_ERROR"

    _fake_client(monkeypatch, error=httpx.ReadTimeout("timed out"))
    with pytest.raises(BackendUnavailableError) as exc:
        adapter.invoke(_request())
    assert exc.value.code == "TIMEOUT"


def test_missing_token(monkeypatch):
    class NoToken(SettingsStub):
        hf_token = None

    def fail(*a, **kw):
        raise AssertionError("no request should be sent without a token")

    monkeypatch.setattr("httpx.Client", fail)
    adapter = TextChatAdapter(get_model_config("chat"), NoToken())
    with pytest.raises(BackendUnavailableError) as exc:
        adapter.invoke(_request())
    assert exc.value.code == "MISSING_API_KEY"


@pytest.mark.parametrize(
    "body,code",
    [
        ({"choices": 5}, "INVALID_RESPONSE"),
        ({"choices": {"message": {"content": "x"}}}, "INVALID_RESPONSE"),
        ({"choices": [{"message": {"content": ["part"]}}]}, "INVALID_CONTENT"),
        ({"choices": [{"message": {"content": 42}}]}, "INVALID_CONTENT"),
    ],
)
def test_malformed_shapes_are_response_errors(monkeypatch, body, code):
    _fake_client(monkeypatch, body=body)
    adapter = TextChatAdapter(get_model_config("chat"), SettingsStub())
    with pytest.raises(BackendResponseError) as exc:
        adapter.invoke(_request())
    assert exc.value.code == code


def test_malformed_usage_is_ignored(monkeypatch):
    _fake_client(monkeypatch, body={"choices": [{"message": {"content": "ok"}}], "usage": ["bogus"]})
    adapter = TextChatAdapter(get_model_config("chat"), SettingsStub())
    assert adapter.invoke(_request()) == "ok"
    assert adapter.chat(_request()).usage is None


def test_provider_failure_is_logged(monkeypatch, caplog):
    caplog.set_level(logging.WARNING, logger="chat_gateway")
    _fake_client(monkeypatch, status_code=502)
    adapter = TextChatAdapter(get_model_config("chat"), SettingsStub())
    with pytest.raises(BackendUnavailableError):
        adapter.invoke(_request())
    failed = [r for r in caplog.records if r.getMessage() == "Provider call failed"]
    assert len(failed) == 1
    assert failed[0].extra["code"] == "API_ERROR"
    assert failed[0].extra["provider"] == "chat"

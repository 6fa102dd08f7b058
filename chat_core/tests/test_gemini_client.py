import base64

import httpx
import pytest

from chat_core.domain.exceptions import ApiError, ConfigurationError, NetworkError, RateLimitError
from chat_core.domain.models import ImageAttachment, ModelRequest
from chat_core.providers.gemini_client import GeminiClient


class SettingsStub:
    google_api_key = "g" * 20
    http_timeout = 1.0
    gemini_base_url = "https://generativelanguage.googleapis.com/v1beta"
    default_model = "chat"
    max_output_tokens = 4096


def _fake_client(monkeypatch, resp, calls=None):
    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None):
            if calls is not None:
                calls.append({"url": url, "json": json, "headers": headers})
            if isinstance(resp, Exception):
                raise resp
            return resp

    monkeypatch.setattr("httpx.Client", Client)


class Resp:
    def __init__(self, status_code, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        return self._body


def test_generate_basic(monkeypatch):
    body = {
        "candidates": [
            {
                "index": 0,
                "content": {"role": "model", "parts": [{"text": "Hello "}, {"text": "there"}]},
                "finishReason": "MAX_TOKENS",
            }
        ],
        "usageMetadata": {"promptTokenCount": 3, "candidatesTokenCount": 2, "totalTokenCount": 5},
    }
    calls = []
    _fake_client(monkeypatch, Resp(200, body), calls)
    client = GeminiClient(SettingsStub(), stop_sequences=("User:", "Ching:"))
    image = ImageAttachment(data=b"\x89PNG", mime_type="image/png")
    reply = client.generate(ModelRequest(prompt_text="seed", image_attachment=image, live_text="hi"))

    assert reply.raw_text == "Hello there"
    assert reply.finish_reason == "MAX_TOKENS"
    assert reply.usage.total_tokens == 5

    call = calls[0]
    assert call["url"].endswith("/models/gemini-1.5-flash-latest:generateContent")
    assert call["headers"]["x-goog-api-key"] == SettingsStub.google_api_key
    contents = call["json"]["contents"]
    assert contents[0] == {"role": "user", "parts": [{"text": "seed"}]}
    assert contents[1]["parts"][0] == {"text": "hi"}
    assert contents[1]["parts"][1]["inlineData"] == {
        "mimeType": "image/png",
        "data": base64.b64encode(b"\x89PNG").decode("ascii"),
    }
    config = call["json"]["generationConfig"]
    assert config["temperature"] == 0.7
    assert config["topP"] == 0.8
    assert config["topK"] == 40
    assert config["candidateCount"] == 1
    assert config["maxOutputTokens"] == 4096
    assert config["stopSequences"] == ["User:", "Ching:"]


def test_blocked_prompt_returns_empty_reply(monkeypatch):
    _fake_client(monkeypatch, Resp(200, {"promptFeedback": {"blockReason": "SAFETY"}}))
    reply = GeminiClient(SettingsStub()).generate(ModelRequest(prompt_text="x"))
    assert reply.raw_text == ""
    assert reply.finish_reason == "SAFETY"
    assert reply.candidate_index is None


def test_missing_api_key(monkeypatch):
    class NoKey(SettingsStub):
        google_api_key = None

    with pytest.raises(ConfigurationError) as exc:
        GeminiClient(NoKey()).generate(ModelRequest(prompt_text="x"))
    assert exc.value.http_status == 500


def test_status_mapping(monkeypatch):
    _fake_client(monkeypatch, Resp(429))
    with pytest.raises(RateLimitError):
        GeminiClient(SettingsStub()).generate(ModelRequest(prompt_text="x"))

    _fake_client(monkeypatch, Resp(400, {"error": {"message": "bad key"}}))
    with pytest.raises(ApiError) as exc:
        GeminiClient(SettingsStub()).generate(ModelRequest(prompt_text="x"))
    assert exc.value.status_code == 400
    assert exc.value.message == "bad key"


def test_network_error(monkeypatch):
    _fake_client(monkeypatch, httpx.ConnectError("refused"))
    with pytest.raises(NetworkError):
        GeminiClient(SettingsStub()).generate(ModelRequest(prompt_text="x"))


def test_request_timeout_caps_http_timeout(monkeypatch):
    seen = []

    class Client:
        def __init__(self, *a, timeout=None, **kw):
            seen.append(timeout)

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None):
            return Resp(200, {"candidates": [{"content": {"parts": [{"text": "ok"}]}, "finishReason": "STOP"}]})

    monkeypatch.setattr("httpx.Client", Client)

    class SlowSettings(SettingsStub):
        http_timeout = 30.0

    client = GeminiClient(SlowSettings())
    client.generate(ModelRequest(prompt_text="x", timeout=12.5))
    client.generate(ModelRequest(prompt_text="x", timeout=45.0))
    client.generate(ModelRequest(prompt_text="x"))
    assert seen == [12.5, 30.0, 30.0]

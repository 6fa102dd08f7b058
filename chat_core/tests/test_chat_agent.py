import pytest

from chat_core.agents.chat_agent import ChatAgent
from chat_core.domain.exceptions import InvalidFormat
from chat_core.domain.models import ChatTurn, CommandReply, ContinuationContext, ModelReply
from chat_core.prompts import Persona


class SettingsStub:
    google_api_key = "g" * 20
    default_provider = "gemini"
    http_timeout = 30.0
    default_model = "chat"
    persona_name = "Testy"
    max_message_length = 2000
    max_file_bytes = 5 * 1024 * 1024
    history_max_turns = 5
    history_entry_max_chars = 500
    prompt_history_turns = 3
    max_attempts = 3
    retry_base_delay = 0.0
    turn_timeout_seconds = 60
    overload_retry_after = 30
    continuation_tail_chars = 1000


class FakeProvider:
    name = "fake"

    def __init__(self, *replies):
        self._replies = list(replies)
        self.requests = []

    def generate(self, req):
        self.requests.append(req)
        return self._replies.pop(0)


PERSONA = Persona(name="Testy", identity="You are Testy, a test assistant.")


def _agent(provider):
    return ChatAgent.from_settings(SettingsStub(), provider=provider, persona=PERSONA, sleep=lambda s: None)


def test_plain_message():
    provider = FakeProvider(ModelReply(raw_text="Hi! How can I help?", finish_reason="STOP"))
    result = _agent(provider).handle("hello")
    assert result.text == "Hi! How can I help?"
    assert result.has_more is False
    assert result.continuation is None
    assert len(provider.requests) == 1
    assert provider.requests[0].live_text == "hello"


def test_help_never_calls_model():
    provider = FakeProvider()
    result = _agent(provider).handle("/help")
    assert isinstance(result, CommandReply)
    assert result.reply.startswith("Available commands:")
    assert provider.requests == []


def test_clear_requests_history_reset():
    provider = FakeProvider()
    result = _agent(provider).handle("/clear")
    assert result.to_payload() == {"reply": "Chat history cleared", "hasMore": False, "clearHistory": True}
    assert provider.requests == []


def test_history_is_included_in_prompt():
    provider = FakeProvider(ModelReply(raw_text="Sure.", finish_reason="STOP"))
    history = [
        ChatTurn(text="my name is Ada", is_user=True),
        ChatTurn(text="Nice to meet you, Ada.", is_user=False),
    ]
    _agent(provider).handle("what is my name?", history)
    prompt = provider.requests[0].prompt_text
    assert "User: my name is Ada" in prompt
    assert "Testy: Nice to meet you, Ada." in prompt


def test_code_request_without_fence_gets_fallback():
    provider = FakeProvider(ModelReply(raw_text="Sorry, here it is in words.", finish_reason="STOP"))
    result = _agent(provider).handle("write a ruby program")
    assert "```ruby" in result.text
    assert 'puts "Hello, World!"' in result.text


def test_truncated_reply_then_continue():
    truncated = "Here you go:\n```python\nx = 1\n"
    provider = FakeProvider(
        ModelReply(raw_text=truncated, finish_reason="MAX_TOKENS"),
        ModelReply(raw_text="    y = 2\n```\nDone.", finish_reason="STOP"),
    )
    agent = _agent(provider)
    first = agent.handle("write python code")
    assert first.has_more is True
    assert first.continuation.kind == "code"

    context = ContinuationContext.from_payload(first.continuation.to_payload())
    second = agent.handle("/continue", continuation=context)
    assert second.is_continuation is True
    assert second.has_more is False
    assert second.text.startswith("    y = 2")
    continue_req = provider.requests[1]
    assert continue_req.live_text == ""
    assert continue_req.image_attachment is None
    assert "x = 1" in continue_req.prompt_text


def test_invalid_input_propagates():
    with pytest.raises(InvalidFormat):
        _agent(FakeProvider()).handle("   ")

import pytest

from chat_core.domain.exceptions import ConfigurationError
from chat_core.providers import create_provider
from chat_core.providers.gemini_client import GeminiClient
from chat_core.providers.registry import get_provider_config


class DummySettings:
    default_provider = "gemini"
    default_model = "chat"
    google_api_key = "g" * 20
    http_timeout = 1.0


def test_create_provider_default(monkeypatch):
    monkeypatch.setattr("chat_core.providers.settings", DummySettings())
    provider = create_provider()
    assert isinstance(provider, GeminiClient)


def test_create_provider_unknown():
    with pytest.raises(ConfigurationError):
        create_provider("openai", cfg=DummySettings())


def test_registry_lookup_is_case_insensitive():
    cfg = get_provider_config("Gemini")
    model = cfg.models["chat"]
    assert model.provider_model == "gemini-1.5-flash-latest"
    assert (model.default_temperature, model.top_p, model.top_k, model.candidate_count) == (0.7, 0.8, 40, 1)
    with pytest.raises(KeyError):
        get_provider_config("openai")

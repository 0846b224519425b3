import pytest

from persona_core.domain.exceptions import ValidationError
from persona_core.providers import create_provider
from persona_core.providers.gemini_client import GeminiClient
from persona_core.providers import registry
from persona_core.providers.registry import get_provider_config


def test_create_provider_default(monkeypatch):
    class DummySettings:
        default_provider = "gemini"
        default_model = "persona-chat"
        gemini_api_key = "g-test-key-123"
        http_timeout = 1.0
        temperature = 0.7

    monkeypatch.setattr("persona_core.providers.settings", DummySettings())
    provider = create_provider()
    assert isinstance(provider, GeminiClient)
    chat = provider.open_chat("persona", [])
    assert chat.model == "persona-chat"
    assert chat.temperature == 0.7


def test_create_provider_unknown():
    with pytest.raises(ValidationError) as exc:
        create_provider("kimi")
    assert exc.value.code == "UNKNOWN_PROVIDER"


def test_registry_lookup_is_case_insensitive():
    cfg = get_provider_config("GEMINI")
    assert cfg.models["persona-chat"].provider_model == "gemini-2.0-flash"
    with pytest.raises(KeyError):
        get_provider_config("glm")


def test_create_provider_resolves_through_registry():
    class DummySettings:
        default_provider = "Gemini"
        default_model = "persona-chat"
        temperature = 0.7

    assert isinstance(create_provider(cfg=DummySettings()), GeminiClient)


def test_registered_provider_without_client_is_unknown(monkeypatch):
    monkeypatch.setitem(
        registry.PROVIDER_REGISTRY,
        "ollama",
        registry.ProviderConfig(name="ollama", base_url="http://localhost:11434", models={}),
    )
    assert get_provider_config("ollama").name == "ollama"
    with pytest.raises(ValidationError) as exc:
        create_provider("ollama")
    assert exc.value.code == "UNKNOWN_PROVIDER"

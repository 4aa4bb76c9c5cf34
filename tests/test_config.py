import pytest

from replydesk.config import DEFAULT_MODEL, get_settings, reset_settings_cache
from replydesk.errors import ValidationError

_KEYS = (
    "ANTHROPIC_API_KEY",
    "ANTHROPIC_MODEL",
    "LLM_TIMEOUT_SECONDS",
    "KNOWLEDGE_CONTEXT_LIMIT",
    "ENCRYPTION_KEY",
    "STATE_TOKEN_TTL_SECONDS",
    "SWEEP_INTERVAL_SECONDS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.setattr("replydesk.config.load_dotenv", lambda: False)
    for key in _KEYS:
        monkeypatch.delenv(key, raising=False)
    reset_settings_cache()
    yield
    reset_settings_cache()


def test_defaults():
    settings = get_settings()
    assert settings.anthropic_api_key is None
    assert settings.anthropic_model == DEFAULT_MODEL == "claude-sonnet-4-20250514"
    assert settings.llm_timeout_seconds == 30.0
    assert settings.knowledge_context_limit == 5
    assert settings.state_token_ttl_seconds == 600
    assert settings.sweep_interval_seconds == 300


def test_environment_overrides_and_cache(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    monkeypatch.setenv("LLM_TIMEOUT_SECONDS", "12.5")
    monkeypatch.setenv("KNOWLEDGE_CONTEXT_LIMIT", "3")

    settings = get_settings()
    assert settings.anthropic_api_key == "sk-test"
    assert settings.llm_timeout_seconds == 12.5
    assert settings.knowledge_context_limit == 3

    monkeypatch.setenv("KNOWLEDGE_CONTEXT_LIMIT", "9")
    assert get_settings() is settings
    reset_settings_cache()
    assert get_settings().knowledge_context_limit == 9


@pytest.mark.parametrize(
    ("key", "value"),
    [("LLM_TIMEOUT_SECONDS", "soon"), ("KNOWLEDGE_CONTEXT_LIMIT", "0"), ("SWEEP_INTERVAL_SECONDS", "-5")],
)
def test_invalid_numbers_rejected(monkeypatch, key, value):
    monkeypatch.setenv(key, value)
    with pytest.raises(ValidationError):
        get_settings()

"""Tests for configuration settings."""
from config.fact_categories import FACT_CATEGORIES, category_icon
from config.settings import Settings


def test_relay_defaults():
    """Relay upstream defaults match the provider contract."""
    settings = Settings(_env_file=None)

    assert settings.upstream_url == "https://api.anthropic.com/v1/messages"
    assert settings.anthropic_version == "2023-06-01"
    assert settings.relay_max_tokens == 2048
    assert settings.auth_mode == "managed"


def test_env_aliases(monkeypatch):
    """Settings read their CONTACTCARD_ environment variables."""
    monkeypatch.setenv("CONTACTCARD_MODEL", "claude-test")
    monkeypatch.setenv("CONTACTCARD_FREE_CREDITS", "7")
    monkeypatch.setenv("ANTHROPIC_API_KEY", " ")

    settings = Settings(_env_file=None)
    assert settings.model == "claude-test"
    assert settings.free_credits == 7
    assert settings.server_key_configured is False


def test_fact_categories_fixed():
    assert list(FACT_CATEGORIES) == [
        "work", "family", "interests", "location", "education", "personality",
        "relationship", "health", "events", "appearance", "preferences", "other",
    ]
    assert category_icon("unknown") == category_icon("other")

import pytest

from research.config import ResearchSettings
from research.exceptions import redact_secrets

ENV_VARS = [
    "SERPER_API_KEY",
    "SERPER_BASE_URL",
    "SERPER_COUNTRY",
    "ANTHROPIC_API_KEY",
    "ANTHROPIC_MODEL",
    "RESEARCH_HTTP_TIMEOUT_SECONDS",
    "RESEARCH_MAX_VISUAL_CONCURRENCY",
    "RESEARCH_MIN_CONSENSUS_CONFIDENCE",
    "RESEARCH_CATEGORY_KEYWORD",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Keep a stray .env in the working directory out of these tests.
    monkeypatch.chdir(tmp_path)
    return monkeypatch


def test_defaults(clean_env, tmp_path):
    settings = ResearchSettings.from_env(tmp_path / "missing.env")
    assert settings.serper_api_key is None
    assert settings.is_search_configured() is False
    assert settings.is_ai_configured() is False
    assert settings.http_timeout_seconds == 20.0
    assert settings.max_visual_concurrency == 5
    assert settings.category_keyword == "poster"


def test_reads_environment(clean_env, tmp_path):
    clean_env.setenv("SERPER_API_KEY", "serper-123")
    clean_env.setenv("ANTHROPIC_API_KEY", "sk-ant-abc")
    clean_env.setenv("RESEARCH_HTTP_TIMEOUT_SECONDS", "12.5")
    clean_env.setenv("RESEARCH_MAX_VISUAL_CONCURRENCY", "3")
    clean_env.setenv("RESEARCH_CATEGORY_KEYWORD", "affiche")

    settings = ResearchSettings.from_env(tmp_path / "missing.env")

    assert settings.is_search_configured() is True
    assert settings.is_ai_configured() is True
    assert settings.http_timeout_seconds == 12.5
    assert settings.max_visual_concurrency == 3
    assert settings.category_keyword == "affiche"


def test_bad_numbers_fall_back_to_defaults(clean_env, tmp_path):
    clean_env.setenv("RESEARCH_HTTP_TIMEOUT_SECONDS", "soon")
    clean_env.setenv("RESEARCH_MAX_VISUAL_CONCURRENCY", "many")

    settings = ResearchSettings.from_env(tmp_path / "missing.env")

    assert settings.http_timeout_seconds == 20.0
    assert settings.max_visual_concurrency == 5


def test_env_file_does_not_override_environment(clean_env, tmp_path):
    env_file = tmp_path / "research.env"
    env_file.write_text("SERPER_API_KEY=from-file\nSERPER_COUNTRY=gb\n")
    clean_env.setenv("SERPER_API_KEY", "from-env")

    settings = ResearchSettings.from_env(env_file)

    assert settings.serper_api_key == "from-env"
    assert settings.serper_country == "gb"


def test_empty_key_counts_as_missing(clean_env, tmp_path):
    clean_env.setenv("SERPER_API_KEY", "")
    assert ResearchSettings.from_env(tmp_path / "missing.env").serper_api_key is None


def test_redact_secrets():
    text = "GET https://api.test/search?api_key=abc123&q=poster failed; key sk-ant-api03-XYZ"
    redacted = redact_secrets(text)
    assert "abc123" not in redacted
    assert "XYZ" not in redacted
    assert "q=poster" in redacted
    assert redact_secrets(None) == ""

"""Tests for configuration loading."""

import pytest
import yaml

from agentdesk.config import (
    AppConfig, config_from_env, create_default_config, load_config, parse_config,
)


def test_load_config_expands_env(tmp_path, monkeypatch):
    monkeypatch.setenv("TEST_LLM_KEY", "sk-test")
    path = tmp_path / "agentdesk.yaml"
    path.write_text(
        "server:\n"
        "  port: 8080\n"
        "storage:\n"
        "  data_dir: /tmp/agentdesk\n"
        "llm:\n"
        "  api_key: ${TEST_LLM_KEY}\n"
        "  model: gpt-4o-mini\n"
    )

    config = load_config(path)

    assert config.server.port == 8080
    assert config.server.host == "0.0.0.0"
    assert config.llm.api_key == "sk-test"
    assert config.llm.model == "gpt-4o-mini"
    assert str(config.storage.agents_dir) == "/tmp/agentdesk/agents"


def test_unset_variables_are_missing(tmp_path, monkeypatch):
    monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
    path = tmp_path / "agentdesk.yaml"
    path.write_text("llm:\n  api_key: ${NOT_SET_ANYWHERE}\n")

    assert load_config(path).llm.api_key is None


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_default_config_parses():
    config = parse_config(yaml.safe_load(create_default_config()))

    assert config.server.port == 5000
    assert config.credentials.backend == "file"
    assert config.gmail.email_from == "me"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("AGENTDESK_DATA_DIR", "/srv/data")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("RAILWAY_ENVIRONMENT", "production")
    monkeypatch.delenv("CREDENTIALS_BACKEND", raising=False)

    config = config_from_env(AppConfig())

    assert config.storage.data_dir == "/srv/data"
    assert config.llm.api_key == "sk-env"
    assert config.credentials.backend == "env"


def test_explicit_backend_wins(monkeypatch):
    monkeypatch.setenv("RAILWAY_ENVIRONMENT", "production")
    monkeypatch.setenv("CREDENTIALS_BACKEND", "file")

    assert config_from_env().credentials.backend == "file"


def test_gmail_section_holds_server_wide_settings_only():
    """OAuth client pairs are per agent; a config-level pair is not read."""
    config = parse_config({"gmail": {"client_id": "cid", "redirect_uri": "http://cb", "timeout": 5}})

    assert config.gmail.redirect_uri == "http://cb"
    assert config.gmail.timeout == 5.0
    assert not hasattr(config.gmail, "client_id")

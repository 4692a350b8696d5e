"""
Configuration management for agentdesk.

Supports YAML configuration with environment variable expansion.
"""

import os
import re
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Dict, Any

import yaml


@dataclass
class ServerConfig:
    """HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = 5000


@dataclass
class StorageConfig:
    """Where agent state and credential files live."""
    data_dir: str = "./data"

    @property
    def agents_dir(self) -> Path:
        return Path(self.data_dir) / "agents"

    @property
    def credentials_dir(self) -> Path:
        return Path(self.data_dir) / "credentials"


@dataclass
class LLMConfig:
    """OpenAI-compatible chat completion endpoint."""
    base_url: str = "https://api.openai.com/v1"
    api_key: Optional[str] = None
    model: str = "gpt-3.5-turbo"
    timeout: float = 60.0


@dataclass
class GmailConfig:
    """Gmail OAuth client defaults."""
    redirect_uri: Optional[str] = None
    email_from: str = "me"
    timeout: float = 30.0


@dataclass
class CredentialsConfig:
    """Credential store backend."""
    backend: str = "file"  # file | env


@dataclass
class AppConfig:
    """Root configuration for agentdesk."""
    server: ServerConfig = field(default_factory=ServerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    gmail: GmailConfig = field(default_factory=GmailConfig)
    credentials: CredentialsConfig = field(default_factory=CredentialsConfig)


def expand_env_vars(value: Any) -> Any:
    """Recursively expand environment variables in config values."""
    if isinstance(value, str):
        # Match ${VAR} or $VAR patterns
        pattern = r'\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)'

        def replace(match):
            var_name = match.group(1) or match.group(2)
            return os.environ.get(var_name, match.group(0))

        return re.sub(pattern, replace, value)
    elif isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [expand_env_vars(v) for v in value]
    return value


def _unset(value: Any) -> Any:
    """Treat unexpanded ${VAR} placeholders and empty strings as missing."""
    if isinstance(value, str) and (not value or value.startswith("$")):
        return None
    return value


def parse_config(data: Dict[str, Any]) -> AppConfig:
    """Build an AppConfig from an already-expanded dict."""
    data = data or {}

    server_data = data.get("server", {}) or {}
    server = ServerConfig(
        host=server_data.get("host", "0.0.0.0"),
        port=int(server_data.get("port", 5000)),
    )

    storage_data = data.get("storage", {}) or {}
    storage = StorageConfig(
        data_dir=storage_data.get("data_dir", "./data"),
    )

    llm_data = data.get("llm", {}) or {}
    llm = LLMConfig(
        base_url=llm_data.get("base_url", "https://api.openai.com/v1"),
        api_key=_unset(llm_data.get("api_key")),
        model=llm_data.get("model", "gpt-3.5-turbo"),
        timeout=float(llm_data.get("timeout", 60.0)),
    )

    gmail_data = data.get("gmail", {}) or {}
    gmail = GmailConfig(
        redirect_uri=_unset(gmail_data.get("redirect_uri")),
        email_from=gmail_data.get("email_from", "me"),
        timeout=float(gmail_data.get("timeout", 30.0)),
    )

    cred_data = data.get("credentials", {}) or {}
    credentials = CredentialsConfig(
        backend=cred_data.get("backend", "file"),
    )

    return AppConfig(
        server=server,
        storage=storage,
        llm=llm,
        gmail=gmail,
        credentials=credentials,
    )


def load_config(path: str | Path) -> AppConfig:
    """Load configuration from YAML file."""
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    # Expand environment variables
    return parse_config(expand_env_vars(raw or {}))


def config_from_env(config: Optional[AppConfig] = None) -> AppConfig:
    """Overlay process environment variables onto a config."""
    config = config or AppConfig()
    env = os.environ

    if env.get("AGENTDESK_DATA_DIR"):
        config.storage.data_dir = env["AGENTDESK_DATA_DIR"]
    if env.get("OPENAI_API_KEY") and not config.llm.api_key:
        config.llm.api_key = env["OPENAI_API_KEY"]
    if env.get("OPENAI_BASE_URL"):
        config.llm.base_url = env["OPENAI_BASE_URL"]
    if env.get("GMAIL_REDIRECT_URI") and not config.gmail.redirect_uri:
        config.gmail.redirect_uri = env["GMAIL_REDIRECT_URI"]
    if env.get("EMAIL_FROM"):
        config.gmail.email_from = env["EMAIL_FROM"]
    if env.get("CREDENTIALS_BACKEND"):
        config.credentials.backend = env["CREDENTIALS_BACKEND"]
    elif env.get("RAILWAY_ENVIRONMENT") == "production":
        config.credentials.backend = "env"

    return config


def create_default_config() -> str:
    """Generate default configuration YAML."""
    return """# agentdesk configuration

server:
  host: 0.0.0.0
  port: 5000

storage:
  # agents/ and credentials/ are created beneath this directory
  data_dir: ./data

# OpenAI-compatible chat completions endpoint
llm:
  base_url: https://api.openai.com/v1
  api_key: ${OPENAI_API_KEY}
  model: gpt-3.5-turbo

gmail:
  redirect_uri: ${GMAIL_REDIRECT_URI}
  email_from: me

# file: JSON files under data_dir/credentials
# env:  read GMAIL_* variables for gmail agents
credentials:
  backend: file
"""

"""
agentdesk - Chat Backend with Pluggable Agents

Routes free-text messages to agent wrappers (general assistant, Gmail,
Airtable), keeping conversational state and per-agent credentials on disk.
"""

__version__ = "0.1.0"

from .config import AppConfig, load_config
from .server import create_app

__all__ = [
    "__version__",
    "AppConfig",
    "load_config",
    "create_app",
]

"""
agentdesk Agents

Agent variants, the registry that owns them, and the router that picks
one for unaddressed messages.
"""

from .models import (
    AgentKind, AgentState, AgentCommand, CommandResult, AgentSummary,
    MemoryItem, CredentialInfo, RoutedReply, DEFAULT_AGENT_ID,
)
from .base import BaseAgent
from .default import DefaultAgent
from .mail import MailAgent, MailAuthState
from .spreadsheet import SpreadsheetAgent
from .router import Router, LLMClassifier, RouteCandidate
from .registry import AgentRegistry
from .storage import AgentStateStore

__all__ = [
    "AgentKind",
    "AgentState",
    "AgentCommand",
    "CommandResult",
    "AgentSummary",
    "MemoryItem",
    "CredentialInfo",
    "RoutedReply",
    "DEFAULT_AGENT_ID",
    "BaseAgent",
    "DefaultAgent",
    "MailAgent",
    "MailAuthState",
    "SpreadsheetAgent",
    "Router",
    "LLMClassifier",
    "RouteCandidate",
    "AgentRegistry",
    "AgentStateStore",
]

"""
Agent Models

Pydantic models for agent snapshots, commands, and API requests.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, List, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from ..errors import UnknownTypeError


DEFAULT_AGENT_ID = "default"
MAX_MEMORY_ITEMS = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgentKind(str, Enum):
    """Closed set of agent variants."""
    DEFAULT = "default"
    GMAIL = "gmail"
    AIRTABLE = "airtable"


AGENT_DESCRIPTIONS: Dict[AgentKind, Dict[str, str]] = {
    AgentKind.GMAIL: {
        "name": "Gmail",
        "summary": "Email management via Gmail",
        "routing": "Handles email-related tasks like reading, sending, and searching emails",
    },
    AgentKind.AIRTABLE: {
        "name": "Airtable",
        "summary": "Database management via Airtable",
        "routing": "Manages database operations via Airtable",
    },
    AgentKind.DEFAULT: {
        "name": "Default Assistant",
        "summary": "General purpose assistant",
        "routing": "General purpose assistant for all other tasks",
    },
}


KIND_ALIASES = {
    "mail": AgentKind.GMAIL,
    "email": AgentKind.GMAIL,
    "spreadsheet": AgentKind.AIRTABLE,
}


def resolve_kind(value: Any) -> AgentKind:
    """Map a type name (or alias) onto AgentKind."""
    if isinstance(value, AgentKind):
        return value
    name = str(value or "").strip().lower()
    if name in KIND_ALIASES:
        return KIND_ALIASES[name]
    try:
        return AgentKind(name)
    except ValueError:
        raise UnknownTypeError(str(value)) from None


def describe_kind(kind: str) -> str:
    """Human-readable routing description for an agent type."""
    try:
        return AGENT_DESCRIPTIONS[resolve_kind(kind)]["routing"]
    except UnknownTypeError:
        return "Unknown agent type"


class MemoryItem(BaseModel):
    """One conversational turn kept in agent memory."""
    role: Literal["user", "assistant"]
    content: str
    timestamp: str = Field(default_factory=lambda: utcnow().isoformat())


class CredentialInfo(BaseModel):
    """Non-sensitive credential markers stored alongside agent state."""
    model_config = ConfigDict(populate_by_name=True)

    has_credentials: bool = Field(False, alias="hasCredentials")
    has_access_token: bool = Field(False, alias="hasAccessToken")
    client_id: Optional[str] = Field(None, alias="clientId")
    redirect_uri: Optional[str] = Field(None, alias="redirectUri")


class AgentState(BaseModel):
    """Serializable snapshot of an agent, one JSON file per agent id."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: AgentKind
    name: str
    active: bool = False
    memory: List[MemoryItem] = Field(default_factory=list)
    last_activity: datetime = Field(default_factory=utcnow, alias="lastActivity")
    credential_info: Optional[CredentialInfo] = Field(None, alias="credentialInfo")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)


class AgentCommand(BaseModel):
    """A named out-of-band command with an optional payload."""
    name: str
    payload: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def parse(cls, command: Union[str, Dict[str, Any], "AgentCommand"]) -> "AgentCommand":
        """
        Accept a bare command name, an AgentCommand, or a dict.

        Dicts may carry the payload under "payload" or as sibling keys,
        e.g. {"name": "set_auth_code", "code": "..."}.
        """
        if isinstance(command, AgentCommand):
            return command
        if isinstance(command, str):
            return cls(name=command.strip())
        if isinstance(command, dict):
            data = dict(command)
            name = data.pop("name", None) or data.pop("command", None) or ""
            payload = data.pop("payload", None) or {}
            payload = {**data, **payload}
            return cls(name=str(name).strip(), payload=payload)
        raise TypeError(f"Unsupported command type: {type(command).__name__}")


class CommandResult(BaseModel):
    """Outcome of execute_command."""
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class AgentSummary(BaseModel):
    """Read-only listing entry for a live agent."""
    id: str
    name: str
    type: AgentKind
    status: Literal["active", "inactive"]


class RoutedReply(BaseModel):
    """Reply from process_with_routing."""
    agent_id: str
    response: str


# =============================================================================
# Request Models
# =============================================================================

class AgentCreateRequest(BaseModel):
    """Request to create a new agent."""
    type: str = Field(..., description="Agent type: default | gmail | airtable")
    id: Optional[str] = Field(None, description="Agent id (generated when omitted)")
    credentials: Dict[str, Any] = Field(default_factory=dict)


class GmailCreateRequest(BaseModel):
    """Request to create a Gmail agent from OAuth client credentials."""
    credentials: Dict[str, Any] = Field(default_factory=dict)


class MessageRequest(BaseModel):
    """Message for an agent (or for routing)."""
    message: Optional[str] = None


class CommandRequest(BaseModel):
    """Command for an agent."""
    command: Optional[Union[str, Dict[str, Any]]] = None

"""
agentdesk Errors

Registry usage errors propagate to callers. Provider and auth errors are
caught at the agent boundary and turned into user-facing replies.
"""

from typing import Optional


class AgentDeskError(Exception):
    """Base class for all agentdesk errors."""


class DuplicateIdError(AgentDeskError):
    """An agent with this id is already registered."""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent with ID {agent_id} already exists")


class UnknownTypeError(AgentDeskError):
    """Requested agent type is not one of the known kinds."""

    def __init__(self, agent_type: str):
        self.agent_type = agent_type
        super().__init__(f"Unknown agent type: {agent_type}")


class NotFoundError(AgentDeskError):
    """No agent registered under this id."""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent {agent_id} not found")


class ProviderError(AgentDeskError):
    """An outbound call to the model or mail provider failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class AuthRequiredError(ProviderError):
    """Mail operation attempted without a valid access token."""

    def __init__(self, message: str = "Authentication required", auth_url: Optional[str] = None):
        self.auth_url = auth_url
        super().__init__(message, status_code=401)


class InvalidIdError(AgentDeskError):
    """Agent id cannot be used as a file name."""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Invalid agent ID: {agent_id!r}")

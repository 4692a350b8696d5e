"""
Router: picks which active agent should answer an unaddressed message.

With one (or no) active agent everything goes to the default agent.
Otherwise a classifier names an agent type and the router resolves it
to a concrete agent id. The classifier is injected so tie-breaking and
fallback can be exercised without a model.
"""

import logging
import re
from typing import List, Sequence, Callable, Awaitable, Optional

from ..llm import ChatModel
from ..errors import UnknownTypeError
from .models import AgentKind, DEFAULT_AGENT_ID, describe_kind, resolve_kind

logger = logging.getLogger("agentdesk.agents.router")

Classifier = Callable[[str, Sequence["RouteCandidate"]], Awaitable[str]]

ROUTER_PROMPT = """You are an agent router that determines which specialized agent should handle a user's request.
Available agents:
{agents}

Return ONLY the agent type that should handle the request. If unsure, return "default"."""


class RouteCandidate:
    """What the router needs to know about one live agent."""

    __slots__ = ("id", "type", "name", "active", "connected")

    def __init__(self, id: str, type: str, name: str, active: bool = True, connected: bool = False):
        self.id = id
        self.type = type
        self.name = name
        self.active = active
        self.connected = connected

    def __repr__(self) -> str:
        return f"RouteCandidate({self.id!r}, {self.type!r})"


def parse_agent_type(text: str) -> str:
    """Bare, lower-cased agent type token from a classifier reply."""
    token = (text or "").strip().lower()
    token = token.strip("`'\".,:;!* \n\t")
    return token.split()[0] if token else ""


def creation_suffix(agent_id: str) -> int:
    """
    Numeric creation timestamp encoded in ids like "gmail-1700000000000".

    Ids without a numeric suffix rank below every timestamped id.
    """
    match = re.search(r"-(\d+)$", agent_id)
    return int(match.group(1)) if match else -1


class LLMClassifier:
    """Asks the chat model for the agent type best suited to a message."""

    def __init__(self, chat_model: ChatModel):
        self.chat_model = chat_model

    def build_prompt(self, candidates: Sequence[RouteCandidate]) -> str:
        lines = [f"- {c.type} ({c.name}): {describe_kind(c.type)}" for c in candidates]
        return ROUTER_PROMPT.format(agents="\n".join(lines))

    async def __call__(self, message: str, candidates: Sequence[RouteCandidate]) -> str:
        return await self.chat_model.complete(
            [
                {"role": "system", "content": self.build_prompt(candidates)},
                {"role": "user", "content": message},
            ],
            max_tokens=50,
            temperature=0.3,
        )


class Router:
    """Classifies incoming messages and returns the agent id to dispatch to."""

    def __init__(self, classifier: Optional[Classifier] = None, default_agent: str = DEFAULT_AGENT_ID):
        self.classifier = classifier
        self.default_agent = default_agent

    async def select_agent(self, message: str, candidates: Sequence[RouteCandidate]) -> str:
        """Never raises; the worst case is the default agent."""
        active = [c for c in candidates if c.active]

        if len(active) <= 1 or self.classifier is None:
            return self.default_agent

        try:
            reply = await self.classifier(message, active)
        except Exception as e:
            logger.error(f"Error determining appropriate agent: {e}")
            return self.default_agent

        token = parse_agent_type(reply)
        try:
            agent_type = resolve_kind(token).value
        except UnknownTypeError:
            logger.info(f"Classifier named unknown type '{token}', using {self.default_agent}")
            return self.default_agent

        matches = [c for c in active if c.type == agent_type]
        if not matches:
            logger.info(f"No active agent for type '{agent_type}', using {self.default_agent}")
            return self.default_agent

        if agent_type == AgentKind.GMAIL.value:
            return self._pick_mail(matches)

        logger.info(f"Routing message to {agent_type} agent: {matches[0].id}")
        return matches[0].id

    def _pick_mail(self, matches: List[RouteCandidate]) -> str:
        for candidate in matches:
            if candidate.connected:
                logger.info(f"Routing message to Gmail agent: {candidate.id} (connected)")
                return candidate.id

        latest = max(matches, key=lambda c: creation_suffix(c.id))
        logger.info(f"No connected Gmail agent found, using latest: {latest.id}")
        return latest.id

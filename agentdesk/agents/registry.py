"""
Agent Registry

Owns every live agent: creates and starts them, routes messages and
commands to them, and persists their state to one file per agent id.
Constructed explicitly at startup and torn down with shutdown_all().
"""

import logging
from typing import Optional, Dict, List, Any

from ..credentials import CredentialStore
from ..credentials.store import validate_agent_id
from ..errors import DuplicateIdError, NotFoundError, UnknownTypeError
from ..llm import ChatModel
from .base import BaseAgent, Command
from .default import DefaultAgent
from .mail import MailAgent
from .models import (
    AGENT_DESCRIPTIONS, AgentKind, AgentState, AgentSummary, CommandResult,
    DEFAULT_AGENT_ID, RoutedReply, resolve_kind,
)
from .router import LLMClassifier, RouteCandidate, Router
from .spreadsheet import SpreadsheetAgent
from .storage import AgentStateStore

logger = logging.getLogger("agentdesk.agents.registry")


class AgentRegistry:
    """
    Process-wide owner of live agents.

    Registry errors (duplicate id, unknown type, missing agent)
    propagate; agent-level failures are handled inside the agents.
    """

    def __init__(
        self,
        storage: Optional[AgentStateStore] = None,
        credential_store: Optional[CredentialStore] = None,
        chat_model: Optional[ChatModel] = None,
        router: Optional[Router] = None,
        mail_options: Optional[Dict[str, Any]] = None,
    ):
        self.storage = storage or AgentStateStore()
        self.credential_store = credential_store
        self.chat_model = chat_model
        if router is None:
            router = Router(LLMClassifier(chat_model) if chat_model else None)
        self.router = router
        self.mail_options = dict(mail_options or {})
        self._agents: Dict[str, BaseAgent] = {}

        logger.info(f"Agent Registry initialized (state: {self.storage.directory})")

    def __contains__(self, agent_id: str) -> bool:
        return agent_id in self._agents

    def __len__(self) -> int:
        return len(self._agents)

    # =========================================================================
    # Construction
    # =========================================================================

    def build_agent(self, kind: Any, agent_id: str, options: Optional[Dict[str, Any]] = None) -> BaseAgent:
        """Instantiate (but do not start or register) an agent of the given kind."""
        kind = resolve_kind(kind)
        options = options or {}
        credentials = options.get("credentials") or {}

        if kind == AgentKind.DEFAULT:
            return DefaultAgent(agent_id, chat_model=self.chat_model, name=options.get("name"))
        if kind == AgentKind.GMAIL:
            return MailAgent(
                agent_id,
                credentials=credentials,
                credential_store=self.credential_store,
                chat_model=self.chat_model,
                name=options.get("name"),
                **self.mail_options,
            )
        return SpreadsheetAgent(agent_id, credentials=credentials, name=options.get("name"))

    @staticmethod
    def available_types() -> List[Dict[str, str]]:
        return [
            {"id": kind.value, "name": info["name"], "description": info["summary"]}
            for kind, info in AGENT_DESCRIPTIONS.items()
        ]

    # =========================================================================
    # Agent CRUD
    # =========================================================================

    async def create(self, kind: Any, agent_id: str, options: Optional[Dict[str, Any]] = None) -> BaseAgent:
        """Create and start an agent. Nothing is registered if start() fails."""
        validate_agent_id(agent_id)
        if agent_id in self._agents:
            raise DuplicateIdError(agent_id)

        agent = self.build_agent(kind, agent_id, options)
        try:
            await agent.start()
        except Exception as e:
            logger.error(f"Error starting agent {agent_id}: {e}")
            raise

        self._agents[agent_id] = agent
        self.persist(agent_id)
        logger.info(f"Created agent: {agent_id} ({agent.type.value})")
        return agent

    async def ensure_default(self) -> BaseAgent:
        """The reserved default agent, created and started on first use."""
        agent = self._agents.get(DEFAULT_AGENT_ID)
        if agent is None:
            agent = await self.create(AgentKind.DEFAULT, DEFAULT_AGENT_ID)
            logger.info("Default agent created and started")
        return agent

    def get(self, agent_id: str) -> Optional[BaseAgent]:
        return self._agents.get(agent_id)

    async def remove(self, agent_id: str) -> bool:
        """Stop and forget an agent, deleting its state and credentials."""
        agent = self._agents.pop(agent_id, None)
        if agent is None:
            return False
        try:
            await agent.stop()
        except Exception as e:
            logger.error(f"Error stopping agent {agent_id}: {e}")
        self.storage.delete(agent_id)
        if self.credential_store is not None:
            self.credential_store.delete(agent_id)
        logger.info(f"Removed agent: {agent_id}")
        return True

    def list_active(self) -> List[AgentSummary]:
        """Snapshot of every registered agent and whether it is active."""
        return [
            AgentSummary(
                id=agent_id,
                name=agent.name,
                type=agent.type,
                status="active" if agent.active else "inactive",
            )
            for agent_id, agent in self._agents.items()
        ]

    def route_candidates(self) -> List[RouteCandidate]:
        return [
            RouteCandidate(
                id=agent_id,
                type=agent.type.value,
                name=agent.name,
                active=agent.active,
                connected=bool(getattr(agent, "connected", False)),
            )
            for agent_id, agent in self._agents.items()
        ]

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def dispatch_message(self, agent_id: str, message: str) -> str:
        agent = self._agents.get(agent_id)
        if agent is None:
            if agent_id != DEFAULT_AGENT_ID:
                raise NotFoundError(agent_id)
            agent = await self.ensure_default()

        response = await agent.process(message)
        self.persist(agent_id)
        return response

    async def dispatch_command(self, agent_id: str, command: Command) -> CommandResult:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise NotFoundError(agent_id)

        result = await agent.execute_command(command)
        self.persist(agent_id)
        return result

    async def process_with_routing(self, message: str) -> RoutedReply:
        agent_id = await self.router.select_agent(message, self.route_candidates())
        response = await self.dispatch_message(agent_id, message)
        return RoutedReply(agent_id=agent_id, response=response)

    # =========================================================================
    # Persistence
    # =========================================================================

    def persist(self, agent_id: str) -> bool:
        """Write one agent's snapshot. Failures are logged, not raised."""
        agent = self._agents.get(agent_id)
        if agent is None:
            return False
        try:
            self.storage.save(agent.get_state())
        except OSError as e:
            logger.error(f"Failed to persist agent {agent_id}: {e}")
            return False
        return True

    async def restore_all(self) -> int:
        """
        Rebuild agents from stored state files.

        Unknown types and corrupt records are skipped; restoration of
        the remaining records continues. Returns the number restored.
        """
        restored = 0
        for path, raw, error in self.storage.scan():
            if error is not None:
                logger.error(f"Error loading agent from file {path.name}: {error}")
                continue

            agent_id = path.stem
            if agent_id in self._agents:
                logger.warning(f"Agent {agent_id} already registered, skipping stored state")
                continue

            try:
                kind = resolve_kind(raw.get("type"))
            except UnknownTypeError:
                logger.warning(f"Unknown agent type: {raw.get('type')} ({path.name})")
                continue

            try:
                validate_agent_id(agent_id)
                state = AgentState.model_validate({**raw, "type": kind.value})
                if state.id != agent_id:
                    logger.warning(f"State file {path.name} records id {state.id}, using {agent_id}")
                    state = state.model_copy(update={"id": agent_id})
                agent = self.build_agent(kind, agent_id)
                agent.load_state(state)
                if state.active:
                    await agent.start()
            except Exception as e:
                logger.error(f"Error loading agent from file {path.name}: {e}")
                continue

            self._agents[agent_id] = agent
            restored += 1
            logger.info(f"Loaded agent: {agent_id} ({kind.value})")

        logger.info(f"Loaded {restored} saved agents")
        return restored

    async def shutdown_all(self):
        """Stop and persist every agent; one failure does not stop the rest."""
        for agent_id, agent in list(self._agents.items()):
            try:
                await agent.stop()
            except Exception as e:
                logger.error(f"Error stopping agent {agent_id}: {e}")
            self.persist(agent_id)

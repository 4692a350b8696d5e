"""
Agent Base

Shared lifecycle, bounded memory, command handling and state snapshots
for every agent variant. Variants override _reply() for message
handling and _handle_command() for their own commands.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, List, Any, Union

from .models import (
    AgentCommand, AgentKind, AgentState, CommandResult, MemoryItem,
    MAX_MEMORY_ITEMS, utcnow,
)

logger = logging.getLogger("agentdesk.agents")

APOLOGY = "I'm sorry, I encountered an error while processing your request. Please try again later."

Command = Union[str, Dict[str, Any], AgentCommand]


class BaseAgent:
    """A stateful conversational unit bound to one capability."""

    kind: AgentKind = AgentKind.DEFAULT
    display_name: str = "Agent"

    def __init__(self, agent_id: str, name: Optional[str] = None):
        self.id = agent_id
        self.type = self.kind
        self.name = name or self.display_name
        self.active = False
        self.memory: List[MemoryItem] = []
        self.max_memory_items = MAX_MEMORY_ITEMS
        self.last_activity: datetime = utcnow()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r} active={self.active}>"

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> bool:
        self.active = True
        self.last_activity = utcnow()
        logger.info(f"Agent {self.id} ({self.type.value}) started")
        return True

    async def stop(self) -> bool:
        self.active = False
        logger.info(f"Agent {self.id} ({self.type.value}) stopped")
        return True

    async def _touch(self):
        if not self.active:
            await self.start()
        self.last_activity = utcnow()

    # =========================================================================
    # Messages
    # =========================================================================

    async def process(self, message: str) -> str:
        """Record the message, produce a reply, record the reply."""
        self.add_to_memory("user", message)

        try:
            await self._touch()
            response = await self._reply(message)
        except Exception as e:
            logger.error(f"Agent {self.id} failed to process message: {e}")
            response = APOLOGY

        self.add_to_memory("assistant", response)
        return response

    async def _reply(self, message: str) -> str:
        return f"Echo: {message}"

    def add_to_memory(self, role: str, content: str):
        self.memory.append(MemoryItem(role=role, content=content))
        # FIFO eviction keeps the most recent entries in order
        if len(self.memory) > self.max_memory_items:
            self.memory = self.memory[-self.max_memory_items:]

    def get_relevant_memory(self, limit: int = 10) -> List[MemoryItem]:
        """Most recent memory items."""
        return self.memory[-limit:] if limit > 0 else []

    def memory_as_messages(self, limit: int = 10) -> List[Dict[str, str]]:
        return [{"role": m.role, "content": m.content} for m in self.get_relevant_memory(limit)]

    # =========================================================================
    # Commands
    # =========================================================================

    async def execute_command(self, command: Command) -> CommandResult:
        """Run a named command. Unknown or malformed commands never raise."""
        try:
            cmd = AgentCommand.parse(command)
        except (TypeError, ValueError) as e:
            return CommandResult(success=False, message=f"Invalid command: {e}")

        try:
            await self._touch()
        except Exception as e:
            logger.error(f"Agent {self.id} failed to start for command '{cmd.name}': {e}")
            return CommandResult(success=False, message=f"Error executing {cmd.name}: {e}")

        if cmd.name == "clear_memory":
            self.memory = []
            return CommandResult(success=True, message="Memory cleared successfully.")

        if cmd.name == "get_status":
            return CommandResult(
                success=True,
                message=f"{self.name} status",
                data=self.status(),
            )

        try:
            result = await self._handle_command(cmd)
        except Exception as e:
            logger.error(f"Agent {self.id} command '{cmd.name}' failed: {e}")
            return CommandResult(success=False, message=f"Error executing {cmd.name}: {e}")

        if result is None:
            return CommandResult(success=False, message=f"Unknown command: {cmd.name}")
        return result

    async def _handle_command(self, cmd: AgentCommand) -> Optional[CommandResult]:
        """Variant-specific commands; None means unrecognized."""
        return None

    def has_credentials(self) -> bool:
        return False

    def status(self) -> Dict[str, Any]:
        return {
            "active": self.active,
            "memorySize": len(self.memory),
            "lastActivity": self.last_activity.isoformat(),
            "hasCredentials": self.has_credentials(),
        }

    # =========================================================================
    # Persistence
    # =========================================================================

    def get_state(self) -> AgentState:
        return AgentState(
            id=self.id,
            type=self.type,
            name=self.name,
            active=self.active,
            memory=[m.model_copy() for m in self.memory],
            last_activity=self.last_activity,
        )

    def load_state(self, state: AgentState):
        self.id = state.id
        self.type = state.type
        self.name = state.name
        self.active = state.active
        self.memory = [m.model_copy() for m in state.memory][-self.max_memory_items:]
        self.last_activity = state.last_activity

"""
Agent State Storage

One JSON file per agent id, rewritten in full on every save.
Designed for simplicity and portability.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Iterator, Tuple

from pydantic import ValidationError

from ..credentials.store import atomic_write_json, validate_agent_id
from .models import AgentState

logger = logging.getLogger("agentdesk.agents.storage")


class StateRecordError(Exception):
    """A stored state file could not be read or validated."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        super().__init__(f"{path.name}: {reason}")


class AgentStateStore:
    """JSON file storage for agent state snapshots."""

    def __init__(self, directory: str | Path = "./data/agents"):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        logger.info(f"Agent state storage at {self.directory}")

    def path_for(self, agent_id: str) -> Path:
        return self.directory / f"{validate_agent_id(agent_id)}.json"

    # =========================================================================
    # CRUD Operations
    # =========================================================================

    def save(self, state: AgentState):
        """Write the snapshot for state.id."""
        data = json.loads(state.to_json())
        atomic_write_json(self.path_for(state.id), data)

    def load(self, agent_id: str) -> Optional[AgentState]:
        """Read one snapshot; None if missing. Raises StateRecordError if corrupt."""
        path = self.path_for(agent_id)
        if not path.exists():
            return None
        return self._read(path)

    def delete(self, agent_id: str) -> bool:
        try:
            self.path_for(agent_id).unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Deleted state for agent {agent_id}")
        return True

    def scan(self) -> Iterator[Tuple[Path, Optional[dict], Optional[StateRecordError]]]:
        """
        Yield (path, raw_record, error) for every stored file.

        The raw record is the decoded JSON object so callers can inspect
        the recorded type before validating it.
        """
        for path in sorted(self.directory.glob("*.json")):
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                yield path, None, StateRecordError(path, f"unreadable JSON ({e})")
                continue
            if not isinstance(raw, dict):
                yield path, None, StateRecordError(path, "record is not a JSON object")
                continue
            yield path, raw, None

    def _read(self, path: Path) -> AgentState:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return AgentState.model_validate(raw)
        except (OSError, ValueError, ValidationError) as e:
            raise StateRecordError(path, str(e)) from e

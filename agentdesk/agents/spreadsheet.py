"""Airtable agent. Placeholder until the Airtable integration lands."""

import logging
from typing import Optional, Dict, Any

from .base import BaseAgent
from .models import AgentKind

logger = logging.getLogger("agentdesk.agents.spreadsheet")


class SpreadsheetAgent(BaseAgent):
    kind = AgentKind.AIRTABLE
    display_name = "Airtable Assistant"

    def __init__(self, agent_id: str, credentials: Optional[Dict[str, Any]] = None, name: Optional[str] = None):
        super().__init__(agent_id, name)
        self.credentials = dict(credentials or {})

    async def start(self) -> bool:
        await super().start()
        if not self.has_credentials():
            logger.warning("Airtable API key not found in credentials. Using limited functionality.")
        return True

    def has_credentials(self) -> bool:
        return bool(self.credentials.get("apiKey"))

    async def _reply(self, message: str) -> str:
        return (
            "Airtable Agent: This is a placeholder response. The Airtable agent is not "
            f'fully implemented yet. Your message was: "{message}"'
        )

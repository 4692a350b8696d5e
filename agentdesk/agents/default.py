"""
Default Agent

General purpose assistant backed by a chat model. Without a configured
model it answers with a fixed notice echoing the message.
"""

import logging
from typing import Optional

from ..errors import ProviderError
from ..llm import ChatModel
from .base import BaseAgent, APOLOGY
from .models import AgentKind, DEFAULT_AGENT_ID

logger = logging.getLogger("agentdesk.agents.default")

SYSTEM_PROMPT = """You are a helpful assistant that can help with general queries and coordinate with other specialized agents.
You can help the user manage their tasks, answer questions, and provide information.
If the user asks about specific services like Gmail or Airtable, suggest they connect those services for more specialized help."""


class DefaultAgent(BaseAgent):
    kind = AgentKind.DEFAULT
    display_name = "Default Assistant"

    def __init__(
        self,
        agent_id: str = DEFAULT_AGENT_ID,
        chat_model: Optional[ChatModel] = None,
        name: Optional[str] = None,
    ):
        super().__init__(agent_id, name)
        self.chat_model = chat_model
        self.system_prompt = SYSTEM_PROMPT

    async def start(self) -> bool:
        await super().start()
        if self.chat_model is None:
            logger.warning("No chat model configured. Using default responses.")
        return True

    async def _reply(self, message: str) -> str:
        if self.chat_model is None:
            return (
                "I'm a default assistant without API access. To use my full capabilities, "
                "please set the OPENAI_API_KEY environment variable. "
                f'For now, I can only echo your message: "{message}"'
            )

        messages = [{"role": "system", "content": self.system_prompt}]
        messages.extend(self.memory_as_messages(10))
        try:
            return await self.chat_model.complete(messages, max_tokens=500, temperature=0.7)
        except ProviderError as e:
            logger.error(f"Chat completion failed for {self.id}: {e}")
            return APOLOGY

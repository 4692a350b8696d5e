"""
Chat Completion Client

Agents and the router depend only on the ChatModel protocol.
OpenAIChatClient implements it against any OpenAI-compatible
/chat/completions endpoint.
"""

import logging
from typing import Optional, Dict, List, Protocol

import httpx

from ..errors import ProviderError

logger = logging.getLogger("agentdesk.llm")

ChatMessage = Dict[str, str]


class ChatModel(Protocol):
    """System + user messages in, text out."""

    async def complete(
        self,
        messages: List[ChatMessage],
        max_tokens: int = 500,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str:
        ...


class OpenAIChatClient:
    """ChatModel backed by an OpenAI-compatible HTTP API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-3.5-turbo",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._transport = transport

    async def complete(
        self,
        messages: List[ChatMessage],
        max_tokens: int = 500,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str:
        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=headers,
                )
        except httpx.HTTPError as e:
            logger.error(f"Chat completion request failed: {e}")
            raise ProviderError(f"Chat completion request failed: {e}") from e

        if response.status_code != 200:
            raise ProviderError(
                f"Chat completion failed: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        try:
            result = response.json()
            return result["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Malformed chat completion response: {e}") from e

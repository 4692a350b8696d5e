"""
LLM chat completion capability.
"""

from .client import ChatModel, ChatMessage, OpenAIChatClient

__all__ = ["ChatModel", "ChatMessage", "OpenAIChatClient"]

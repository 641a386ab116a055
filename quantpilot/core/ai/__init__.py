"""Generative-text collaborator."""

from quantpilot.core.ai.client import (
    ChatMessage,
    ChatResponse,
    GenerativeClient,
    MockClient,
    OpenAIClient,
    create_client,
    get_client,
    register_client,
)

__all__ = [
    "ChatMessage",
    "ChatResponse",
    "GenerativeClient",
    "MockClient",
    "OpenAIClient",
    "create_client",
    "get_client",
    "register_client",
]

"""AI Agents package."""

from bookkeeper.agents.assistant import (
    AssistantChunk,
    AssistantError,
    AssistantStream,
    BookkeepingAssistant,
    ChatMessage,
    CompanyContext,
)

__all__ = [
    "AssistantChunk",
    "AssistantError",
    "AssistantStream",
    "BookkeepingAssistant",
    "ChatMessage",
    "CompanyContext",
]

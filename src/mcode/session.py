"""Conversation state owned by a single agent loop."""

from dataclasses import dataclass, field
from typing import List, Optional

from .llm_client import Message, TokenUsage


@dataclass
class Session:
    """History and token counters, passed explicitly into the loop."""

    messages: List[Message] = field(default_factory=list)
    last_usage: Optional[TokenUsage] = None
    total_tokens_used: int = 0

    @property
    def context_tokens(self) -> int:
        return self.last_usage.prompt_tokens if self.last_usage else 0

    def append(self, message: Message) -> None:
        self.messages.append(message)

    def replace_history(self, messages: List[Message]) -> None:
        """Swap in a new history (trimming); the old list is left untouched."""
        self.messages = list(messages)

    def record_usage(self, usage: TokenUsage, counted: Optional[int] = None) -> None:
        self.last_usage = usage
        self.total_tokens_used += usage.total_tokens if counted is None else counted

    def clear(self) -> None:
        """Drop the conversation but keep the session token total."""
        self.messages = []
        self.last_usage = None

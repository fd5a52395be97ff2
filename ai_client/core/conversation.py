"""
Conversation state and context windowing.

Stores every turn of a chat and exposes the bounded slice of recent
turns that is sent with each request.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


class Role(Enum):
    """Author of a conversation turn."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Message:
    """A single conversation turn."""
    role: Role
    content: str
    timestamp: datetime = field(default_factory=_now)


@dataclass
class Conversation:
    """Ordered turns plus metadata.

    Messages are only ever appended, so list order is chronological.
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    messages: List[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=_now)
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.updated_at is None:
            self.updated_at = self.created_at


@dataclass(frozen=True)
class HistoryPolicy:
    """How much prior conversation is sent as context."""
    enabled: bool = True
    max_messages: int = 20

    def __post_init__(self):
        """Validate window size."""
        if self.max_messages < 0:
            raise ValueError("max_messages must be >= 0")


class ConversationWindow:
    """Owns a Conversation and computes its sliding context window."""

    def __init__(self, history: HistoryPolicy, conversation: Optional[Conversation] = None):
        """Initialize the window.

        Args:
            history: Context window policy
            conversation: Existing conversation to resume (a new one is
                created when omitted)
        """
        self.history = history
        self._conversation = conversation if conversation is not None else Conversation()

    @property
    def conversation(self) -> Conversation:
        """The live conversation, including messages outside the window."""
        return self._conversation

    @property
    def id(self) -> str:
        return self._conversation.id

    def append(self, role: Role, content: str) -> Message:
        """Append a new turn stamped with the current time.

        Args:
            role: Author of the turn
            content: Message text (may be empty)

        Returns:
            The appended Message
        """
        message = Message(role=Role(role), content=content)
        self._conversation.messages.append(message)
        self._conversation.updated_at = max(message.timestamp, self._conversation.created_at)
        return message

    def context_view(self, history: Optional[HistoryPolicy] = None) -> List[Message]:
        """Messages to send as context for the next request.

        With history disabled only the latest message is returned. With
        history enabled the last ``max_messages`` are returned in order;
        ``max_messages == 0`` yields an empty list.

        Args:
            history: Policy override (defaults to the window's own policy)

        Returns:
            A new list; the conversation itself is not touched
        """
        policy = history if history is not None else self.history
        messages = self._conversation.messages

        if not policy.enabled:
            return list(messages[-1:])
        if policy.max_messages == 0:
            return []
        return list(messages[-policy.max_messages:])

    def reset(self) -> None:
        """Discard all turns and start a conversation with a fresh id."""
        self._conversation = Conversation()

    def __len__(self) -> int:
        return len(self._conversation.messages)

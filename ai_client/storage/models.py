"""
Data models for storage layer.

Converts stats and conversations to and from their on-disk JSON form.
Timestamps are stored as epoch milliseconds.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict

from ai_client.core.accounting import SessionStats
from ai_client.core.conversation import Conversation, Message, Role


@dataclass(frozen=True)
class SessionSummary:
    """Listing entry for a saved conversation."""
    id: str
    message_count: int
    created_at: datetime
    updated_at: datetime


def to_epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def from_epoch_ms(value: Any) -> datetime:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Invalid timestamp: {value!r}")
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def stats_to_dict(stats: SessionStats) -> Dict[str, Any]:
    return {
        "totalInputTokens": stats.total_input_tokens,
        "totalOutputTokens": stats.total_output_tokens,
        "totalCost": stats.total_cost,
        "requestCount": stats.request_count,
    }


def stats_from_dict(data: Any) -> SessionStats:
    """Parse persisted stats.

    Raises:
        ValueError: If any counter is missing or not a number
    """
    if not isinstance(data, dict):
        raise ValueError("stats must be an object")

    fields = ("totalInputTokens", "totalOutputTokens", "totalCost", "requestCount")
    for key in fields:
        value = data.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Invalid stats field: {key}")

    return SessionStats(
        total_input_tokens=int(data["totalInputTokens"]),
        total_output_tokens=int(data["totalOutputTokens"]),
        total_cost=float(data["totalCost"]),
        request_count=int(data["requestCount"])
    )


def conversation_to_dict(conversation: Conversation) -> Dict[str, Any]:
    return {
        "id": conversation.id,
        "messages": [
            {
                "role": message.role.value,
                "content": message.content,
                "timestamp": to_epoch_ms(message.timestamp),
            }
            for message in conversation.messages
        ],
        "createdAt": to_epoch_ms(conversation.created_at),
        "updatedAt": to_epoch_ms(conversation.updated_at),
    }


def conversation_from_dict(data: Any) -> Conversation:
    """Parse a persisted conversation.

    Raises:
        ValueError: If the id, messages or timestamps are malformed
    """
    if not isinstance(data, dict):
        raise ValueError("conversation must be an object")
    if not data.get("id") or not isinstance(data.get("messages"), list):
        raise ValueError("conversation requires an id and a messages list")

    messages = []
    for item in data["messages"]:
        if not isinstance(item, dict):
            raise ValueError("message must be an object")
        messages.append(Message(
            role=Role(item.get("role")),
            content=str(item.get("content", "")),
            timestamp=from_epoch_ms(item.get("timestamp"))
        ))

    created_at = from_epoch_ms(data.get("createdAt"))
    updated_at = from_epoch_ms(data.get("updatedAt", data.get("createdAt")))

    return Conversation(
        id=str(data["id"]),
        messages=messages,
        created_at=created_at,
        updated_at=max(updated_at, created_at)
    )


def summary_from_dict(data: Any) -> SessionSummary:
    """Build a listing entry without parsing every message."""
    if not isinstance(data, dict) or not data.get("id"):
        raise ValueError("conversation requires an id")
    messages = data.get("messages")
    return SessionSummary(
        id=str(data["id"]),
        message_count=len(messages) if isinstance(messages, list) else 0,
        created_at=from_epoch_ms(data.get("createdAt")),
        updated_at=from_epoch_ms(data.get("updatedAt", data.get("createdAt")))
    )

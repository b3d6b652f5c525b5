"""
Domain models for live presence, calls and chat messages.

These are in-memory records owned by the realtime components; only
ChatMessage ever reaches the database (through the message repository).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from signal_hub.realtime.connection import Connection


def utcnow() -> datetime:
    return datetime.now(UTC)


class PresenceStatus(str, Enum):
    ONLINE = "online"
    AWAY = "away"
    OFFLINE = "offline"


class MediaKind(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"


class CallStatus(str, Enum):
    RINGING = "ringing"
    ACTIVE = "active"


@dataclass(slots=True)
class PresenceRecord:
    """Tracked status of one identity. Online iff `connection` is set."""

    user_id: str
    status: PresenceStatus = PresenceStatus.OFFLINE
    last_seen: datetime = field(default_factory=utcnow)
    connection: Connection | None = None


@dataclass(slots=True)
class CallSession:
    """Signaling state of one ringing or active call."""

    call_id: str
    caller_id: str
    receiver_id: str
    media_kind: MediaKind
    status: CallStatus = CallStatus.RINGING
    caller_name: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    def involves(self, user_id: str) -> bool:
        return user_id in (self.caller_id, self.receiver_id)

    def counterpart(self, user_id: str) -> str:
        """The other party; the caller for anyone who is not the caller."""
        return self.receiver_id if user_id == self.caller_id else self.caller_id


@dataclass(slots=True)
class ChatMessage:
    """A chat message. `id` is assigned by the message store."""

    conversation_id: str
    sender_id: str
    text: str
    timestamp: datetime = field(default_factory=utcnow)
    id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "conversationId": self.conversation_id,
            "senderId": self.sender_id,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }

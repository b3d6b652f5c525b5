import asyncio
from datetime import datetime

import pytest

from signal_hub.models.domain.realtime_domain import ChatMessage, PresenceStatus
from signal_hub.realtime.connection import Connection
from signal_hub.realtime.hub import Hub


class RecordingConnection(Connection):
    """Connection that keeps every frame it is asked to send."""

    def __init__(self, connection_id: str | None = None):
        super().__init__(connection_id)
        self.sent: list[tuple[str, dict]] = []
        self.closed = False

    def send(self, event: str, payload: dict) -> bool:
        self.sent.append((event, payload))
        return True

    async def close(self) -> None:
        self.closed = True

    def names(self) -> list[str]:
        return [event for event, _ in self.sent]

    def payloads(self, event: str) -> list[dict]:
        return [payload for name, payload in self.sent if name == event]

    def clear(self) -> None:
        self.sent.clear()


class FakeUserRepository:
    """
    In-memory identity store. Like the real UPDATE, a presence write older
    than the stored last_seen is discarded. Set `hold_next` to an Event to
    park the next presence write until it is set.
    """

    def __init__(self):
        self.users: dict[str, dict] = {}
        self.presence_updates: list[tuple] = []
        self.stored: dict[str, tuple[PresenceStatus, datetime]] = {}
        self.hold_next: asyncio.Event | None = None
        self.fail_with: Exception | None = None

    async def get_user(self, user_id: str) -> dict | None:
        if self.fail_with:
            raise self.fail_with
        return self.users.get(user_id)

    async def update_presence(self, user_id, status, last_seen) -> bool:
        if self.fail_with:
            raise self.fail_with
        if self.hold_next is not None:
            gate, self.hold_next = self.hold_next, None
            await gate.wait()
        self.presence_updates.append((user_id, status, last_seen))
        current = self.stored.get(user_id)
        if current is not None and current[1] > last_seen:
            return False
        self.stored[user_id] = (status, last_seen)
        return True


class FakeMessageRepository:
    def __init__(self):
        self.messages: list[ChatMessage] = []
        self.fail_with: Exception | None = None

    async def append_message(self, message: ChatMessage) -> ChatMessage:
        if self.fail_with:
            raise self.fail_with
        stored = ChatMessage(
            id=str(len(self.messages) + 1),
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            text=message.text,
            timestamp=message.timestamp,
        )
        self.messages.append(stored)
        return stored

    def in_conversation(self, conversation_id: str) -> list[ChatMessage]:
        return [m for m in self.messages if m.conversation_id == conversation_id]


@pytest.fixture
def fake_users():
    return FakeUserRepository()


@pytest.fixture
def fake_messages():
    return FakeMessageRepository()


@pytest.fixture
def hub(fake_users, fake_messages):
    return Hub(users=fake_users, messages=fake_messages)


@pytest.fixture
def make_connection():
    def _make(connection_id: str | None = None) -> RecordingConnection:
        return RecordingConnection(connection_id)

    return _make


@pytest.fixture
def join_users(hub):
    """Join each identity on its own recording connection."""

    async def _join(*user_ids: str, clear: bool = True) -> dict[str, RecordingConnection]:
        connections = {}
        for user_id in user_ids:
            connection = RecordingConnection(f"conn-{user_id}")
            await hub.join(user_id, connection)
            connections[user_id] = connection
        if clear:
            for connection in connections.values():
                connection.clear()
        return connections

    return _join

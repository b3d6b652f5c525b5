"""
Realtime hub.

Owns the connection registry, the call table and the relays for one process,
validates inbound frames and dispatches them. Join and leave run here because
they span several components: leaving unbinds the connection and ends its
calls as one step, then broadcasts and persists the offline status.
"""

from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from signal_hub.db.helpers import DatabaseError
from signal_hub.infrastructure.observability.logging import get_logger
from signal_hub.models.api.events import (
    AnswerPayload,
    CallIdPayload,
    CallInitiatePayload,
    Envelope,
    IceCandidatePayload,
    JoinPayload,
    MessageSendPayload,
    OfferPayload,
    TypingPayload,
)
from signal_hub.models.domain.realtime_domain import PresenceStatus, utcnow
from signal_hub.realtime.calls import CallSessionManager
from signal_hub.realtime.connection import Connection
from signal_hub.realtime.messaging import MessageRelay, TypingRelay
from signal_hub.realtime.negotiation import NegotiationRelay
from signal_hub.realtime.presence import PresenceBroadcaster
from signal_hub.realtime.registry import ConnectionRegistry
from signal_hub.repositories.message_repository import MessageRepository
from signal_hub.repositories.user_repository import UserRepository

logger = get_logger(__name__)

ERROR_EVENT = "error"

# Event names used by older clients
EVENT_ALIASES: dict[str, str] = {
    "user:join": "join",
    "webrtc:offer": "negotiation:offer",
    "webrtc:answer": "negotiation:answer",
    "webrtc:ice-candidate": "negotiation:ice-candidate",
}

Handler = Callable[[Connection, Any], Awaitable[None]]


class Hub:
    def __init__(self, users: UserRepository, messages: MessageRepository):
        self.registry = ConnectionRegistry()
        self.presence = PresenceBroadcaster(self.registry)
        self.calls = CallSessionManager(self.registry)
        self.negotiation = NegotiationRelay(self.registry)
        self.messages = MessageRelay(self.registry, messages)
        self.typing = TypingRelay(self.registry)
        self.users = users

        self._handlers: dict[str, tuple[type[BaseModel], Handler]] = {
            "join": (JoinPayload, self._on_join),
            "message:send": (MessageSendPayload, self._on_message_send),
            "typing:start": (TypingPayload, self._on_typing_start),
            "typing:stop": (TypingPayload, self._on_typing_stop),
            "call:initiate": (CallInitiatePayload, self._on_call_initiate),
            "call:accept": (CallIdPayload, self._on_call_accept),
            "call:reject": (CallIdPayload, self._on_call_reject),
            "call:end": (CallIdPayload, self._on_call_end),
            "negotiation:offer": (OfferPayload, self._on_offer),
            "negotiation:answer": (AnswerPayload, self._on_answer),
            "negotiation:ice-candidate": (IceCandidatePayload, self._on_ice_candidate),
        }

    @property
    def events(self) -> list[str]:
        return sorted(self._handlers)

    def stats(self) -> dict[str, int]:
        return {"activeUsers": self.registry.count(), "activeCalls": self.calls.count()}

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, connection: Connection, frame: Any) -> None:
        """Validate one inbound frame and run its handler. Never raises."""
        try:
            envelope = Envelope.model_validate(frame)
        except ValidationError:
            connection.send(ERROR_EVENT, {"event": None, "error": "Malformed frame"})
            return

        event = EVENT_ALIASES.get(envelope.event, envelope.event)
        entry = self._handlers.get(event)
        if entry is None:
            connection.send(ERROR_EVENT, {"event": envelope.event, "error": "Unknown event"})
            return

        model, handler = entry
        data = envelope.data
        if event == "join" and isinstance(data, str | int):
            data = {"userId": data}

        try:
            payload = model.model_validate(data if data is not None else {})
        except ValidationError as e:
            logger.info(
                "Invalid event payload",
                event_name=event,
                connection_id=connection.connection_id,
                errors=e.error_count(),
            )
            connection.send(ERROR_EVENT, {"event": event, "error": "Invalid payload"})
            return

        if event != "join" and connection.user_id is None:
            connection.send(ERROR_EVENT, {"event": event, "error": "Join required"})
            return

        try:
            await handler(connection, payload)
        except Exception:
            logger.exception(
                "Event handler failed",
                event_name=event,
                connection_id=connection.connection_id,
                user_id=connection.user_id,
            )
            connection.send(ERROR_EVENT, {"event": event, "error": "Internal error"})

    # ------------------------------------------------------------------
    # Join / leave
    # ------------------------------------------------------------------

    async def join(self, user_id: str, connection: Connection) -> None:
        if connection.user_id is not None and connection.user_id != user_id:
            await self.leave(connection)

        self.registry.join(user_id, connection)
        self.presence.broadcast(user_id, PresenceStatus.ONLINE)
        logger.info("User joined", user_id=user_id, connection_id=connection.connection_id)

        await self._persist_presence(user_id, PresenceStatus.ONLINE)

    async def leave(self, connection: Connection) -> str | None:
        """
        Unbind `connection` and cascade its identity's calls.

        Returns the identity that went offline, or None if the connection never
        joined or was replaced by a newer join of the same identity.
        """
        user_id = connection.user_id
        if user_id is None:
            return None

        async with self.calls.party_locked(user_id):
            left = self.registry.leave(connection)
            ended = self.calls.end_all_for(user_id) if left else []

        if left is None:
            return None

        self.presence.broadcast(user_id, PresenceStatus.OFFLINE)
        logger.info(
            "User left",
            user_id=user_id,
            connection_id=connection.connection_id,
            calls_ended=len(ended),
        )

        await self._persist_presence(user_id, PresenceStatus.OFFLINE)
        return user_id

    async def _persist_presence(self, user_id: str, status: PresenceStatus) -> None:
        record = self.registry.presence(user_id)
        last_seen = record.last_seen if record is not None else utcnow()
        try:
            await self.users.update_presence(user_id, status, last_seen)
        except DatabaseError as e:
            logger.error(
                "Failed to persist presence",
                user_id=user_id,
                status=status.value,
                error=str(e),
            )

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _trusted_sender(self, connection: Connection, claimed: str | None, event: str) -> str:
        if claimed is not None and claimed != connection.user_id:
            logger.warning(
                "Ignoring client-asserted identity",
                event_name=event,
                claimed=claimed,
                user_id=connection.user_id,
                connection_id=connection.connection_id,
            )
        return connection.user_id

    async def _on_join(self, connection: Connection, payload: JoinPayload) -> None:
        await self.join(payload.user_id, connection)

    async def _on_message_send(self, connection: Connection, payload: MessageSendPayload) -> None:
        sender_id = self._trusted_sender(connection, payload.sender_id, "message:send")
        await self.messages.send_message(
            sender_id, payload.receiver_id, payload.text, payload.conversation_id, connection
        )

    async def _on_typing_start(self, connection: Connection, payload: TypingPayload) -> None:
        sender_id = self._trusted_sender(connection, payload.sender_id, "typing:start")
        self.typing.typing_start(sender_id, payload.receiver_id)

    async def _on_typing_stop(self, connection: Connection, payload: TypingPayload) -> None:
        sender_id = self._trusted_sender(connection, payload.sender_id, "typing:stop")
        self.typing.typing_stop(sender_id, payload.receiver_id)

    async def _on_call_initiate(self, connection: Connection, payload: CallInitiatePayload) -> None:
        caller_id = self._trusted_sender(connection, payload.caller_id, "call:initiate")
        caller_name = payload.caller_name or await self._display_name(caller_id)
        self.calls.initiate(caller_id, payload.receiver_id, payload.call_type, caller_name, connection)

    async def _on_call_accept(self, connection: Connection, payload: CallIdPayload) -> None:
        await self.calls.accept(payload.call_id)

    async def _on_call_reject(self, connection: Connection, payload: CallIdPayload) -> None:
        await self.calls.reject(payload.call_id)

    async def _on_call_end(self, connection: Connection, payload: CallIdPayload) -> None:
        await self.calls.end(payload.call_id, connection.user_id)

    async def _on_offer(self, connection: Connection, payload: OfferPayload) -> None:
        sender_id = self._trusted_sender(connection, payload.sender_id, "negotiation:offer")
        self.negotiation.relay_offer(payload.receiver_id, payload.offer, payload.call_id, sender_id)

    async def _on_answer(self, connection: Connection, payload: AnswerPayload) -> None:
        sender_id = self._trusted_sender(connection, payload.sender_id, "negotiation:answer")
        self.negotiation.relay_answer(payload.receiver_id, payload.answer, payload.call_id, sender_id)

    async def _on_ice_candidate(self, connection: Connection, payload: IceCandidatePayload) -> None:
        sender_id = self._trusted_sender(connection, payload.sender_id, "negotiation:ice-candidate")
        self.negotiation.relay_ice_candidate(
            payload.receiver_id, payload.candidate, payload.call_id, sender_id
        )

    async def _display_name(self, user_id: str) -> str | None:
        try:
            user = await self.users.get_user(user_id)
        except DatabaseError as e:
            logger.warning("Could not resolve caller name", user_id=user_id, error=str(e))
            return None
        return user.get("username") if user else None

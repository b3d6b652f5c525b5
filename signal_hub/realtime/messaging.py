"""
Message and typing relays.

Messages are written to the message store before anything is emitted; the
sender gets an acknowledgement whether or not the recipient is online. Typing
notices are transient and only forwarded to a reachable recipient.
"""

from signal_hub.db.helpers import DatabaseError
from signal_hub.infrastructure.observability.logging import get_logger
from signal_hub.models.domain.realtime_domain import ChatMessage
from signal_hub.realtime.connection import Connection
from signal_hub.realtime.registry import ConnectionRegistry
from signal_hub.repositories.message_repository import MessageRepository

logger = get_logger(__name__)

SEND_FAILED = "Failed to send message"


class MessageRelay:
    def __init__(self, registry: ConnectionRegistry, messages: MessageRepository):
        self._registry = registry
        self._messages = messages

    async def send_message(
        self,
        sender_id: str,
        receiver_id: str,
        text: str,
        conversation_id: str,
        connection: Connection,
    ) -> ChatMessage | None:
        """
        Persist, acknowledge, deliver.

        The store call is the only suspension point and happens before any
        lookup, so the recipient is resolved against current presence.
        """
        message = ChatMessage(conversation_id=conversation_id, sender_id=sender_id, text=text)

        try:
            message = await self._messages.append_message(message)
        except DatabaseError as e:
            logger.error(
                "Failed to persist message",
                sender_id=sender_id,
                conversation_id=conversation_id,
                error=str(e),
                recoverable=e.recoverable,
            )
            connection.send("message:error", {"error": SEND_FAILED})
            return None

        payload = message.to_payload()

        receiver_connection = self._registry.lookup(receiver_id)
        if receiver_connection is not None:
            receiver_connection.send(
                "message:received", {"message": payload, "conversationId": conversation_id}
            )

        connection.send("message:sent", {"message": payload})

        logger.info(
            "Message relayed",
            message_id=message.id,
            conversation_id=conversation_id,
            sender_id=sender_id,
            delivered=receiver_connection is not None,
        )
        return message


class TypingRelay:
    def __init__(self, registry: ConnectionRegistry):
        self._registry = registry

    def typing_start(self, sender_id: str, receiver_id: str) -> bool:
        return self._forward(sender_id, receiver_id, True)

    def typing_stop(self, sender_id: str, receiver_id: str) -> bool:
        return self._forward(sender_id, receiver_id, False)

    def _forward(self, sender_id: str, receiver_id: str, is_typing: bool) -> bool:
        connection = self._registry.lookup(receiver_id)
        if connection is None:
            return False
        return connection.send("typing:update", {"userId": sender_id, "isTyping": is_typing})

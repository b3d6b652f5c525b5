"""
Message store.

Appends chat messages and moves the conversation's last-message pointer in
the same transaction. Ordering and durability are owned by Postgres.
"""

from signal_hub.db.helpers import DatabaseError, execute_query, fetch_one, with_db_retry
from signal_hub.db.pool import db_pool
from signal_hub.infrastructure.observability.logging import get_logger
from signal_hub.models.domain.realtime_domain import ChatMessage

logger = get_logger(__name__)


class MessageRepository:
    @with_db_retry(max_retries=2, base_delay=0.1)
    async def append_message(self, message: ChatMessage) -> ChatMessage:
        """
        Store `message` and return it with the id and timestamp the database
        assigned.

        Raises:
            DatabaseError: when the write fails
        """
        async with db_pool.transaction() as conn:
            row = await fetch_one(
                """
                INSERT INTO messages (conversation_id, sender_id, text, created_at)
                VALUES (%s, %s, %s, %s)
                RETURNING id, created_at
                """,
                (message.conversation_id, message.sender_id, message.text, message.timestamp),
                connection=conn,
            )
            if not row:
                raise DatabaseError("Message insert returned no row", operation="append_message")

            updated = await execute_query(
                """
                UPDATE conversations
                SET last_message_id = %s, updated_at = NOW()
                WHERE id = %s
                """,
                (row["id"], message.conversation_id),
                connection=conn,
            )

        if not updated:
            logger.debug("Conversation not found for message", conversation_id=message.conversation_id)

        return ChatMessage(
            id=str(row["id"]),
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            text=message.text,
            timestamp=row["created_at"],
        )

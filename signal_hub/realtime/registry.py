"""
Connection registry: identity -> live connection and presence record.

All methods are synchronous. Running on the event loop without suspension
points makes each call atomic with respect to every other handler.
"""

from signal_hub.infrastructure.observability.logging import get_logger
from signal_hub.models.domain.realtime_domain import PresenceRecord, PresenceStatus, utcnow
from signal_hub.realtime.connection import Connection

logger = get_logger(__name__)


class ConnectionRegistry:
    def __init__(self):
        self._records: dict[str, PresenceRecord] = {}

    def join(self, user_id: str, connection: Connection) -> Connection | None:
        """
        Bind `connection` to `user_id` and mark it online.

        Last join wins: a previous live connection for the same identity is
        replaced without being notified. It is returned so the caller can log it.
        """
        record = self._records.get(user_id)
        if record is None:
            record = PresenceRecord(user_id=user_id)
            self._records[user_id] = record

        previous = record.connection
        if previous is connection:
            previous = None
        elif previous is not None:
            logger.info(
                "Replacing live connection for identity",
                user_id=user_id,
                previous_connection_id=previous.connection_id,
                connection_id=connection.connection_id,
            )

        connection.user_id = user_id
        record.connection = connection
        record.status = PresenceStatus.ONLINE
        record.last_seen = utcnow()
        return previous

    def leave(self, connection: Connection) -> str | None:
        """
        Unbind `connection` and mark its identity offline.

        Returns the identity that went offline, or None if the connection never
        joined or had already been replaced by a newer join.
        """
        user_id = connection.user_id
        if user_id is None:
            return None

        record = self._records.get(user_id)
        if record is None or record.connection is not connection:
            logger.debug(
                "Ignoring leave of replaced connection",
                user_id=user_id,
                connection_id=connection.connection_id,
            )
            return None

        record.connection = None
        record.status = PresenceStatus.OFFLINE
        record.last_seen = utcnow()
        return user_id

    def lookup(self, user_id: str) -> Connection | None:
        record = self._records.get(user_id)
        return record.connection if record is not None else None

    def presence(self, user_id: str) -> PresenceRecord | None:
        return self._records.get(user_id)

    def online_identities(self) -> list[str]:
        return sorted(uid for uid, record in self._records.items() if record.connection is not None)

    def connections(self) -> list[Connection]:
        return [record.connection for record in self._records.values() if record.connection is not None]

    def count(self) -> int:
        return sum(1 for record in self._records.values() if record.connection is not None)

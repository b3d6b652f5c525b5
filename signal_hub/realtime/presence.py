"""Presence broadcaster: fan out online/offline transitions."""

from signal_hub.infrastructure.observability.logging import get_logger
from signal_hub.models.domain.realtime_domain import PresenceStatus
from signal_hub.realtime.registry import ConnectionRegistry

logger = get_logger(__name__)

PRESENCE_EVENT = "presence:update"


class PresenceBroadcaster:
    def __init__(self, registry: ConnectionRegistry):
        self._registry = registry

    def broadcast(self, user_id: str, status: PresenceStatus) -> int:
        """Tell every connected peer, the subject included. Returns deliveries."""
        payload = {"userId": user_id, "status": status.value}
        delivered = sum(
            1 for connection in self._registry.connections() if connection.send(PRESENCE_EVENT, payload)
        )
        logger.debug("Presence broadcast", user_id=user_id, status=status.value, recipients=delivered)
        return delivered

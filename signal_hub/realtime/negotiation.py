"""
Negotiation relay: SDP offers/answers and ICE candidates between call parties.

Payloads are forwarded verbatim. The sender identity attached to the
forwarded frame is always the one bound to the sending connection. Frames for
an unreachable receiver are dropped; there is no buffering or replay.
"""

from typing import Any

from signal_hub.infrastructure.observability.logging import get_logger
from signal_hub.realtime.registry import ConnectionRegistry

logger = get_logger(__name__)


class NegotiationRelay:
    def __init__(self, registry: ConnectionRegistry):
        self._registry = registry

    def relay_offer(self, receiver_id: str, offer: Any, call_id: str | None, sender_id: str) -> bool:
        return self._forward("negotiation:offer", "offer", receiver_id, offer, call_id, sender_id)

    def relay_answer(self, receiver_id: str, answer: Any, call_id: str | None, sender_id: str) -> bool:
        return self._forward("negotiation:answer", "answer", receiver_id, answer, call_id, sender_id)

    def relay_ice_candidate(
        self, receiver_id: str, candidate: Any, call_id: str | None, sender_id: str
    ) -> bool:
        return self._forward(
            "negotiation:ice-candidate", "candidate", receiver_id, candidate, call_id, sender_id
        )

    def _forward(
        self,
        event: str,
        field: str,
        receiver_id: str,
        body: Any,
        call_id: str | None,
        sender_id: str,
    ) -> bool:
        connection = self._registry.lookup(receiver_id)
        if connection is None:
            logger.debug(
                "Negotiation receiver unreachable, dropping",
                event_name=event,
                call_id=call_id,
                sender_id=sender_id,
                receiver_id=receiver_id,
            )
            return False
        return connection.send(event, {field: body, "callId": call_id, "senderId": sender_id})

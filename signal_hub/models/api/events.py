# signal_hub/models/api/events.py
"""
Wire schemas for the WebSocket protocol.

Every frame is an envelope {"event": <name>, "data": <payload>}. Payload keys
are camelCase on the wire and snake_case in Python.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from signal_hub.models.domain.realtime_domain import MediaKind


class Envelope(BaseModel):
    """Inbound and outbound frame."""

    event: str = Field(..., min_length=1)
    data: Any = None


class EventPayload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


class JoinPayload(EventPayload):
    user_id: str = Field(..., min_length=1)


class MessageSendPayload(EventPayload):
    # Client-asserted; the joined identity of the socket wins
    sender_id: str | None = None
    receiver_id: str = Field(..., min_length=1)
    text: str
    conversation_id: str = Field(..., min_length=1)


class TypingPayload(EventPayload):
    sender_id: str | None = None
    receiver_id: str = Field(..., min_length=1)


class CallInitiatePayload(EventPayload):
    caller_id: str | None = None
    receiver_id: str = Field(..., min_length=1)
    call_type: MediaKind
    caller_name: str | None = None


class CallIdPayload(EventPayload):
    call_id: str = Field(..., min_length=1)


class NegotiationPayload(EventPayload):
    receiver_id: str = Field(..., min_length=1)
    call_id: str | None = None
    sender_id: str | None = None


class OfferPayload(NegotiationPayload):
    offer: Any


class AnswerPayload(NegotiationPayload):
    answer: Any


class IceCandidatePayload(NegotiationPayload):
    candidate: Any

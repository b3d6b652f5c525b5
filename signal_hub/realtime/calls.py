"""
Call session manager.

Owns the call table and the ringing -> active state machine. Ending is an
event, not a state: rejected, ended and disconnected calls are removed.

Every mutation of a call runs under that call id's lock, and the critical
sections never await anything besides the lock itself. Notifications only
enqueue frames on connections, so when accept, reject, end and a disconnect
race on one call exactly one of them observes the session and the others
find it gone.
"""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from signal_hub.infrastructure.observability.logging import get_logger
from signal_hub.models.domain.realtime_domain import CallSession, CallStatus, MediaKind
from signal_hub.realtime.connection import Connection
from signal_hub.realtime.locks import KeyedLock
from signal_hub.realtime.registry import ConnectionRegistry

logger = get_logger(__name__)

PEER_OFFLINE = "PEER_OFFLINE"
DISCONNECT_REASON = "disconnect"


class CallSessionManager:
    def __init__(self, registry: ConnectionRegistry):
        self._registry = registry
        self._sessions: dict[str, CallSession] = {}
        self._locks = KeyedLock()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get(self, call_id: str) -> CallSession | None:
        return self._sessions.get(call_id)

    def sessions_for(self, user_id: str) -> list[CallSession]:
        return [session for session in self._sessions.values() if session.involves(user_id)]

    def count(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def initiate(
        self,
        caller_id: str,
        receiver_id: str,
        media_kind: MediaKind,
        caller_name: str | None,
        caller_connection: Connection,
    ) -> CallSession | None:
        """
        Ring `receiver_id`. Fails with PEER_OFFLINE, reported to the caller
        only, when the receiver has no live connection.

        Lookup, id allocation and insertion happen without a suspension point,
        so the fresh call id needs no lock.
        """
        receiver_connection = self._registry.lookup(receiver_id)
        if receiver_connection is None:
            caller_connection.send("call:error", {"reason": PEER_OFFLINE, "error": "User is offline"})
            logger.info("Call target offline", caller_id=caller_id, receiver_id=receiver_id)
            return None

        session = CallSession(
            call_id=self._new_call_id(caller_id, receiver_id),
            caller_id=caller_id,
            receiver_id=receiver_id,
            media_kind=media_kind,
            caller_name=caller_name,
        )
        self._sessions[session.call_id] = session

        receiver_connection.send(
            "call:incoming",
            {
                "callId": session.call_id,
                "callerId": caller_id,
                "callerName": caller_name,
                "callType": media_kind.value,
            },
        )
        caller_connection.send("call:initiated", {"callId": session.call_id})

        logger.info(
            "Call ringing",
            call_id=session.call_id,
            caller_id=caller_id,
            receiver_id=receiver_id,
            media_kind=media_kind.value,
        )
        return session

    async def accept(self, call_id: str) -> CallSession | None:
        """RINGING -> ACTIVE. Unknown or already active calls are ignored."""
        async with self._locks.hold(call_id):
            session = self._sessions.get(call_id)
            if session is None:
                logger.info("Accept for unknown call ignored", call_id=call_id)
                return None
            if session.status is CallStatus.ACTIVE:
                logger.debug("Call already active", call_id=call_id)
                return None

            session.status = CallStatus.ACTIVE
            self._notify(session.caller_id, "call:accepted", {"callId": call_id})
            logger.info("Call accepted", call_id=call_id)
            return session

    async def reject(self, call_id: str) -> CallSession | None:
        """Tell the caller and drop the session, whatever its state."""
        async with self._locks.hold(call_id):
            session = self._sessions.pop(call_id, None)
            if session is None:
                logger.info("Reject for unknown call ignored", call_id=call_id)
                return None

            self._notify(session.caller_id, "call:rejected", {"callId": call_id})
            logger.info("Call rejected", call_id=call_id, status=session.status.value)
            return session

    async def end(self, call_id: str, ended_by: str | None) -> CallSession | None:
        """Tell the party other than `ended_by` and drop the session."""
        async with self._locks.hold(call_id):
            session = self._sessions.pop(call_id, None)
            if session is None:
                logger.info("End for unknown call ignored", call_id=call_id, ended_by=ended_by)
                return None

            self._notify(session.counterpart(ended_by), "call:ended", {"callId": call_id})
            logger.info("Call ended", call_id=call_id, ended_by=ended_by, status=session.status.value)
            return session

    async def on_disconnect(self, user_id: str) -> list[CallSession]:
        """End every call of `user_id`, telling each counterpart why."""
        async with self.party_locked(user_id):
            return self.end_all_for(user_id)

    @asynccontextmanager
    async def party_locked(self, user_id: str) -> AsyncGenerator[None, None]:
        """
        Hold the locks of every current session of `user_id`.

        A session created while the locks were being acquired is not locked,
        but no mutation can be in flight on it since critical sections never
        suspend; end_all_for rescans the table and covers it too.
        """
        keys = [session.call_id for session in self.sessions_for(user_id)]
        async with self._locks.hold_many(keys):
            yield

    def end_all_for(self, user_id: str, reason: str = DISCONNECT_REASON) -> list[CallSession]:
        """Synchronous body of the disconnect cascade. Call under party_locked."""
        ended = self.sessions_for(user_id)
        for session in ended:
            del self._sessions[session.call_id]
            self._notify(
                session.counterpart(user_id),
                "call:ended",
                {"callId": session.call_id, "reason": reason},
            )
            logger.info(
                "Call ended by disconnect",
                call_id=session.call_id,
                user_id=user_id,
                status=session.status.value,
            )
        return ended

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _notify(self, user_id: str, event: str, payload: dict[str, Any]) -> bool:
        connection = self._registry.lookup(user_id)
        if connection is None:
            logger.debug("Call party unreachable", user_id=user_id, event_name=event)
            return False
        return connection.send(event, payload)

    def _new_call_id(self, caller_id: str, receiver_id: str) -> str:
        base = f"{caller_id}-{receiver_id}-{int(time.time() * 1000)}"
        call_id, suffix = base, 1
        while call_id in self._sessions or call_id in self._locks:
            call_id = f"{base}-{suffix}"
            suffix += 1
        return call_id

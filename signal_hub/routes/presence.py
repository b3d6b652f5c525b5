"""
presence.py
-----------
Read-only presence lookups for clients that need the current state on load,
before any presence:update arrives over the socket.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from signal_hub.db.helpers import DatabaseError
from signal_hub.infrastructure.observability.logging import get_logger
from signal_hub.models.api.presence_response import OnlineUsersResponse, PresenceResponse
from signal_hub.realtime.hub import Hub
from signal_hub.routes.dependencies import get_hub

router = APIRouter(prefix="/presence", tags=["presence"])
logger = get_logger(__name__)


@router.get("", response_model=OnlineUsersResponse)
async def online_users(hub: Hub = Depends(get_hub)):
    online = hub.registry.online_identities()
    return OnlineUsersResponse(online=online, count=len(online))


@router.get("/{user_id}", response_model=PresenceResponse)
async def user_presence(user_id: str, hub: Hub = Depends(get_hub)):
    record = hub.registry.presence(user_id)
    if record is not None:
        return PresenceResponse(
            user_id=user_id,
            status=record.status.value,
            last_seen=record.last_seen,
            source="live",
        )

    # Not seen by this process since it started; fall back to the store
    try:
        user = await hub.users.get_user(user_id)
    except DatabaseError as e:
        logger.error("Presence lookup failed", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Presence store unavailable"
        ) from e

    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    # Only this process holds live connections, so a stored "online" is stale
    return PresenceResponse(
        user_id=user_id,
        status="offline",
        last_seen=user.get("last_seen"),
        source="store",
    )

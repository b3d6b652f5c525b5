"""Identity store: presence columns of the users table."""

from datetime import datetime
from typing import Any

from signal_hub.db.helpers import execute_query, fetch_one, with_db_retry
from signal_hub.infrastructure.observability.logging import get_logger
from signal_hub.models.domain.realtime_domain import PresenceStatus

logger = get_logger(__name__)


class UserRepository:
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        """Fetch id, username, status and last_seen for one user."""
        return await fetch_one(
            "SELECT id, username, status, last_seen FROM users WHERE id = %s",
            (user_id,),
        )

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def update_presence(
        self, user_id: str, status: PresenceStatus, last_seen: datetime
    ) -> bool:
        """
        Persist status and last_seen.

        A write older than the stored last_seen is discarded, so a delayed
        offline write cannot overwrite the online write of a later join.
        Returns False when nothing was updated.
        """
        affected = await execute_query(
            """
            UPDATE users
            SET status = %s, last_seen = %s, updated_at = NOW()
            WHERE id = %s AND last_seen <= %s
            """,
            (status.value, last_seen, user_id, last_seen),
        )
        if not affected:
            logger.info(
                "Presence update skipped, user missing or newer state stored",
                user_id=user_id,
                status=status.value,
            )
        return affected > 0

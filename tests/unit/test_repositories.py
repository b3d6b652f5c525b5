"""
Tests for the identity and message repositories with the pool and query
helpers patched out.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from signal_hub.db.helpers import DatabaseError
from signal_hub.models.domain.realtime_domain import ChatMessage, PresenceStatus
from signal_hub.repositories.message_repository import MessageRepository
from signal_hub.repositories.user_repository import UserRepository

MESSAGES = "signal_hub.repositories.message_repository"
USERS = "signal_hub.repositories.user_repository"


def _pool_with(conn):
    pool = MagicMock()

    @asynccontextmanager
    async def transaction():
        yield conn

    pool.transaction = transaction
    return pool


class TestMessageRepository:
    @pytest.mark.asyncio
    async def test_insert_and_pointer_update_share_transaction(self):
        conn = object()
        created_at = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)
        fetch_one = AsyncMock(return_value={"id": 41, "created_at": created_at})
        execute_query = AsyncMock(return_value=1)

        with (
            patch(f"{MESSAGES}.db_pool", _pool_with(conn)),
            patch(f"{MESSAGES}.fetch_one", fetch_one),
            patch(f"{MESSAGES}.execute_query", execute_query),
        ):
            stored = await MessageRepository().append_message(
                ChatMessage(conversation_id="conv1", sender_id="alice", text="hi")
            )

        assert stored.id == "41"
        assert stored.timestamp == created_at
        assert stored.text == "hi"

        insert_sql, insert_params = fetch_one.await_args.args
        assert "INSERT INTO messages" in insert_sql
        assert insert_params[:3] == ("conv1", "alice", "hi")
        assert fetch_one.await_args.kwargs["connection"] is conn

        update_sql, update_params = execute_query.await_args.args
        assert "last_message_id" in update_sql
        assert update_params == (41, "conv1")
        assert execute_query.await_args.kwargs["connection"] is conn

    @pytest.mark.asyncio
    async def test_missing_insert_row_raises(self):
        execute_query = AsyncMock()

        with (
            patch(f"{MESSAGES}.db_pool", _pool_with(object())),
            patch(f"{MESSAGES}.fetch_one", AsyncMock(return_value=None)),
            patch(f"{MESSAGES}.execute_query", execute_query),
        ):
            with pytest.raises(DatabaseError):
                await MessageRepository().append_message(
                    ChatMessage(conversation_id="conv1", sender_id="alice", text="hi")
                )

        execute_query.assert_not_awaited()


class TestUserRepository:
    @pytest.mark.asyncio
    async def test_get_user(self):
        row = {"id": "alice", "username": "Alice", "status": "offline", "last_seen": None}
        fetch_one = AsyncMock(return_value=row)

        with patch(f"{USERS}.fetch_one", fetch_one):
            assert await UserRepository().get_user("alice") == row

        assert fetch_one.await_args.args[1] == ("alice",)

    @pytest.mark.asyncio
    async def test_update_presence_only_moves_forward(self):
        last_seen = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)
        execute_query = AsyncMock(return_value=1)

        with patch(f"{USERS}.execute_query", execute_query):
            updated = await UserRepository().update_presence("alice", PresenceStatus.OFFLINE, last_seen)

        assert updated is True
        sql_text, params = execute_query.await_args.args
        assert "last_seen <= %s" in sql_text
        assert params == ("offline", last_seen, "alice", last_seen)

    @pytest.mark.asyncio
    async def test_stale_or_missing_row_reports_false(self):
        with patch(f"{USERS}.execute_query", AsyncMock(return_value=0)):
            updated = await UserRepository().update_presence(
                "alice", PresenceStatus.ONLINE, datetime(2026, 3, 1, tzinfo=UTC)
            )

        assert updated is False

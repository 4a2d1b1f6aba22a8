"""
Tests for services.session_history_service.
"""

from unittest.mock import AsyncMock

import pytest

from services.persistence_service import analytics_record_id
from services.session_history_service import SessionHistoryService
from shared_utils.constants import StoreCollections
from shared_utils.error_handler import PersistenceError


async def _seed_session(store, session_id: str, user_id: str, created_at_ms: int, duration_ms: int = 0) -> None:
    await store.create(StoreCollections.SESSIONS, session_id, {
        "session_id": session_id,
        "user_id": user_id,
        "title": session_id,
        "session_type": "meeting",
        "start_time_ms": created_at_ms,
        "duration_ms": duration_ms,
        "status": "completed",
        "created_at_ms": created_at_ms,
        "updated_at_ms": created_at_ms,
    })


async def _seed_analytics(store, session_id: str, user_id: str, total: int, used: int) -> None:
    await store.create(StoreCollections.SESSION_ANALYTICS, analytics_record_id(session_id), {
        "session_id": session_id,
        "user_id": user_id,
        "total_suggestions": total,
        "suggestions_used": used,
        "created_at_ms": 0,
    })


class TestListRecentSessions:
    async def test_newest_first_and_scoped_to_user(self, store) -> None:
        await _seed_session(store, "old", "u1", 100)
        await _seed_session(store, "new", "u1", 300)
        await _seed_session(store, "mid", "u1", 200)
        await _seed_session(store, "other", "u2", 400)

        sessions = await SessionHistoryService(store=store).list_recent_sessions("u1")
        assert [s.session_id for s in sessions] == ["new", "mid", "old"]

    async def test_limit(self, store) -> None:
        for i in range(12):
            await _seed_session(store, f"s{i}", "u1", i)
        service = SessionHistoryService(store=store)
        assert len(await service.list_recent_sessions("u1")) == 10
        assert len(await service.list_recent_sessions("u1", limit=3)) == 3

    async def test_empty(self, store) -> None:
        assert await SessionHistoryService(store=store).list_recent_sessions("nobody") == []


class TestSessionStats:
    async def test_aggregates_user_records(self, store) -> None:
        await _seed_session(store, "s1", "u1", 100, duration_ms=60_000)
        await _seed_session(store, "s2", "u1", 200, duration_ms=40_000)
        await _seed_analytics(store, "s1", "u1", total=4, used=2)
        await _seed_analytics(store, "s2", "u1", total=4, used=0)
        await _seed_session(store, "x", "u2", 300, duration_ms=999)

        stats = await SessionHistoryService(store=store).get_session_stats("u1")
        assert stats.total_sessions == 2
        assert stats.total_duration_ms == 100_000
        assert stats.avg_suggestions == 4.0
        assert stats.success_pct == 25

    async def test_no_sessions(self, store) -> None:
        stats = await SessionHistoryService(store=store).get_session_stats("u1")
        assert stats.total_sessions == 0
        assert stats.success_pct == 0


class TestStoreErrors:
    async def test_store_error_wrapped(self, store) -> None:
        store.list = AsyncMock(side_effect=RuntimeError("connection reset"))
        with pytest.raises(PersistenceError) as exc_info:
            await SessionHistoryService(store=store).list_recent_sessions("u1")
        assert "connection reset" in exc_info.value.message

    async def test_persistence_error_propagates(self, store) -> None:
        store.list = AsyncMock(side_effect=PersistenceError("throttled", collection=StoreCollections.SESSIONS))
        with pytest.raises(PersistenceError):
            await SessionHistoryService(store=store).get_session_stats("u1")

"""
SessionHistoryService: read side over persisted sessions.

Depends only on the session store port.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from domain.models import Session, SessionAnalytics, SessionStats
from ports.session_store import SessionStorePort
from services.analytics_aggregator import compute_session_stats
from shared_utils.constants import Defaults, LogScope, StoreCollections
from shared_utils.error_handler import PersistenceError
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.PERSISTENCE)


class SessionHistoryService:
    """Recent sessions and aggregate stats for a user."""

    def __init__(self, *, store: SessionStorePort) -> None:
        self._store = store

    async def _list(self, collection: str, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        try:
            return await self._store.list(
                collection,
                where={"user_id": user_id},
                order_by="created_at_ms",
                descending=True,
                limit=limit,
            )
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(f"list failed: {exc}", collection=collection) from exc

    async def list_recent_sessions(self, user_id: str, limit: int = Defaults.RECENT_SESSIONS_LIMIT) -> List[Session]:
        """Newest first by creation time."""
        records = await self._list(StoreCollections.SESSIONS, user_id, limit)
        sessions = [Session.model_validate(r) for r in records]
        logger.info("recent_sessions_loaded", user_id=user_id, count=len(sessions))
        return sessions

    async def get_session_stats(self, user_id: str) -> SessionStats:
        sessions = [Session.model_validate(r) for r in await self._list(StoreCollections.SESSIONS, user_id)]
        analytics = [
            SessionAnalytics.model_validate(r)
            for r in await self._list(StoreCollections.SESSION_ANALYTICS, user_id)
        ]
        stats = compute_session_stats(sessions, analytics)
        logger.info(
            "session_stats_computed",
            user_id=user_id,
            total_sessions=stats.total_sessions,
            success_pct=stats.success_pct,
        )
        return stats

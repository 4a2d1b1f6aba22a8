"""
Registry of live sessions served by this process.

Maps a session id to its orchestrator and the push devices the HTTP surface
feeds. At most one live session per user, counting sessions that are still
starting.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict

from adapters.push_capture_device import PushAudioDeviceAdapter, PushDisplayDeviceAdapter
from services.coaching_orchestrator import CoachingOrchestrator
from shared_utils.constants import LogScope
from shared_utils.error_handler import SessionNotFoundError, SessionStateError
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.ORCHESTRATION)


class LiveSession(BaseModel):
    """A started orchestrator plus the push devices feeding it."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    user_id: str
    orchestrator: CoachingOrchestrator
    audio: Optional[PushAudioDeviceAdapter] = None
    display: Optional[PushDisplayDeviceAdapter] = None

    @property
    def session_id(self) -> Optional[str]:
        return self.orchestrator.session_id


class SessionRegistry:

    def __init__(self) -> None:
        self._sessions: Dict[str, LiveSession] = {}
        self._pending: Set[str] = set()

    def __len__(self) -> int:
        return len(self._sessions)

    def live_session_for(self, user_id: str) -> Optional[LiveSession]:
        return next(
            (s for s in self._sessions.values() if s.user_id == user_id and s.orchestrator.is_active),
            None,
        )

    def ensure_available(self, user_id: str) -> None:
        """Raise SessionStateError if *user_id* has a live or starting session."""
        if user_id in self._pending:
            raise SessionStateError("User already has a session starting", context={"user_id": user_id})
        existing = self.live_session_for(user_id)
        if existing is not None:
            raise SessionStateError(
                "User already has a live session",
                context={"user_id": user_id, "session_id": existing.session_id},
            )

    def reserve(self, user_id: str) -> None:
        """Claim the user's slot before any await; pair with release()."""
        self.ensure_available(user_id)
        self._pending.add(user_id)

    def release(self, user_id: str) -> None:
        self._pending.discard(user_id)

    async def start(self, entry: LiveSession, screen_analysis: bool = False) -> LiveSession:
        """Start *entry*'s orchestrator and register it.

        The user's slot is held for the whole start, so a concurrent start
        for the same user fails fast. If registration fails after the
        orchestrator started, the orchestrator is stopped again.
        """
        self.reserve(entry.user_id)
        try:
            await entry.orchestrator.start(screen_analysis=screen_analysis)
            try:
                return self.add(entry)
            except Exception:
                await self._abandon(entry)
                raise
        finally:
            self.release(entry.user_id)

    def add(self, entry: LiveSession) -> LiveSession:
        if entry.session_id is None:
            raise SessionStateError("Cannot register a session that has not started")
        existing = self.live_session_for(entry.user_id)
        if existing is not None:
            raise SessionStateError(
                "User already has a live session",
                context={"user_id": entry.user_id, "session_id": existing.session_id},
            )
        self._sessions[entry.session_id] = entry
        logger.info("live_session_registered", session_id=entry.session_id, user_id=entry.user_id)
        return entry

    def get(self, session_id: str, user_id: Optional[str] = None) -> LiveSession:
        """Look up a session; another user's session counts as not found."""
        entry = self._sessions.get(session_id)
        if entry is None or (user_id is not None and entry.user_id != user_id):
            raise SessionNotFoundError(session_id)
        return entry

    def remove(self, session_id: str) -> Optional[LiveSession]:
        entry = self._sessions.pop(session_id, None)
        if entry is not None:
            logger.info("live_session_removed", session_id=session_id)
        return entry

    def sessions(self) -> List[LiveSession]:
        return list(self._sessions.values())

    async def _abandon(self, entry: LiveSession) -> None:
        if entry.orchestrator.is_active:
            try:
                await entry.orchestrator.stop()
            except Exception as exc:
                logger.error("abandoned_session_stop_failed", session_id=entry.session_id, error=str(exc))
        if entry.audio is not None:
            entry.audio.end()
        if entry.display is not None:
            entry.display.end()

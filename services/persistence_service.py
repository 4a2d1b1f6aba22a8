"""
Session persistence.

Every write for a session goes through one FIFO writer task, so records
reach the store in the order they were produced and a slow store never
blocks the live pipeline. Transcript writes are debounced (trailing edge):
a burst of transcript changes becomes one write of the new segments plus an
update of the full transcript text.

Background write failures are logged and counted. Only session creation and
``close_session`` surface PersistenceError to the caller.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from domain.models import FeedbackEvent, Session, SessionAnalytics, Suggestion, TranscriptSegment, TranscriptUpdate
from ports.session_store import SessionStorePort
from shared_utils.clock import Clock
from shared_utils.constants import Defaults, LogScope, StoreCollections
from shared_utils.error_handler import PersistenceError
from shared_utils.logging_utils import ContextualLogger
from shared_utils.timers import Debouncer, cancel_task


logger = ContextualLogger(scope=LogScope.PERSISTENCE)

WriteJob = Callable[[], Awaitable[None]]


def analytics_record_id(session_id: str) -> str:
    return f"analytics_{session_id}"


def transcript_record_id(session_id: str) -> str:
    return f"transcript_{session_id}"


class SessionPersistence:
    """Writes one session's records through a SessionStorePort."""

    def __init__(
        self,
        *,
        store: SessionStorePort,
        clock: Clock,
        session_id: str,
        user_id: str,
        debounce_seconds: float = Defaults.TRANSCRIPT_DEBOUNCE,
    ) -> None:
        self._store = store
        self._clock = clock
        self.session_id = session_id
        self.user_id = user_id
        self._logger = logger.bind(session_id=session_id)

        self._queue: asyncio.Queue = asyncio.Queue()
        self._writer: Optional[asyncio.Task] = None
        self._closed = False

        self._debouncer = Debouncer("transcript", debounce_seconds, self._schedule_transcript_write, clock)
        self._unsaved_segments: List[TranscriptSegment] = []
        self._transcript_text = ""
        self._word_count = 0
        self._transcript_dirty = False

        self.writes_completed = 0
        self.writes_failed = 0

    @property
    def transcript_pending(self) -> bool:
        return self._transcript_dirty

    @property
    def queued_writes(self) -> int:
        return self._queue.qsize()

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    async def _call(self, operation: str, collection: str, record_id: str, *args: Any) -> None:
        method = getattr(self._store, operation)
        try:
            await method(collection, record_id, *args)
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(
                f"{operation} failed: {exc}", collection=collection, record_id=record_id
            ) from exc

    def _record(self, **fields: Any) -> Dict[str, Any]:
        return {"session_id": self.session_id, "user_id": self.user_id, **fields}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_session(self, session: Session, analytics: SessionAnalytics) -> None:
        """Create the session, analytics and transcript records, then start the writer.

        Raises:
            PersistenceError: If any record cannot be created.
        """
        now_ms = self._clock.now_ms()
        await self._call("create", StoreCollections.SESSIONS, session.session_id, session.model_dump(mode="json"))
        await self._call(
            "create",
            StoreCollections.SESSION_ANALYTICS,
            analytics_record_id(session.session_id),
            self._record(**analytics.model_dump(mode="json"), created_at_ms=now_ms, updated_at_ms=now_ms),
        )
        await self._call(
            "create",
            StoreCollections.TRANSCRIPTS,
            transcript_record_id(session.session_id),
            self._record(text="", word_count=0, created_at_ms=now_ms, updated_at_ms=now_ms),
        )
        self._writer = asyncio.create_task(self._drain_forever(), name=f"persistence:{self.session_id}")
        self._logger.info("session_records_created")

    async def close_session(self, session: Session, analytics: SessionAnalytics) -> None:
        """Flush everything and mark the session completed.

        Order: pending transcript write, queued writes, final analytics
        (best effort), session record.

        Raises:
            PersistenceError: If the transcript or the session record cannot be written.
        """
        if self._closed:
            return
        try:
            await self._debouncer.flush()
            await self._queue.join()
            if self._transcript_dirty:
                # The queued attempt failed; this one surfaces its error
                await self._write_transcript()

            try:
                await self._write_analytics(analytics)
            except PersistenceError as exc:
                self._logger.warning("final_analytics_write_failed", error=exc.message)

            await self._call(
                "update",
                StoreCollections.SESSIONS,
                session.session_id,
                {
                    "end_time_ms": session.end_time_ms,
                    "duration_ms": session.duration_ms,
                    "status": session.status.value,
                    "updated_at_ms": session.updated_at_ms,
                },
            )
            self._logger.info(
                "session_closed",
                duration_ms=session.duration_ms,
                writes_completed=self.writes_completed,
                writes_failed=self.writes_failed,
            )
        finally:
            self._closed = True
            await self.shutdown()

    async def shutdown(self) -> None:
        """Stop the writer and the debounce timer without flushing."""
        self._closed = True
        await self._debouncer.cancel()
        writer, self._writer = self._writer, None
        await cancel_task(writer)

    # ------------------------------------------------------------------
    # Writer
    # ------------------------------------------------------------------

    def _enqueue(self, label: str, job: WriteJob) -> None:
        if self._closed:
            self._logger.debug("write_ignored", job=label, reason="closed")
            return
        self._queue.put_nowait((label, job))

    async def _drain_forever(self) -> None:
        while True:
            label, job = await self._queue.get()
            try:
                await job()
                self.writes_completed += 1
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.writes_failed += 1
                message = exc.message if isinstance(exc, PersistenceError) else str(exc)
                self._logger.error("background_write_failed", job=label, error=message)
            finally:
                self._queue.task_done()

    # ------------------------------------------------------------------
    # Transcript
    # ------------------------------------------------------------------

    def on_transcript(self, update: TranscriptUpdate) -> None:
        self._unsaved_segments.extend(update.new_segments)
        self._transcript_text = update.transcript
        self._word_count = update.word_count
        self._transcript_dirty = True
        if not self._closed:
            self._debouncer.trigger()

    async def _schedule_transcript_write(self) -> None:
        self._enqueue("transcript", self._write_transcript)

    async def _write_transcript(self) -> None:
        if not self._transcript_dirty:
            return
        segments, self._unsaved_segments = self._unsaved_segments, []
        text, word_count = self._transcript_text, self._word_count
        self._transcript_dirty = False

        written = 0
        try:
            for segment in segments:
                await self._call(
                    "create",
                    StoreCollections.TRANSCRIPT_SEGMENTS,
                    segment.segment_id,
                    self._record(**segment.model_dump(mode="json")),
                )
                written += 1
            await self._call(
                "update",
                StoreCollections.TRANSCRIPTS,
                transcript_record_id(self.session_id),
                {"text": text, "word_count": word_count, "updated_at_ms": self._clock.now_ms()},
            )
        except BaseException:
            # Keep what was not written for the next attempt
            self._unsaved_segments = segments[written:] + self._unsaved_segments
            self._transcript_dirty = True
            raise
        self._logger.debug("transcript_persisted", segments=len(segments), word_count=word_count)

    # ------------------------------------------------------------------
    # Suggestions, feedback, analytics
    # ------------------------------------------------------------------

    def suggestions_created(self, suggestions: List[Suggestion]) -> None:
        for suggestion in suggestions:
            record = self._record(**suggestion.model_dump(mode="json"))
            self._enqueue(
                "suggestion_created",
                lambda sid=suggestion.suggestion_id, rec=record: self._call("create", StoreCollections.SUGGESTIONS, sid, rec),
            )

    def suggestion_used(self, suggestion: Suggestion) -> None:
        self._enqueue(
            "suggestion_used",
            lambda: self._call("update", StoreCollections.SUGGESTIONS, suggestion.suggestion_id, {"is_used": True}),
        )

    def feedback_created(self, event: FeedbackEvent) -> None:
        record = self._record(**event.model_dump(mode="json"))
        self._enqueue(
            "feedback_created",
            lambda: self._call("create", StoreCollections.FEEDBACK_EVENTS, event.feedback_id, record),
        )

    def feedback_dismissed(self, event: FeedbackEvent) -> None:
        fields = {"dismissed": True, "state": event.state.value}
        self._enqueue(
            "feedback_dismissed",
            lambda: self._call("update", StoreCollections.FEEDBACK_EVENTS, event.feedback_id, fields),
        )

    def analytics_changed(self, analytics: SessionAnalytics) -> None:
        self._enqueue("analytics_updated", lambda: self._write_analytics(analytics))

    async def _write_analytics(self, analytics: SessionAnalytics) -> None:
        fields = analytics.model_dump(mode="json", exclude={"session_id"})
        fields["updated_at_ms"] = self._clock.now_ms()
        await self._call("update", StoreCollections.SESSION_ANALYTICS, analytics_record_id(self.session_id), fields)

    async def wait_idle(self) -> None:
        """Wait until every queued write has been attempted."""
        await self._queue.join()

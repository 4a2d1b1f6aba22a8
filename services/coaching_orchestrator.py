"""
CoachingOrchestrator: one live coaching session.

Wires capture sources, transcript reassembly, the suggestion and visual
analysis schedulers, the feedback engine, analytics and persistence
together on a single event loop. Each orchestrator owns all of its state;
nothing is shared between sessions.

Every asynchronous result re-checks ``is_active`` before it mutates state,
so work still in flight when the session stops is discarded.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Callable, Coroutine, List, Optional, Set

from pydantic import BaseModel

from domain.models import (
    AudioChunk,
    CaptureFrame,
    CaptureState,
    FeedbackEvent,
    Session,
    SessionSnapshot,
    SessionStatus,
    SessionType,
    Suggestion,
    TranscriptSegment,
    TranscriptUpdate,
    VisualAnalysis,
)
from ports.auth_provider import AuthProviderPort
from ports.capture_device import AudioDevicePort, DisplayDevicePort
from ports.inference_backend import InferenceBackendPort
from ports.session_store import SessionStorePort
from services.analytics_aggregator import SessionAnalyticsAggregator
from services.capture_sources import AudioCaptureSource, FrameBuffer, ScreenCaptureSource
from services.feedback_engine import FeedbackEngine
from services.persistence_service import SessionPersistence
from services.suggestion_scheduler import SuggestionScheduler
from services.transcript_aggregator import TranscriptAggregator
from services.visual_analysis_scheduler import VisualAnalysisScheduler
from shared_utils.clock import Clock, SystemClock
from shared_utils.config_loader import Settings
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import (
    DeviceError,
    InferenceError,
    PersistenceError,
    SessionStateError,
    ValidationError,
    log_exception,
)
from shared_utils.logging_utils import ContextualLogger, log_execution
from shared_utils.timers import PeriodicTask


logger = ContextualLogger(scope=LogScope.ORCHESTRATION)


class OrchestratorConfig(BaseModel):
    """Timing and sizing knobs for one orchestrator. Seconds unless noted."""

    audio_chunk_seconds: float = Defaults.AUDIO_CHUNK_SECONDS
    screen_capture_interval: float = Defaults.SCREEN_CAPTURE_INTERVAL
    visual_analysis_interval: float = Defaults.VISUAL_ANALYSIS_INTERVAL
    min_analysis_gap: float = Defaults.MIN_ANALYSIS_GAP
    suggestion_word_interval: int = Defaults.SUGGESTION_WORD_INTERVAL
    suggestion_max_tokens: int = Defaults.SUGGESTION_MAX_TOKENS
    transcript_debounce: float = Defaults.TRANSCRIPT_DEBOUNCE
    feedback_sweep_interval: float = Defaults.FEEDBACK_SWEEP_INTERVAL
    low_priority_feedback_ttl: float = Defaults.LOW_PRIORITY_FEEDBACK_TTL
    meeting_insights_interval: float = Defaults.MEETING_INSIGHTS_INTERVAL
    frame_buffer_size: int = Defaults.FRAME_BUFFER_SIZE
    analysis_history_size: int = Defaults.ANALYSIS_HISTORY_SIZE
    feedback_history_size: int = Defaults.FEEDBACK_HISTORY_SIZE
    feedback_tail_words: int = Defaults.FEEDBACK_TAIL_WORDS
    speaking_level_threshold: float = Defaults.SPEAKING_LEVEL_THRESHOLD
    transcription_language: str = Defaults.TRANSCRIPTION_LANGUAGE
    transcript_confidence: float = Defaults.TRANSCRIPT_CONFIDENCE

    @classmethod
    def from_settings(cls, settings: Settings) -> "OrchestratorConfig":
        return cls(
            audio_chunk_seconds=settings.audio_chunk_seconds,
            screen_capture_interval=settings.screen_capture_interval,
            visual_analysis_interval=settings.visual_analysis_interval,
            min_analysis_gap=settings.min_analysis_gap,
            suggestion_word_interval=settings.suggestion_word_interval,
            transcript_debounce=settings.transcript_debounce,
            feedback_sweep_interval=settings.feedback_sweep_interval,
            low_priority_feedback_ttl=settings.low_priority_feedback_ttl,
            meeting_insights_interval=settings.meeting_insights_interval,
            frame_buffer_size=settings.frame_buffer_size,
            analysis_history_size=settings.analysis_history_size,
            feedback_history_size=settings.feedback_history_size,
            speaking_level_threshold=settings.speaking_level_threshold,
            transcription_language=settings.transcription_language,
        )


class CoachingOrchestrator:
    """Runs one live session from ``start()`` to ``stop()``."""

    def __init__(
        self,
        *,
        backend: InferenceBackendPort,
        store: SessionStorePort,
        auth: AuthProviderPort,
        audio_device: AudioDevicePort,
        display_device: Optional[DisplayDevicePort] = None,
        session_type: SessionType = SessionType.MEETING,
        title: Optional[str] = None,
        config: Optional[OrchestratorConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._backend = backend
        self._store = store
        self._auth = auth
        self._audio_device = audio_device
        self._display_device = display_device
        self.session_type = session_type
        self._title = title
        self.config = config or OrchestratorConfig()
        self._clock = clock or SystemClock()
        self._logger = logger

        self.session: Optional[Session] = None
        self._active = False
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe_auth: Optional[Callable[[], None]] = None
        self.audio_level = 0.0

        # Created in start()
        self.transcript: Optional[TranscriptAggregator] = None
        self.suggestions: Optional[SuggestionScheduler] = None
        self.visual: Optional[VisualAnalysisScheduler] = None
        self.feedback: Optional[FeedbackEngine] = None
        self.analytics: Optional[SessionAnalyticsAggregator] = None
        self.persistence: Optional[SessionPersistence] = None
        self.frames = FrameBuffer(self.config.frame_buffer_size)
        self._audio_source: Optional[AudioCaptureSource] = None
        self._screen_source: Optional[ScreenCaptureSource] = None
        self._visual_tick: Optional[PeriodicTask] = None
        self._timers: List[PeriodicTask] = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def session_id(self) -> Optional[str]:
        return self.session.session_id if self.session else None

    @property
    def screen_analysis_enabled(self) -> bool:
        return self._screen_source is not None and self._screen_source.running

    def _require_active(self) -> None:
        if not self._active:
            raise SessionStateError("Session is not active", context={"session_id": self.session_id})

    def _spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error("background_task_failed", task=task.get_name())
            log_exception(exc, scope=LogScope.ORCHESTRATION)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @log_execution(scope=LogScope.ORCHESTRATION)
    async def start(self, screen_analysis: bool = False) -> Session:
        """Create the session records and start capture and timers.

        Raises:
            SessionStateError: If this orchestrator was already started, or screen
                analysis was requested without a display device.
            ValidationError: If no user is signed in.
            PersistenceError: If the session records cannot be created.
        """
        if self.session is not None:
            raise SessionStateError("Session already started", context={"session_id": self.session_id})

        user_id = self._auth.current_user_id()
        if not user_id:
            raise ValidationError("A signed-in user is required to start a session")
        if screen_analysis and self._display_device is None:
            raise SessionStateError("No display device attached")

        now_ms = self._clock.now_ms()
        session_id = f"session_{uuid.uuid4().hex}"
        session = Session(
            session_id=session_id,
            user_id=user_id,
            title=self._title or f"{self.session_type.value.replace('_', ' ').title()} session",
            session_type=self.session_type,
            start_time_ms=now_ms,
            created_at_ms=now_ms,
            updated_at_ms=now_ms,
        )
        self._logger = logger.bind(session_id=session_id)
        self._build_components(session)

        await self.persistence.create_session(session, self.analytics.snapshot())

        self.session = session
        self._active = True
        self._unsubscribe_auth = self._auth.subscribe(self._on_auth_change)

        self._audio_source.start()
        self._timers = [
            PeriodicTask("feedback-sweep", self.config.feedback_sweep_interval, self._sweep_feedback, self._clock),
            PeriodicTask("meeting-insights", self.config.meeting_insights_interval, self._meeting_insights, self._clock),
        ]
        for timer in self._timers:
            timer.start()
        if screen_analysis:
            await self.set_screen_analysis(True)

        self._logger.info(
            "session_started",
            user_id=user_id,
            session_type=self.session_type.value,
            screen_analysis=screen_analysis,
        )
        return session

    @log_execution(scope=LogScope.ORCHESTRATION)
    async def stop(self) -> Session:
        """Stop capture and timers, finalise the session and flush persistence.

        The in-memory session is finalised even if persistence fails; the
        PersistenceError is re-raised afterwards.
        """
        self._require_active()
        self._active = False

        if self._unsubscribe_auth is not None:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None

        for timer in self._timers:
            await timer.cancel()
        if self._visual_tick is not None:
            await self._visual_tick.cancel()
        await self._audio_source.stop()
        if self._screen_source is not None:
            await self._screen_source.stop()

        now_ms = self._clock.now_ms()
        self.session = self.session.model_copy(
            update={
                "end_time_ms": now_ms,
                "duration_ms": now_ms - self.session.start_time_ms,
                "status": SessionStatus.COMPLETED,
                "updated_at_ms": now_ms,
            }
        )

        try:
            await self.persistence.close_session(self.session, self.analytics.snapshot())
        except PersistenceError as exc:
            self._logger.error("session_close_failed", error=exc.message)
            raise

        self._logger.info("session_stopped", duration_ms=self.session.duration_ms)
        return self.session

    async def set_screen_analysis(self, enabled: bool) -> bool:
        """Start or stop screen capture together with the visual analysis tick."""
        self._require_active()
        if enabled:
            if self._display_device is None:
                raise SessionStateError("No display device attached", context={"session_id": self.session_id})
            if self.screen_analysis_enabled:
                return True
            self._screen_source = ScreenCaptureSource(
                device=self._display_device,
                clock=self._clock,
                on_frame=self._on_frame,
                on_error=self._on_device_error,
                interval_seconds=self.config.screen_capture_interval,
            )
            self._screen_source.start()
            self._visual_tick = PeriodicTask(
                "visual-analysis", self.config.visual_analysis_interval, self._visual_analysis_tick, self._clock
            )
            self._visual_tick.start()
            self._logger.info("screen_analysis_enabled")
            return True

        if self._visual_tick is not None:
            await self._visual_tick.cancel()
            self._visual_tick = None
        if self._screen_source is not None:
            await self._screen_source.stop()
        self._logger.info("screen_analysis_disabled")
        return False

    def dispose(self) -> None:
        """Drop buffered session data once the orchestrator is no longer needed."""
        if self._active:
            raise SessionStateError("Cannot dispose an active session", context={"session_id": self.session_id})
        if self.suggestions is not None:
            self.suggestions.clear()
        self.frames.clear()

    async def wait_idle(self) -> None:
        """Wait for spawned work (transcriptions, AI calls) and queued writes."""
        while self._tasks:
            await asyncio.wait(set(self._tasks))
        if self.persistence is not None and self._active:
            await self.persistence.wait_idle()

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def dismiss_feedback(self, feedback_id: str) -> Optional[FeedbackEvent]:
        self._require_active()
        return self.feedback.dismiss(feedback_id)

    def mark_suggestion_used(self, suggestion_id: str) -> Optional[Suggestion]:
        self._require_active()
        updated = self.suggestions.mark_used(suggestion_id)
        if updated is not None:
            self.analytics.record_suggestion_used()
            self.persistence.suggestion_used(updated)
        return updated

    def snapshot(self) -> SessionSnapshot:
        if self.session is None:
            raise SessionStateError("Session has not been started")
        return SessionSnapshot(
            session=self.session,
            is_active=self._active,
            transcript=self.transcript.transcript,
            word_count=self.transcript.word_count,
            audio_level=self.audio_level,
            audio_state=self._audio_source.state,
            screen_state=self._screen_source.state if self._screen_source else CaptureState.IDLE,
            screen_analysis_enabled=self.screen_analysis_enabled,
            suggestions=self.suggestions.recent(),
            latest_analysis=self.visual.latest,
            active_feedback=self.feedback.active,
            active_feedbacks=self.feedback.active_feedbacks(),
            recent_insights=self.feedback.recent_insights(),
            analytics=self.analytics.snapshot(),
        )

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def _build_components(self, session: Session) -> None:
        config = self.config
        self.persistence = SessionPersistence(
            store=self._store,
            clock=self._clock,
            session_id=session.session_id,
            user_id=session.user_id,
            debounce_seconds=config.transcript_debounce,
        )
        self.analytics = SessionAnalyticsAggregator(
            session.session_id,
            speaking_threshold=config.speaking_level_threshold,
            on_change=self.persistence.analytics_changed,
        )
        self.transcript = TranscriptAggregator(on_change=self._on_transcript)
        self.suggestions = SuggestionScheduler(
            backend=self._backend,
            clock=self._clock,
            session_type=self.session_type,
            is_active=lambda: self._active,
            on_suggestions=self._on_suggestions,
            word_interval=config.suggestion_word_interval,
            max_tokens=config.suggestion_max_tokens,
        )
        self.visual = VisualAnalysisScheduler(
            backend=self._backend,
            clock=self._clock,
            latest_frame=self.frames.latest,
            session_type=self.session_type,
            is_active=lambda: self._active,
            on_analysis=self._on_analysis,
            min_gap_seconds=config.min_analysis_gap,
            history_size=config.analysis_history_size,
        )
        self.feedback = FeedbackEngine(
            backend=self._backend,
            clock=self._clock,
            is_active=lambda: self._active,
            on_event=self._on_feedback,
            on_dismissed=self.persistence.feedback_dismissed,
            on_signals=self.analytics.record_signals,
            history_size=config.feedback_history_size,
            low_priority_ttl_seconds=config.low_priority_feedback_ttl,
        )
        self._audio_source = AudioCaptureSource(
            device=self._audio_device,
            clock=self._clock,
            on_chunk=self._on_audio_chunk,
            on_level=self._on_level,
            on_error=self._on_device_error,
            chunk_seconds=config.audio_chunk_seconds,
        )

    def _on_auth_change(self, user_id: Optional[str]) -> None:
        if self._active and user_id != self.session.user_id:
            self._logger.warning("session_user_signed_out")
            self._spawn(self.stop(), name="auth-stop")

    def _on_device_error(self, error: DeviceError) -> None:
        self._logger.warning("capture_degraded", device=error.context.get("device"), error=error.message)

    def _on_level(self, level: float) -> None:
        self.audio_level = level

    def _on_frame(self, frame: CaptureFrame) -> None:
        if self._active:
            self.frames.add(frame)

    # Audio -> transcript

    def _on_audio_chunk(self, chunk: AudioChunk) -> None:
        if not self._active:
            return
        self.analytics.record_audio(chunk)
        sequence = self.transcript.next_sequence()
        self._spawn(self._transcribe(sequence, chunk), name=f"transcribe:{sequence}")

    async def _transcribe(self, sequence: int, chunk: AudioChunk) -> None:
        try:
            text = await self._backend.transcribe_audio(chunk.audio, self.config.transcription_language)
        except InferenceError as exc:
            self._logger.warning("transcription_failed", sequence=sequence, error=exc.message)
            self.transcript.skip(sequence)
            return

        if not self._active:
            self.transcript.skip(sequence)
            return

        self.transcript.append(
            sequence,
            TranscriptSegment(
                segment_id=str(uuid.uuid4()),
                sequence=sequence,
                text=text,
                timestamp_ms=chunk.timestamp_ms,
                is_user_speaking=chunk.level >= self.config.speaking_level_threshold,
                confidence=self.config.transcript_confidence,
            ),
        )

    def _on_transcript(self, update: TranscriptUpdate) -> None:
        self.persistence.on_transcript(update)
        task = self.suggestions.on_transcript(update.transcript, update.word_count)
        if task is not None:
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _on_suggestions(self, suggestions: List[Suggestion]) -> None:
        self.analytics.record_suggestions(len(suggestions))
        self.persistence.suggestions_created(suggestions)

    # Screen -> analysis -> feedback

    async def _visual_analysis_tick(self) -> None:
        if not self._active:
            return
        task = await self.visual.tick()
        if task is not None:
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _on_analysis(self, analysis: VisualAnalysis) -> None:
        if analysis.degraded:
            return
        elapsed_ms = self._clock.now_ms() - self.session.start_time_ms
        self._spawn(
            self.feedback.synthesize(
                self.transcript.tail(self.config.feedback_tail_words),
                analysis,
                self.session_type,
                elapsed_ms,
            ),
            name="feedback-synthesis",
        )

    def _on_feedback(self, event: FeedbackEvent) -> None:
        self.analytics.record_feedback(event)
        self.persistence.feedback_created(event)

    # Timers

    async def _sweep_feedback(self) -> None:
        if self._active:
            self.feedback.sweep()

    async def _meeting_insights(self) -> None:
        if not self._active:
            return
        self.feedback.add_meeting_insights(
            self.analytics.speaking_ms,
            self.analytics.listening_ms,
            self.analytics.key_topics,
            self.session_type,
        )

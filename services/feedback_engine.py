"""
Prioritized coaching feedback.

Feedback comes from two places: a text inference that combines the recent
transcript with the latest screen analysis (``synthesize``), and rule-based
meeting insights computed from talk time and topics
(``generate_meeting_insights``).

Lifecycle of an event::

    created -> active       (high / urgent: takes the active slot)
    created -> background   (low / medium, or displaced from the slot)
    active | background -> dismissed   (user action or low-priority expiry)

Dismissed is terminal.
"""

from __future__ import annotations

import uuid
from collections import deque
from typing import Callable, Deque, List, Optional

from core_intelligence.engine.prompts import build_feedback_prompt
from core_intelligence.parser.response_parser import (
    as_object,
    coerce_bool,
    coerce_enum,
    coerce_float,
    coerce_str,
    coerce_str_list,
    parse_inference_response,
)
from domain.models import (
    FeedbackContext,
    FeedbackEvent,
    FeedbackKind,
    FeedbackPriority,
    FeedbackState,
    ParsedResponse,
    SessionType,
    VisualAnalysis,
)
from ports.inference_backend import InferenceBackendPort
from shared_utils.clock import Clock
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import InferenceError
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.FEEDBACK)

_SLOT_PRIORITIES = (FeedbackPriority.HIGH, FeedbackPriority.URGENT)

SignalsCallback = Callable[[Optional[float], List[str]], None]


def should_auto_dismiss(event: FeedbackEvent, now_ms: int, ttl_ms: int) -> bool:
    """Low-priority events expire once they are *ttl_ms* old."""
    return (
        not event.dismissed
        and event.priority == FeedbackPriority.LOW
        and now_ms - event.timestamp_ms >= ttl_ms
    )


def generate_meeting_insights(
    speaking_ms: int,
    listening_ms: int,
    key_topics: List[str],
    session_type: SessionType,
    now_ms: int,
) -> List[FeedbackEvent]:
    """Rule-based insights from talk balance and topics.

    Talk ratio above 0.7 suggests engaging others, below 0.2 suggests
    participating more. Known topics are summarised as a low-priority insight.
    """
    total_ms = speaking_ms + listening_ms
    insights: List[FeedbackEvent] = []

    if total_ms > 0:
        talk_ratio = speaking_ms / total_ms
        discussion = FeedbackContext(session_type=session_type, duration_ms=total_ms, activity="discussion")
        if talk_ratio > 0.7:
            insights.append(
                FeedbackEvent(
                    feedback_id=str(uuid.uuid4()),
                    timestamp_ms=now_ms,
                    kind=FeedbackKind.COACHING,
                    priority=FeedbackPriority.MEDIUM,
                    title="Speaking Balance",
                    message=(
                        f"You've been speaking {round(talk_ratio * 100)}% of the time. "
                        "Consider asking questions to engage others more."
                    ),
                    actionable=True,
                    suggestions=[
                        'Ask "What are your thoughts on this?"',
                        "Pause for questions after key points",
                        'Use "How does this align with your experience?"',
                    ],
                    context=discussion,
                )
            )
        elif talk_ratio < 0.2:
            insights.append(
                FeedbackEvent(
                    feedback_id=str(uuid.uuid4()),
                    timestamp_ms=now_ms,
                    kind=FeedbackKind.SUGGESTION,
                    priority=FeedbackPriority.MEDIUM,
                    title="Participation Opportunity",
                    message=(
                        "You've been mostly listening. Consider sharing your perspective "
                        "on the key topics discussed."
                    ),
                    actionable=True,
                    suggestions=[
                        "Share a relevant experience",
                        "Ask clarifying questions",
                        "Offer your perspective on key points",
                    ],
                    context=discussion,
                )
            )

    if key_topics:
        insights.append(
            FeedbackEvent(
                feedback_id=str(uuid.uuid4()),
                timestamp_ms=now_ms,
                kind=FeedbackKind.INSIGHT,
                priority=FeedbackPriority.LOW,
                title="Key Topics Identified",
                message=f"Main discussion points: {', '.join(key_topics[:3])}",
                actionable=False,
                context=FeedbackContext(session_type=session_type, duration_ms=total_ms, activity="topic_analysis"),
            )
        )

    return insights


class FeedbackEngine:
    """Owns the feedback history and the active slot for one session."""

    def __init__(
        self,
        *,
        backend: InferenceBackendPort,
        clock: Clock,
        is_active: Callable[[], bool],
        on_event: Optional[Callable[[FeedbackEvent], None]] = None,
        on_dismissed: Optional[Callable[[FeedbackEvent], None]] = None,
        on_signals: Optional[SignalsCallback] = None,
        history_size: int = Defaults.FEEDBACK_HISTORY_SIZE,
        low_priority_ttl_seconds: float = Defaults.LOW_PRIORITY_FEEDBACK_TTL,
    ) -> None:
        self._backend = backend
        self._clock = clock
        self._is_active = is_active
        self._on_event = on_event
        self._on_dismissed = on_dismissed
        self._on_signals = on_signals
        self._ttl_ms = int(round(low_priority_ttl_seconds * 1000))
        self._history: Deque[FeedbackEvent] = deque(maxlen=history_size)
        self._active_id: Optional[str] = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def history(self) -> List[FeedbackEvent]:
        return list(self._history)

    @property
    def active(self) -> Optional[FeedbackEvent]:
        """The event holding the active slot, if any."""
        if self._active_id is None:
            return None
        return self._find(self._active_id)

    def active_feedbacks(self) -> List[FeedbackEvent]:
        """Non-dismissed events above low priority."""
        return [e for e in self._history if not e.dismissed and e.priority != FeedbackPriority.LOW]

    def recent_insights(self, minutes: float = 10) -> List[FeedbackEvent]:
        cutoff = self._clock.now_ms() - int(minutes * 60_000)
        return [e for e in self._history if e.timestamp_ms > cutoff and not e.dismissed]

    def _find(self, feedback_id: str) -> Optional[FeedbackEvent]:
        return next((e for e in self._history if e.feedback_id == feedback_id), None)

    def _replace(self, updated: FeedbackEvent) -> None:
        for index, event in enumerate(self._history):
            if event.feedback_id == updated.feedback_id:
                self._history[index] = updated
                return

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------

    async def synthesize(
        self,
        transcript_tail: str,
        analysis: VisualAnalysis,
        session_type: SessionType,
        elapsed_ms: int,
    ) -> Optional[FeedbackEvent]:
        """One inference over transcript + screen. Failures are skipped silently."""
        prompt = build_feedback_prompt(
            transcript=transcript_tail,
            visual_content=analysis.content,
            visual_context=analysis.context,
            session_type=session_type,
            elapsed_ms=elapsed_ms,
        )
        try:
            text = await self._backend.generate_text(prompt)
        except InferenceError as exc:
            logger.warning("feedback_synthesis_failed", error=exc.message)
            return None

        result = parse_inference_response(text)
        data = as_object(result.data) if isinstance(result, ParsedResponse) else None
        if data is None:
            logger.info("feedback_synthesis_skipped", reason="unparsed_response")
            return None

        if not self._is_active():
            logger.info("feedback_discarded", reason="session_inactive")
            return None

        if self._on_signals is not None:
            self._on_signals(coerce_float(data.get("sentiment"), -1.0, 1.0), coerce_str_list(data.get("topics")))

        event = FeedbackEvent(
            feedback_id=str(uuid.uuid4()),
            timestamp_ms=self._clock.now_ms(),
            kind=coerce_enum(data.get("type"), FeedbackKind, FeedbackKind.INSIGHT),
            priority=coerce_enum(data.get("priority"), FeedbackPriority, FeedbackPriority.MEDIUM),
            title=coerce_str(data.get("title"), "AI Insight"),
            message=coerce_str(data.get("message"), text.strip()[:200]),
            actionable=coerce_bool(data.get("actionable")),
            suggestions=coerce_str_list(data.get("suggestions")),
            context=FeedbackContext(session_type=session_type, duration_ms=elapsed_ms, activity=analysis.context),
        )
        return self.add(event)

    def add_meeting_insights(self, speaking_ms: int, listening_ms: int, key_topics: List[str], session_type: SessionType) -> List[FeedbackEvent]:
        insights = generate_meeting_insights(speaking_ms, listening_ms, key_topics, session_type, self._clock.now_ms())
        return [self.add(event) for event in insights]

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def add(self, event: FeedbackEvent) -> FeedbackEvent:
        """Record *event*; high and urgent events take the active slot."""
        if event.priority in _SLOT_PRIORITIES:
            previous = self.active
            if previous is not None:
                self._replace(previous.model_copy(update={"state": FeedbackState.BACKGROUND}))
            event = event.model_copy(update={"state": FeedbackState.ACTIVE})
            self._active_id = event.feedback_id
        else:
            event = event.model_copy(update={"state": FeedbackState.BACKGROUND})

        self._history.append(event)
        # The slot holder may have been evicted from the bounded history
        if self._active_id is not None and self._find(self._active_id) is None:
            self._active_id = None

        logger.info(
            "feedback_added",
            feedback_id=event.feedback_id,
            priority=event.priority.value,
            state=event.state.value,
        )
        if self._on_event is not None:
            self._on_event(event)
        return event

    def dismiss(self, feedback_id: str) -> Optional[FeedbackEvent]:
        """Dismiss an event. Returns the updated event, or None if unknown or already dismissed."""
        event = self._find(feedback_id)
        if event is None or event.dismissed:
            return None
        updated = event.model_copy(update={"dismissed": True, "state": FeedbackState.DISMISSED})
        self._replace(updated)
        if self._active_id == feedback_id:
            self._active_id = None
        logger.info("feedback_dismissed", feedback_id=feedback_id)
        if self._on_dismissed is not None:
            self._on_dismissed(updated)
        return updated

    def sweep(self, now_ms: Optional[int] = None) -> List[FeedbackEvent]:
        """Dismiss expired low-priority events."""
        now_ms = self._clock.now_ms() if now_ms is None else now_ms
        expired = [e.feedback_id for e in self._history if should_auto_dismiss(e, now_ms, self._ttl_ms)]
        dismissed = [self.dismiss(feedback_id) for feedback_id in expired]
        return [e for e in dismissed if e is not None]

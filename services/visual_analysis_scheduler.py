"""
Periodic screen analysis.

``tick()`` is driven by a 10 s timer. It issues at most one vision request
at a time, never re-analyses the same frame and enforces a minimum gap
between accepted analyses. A failed or unparseable answer still produces
an entry: a degraded placeholder with low urgency.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import deque
from typing import Callable, Deque, List, Optional

from core_intelligence.engine.prompts import build_visual_analysis_messages
from core_intelligence.parser.response_parser import (
    as_object,
    as_object_list,
    coerce_bool,
    coerce_enum,
    coerce_str,
    coerce_str_list,
    parse_inference_response,
)
from domain.models import (
    AnalysisFeedback,
    CaptureFrame,
    FeedbackKind,
    ParsedResponse,
    Priority,
    SessionType,
    VisualAnalysis,
)
from ports.inference_backend import InferenceBackendPort
from shared_utils.clock import Clock
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import InferenceError
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.VISUAL_ANALYSIS)


def placeholder_analysis(frame: CaptureFrame, now_ms: int) -> VisualAnalysis:
    return VisualAnalysis(
        analysis_id=str(uuid.uuid4()),
        timestamp_ms=now_ms,
        frame_id=frame.frame_id,
        content="Screen capture received",
        elements=["Screen content"],
        context=frame.window_title or "Screen activity",
        suggestions=["Analysis temporarily unavailable"],
        urgency=Priority.LOW,
        feedback=[AnalysisFeedback(kind=FeedbackKind.INSIGHT, message="Visual analysis is processing...", actionable=False)],
        degraded=True,
    )


def analysis_from_response(text: str, frame: CaptureFrame, now_ms: int) -> Optional[VisualAnalysis]:
    """Parse a vision answer; None when it is not a JSON object."""
    result = parse_inference_response(text)
    if not isinstance(result, ParsedResponse):
        return None
    data = as_object(result.data)
    if data is None:
        return None

    feedback = []
    for item in as_object_list(data.get("feedback"), "feedback"):
        message = coerce_str(item.get("message"))
        if not message:
            continue
        feedback.append(
            AnalysisFeedback(
                kind=coerce_enum(item.get("type"), FeedbackKind, FeedbackKind.INSIGHT),
                message=message,
                actionable=coerce_bool(item.get("actionable")),
            )
        )

    return VisualAnalysis(
        analysis_id=str(uuid.uuid4()),
        timestamp_ms=now_ms,
        frame_id=frame.frame_id,
        content=coerce_str(data.get("content"), "Screen content analyzed"),
        elements=coerce_str_list(data.get("elements")),
        context=coerce_str(data.get("context"), frame.window_title or "Unknown context"),
        suggestions=coerce_str_list(data.get("suggestions")),
        urgency=coerce_enum(data.get("urgency"), Priority, Priority.LOW),
        feedback=feedback,
    )


class VisualAnalysisScheduler:
    """Rate-limited, single-flight vision analysis for one session."""

    def __init__(
        self,
        *,
        backend: InferenceBackendPort,
        clock: Clock,
        latest_frame: Callable[[], Optional[CaptureFrame]],
        session_type: SessionType,
        is_active: Callable[[], bool],
        on_analysis: Optional[Callable[[VisualAnalysis], None]] = None,
        min_gap_seconds: float = Defaults.MIN_ANALYSIS_GAP,
        history_size: int = Defaults.ANALYSIS_HISTORY_SIZE,
    ) -> None:
        self._backend = backend
        self._clock = clock
        self._latest_frame = latest_frame
        self._session_type = session_type
        self._is_active = is_active
        self._on_analysis = on_analysis
        self._min_gap_ms = int(round(min_gap_seconds * 1000))
        self._history: Deque[VisualAnalysis] = deque(maxlen=history_size)

        self._in_flight: Optional[asyncio.Task] = None
        self._last_started_ms: Optional[int] = None
        self._last_frame_id: Optional[str] = None
        self.requests_issued = 0
        self.ticks_skipped = 0

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    @property
    def latest(self) -> Optional[VisualAnalysis]:
        return self._history[-1] if self._history else None

    @property
    def history(self) -> List[VisualAnalysis]:
        return list(self._history)

    def can_analyse(self, frame: Optional[CaptureFrame], now_ms: int) -> bool:
        if frame is None or self.in_flight:
            return False
        if frame.frame_id == self._last_frame_id:
            return False
        if self._last_started_ms is not None and now_ms - self._last_started_ms < self._min_gap_ms:
            return False
        return True

    async def tick(self) -> Optional[asyncio.Task]:
        """Issue an analysis of the latest frame if allowed. Returns the request task."""
        frame = self._latest_frame()
        now_ms = self._clock.now_ms()
        if not self.can_analyse(frame, now_ms):
            self.ticks_skipped += 1
            logger.debug(
                "visual_analysis_skipped",
                has_frame=frame is not None,
                in_flight=self.in_flight,
            )
            return None

        self._last_started_ms = now_ms
        self._last_frame_id = frame.frame_id
        self.requests_issued += 1
        self._in_flight = asyncio.create_task(self._analyse(frame), name="visual-analysis")
        logger.info("visual_analysis_issued", frame_id=frame.frame_id, request=self.requests_issued)
        return self._in_flight

    async def _analyse(self, frame: CaptureFrame) -> None:
        messages = build_visual_analysis_messages(frame.image, frame.mime_type, self._session_type)
        analysis: Optional[VisualAnalysis] = None
        try:
            text = await self._backend.generate_multimodal(messages)
            analysis = analysis_from_response(text, frame, self._clock.now_ms())
            if analysis is None:
                logger.warning("visual_analysis_unparsed", frame_id=frame.frame_id)
        except InferenceError as exc:
            logger.warning("visual_analysis_failed", frame_id=frame.frame_id, error=exc.message)

        if not self._is_active():
            logger.info("visual_analysis_discarded", reason="session_inactive")
            return

        if analysis is None:
            analysis = placeholder_analysis(frame, self._clock.now_ms())

        self._history.append(analysis)
        logger.info(
            "visual_analysis_recorded",
            analysis_id=analysis.analysis_id,
            urgency=analysis.urgency.value,
            degraded=analysis.degraded,
        )
        if self._on_analysis is not None:
            self._on_analysis(analysis)

    def recent_feedback(self, minutes: float = 5) -> List[AnalysisFeedback]:
        """Actionable feedback items from analyses newer than *minutes*."""
        cutoff = self._clock.now_ms() - int(minutes * 60_000)
        return [
            item
            for analysis in self._history
            if analysis.timestamp_ms > cutoff
            for item in analysis.feedback
            if item.actionable
        ]

    async def wait_idle(self) -> None:
        if self.in_flight:
            await asyncio.wait({self._in_flight})

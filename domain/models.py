"""
Pure domain models for the live coaching orchestrator.

These models carry no backend or device types. They represent the session,
its derived artefacts (transcript, suggestions, analyses, feedback) and the
messages exchanged with the inference backend.

All timestamps and durations are integer milliseconds.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class SessionType(str, Enum):
    """Kind of live session being coached."""

    MEETING = "meeting"
    EXAM = "exam"
    SALES_CALL = "sales_call"
    INTERVIEW = "interview"
    OTHER = "other"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class Priority(str, Enum):
    """Priority of suggestions and urgency of visual analyses."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FeedbackPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class SuggestionCategory(str, Enum):
    QUESTION = "question"
    RESPONSE = "response"
    ACTION = "action"
    NOTE = "note"


class FeedbackKind(str, Enum):
    COACHING = "coaching"
    WARNING = "warning"
    SUGGESTION = "suggestion"
    INSIGHT = "insight"
    ACTION = "action"


class FeedbackState(str, Enum):
    """Lifecycle of a feedback event: created -> (active | background) -> dismissed."""

    ACTIVE = "active"
    BACKGROUND = "background"
    DISMISSED = "dismissed"


class CaptureState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class Session(BaseModel):
    """A single live coaching session owned by one orchestrator."""

    session_id: str
    user_id: str
    title: str
    session_type: SessionType = SessionType.MEETING
    start_time_ms: int
    end_time_ms: Optional[int] = None
    duration_ms: int = 0
    status: SessionStatus = SessionStatus.ACTIVE
    created_at_ms: int
    updated_at_ms: int


class SessionAnalytics(BaseModel):
    """Running analytics for one session."""

    session_id: str
    talk_to_listen_ratio: float = 0.0
    speaking_time_ms: int = 0
    listening_time_ms: int = 0
    sentiment_score: float = 0.0
    key_topics: List[str] = []
    action_items: List[str] = []
    suggestions_used: int = 0
    total_suggestions: int = 0
    # Fraction in 0..1.
    success_rate: float = 0.0


class SessionStats(BaseModel):
    """Aggregate statistics across a user's sessions."""

    total_sessions: int = 0
    total_duration_ms: int = 0
    avg_suggestions: float = 0.0
    # Whole percent in 0..100.
    success_pct: int = 0


# ---------------------------------------------------------------------------
# Capture data contracts
# ---------------------------------------------------------------------------


class AudioChunk(BaseModel):
    """About one second of captured audio, WAV-encoded for transcription."""

    model_config = ConfigDict(frozen=True)

    audio: bytes
    timestamp_ms: int
    duration_ms: int
    level: float = 0.0
    sample_rate: int


class FrameGrab(BaseModel):
    """Raw picture handed over by a display device."""

    image: bytes
    mime_type: str = "image/jpeg"
    window_title: Optional[str] = None
    application: Optional[str] = None


class CaptureFrame(BaseModel):
    """A timestamped screen frame held in the ring buffer. Never persisted."""

    model_config = ConfigDict(frozen=True)

    frame_id: str
    image: bytes
    mime_type: str = "image/jpeg"
    timestamp_ms: int
    window_title: Optional[str] = None
    application: Optional[str] = None


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------


class TranscriptSegment(BaseModel):
    """One transcribed audio chunk. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    segment_id: str
    sequence: int
    text: str
    timestamp_ms: int
    is_user_speaking: bool = True
    confidence: float = 0.9


class TranscriptUpdate(BaseModel):
    """Emitted by the aggregator each time in-order segments are applied."""

    transcript: str
    word_count: int
    new_segments: List[TranscriptSegment]


# ---------------------------------------------------------------------------
# Suggestions, analyses, feedback
# ---------------------------------------------------------------------------


class Suggestion(BaseModel):
    """Coaching suggestion. Only ``is_used`` changes after creation."""

    suggestion_id: str
    category: SuggestionCategory = SuggestionCategory.NOTE
    content: str
    context: str = ""
    priority: Priority = Priority.MEDIUM
    is_used: bool = False
    timestamp_ms: int


class AnalysisFeedback(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: FeedbackKind = FeedbackKind.INSIGHT
    message: str
    actionable: bool = False


class VisualAnalysis(BaseModel):
    """Result of analysing one captured frame.

    ``degraded`` marks placeholders appended when the vision call fails.
    """

    model_config = ConfigDict(frozen=True)

    analysis_id: str
    timestamp_ms: int
    frame_id: str
    content: str
    elements: List[str] = []
    context: str = ""
    suggestions: List[str] = []
    urgency: Priority = Priority.LOW
    feedback: List[AnalysisFeedback] = []
    degraded: bool = False


class FeedbackContext(BaseModel):
    session_type: SessionType
    duration_ms: int
    activity: str = ""


class FeedbackEvent(BaseModel):
    """Prioritized coaching feedback surfaced to the user."""

    feedback_id: str
    timestamp_ms: int
    kind: FeedbackKind = FeedbackKind.INSIGHT
    priority: FeedbackPriority = FeedbackPriority.MEDIUM
    title: str
    message: str
    actionable: bool = False
    suggestions: List[str] = []
    dismissed: bool = False
    state: FeedbackState = FeedbackState.BACKGROUND
    context: FeedbackContext


# ---------------------------------------------------------------------------
# Inference messages and results
# ---------------------------------------------------------------------------


class MessagePart(BaseModel):
    """Text or image content inside a multimodal chat turn."""

    type: Literal["text", "image"]
    text: Optional[str] = None
    image: Optional[bytes] = None
    mime_type: str = "image/jpeg"


class ChatTurn(BaseModel):
    role: Literal["system", "user", "assistant"] = "user"
    parts: List[MessagePart]


class ParsedResponse(BaseModel):
    """Inference output that decoded into structured JSON."""

    kind: Literal["parsed"] = "parsed"
    data: Any
    raw: str = ""


class RawResponse(BaseModel):
    """Inference output that could not be decoded; the text is kept as-is."""

    kind: Literal["raw"] = "raw"
    text: str


InferenceResult = Annotated[Union[ParsedResponse, RawResponse], Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# Read-only views
# ---------------------------------------------------------------------------


class SessionSnapshot(BaseModel):
    """Point-in-time view of a live orchestrator for callers."""

    session: Session
    is_active: bool
    transcript: str
    word_count: int
    audio_level: float
    audio_state: CaptureState
    screen_state: CaptureState
    screen_analysis_enabled: bool
    suggestions: List[Suggestion]
    latest_analysis: Optional[VisualAnalysis] = None
    active_feedback: Optional[FeedbackEvent] = None
    active_feedbacks: List[FeedbackEvent] = []
    recent_insights: List[FeedbackEvent] = []
    analytics: SessionAnalytics

"""
Root conftest.py: shared fixtures for the entire test suite.

Guidelines:
    • No __init__.py in test sub-directories (avoids shadowing root packages).
    • pytest.ini_options lives in pyproject.toml with pythonpath=["."]
      and asyncio_mode="auto".
    • Time is virtual: components take a ManualClock and tests advance it.
"""

import json
import struct
from typing import Dict
from unittest.mock import AsyncMock

import pytest

from adapters.in_memory_session_store import InMemorySessionStoreAdapter
from domain.models import (
    CaptureFrame,
    FeedbackContext,
    FeedbackEvent,
    FeedbackPriority,
    SessionType,
    TranscriptSegment,
)
from shared_utils.clock import ManualClock


# ---------------------------------------------------------------------------
# Marker registration
# ---------------------------------------------------------------------------

def pytest_configure(config):
    config.addinivalue_line("markers", "integration: mark test as integration test")


# ---------------------------------------------------------------------------
# Minimal required settings kwargs for Settings(**BASE_SETTINGS_KWARGS)
# ---------------------------------------------------------------------------

BASE_SETTINGS_KWARGS: Dict[str, str] = {
    "llm_provider": "bedrock",
    "bedrock_region": "eu-west-2",
    "bedrock_llm_model_id": "anthropic.claude-3-haiku-20240307-v1:0",
    "store_backend": "memory",
    "environment": "development",
}


@pytest.fixture()
def base_settings_kwargs() -> Dict[str, str]:
    """Provide the minimal kwargs needed to instantiate ``Settings``."""
    return {**BASE_SETTINGS_KWARGS}


# ---------------------------------------------------------------------------
# Canned model answers
# ---------------------------------------------------------------------------

SUGGESTIONS_JSON = json.dumps([
    {"type": "question", "content": "Ask about the timeline", "priority": "high"},
    {"type": "action", "content": "Note the budget owner", "priority": "medium"},
])

VISION_JSON = json.dumps({
    "content": "Slide deck with quarterly numbers",
    "elements": ["title", "chart"],
    "context": "Presenting results",
    "suggestions": ["Slow down on the chart"],
    "urgency": "medium",
    "feedback": [{"type": "coaching", "message": "Point at the trend line", "actionable": True}],
})

FEEDBACK_JSON = json.dumps({
    "type": "coaching",
    "priority": "high",
    "title": "Pace yourself",
    "message": "You are rushing through the chart.",
    "actionable": True,
    "suggestions": ["Pause after each number"],
    "topics": ["revenue", "hiring"],
    "sentiment": 0.5,
})


class FakeInferenceBackend:
    """InferenceBackendPort double: every call is an AsyncMock."""

    def __init__(self) -> None:
        self.generate_text = AsyncMock(return_value=SUGGESTIONS_JSON)
        self.generate_multimodal = AsyncMock(return_value=VISION_JSON)
        self.transcribe_audio = AsyncMock(return_value="hello there")


@pytest.fixture()
def backend() -> FakeInferenceBackend:
    return FakeInferenceBackend()


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock(start_ms=1_000_000)


@pytest.fixture()
def store() -> InMemorySessionStoreAdapter:
    return InMemorySessionStoreAdapter()


# ---------------------------------------------------------------------------
# Domain object factories
# ---------------------------------------------------------------------------

def make_pcm(samples: int, amplitude: int = 0) -> bytes:
    """Mono int16 PCM with a constant *amplitude*."""
    return struct.pack(f"<{samples}h", *([amplitude] * samples))


def make_segment(sequence: int, text: str, timestamp_ms: int = 0) -> TranscriptSegment:
    return TranscriptSegment(
        segment_id=f"seg-{sequence}",
        sequence=sequence,
        text=text,
        timestamp_ms=timestamp_ms,
    )


def make_frame(frame_id: str, timestamp_ms: int = 0) -> CaptureFrame:
    return CaptureFrame(
        frame_id=frame_id,
        image=b"\xff\xd8jpeg",
        timestamp_ms=timestamp_ms,
        window_title="Quarterly review",
    )


def make_feedback(
    feedback_id: str,
    priority: FeedbackPriority = FeedbackPriority.MEDIUM,
    timestamp_ms: int = 0,
) -> FeedbackEvent:
    return FeedbackEvent(
        feedback_id=feedback_id,
        timestamp_ms=timestamp_ms,
        priority=priority,
        title=f"Feedback {feedback_id}",
        message="Keep going",
        context=FeedbackContext(session_type=SessionType.MEETING, duration_ms=0),
    )

"""
Constants management.
Centralized configuration for all magic values, model IDs, and defaults.
"""

from enum import Enum
from typing import Final


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LLMProvider(str, Enum):
    """Supported inference providers."""
    OPENAI = "openai"
    BEDROCK = "bedrock"


class StoreBackend(str, Enum):
    """Supported session store backends."""
    MEMORY = "memory"
    JSON = "json"
    DYNAMODB = "dynamodb"


# Model IDs
class ModelIDs:
    """Centralized model identifiers."""
    OPENAI_TEXT: Final[str] = "gpt-4o-mini"
    OPENAI_VISION: Final[str] = "gpt-4o"
    OPENAI_TRANSCRIPTION: Final[str] = "whisper-1"

    BEDROCK_CLAUDE_3_HAIKU: Final[str] = "anthropic.claude-3-haiku-20240307-v1:0"
    BEDROCK_CLAUDE_3_SONNET: Final[str] = "anthropic.claude-3-sonnet-20240229-v1:0"


# Default values
class Defaults:
    """Defaults for the live coaching pipeline. All times in seconds unless noted."""
    AUDIO_CHUNK_SECONDS: Final[float] = 1.0
    AUDIO_SAMPLE_RATE: Final[int] = 16000
    AUDIO_BLOCK_SECONDS: Final[float] = 0.1
    SCREEN_CAPTURE_INTERVAL: Final[float] = 3.0
    VISUAL_ANALYSIS_INTERVAL: Final[float] = 10.0
    MIN_ANALYSIS_GAP: Final[float] = 8.0
    SUGGESTION_WORD_INTERVAL: Final[int] = 50
    SUGGESTION_MAX_TOKENS: Final[int] = 500
    TRANSCRIPT_DEBOUNCE: Final[float] = 2.0
    FEEDBACK_SWEEP_INTERVAL: Final[float] = 5.0
    LOW_PRIORITY_FEEDBACK_TTL: Final[float] = 30.0
    MEETING_INSIGHTS_INTERVAL: Final[float] = 60.0
    FRAME_BUFFER_SIZE: Final[int] = 10
    ANALYSIS_HISTORY_SIZE: Final[int] = 20
    FEEDBACK_HISTORY_SIZE: Final[int] = 50
    FEEDBACK_TAIL_WORDS: Final[int] = 80
    SUGGESTION_CONTEXT_WORDS: Final[int] = 300
    SPEAKING_LEVEL_THRESHOLD: Final[float] = 40.0
    TRANSCRIPT_CONFIDENCE: Final[float] = 0.9
    TRANSCRIPTION_LANGUAGE: Final[str] = "en"
    RECENT_SESSIONS_LIMIT: Final[int] = 10
    REQUEST_TIMEOUT: Final[float] = 60.0
    LOG_LEVEL: Final[str] = "INFO"
    AWS_REGION: Final[str] = "eu-west-2"


# Store collections
class StoreCollections:
    """Record collections written through the session store port."""
    SESSIONS: Final[str] = "sessions"
    SESSION_ANALYTICS: Final[str] = "session_analytics"
    TRANSCRIPTS: Final[str] = "transcripts"
    TRANSCRIPT_SEGMENTS: Final[str] = "transcript_segments"
    SUGGESTIONS: Final[str] = "ai_suggestions"
    FEEDBACK_EVENTS: Final[str] = "feedback_events"


# Logging scopes
class LogScope:
    """Standardized logging scope names."""
    CONFIG = "config_loader"
    API = "api"
    PARSER = "response_parser"
    VALIDATION = "validation"
    ERROR_HANDLER = "error_handler"
    PROVIDER = "provider"
    WORKER = "worker"
    ADAPTER = "adapter"
    ORCHESTRATION = "orchestration"
    CAPTURE = "capture"
    TRANSCRIPT = "transcript"
    SUGGESTIONS = "suggestions"
    VISUAL_ANALYSIS = "visual_analysis"
    FEEDBACK = "feedback"
    ANALYTICS = "analytics"
    PERSISTENCE = "persistence"
    TIMERS = "timers"


# API endpoints and paths
class APIEndpoints:
    """API route definitions."""
    HEALTH = "/health"
    SESSIONS = "/api/v1/sessions"
    SESSION = "/api/v1/sessions/{session_id}"
    STOP = "/api/v1/sessions/{session_id}/stop"
    SCREEN_ANALYSIS = "/api/v1/sessions/{session_id}/screen-analysis"
    AUDIO = "/api/v1/sessions/{session_id}/audio"
    FRAMES = "/api/v1/sessions/{session_id}/frames"
    DISMISS_FEEDBACK = "/api/v1/sessions/{session_id}/feedback/{feedback_id}/dismiss"
    USE_SUGGESTION = "/api/v1/sessions/{session_id}/suggestions/{suggestion_id}/use"
    STATS = "/api/v1/stats"


# Error codes
class ErrorCode(str, Enum):
    """Standardized error codes for consistency."""
    INVALID_CONFIG = "INVALID_CONFIG"
    INVALID_INPUT = "INVALID_INPUT"
    DEVICE_ERROR = "DEVICE_ERROR"
    INFERENCE_FAILED = "INFERENCE_FAILED"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    SESSION_STATE = "SESSION_STATE"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"

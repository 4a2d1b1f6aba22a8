"""
FastAPI control surface for the Live Coaching Orchestrator.

Endpoints:
    GET  /health                                                  Health check
    POST /api/v1/sessions                                         Start a live session
    GET  /api/v1/sessions                                         Recent sessions (history)
    GET  /api/v1/sessions/{session_id}                            Live snapshot
    POST /api/v1/sessions/{session_id}/stop                       Stop and persist
    POST /api/v1/sessions/{session_id}/screen-analysis            Toggle screen analysis
    POST /api/v1/sessions/{session_id}/audio                      Push PCM audio (base64)
    POST /api/v1/sessions/{session_id}/frames                     Push a screen frame (base64)
    POST /api/v1/sessions/{session_id}/feedback/{feedback_id}/dismiss
    POST /api/v1/sessions/{session_id}/suggestions/{suggestion_id}/use
    GET  /api/v1/stats                                            Aggregate stats

The caller identifies itself with the ``X-User-Id`` header.
"""

from typing import Optional

from fastapi import FastAPI, Header, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
import uvicorn

from adapters.push_capture_device import PushAudioDeviceAdapter, PushDisplayDeviceAdapter
from adapters.static_auth_provider import StaticAuthProviderAdapter
from domain.models import FrameGrab, SessionType
from services.session_registry import LiveSession
from shared_utils.config_loader import get_settings
from shared_utils.constants import APIEndpoints, Defaults, LogScope
from shared_utils.di_container import get_di_container
from shared_utils.error_handler import AppException, SessionStateError, ValidationError, handle_error
from shared_utils.logging_utils import ContextualLogger, configure_logging
from shared_utils.validation import InputValidator


# ---------------------------------------------------------------------------
# Application bootstrap
# ---------------------------------------------------------------------------

settings = get_settings()
configure_logging(settings.log_level)
logger = ContextualLogger(scope=LogScope.API)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=settings.app_description,
)

limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

MAX_AUDIO_BYTES = 1_000_000
MAX_FRAME_BYTES = 8_000_000


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class StartSessionRequest(BaseModel):
    session_type: str = SessionType.MEETING.value
    title: Optional[str] = None
    screen_analysis: bool = False
    sample_rate: int = Defaults.AUDIO_SAMPLE_RATE


class ScreenAnalysisRequest(BaseModel):
    enabled: bool


class AudioPushRequest(BaseModel):
    pcm: Optional[str] = None  # base64 mono int16 little-endian
    end: bool = False


class FramePushRequest(BaseModel):
    image: Optional[str] = None  # base64 (data: URL accepted)
    mime_type: str = "image/jpeg"
    window_title: Optional[str] = None
    application: Optional[str] = None
    end: bool = False


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _error_response(exc: Exception, event: str) -> JSONResponse:
    if isinstance(exc, AppException):
        logger.warning(event, error_code=exc.error_code, message=exc.message)
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())
    error_response = handle_error(exc, scope=LogScope.API)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response,
    )


def _user(user_id: Optional[str]) -> str:
    if user_id is None:
        raise ValidationError("X-User-Id header is required")
    return InputValidator.validate_non_empty_string(user_id, "X-User-Id")


def _live(session_id: str, user_id: Optional[str]) -> LiveSession:
    return get_di_container().get_session_registry().get(session_id, _user(user_id))


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.get(APIEndpoints.HEALTH)
def health_check() -> dict:
    """Health check endpoint."""
    logger.debug("health_check_requested")
    return {
        "status": "healthy",
        "environment": settings.environment,
        "llm_provider": settings.llm_provider,
        "store_backend": settings.store_backend,
        "live_sessions": len(get_di_container().get_session_registry()),
    }


# ======================================================================
# Session lifecycle
# ======================================================================

@app.post(APIEndpoints.SESSIONS)
@limiter.limit("30/minute")
async def start_session(
    request: Request,
    body: StartSessionRequest,
    x_user_id: Optional[str] = Header(default=None),
) -> JSONResponse:
    """Start a live session fed by pushed audio (and optionally frames)."""
    try:
        user_id = _user(x_user_id)
        session_type = InputValidator.validate_enum(body.session_type, SessionType, "session_type")
        InputValidator.validate_positive_int(body.sample_rate, "sample_rate")

        container = get_di_container()
        registry = container.get_session_registry()
        registry.ensure_available(user_id)

        audio = PushAudioDeviceAdapter(sample_rate=body.sample_rate)
        display = PushDisplayDeviceAdapter()
        orchestrator = container.create_orchestrator(
            auth=StaticAuthProviderAdapter(user_id),
            audio_device=audio,
            display_device=display,
            session_type=session_type,
            title=InputValidator.sanitize_title(body.title),
        )
        entry = await registry.start(
            LiveSession(user_id=user_id, orchestrator=orchestrator, audio=audio, display=display),
            screen_analysis=body.screen_analysis,
        )
        session = entry.orchestrator.session

        logger.info("session_start_accepted", session_id=session.session_id, user_id=user_id)
        return JSONResponse(status_code=status.HTTP_201_CREATED, content=session.model_dump(mode="json"))

    except Exception as e:
        return _error_response(e, "session_start_error")


@app.post(APIEndpoints.STOP)
async def stop_session(session_id: str, x_user_id: Optional[str] = Header(default=None)) -> JSONResponse:
    """Stop a live session and flush its records."""
    try:
        entry = _live(session_id, x_user_id)
        registry = get_di_container().get_session_registry()
        try:
            session = await entry.orchestrator.stop()
        finally:
            if not entry.orchestrator.is_active:
                if entry.audio is not None:
                    entry.audio.end()
                if entry.display is not None:
                    entry.display.end()
                registry.remove(session_id)
                entry.orchestrator.dispose()
        return JSONResponse(content=session.model_dump(mode="json"))

    except Exception as e:
        return _error_response(e, "session_stop_error")


@app.get(APIEndpoints.SESSION)
async def get_session(session_id: str, x_user_id: Optional[str] = Header(default=None)) -> JSONResponse:
    """Point-in-time snapshot of a live session."""
    try:
        entry = _live(session_id, x_user_id)
        return JSONResponse(content=entry.orchestrator.snapshot().model_dump(mode="json"))
    except Exception as e:
        return _error_response(e, "session_snapshot_error")


@app.post(APIEndpoints.SCREEN_ANALYSIS)
async def toggle_screen_analysis(
    session_id: str,
    body: ScreenAnalysisRequest,
    x_user_id: Optional[str] = Header(default=None),
) -> JSONResponse:
    try:
        entry = _live(session_id, x_user_id)
        enabled = await entry.orchestrator.set_screen_analysis(body.enabled)
        return JSONResponse(content={"session_id": session_id, "screen_analysis_enabled": enabled})
    except Exception as e:
        return _error_response(e, "screen_analysis_toggle_error")


# ======================================================================
# Capture data
# ======================================================================

@app.post(APIEndpoints.AUDIO)
async def push_audio(
    session_id: str,
    body: AudioPushRequest,
    x_user_id: Optional[str] = Header(default=None),
) -> JSONResponse:
    """Push one block of PCM audio, or end the audio stream."""
    try:
        entry = _live(session_id, x_user_id)
        if not entry.orchestrator.is_active:
            raise SessionStateError("Session is not active", context={"session_id": session_id})

        accepted = False
        if body.pcm is not None:
            pcm = InputValidator.decode_base64_payload(body.pcm, "pcm", max_bytes=MAX_AUDIO_BYTES)
            if len(pcm) % 2:
                raise ValidationError("pcm must contain whole int16 samples", context={"size": len(pcm)})
            accepted = entry.audio.push(pcm)
        if body.end:
            entry.audio.end()
        return JSONResponse(content={"accepted": accepted, "ended": body.end})

    except Exception as e:
        return _error_response(e, "audio_push_error")


@app.post(APIEndpoints.FRAMES)
async def push_frame(
    session_id: str,
    body: FramePushRequest,
    x_user_id: Optional[str] = Header(default=None),
) -> JSONResponse:
    """Push the current screen picture, or end the display stream."""
    try:
        entry = _live(session_id, x_user_id)
        if not entry.orchestrator.is_active:
            raise SessionStateError("Session is not active", context={"session_id": session_id})

        accepted = False
        if body.image is not None:
            image = InputValidator.decode_base64_payload(body.image, "image", max_bytes=MAX_FRAME_BYTES)
            entry.display.push(
                FrameGrab(
                    image=image,
                    mime_type=body.mime_type,
                    window_title=body.window_title,
                    application=body.application,
                )
            )
            accepted = True
        if body.end:
            entry.display.end()
        return JSONResponse(content={"accepted": accepted, "ended": body.end})

    except Exception as e:
        return _error_response(e, "frame_push_error")


# ======================================================================
# User actions
# ======================================================================

@app.post(APIEndpoints.DISMISS_FEEDBACK)
async def dismiss_feedback(
    session_id: str,
    feedback_id: str,
    x_user_id: Optional[str] = Header(default=None),
) -> JSONResponse:
    try:
        entry = _live(session_id, x_user_id)
        event = entry.orchestrator.dismiss_feedback(feedback_id)
        if event is None:
            raise ValidationError("Unknown or already dismissed feedback", context={"feedback_id": feedback_id})
        return JSONResponse(content=event.model_dump(mode="json"))
    except Exception as e:
        return _error_response(e, "feedback_dismiss_error")


@app.post(APIEndpoints.USE_SUGGESTION)
async def use_suggestion(
    session_id: str,
    suggestion_id: str,
    x_user_id: Optional[str] = Header(default=None),
) -> JSONResponse:
    try:
        entry = _live(session_id, x_user_id)
        suggestion = entry.orchestrator.mark_suggestion_used(suggestion_id)
        if suggestion is None:
            raise ValidationError("Unknown or already used suggestion", context={"suggestion_id": suggestion_id})
        return JSONResponse(content=suggestion.model_dump(mode="json"))
    except Exception as e:
        return _error_response(e, "suggestion_use_error")


# ======================================================================
# History
# ======================================================================

@app.get(APIEndpoints.SESSIONS)
async def list_sessions(
    limit: int = Defaults.RECENT_SESSIONS_LIMIT,
    x_user_id: Optional[str] = Header(default=None),
) -> JSONResponse:
    """Recent sessions for the caller, newest first."""
    try:
        user_id = _user(x_user_id)
        InputValidator.validate_positive_int(limit, "limit")
        sessions = await get_di_container().get_session_history_service().list_recent_sessions(user_id, limit)
        return JSONResponse(content=[s.model_dump(mode="json") for s in sessions])
    except Exception as e:
        return _error_response(e, "session_list_error")


@app.get(APIEndpoints.STATS)
async def session_stats(x_user_id: Optional[str] = Header(default=None)) -> JSONResponse:
    try:
        user_id = _user(x_user_id)
        stats = await get_di_container().get_session_history_service().get_session_stats(user_id)
        return JSONResponse(content=stats.model_dump(mode="json"))
    except Exception as e:
        return _error_response(e, "session_stats_error")


if __name__ == "__main__":
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="info"
    )

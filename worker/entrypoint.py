"""
Worker entrypoint for a local coaching session.

Runs one session against the machine's default microphone and prints a
summary when it ends. Configured with environment variables:
    USER_ID          - identity the session is recorded under (required)
    SESSION_SECONDS  - how long to run (default 300)
    SESSION_TYPE     - meeting | exam | sales_call | interview | other
    SESSION_TITLE    - optional title

The worker:
    1. Builds an orchestrator from the DI container.
    2. Runs the session for SESSION_SECONDS (Ctrl+C stops early).
    3. Exits 0 on success, 1 on failure.

All logging is JSON (structlog).
"""

from __future__ import annotations

import asyncio
import os
import sys
from typing import Optional

from adapters.sounddevice_audio_device import SoundDeviceMicrophoneAdapter
from adapters.static_auth_provider import StaticAuthProviderAdapter
from domain.models import Session, SessionType
from shared_utils.config_loader import get_settings
from shared_utils.constants import LogScope
from shared_utils.di_container import get_di_container
from shared_utils.error_handler import AppException
from shared_utils.logging_utils import configure_logging, get_scoped_logger
from shared_utils.validation import InputValidator

logger = get_scoped_logger(LogScope.WORKER)

DEFAULT_SESSION_SECONDS = 300


async def run_session(
    user_id: str,
    session_type: SessionType,
    seconds: float,
    title: Optional[str] = None,
) -> Session:
    """Run one microphone session for *seconds* and return the stopped session."""
    settings = get_settings()
    orchestrator = get_di_container().create_orchestrator(
        auth=StaticAuthProviderAdapter(user_id),
        audio_device=SoundDeviceMicrophoneAdapter(sample_rate=settings.audio_sample_rate),
        session_type=session_type,
        title=title,
    )
    await orchestrator.start()
    try:
        await asyncio.sleep(seconds)
    finally:
        if orchestrator.is_active:
            session = await orchestrator.stop()
        else:
            session = orchestrator.session
        snapshot = orchestrator.snapshot()
        orchestrator.dispose()

    print(f"Session {session.session_id} ({session.session_type.value})")
    print(f"  duration:    {session.duration_ms / 1000:.1f}s")
    print(f"  words:       {snapshot.word_count}")
    print(f"  suggestions: {snapshot.analytics.total_suggestions}")
    print(f"  talk ratio:  {snapshot.analytics.talk_to_listen_ratio:.2f}")
    return session


def main() -> int:
    """Worker main: parse env vars, run the session."""
    configure_logging(get_settings().log_level)

    user_id = os.environ.get("USER_ID", "")
    if not user_id:
        logger.error("worker_missing_env", variable="USER_ID")
        print("ERROR: USER_ID env var is required", file=sys.stderr)
        return 1

    try:
        session_type = InputValidator.validate_enum(
            os.environ.get("SESSION_TYPE", SessionType.MEETING.value), SessionType, "SESSION_TYPE"
        )
        seconds = float(os.environ.get("SESSION_SECONDS", DEFAULT_SESSION_SECONDS))
        if seconds <= 0:
            raise ValueError(f"SESSION_SECONDS must be > 0, got {seconds}")
    except (AppException, ValueError) as exc:
        logger.error("worker_invalid_env", error=str(exc))
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    logger.info("worker_started", user_id=user_id, session_type=session_type.value, seconds=seconds)

    try:
        session = asyncio.run(run_session(user_id, session_type, seconds, os.environ.get("SESSION_TITLE")))
        logger.info("worker_completed", session_id=session.session_id, duration_ms=session.duration_ms)
        return 0

    except KeyboardInterrupt:
        logger.info("worker_interrupted")
        return 0

    except Exception as exc:
        logger.error(
            "worker_failed",
            user_id=user_id,
            error=str(exc),
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())

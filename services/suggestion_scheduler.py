"""
Word-count driven coaching suggestions.

A request is issued whenever the transcript crosses a multiple of
``word_interval`` words. Requests are single-flight: a trigger that arrives
while one is outstanding is dropped, and the next crossing tries again.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Callable, List, Optional

from core_intelligence.engine.prompts import build_suggestion_prompt
from core_intelligence.parser.response_parser import (
    as_object_list,
    coerce_enum,
    coerce_str,
    parse_inference_response,
)
from domain.models import ParsedResponse, Priority, SessionType, Suggestion, SuggestionCategory
from ports.inference_backend import InferenceBackendPort
from shared_utils.clock import Clock
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import InferenceError
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.SUGGESTIONS)


def suggestions_from_response(text: str, context: str, now_ms: int) -> List[Suggestion]:
    """Build suggestions from a model answer.

    A JSON list (or ``{"suggestions": [...]}``) yields one suggestion per item
    with content; anything else becomes a single ``note`` wrapping the text.
    """
    result = parse_inference_response(text)
    if isinstance(result, ParsedResponse):
        suggestions = []
        for item in as_object_list(result.data, "suggestions"):
            content = coerce_str(item.get("content"))
            if not content:
                continue
            suggestions.append(
                Suggestion(
                    suggestion_id=str(uuid.uuid4()),
                    category=coerce_enum(item.get("type") or item.get("category"), SuggestionCategory, SuggestionCategory.NOTE),
                    content=content,
                    context=context,
                    priority=coerce_enum(item.get("priority"), Priority, Priority.MEDIUM),
                    timestamp_ms=now_ms,
                )
            )
        if suggestions:
            return suggestions

    raw = text.strip()
    if not raw:
        return []
    return [
        Suggestion(
            suggestion_id=str(uuid.uuid4()),
            category=SuggestionCategory.NOTE,
            content=raw,
            context=context,
            priority=Priority.MEDIUM,
            timestamp_ms=now_ms,
        )
    ]


class SuggestionScheduler:
    """Triggers and collects suggestions for one session."""

    def __init__(
        self,
        *,
        backend: InferenceBackendPort,
        clock: Clock,
        session_type: SessionType,
        is_active: Callable[[], bool],
        on_suggestions: Optional[Callable[[List[Suggestion]], None]] = None,
        word_interval: int = Defaults.SUGGESTION_WORD_INTERVAL,
        max_tokens: int = Defaults.SUGGESTION_MAX_TOKENS,
        context_words: int = Defaults.SUGGESTION_CONTEXT_WORDS,
    ) -> None:
        if word_interval < 1:
            raise ValueError(f"word_interval must be >= 1, got {word_interval}")
        self._backend = backend
        self._clock = clock
        self._session_type = session_type
        self._is_active = is_active
        self._on_suggestions = on_suggestions
        self._word_interval = word_interval
        self._max_tokens = max_tokens
        self._context_words = context_words

        self._suggestions: List[Suggestion] = []
        self._last_bucket = 0
        self._in_flight: Optional[asyncio.Task] = None
        self.requests_issued = 0
        self.requests_dropped = 0

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    @property
    def suggestions(self) -> List[Suggestion]:
        return list(self._suggestions)

    # ------------------------------------------------------------------
    # Triggering
    # ------------------------------------------------------------------

    def should_trigger(self, word_count: int) -> bool:
        """True when *word_count* is in a higher 50-word bucket than the last trigger."""
        return word_count // self._word_interval > self._last_bucket

    def on_transcript(self, transcript: str, word_count: int) -> Optional[asyncio.Task]:
        """Feed the latest transcript. Returns the request task if one was issued."""
        if not self.should_trigger(word_count):
            return None
        # The bucket advances even if the request is dropped below
        self._last_bucket = word_count // self._word_interval

        if self.in_flight:
            self.requests_dropped += 1
            logger.info("suggestion_request_dropped", word_count=word_count, reason="in_flight")
            return None

        context = " ".join(transcript.split()[-self._context_words:])
        self.requests_issued += 1
        self._in_flight = asyncio.create_task(self._request(context), name="suggestions")
        logger.info("suggestion_request_issued", word_count=word_count, request=self.requests_issued)
        return self._in_flight

    async def _request(self, context: str) -> None:
        prompt = build_suggestion_prompt(context, self._session_type)
        try:
            text = await self._backend.generate_text(prompt, max_tokens=self._max_tokens)
        except InferenceError as exc:
            logger.warning("suggestion_request_failed", error=exc.message)
            return

        if not self._is_active():
            logger.info("suggestion_result_discarded", reason="session_inactive")
            return

        new = suggestions_from_response(text, context, self._clock.now_ms())
        if not new:
            return
        self._suggestions.extend(new)
        logger.info("suggestions_added", count=len(new), total=len(self._suggestions))
        if self._on_suggestions is not None:
            self._on_suggestions(new)

    # ------------------------------------------------------------------
    # Queries and mutations
    # ------------------------------------------------------------------

    def recent(self, limit: Optional[int] = None) -> List[Suggestion]:
        """Newest first."""
        ordered = list(reversed(self._suggestions))
        return ordered if limit is None else ordered[:limit]

    def mark_used(self, suggestion_id: str) -> Optional[Suggestion]:
        """Flip ``is_used``. Returns the updated suggestion, or None if unknown or already used."""
        for index, suggestion in enumerate(self._suggestions):
            if suggestion.suggestion_id != suggestion_id:
                continue
            if suggestion.is_used:
                return None
            updated = suggestion.model_copy(update={"is_used": True})
            self._suggestions[index] = updated
            return updated
        return None

    def find(self, suggestion_id: str) -> Optional[Suggestion]:
        return next((s for s in self._suggestions if s.suggestion_id == suggestion_id), None)

    def clear(self) -> None:
        self._suggestions.clear()

    async def wait_idle(self) -> None:
        """Await the outstanding request, if any."""
        if self.in_flight:
            await asyncio.wait({self._in_flight})

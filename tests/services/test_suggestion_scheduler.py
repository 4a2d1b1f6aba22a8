"""
Tests for services.suggestion_scheduler.
"""

import asyncio
from unittest.mock import AsyncMock

from conftest import SUGGESTIONS_JSON
from domain.models import Priority, SessionType, SuggestionCategory
from services.suggestion_scheduler import SuggestionScheduler, suggestions_from_response
from shared_utils.error_handler import InferenceError


def _words(count: int) -> str:
    return " ".join(f"w{i}" for i in range(count))


def _scheduler(backend, clock, active=None, received=None, **kwargs) -> SuggestionScheduler:
    state = active if active is not None else {"active": True}
    return SuggestionScheduler(
        backend=backend,
        clock=clock,
        session_type=SessionType.MEETING,
        is_active=lambda: state["active"],
        on_suggestions=(received.append if received is not None else None),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Response mapping
# ---------------------------------------------------------------------------


class TestSuggestionsFromResponse:
    def test_json_list(self) -> None:
        suggestions = suggestions_from_response(SUGGESTIONS_JSON, "ctx", 42)
        assert [s.category for s in suggestions] == [SuggestionCategory.QUESTION, SuggestionCategory.ACTION]
        assert suggestions[0].priority == Priority.HIGH
        assert all(s.context == "ctx" and s.timestamp_ms == 42 for s in suggestions)
        assert not any(s.is_used for s in suggestions)

    def test_wrapped_object(self) -> None:
        suggestions = suggestions_from_response('{"suggestions": [{"content": "Recap"}]}', "ctx", 0)
        assert suggestions[0].category == SuggestionCategory.NOTE
        assert suggestions[0].priority == Priority.MEDIUM

    def test_prose_becomes_single_note(self) -> None:
        suggestions = suggestions_from_response("Consider summarising the decision.", "ctx", 0)
        assert len(suggestions) == 1
        assert suggestions[0].category == SuggestionCategory.NOTE
        assert suggestions[0].priority == Priority.MEDIUM
        assert suggestions[0].content == "Consider summarising the decision."

    def test_items_without_content_fall_back(self) -> None:
        suggestions = suggestions_from_response('[{"type": "question"}]', "ctx", 0)
        assert len(suggestions) == 1
        assert suggestions[0].category == SuggestionCategory.NOTE


# ---------------------------------------------------------------------------
# Triggering
# ---------------------------------------------------------------------------


class TestTriggering:
    async def test_three_requests_from_zero_to_150_words(self, backend, clock) -> None:
        scheduler = _scheduler(backend, clock)
        for count in range(0, 151, 10):
            task = scheduler.on_transcript(_words(count), count)
            if task is not None:
                await task
        assert backend.generate_text.await_count == 3
        assert scheduler.requests_issued == 3

    async def test_no_trigger_below_interval(self, backend, clock) -> None:
        scheduler = _scheduler(backend, clock)
        assert scheduler.on_transcript(_words(49), 49) is None
        backend.generate_text.assert_not_awaited()

    async def test_context_is_last_300_words(self, backend, clock) -> None:
        scheduler = _scheduler(backend, clock)
        await scheduler.on_transcript(_words(400), 400)
        prompt = backend.generate_text.call_args[0][0]
        assert "Context: w100 w101" in prompt
        assert backend.generate_text.call_args[1]["max_tokens"] == 500

    async def test_single_flight_drops_and_advances_bucket(self, backend, clock) -> None:
        release = asyncio.Event()

        async def slow(prompt, max_tokens=None):
            await release.wait()
            return SUGGESTIONS_JSON

        backend.generate_text = AsyncMock(side_effect=slow)
        scheduler = _scheduler(backend, clock)

        first = scheduler.on_transcript(_words(50), 50)
        await asyncio.sleep(0)
        assert scheduler.in_flight
        assert scheduler.on_transcript(_words(100), 100) is None
        assert scheduler.requests_dropped == 1

        release.set()
        await first
        # Bucket 2 was consumed by the dropped trigger
        assert scheduler.on_transcript(_words(110), 110) is None
        assert backend.generate_text.await_count == 1


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class TestResults:
    async def test_results_appended_and_reported(self, backend, clock) -> None:
        received = []
        scheduler = _scheduler(backend, clock, received=received)
        await scheduler.on_transcript(_words(50), 50)
        assert len(scheduler.suggestions) == 2
        assert len(received) == 1 and len(received[0]) == 2
        assert scheduler.suggestions[0].timestamp_ms == clock.now_ms()

    async def test_failure_leaves_set_unchanged(self, backend, clock) -> None:
        backend.generate_text = AsyncMock(side_effect=InferenceError("text_generation", "503"))
        received = []
        scheduler = _scheduler(backend, clock, received=received)
        await scheduler.on_transcript(_words(50), 50)
        assert scheduler.suggestions == []
        assert received == []
        assert not scheduler.in_flight

    async def test_result_after_stop_discarded(self, backend, clock) -> None:
        release = asyncio.Event()

        async def slow(prompt, max_tokens=None):
            await release.wait()
            return SUGGESTIONS_JSON

        backend.generate_text = AsyncMock(side_effect=slow)
        state = {"active": True}
        scheduler = _scheduler(backend, clock, active=state)
        task = scheduler.on_transcript(_words(50), 50)
        await asyncio.sleep(0)
        state["active"] = False
        release.set()
        await task
        assert scheduler.suggestions == []


class TestMutations:
    async def test_recent_newest_first_and_mark_used(self, backend, clock) -> None:
        scheduler = _scheduler(backend, clock)
        await scheduler.on_transcript(_words(50), 50)
        recent = scheduler.recent()
        assert recent[0].content == "Note the budget owner"
        assert len(scheduler.recent(limit=1)) == 1

        target = recent[1].suggestion_id
        updated = scheduler.mark_used(target)
        assert updated.is_used
        assert scheduler.find(target).is_used
        assert scheduler.mark_used(target) is None
        assert scheduler.mark_used("unknown") is None

    async def test_clear(self, backend, clock) -> None:
        scheduler = _scheduler(backend, clock)
        await scheduler.on_transcript(_words(50), 50)
        scheduler.clear()
        assert scheduler.suggestions == []

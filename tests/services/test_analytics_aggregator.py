"""
Tests for services.analytics_aggregator.
"""

from conftest import make_feedback
from domain.models import AudioChunk, FeedbackKind, Session, SessionAnalytics
from services.analytics_aggregator import SessionAnalyticsAggregator, compute_session_stats, safe_ratio


def _chunk(level: float, duration_ms: int = 1000) -> AudioChunk:
    return AudioChunk(audio=b"", timestamp_ms=0, duration_ms=duration_ms, level=level, sample_rate=16000)


def _session(session_id: str, duration_ms: int) -> Session:
    return Session(
        session_id=session_id,
        user_id="u1",
        title="t",
        start_time_ms=0,
        duration_ms=duration_ms,
        created_at_ms=0,
        updated_at_ms=0,
    )


class TestSafeRatio:
    def test_zero_denominator(self) -> None:
        assert safe_ratio(5, 0) == 0.0
        assert safe_ratio(0, 0) == 0.0

    def test_plain(self) -> None:
        assert safe_ratio(1, 4) == 0.25


class TestComputeSessionStats:
    def test_no_sessions(self) -> None:
        stats = compute_session_stats([], [])
        assert stats.total_sessions == 0
        assert stats.avg_suggestions == 0.0
        assert stats.success_pct == 0

    def test_aggregates(self) -> None:
        sessions = [_session("s1", 60_000), _session("s2", 30_000)]
        analytics = [
            SessionAnalytics(session_id="s1", total_suggestions=6, suggestions_used=3),
            SessionAnalytics(session_id="s2", total_suggestions=3, suggestions_used=0),
        ]
        stats = compute_session_stats(sessions, analytics)
        assert stats.total_sessions == 2
        assert stats.total_duration_ms == 90_000
        assert stats.avg_suggestions == 4.5
        assert stats.success_pct == 33

    def test_stats_percent_and_session_fraction_use_distinct_units(self) -> None:
        analytics = SessionAnalytics(session_id="s1", total_suggestions=4, suggestions_used=2, success_rate=0.5)
        stats = compute_session_stats([_session("s1", 10_000)], [analytics])
        assert stats.success_pct == 50
        assert analytics.success_rate == 0.5
        assert "success_rate" not in stats.model_dump()


class TestSessionAnalyticsAggregator:
    def test_audio_split_on_threshold(self) -> None:
        aggregator = SessionAnalyticsAggregator("s1")
        aggregator.record_audio(_chunk(40.0))
        aggregator.record_audio(_chunk(39.9))
        aggregator.record_audio(_chunk(80.0))
        snapshot = aggregator.snapshot()
        assert snapshot.speaking_time_ms == 2000
        assert snapshot.listening_time_ms == 1000
        assert snapshot.talk_to_listen_ratio == round(2 / 3, 4)

    def test_empty_snapshot_has_no_division_errors(self) -> None:
        snapshot = SessionAnalyticsAggregator("s1").snapshot()
        assert snapshot.talk_to_listen_ratio == 0.0
        assert snapshot.success_rate == 0.0
        assert snapshot.sentiment_score == 0.0

    def test_suggestion_counts_and_success_rate(self) -> None:
        changes = []
        aggregator = SessionAnalyticsAggregator("s1", on_change=changes.append)
        aggregator.record_suggestions(4)
        aggregator.record_suggestions(0)
        aggregator.record_suggestion_used()
        assert len(changes) == 2
        assert changes[-1].total_suggestions == 4
        assert changes[-1].success_rate == 0.25

    def test_audio_does_not_notify(self) -> None:
        changes = []
        aggregator = SessionAnalyticsAggregator("s1", on_change=changes.append)
        aggregator.record_audio(_chunk(90.0))
        assert changes == []

    def test_action_feedback_becomes_action_item(self) -> None:
        aggregator = SessionAnalyticsAggregator("s1")
        action = make_feedback("e1").model_copy(update={"kind": FeedbackKind.ACTION, "title": "Send the deck"})
        aggregator.record_feedback(action)
        aggregator.record_feedback(make_feedback("e2"))
        aggregator.record_feedback(action)
        assert aggregator.snapshot().action_items == ["Send the deck"]

    def test_signals(self) -> None:
        aggregator = SessionAnalyticsAggregator("s1")
        aggregator.record_signals(0.5, ["Pricing", "hiring"])
        aggregator.record_signals(-0.1, ["pricing"])
        aggregator.record_signals(None, [])
        snapshot = aggregator.snapshot()
        assert snapshot.sentiment_score == 0.2
        assert snapshot.key_topics == ["hiring", "pricing"]

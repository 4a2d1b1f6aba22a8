"""
Running session analytics and cross-session statistics.
"""

from __future__ import annotations

from typing import Callable, Iterable, List, Optional

from domain.models import AudioChunk, FeedbackEvent, FeedbackKind, Session, SessionAnalytics, SessionStats
from shared_utils.constants import Defaults, LogScope
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.ANALYTICS)

_MAX_TOPICS = 10
_MAX_ACTION_ITEMS = 20


def safe_ratio(numerator: float, denominator: float) -> float:
    """numerator / denominator, or 0.0 when the denominator is not positive."""
    if denominator <= 0:
        return 0.0
    return numerator / denominator


def _merge_recent(existing: List[str], new: Iterable[str], limit: int) -> List[str]:
    """Case-insensitive dedupe keeping the most recent *limit* entries."""
    merged = list(existing)
    for item in new:
        item = item.strip()
        if not item:
            continue
        merged = [m for m in merged if m.lower() != item.lower()]
        merged.append(item)
    return merged[-limit:]


def compute_session_stats(sessions: List[Session], analytics: List[SessionAnalytics]) -> SessionStats:
    """Aggregate stats for a user's sessions and their analytics records."""
    total_suggestions = sum(a.total_suggestions for a in analytics)
    used = sum(a.suggestions_used for a in analytics)
    return SessionStats(
        total_sessions=len(sessions),
        total_duration_ms=sum(s.duration_ms or 0 for s in sessions),
        avg_suggestions=round(safe_ratio(total_suggestions, len(analytics)), 1),
        success_pct=round(safe_ratio(used, total_suggestions) * 100),
    )


class SessionAnalyticsAggregator:
    """Accumulates analytics for one live session.

    ``on_change`` fires on material changes only (suggestions, usage,
    feedback signals). Audio accounting rides along with the next one.
    """

    def __init__(
        self,
        session_id: str,
        speaking_threshold: float = Defaults.SPEAKING_LEVEL_THRESHOLD,
        on_change: Optional[Callable[[SessionAnalytics], None]] = None,
    ) -> None:
        self.session_id = session_id
        self._speaking_threshold = speaking_threshold
        self._on_change = on_change

        self._speaking_ms = 0
        self._listening_ms = 0
        self._sentiment_total = 0.0
        self._sentiment_samples = 0
        self._key_topics: List[str] = []
        self._action_items: List[str] = []
        self._total_suggestions = 0
        self._suggestions_used = 0

    @property
    def speaking_ms(self) -> int:
        return self._speaking_ms

    @property
    def listening_ms(self) -> int:
        return self._listening_ms

    @property
    def key_topics(self) -> List[str]:
        return list(self._key_topics)

    def snapshot(self) -> SessionAnalytics:
        return SessionAnalytics(
            session_id=self.session_id,
            talk_to_listen_ratio=round(safe_ratio(self._speaking_ms, self._speaking_ms + self._listening_ms), 4),
            speaking_time_ms=self._speaking_ms,
            listening_time_ms=self._listening_ms,
            sentiment_score=round(safe_ratio(self._sentiment_total, self._sentiment_samples), 4),
            key_topics=list(self._key_topics),
            action_items=list(self._action_items),
            suggestions_used=self._suggestions_used,
            total_suggestions=self._total_suggestions,
            success_rate=round(safe_ratio(self._suggestions_used, self._total_suggestions), 4),
        )

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def record_audio(self, chunk: AudioChunk) -> None:
        """Attribute the chunk to speaking or listening time by its level."""
        if chunk.level >= self._speaking_threshold:
            self._speaking_ms += chunk.duration_ms
        else:
            self._listening_ms += chunk.duration_ms

    def record_suggestions(self, count: int) -> None:
        if count <= 0:
            return
        self._total_suggestions += count
        self._changed("suggestions_recorded")

    def record_suggestion_used(self) -> None:
        self._suggestions_used += 1
        self._changed("suggestion_used")

    def record_feedback(self, event: FeedbackEvent) -> None:
        """Action feedback titles become action items."""
        if event.kind != FeedbackKind.ACTION:
            return
        self._action_items = _merge_recent(self._action_items, [event.title], _MAX_ACTION_ITEMS)
        self._changed("action_item_recorded")

    def record_signals(self, sentiment: Optional[float], topics: List[str]) -> None:
        """Sentiment (running mean) and topics reported by feedback synthesis."""
        changed = False
        if sentiment is not None:
            self._sentiment_total += sentiment
            self._sentiment_samples += 1
            changed = True
        if topics:
            self._key_topics = _merge_recent(self._key_topics, topics, _MAX_TOPICS)
            changed = True
        if changed:
            self._changed("signals_recorded")

    def _changed(self, reason: str) -> None:
        analytics = self.snapshot()
        logger.debug(
            "analytics_changed",
            session_id=self.session_id,
            reason=reason,
            total_suggestions=analytics.total_suggestions,
            suggestions_used=analytics.suggestions_used,
        )
        if self._on_change is not None:
            self._on_change(analytics)

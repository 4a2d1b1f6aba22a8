"""
Submission-order transcript reassembly.

Audio chunks are transcribed concurrently, so results come back in any order.
Each chunk reserves a sequence number when it is submitted; results are
buffered and applied strictly in that order. A failed transcription releases
its slot with ``skip()`` so later chunks are not held back forever.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

from domain.models import TranscriptSegment, TranscriptUpdate
from shared_utils.constants import LogScope
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.TRANSCRIPT)

# Placeholder for a released (failed) slot
_SKIPPED = None


class TranscriptAggregator:

    def __init__(self, on_change: Optional[Callable[[TranscriptUpdate], None]] = None) -> None:
        self._on_change = on_change
        self._next_sequence = 1
        self._next_to_apply = 1
        self._pending: Dict[int, Optional[TranscriptSegment]] = {}
        self._segments: List[TranscriptSegment] = []
        self._transcript = ""
        self._word_count = 0

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def transcript(self) -> str:
        return self._transcript

    @property
    def word_count(self) -> int:
        return self._word_count

    @property
    def segments(self) -> List[TranscriptSegment]:
        return list(self._segments)

    @property
    def pending_count(self) -> int:
        """Results received but waiting for a lower sequence number."""
        return len(self._pending)

    def tail(self, words: int) -> str:
        """The last *words* words of the transcript."""
        if words <= 0:
            return ""
        return " ".join(self._transcript.split()[-words:])

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def next_sequence(self) -> int:
        """Reserve the next sequence number (1, 2, 3...)."""
        sequence = self._next_sequence
        self._next_sequence += 1
        return sequence

    def append(self, sequence: int, segment: TranscriptSegment) -> None:
        self._accept(sequence, segment)

    def skip(self, sequence: int) -> None:
        self._accept(sequence, _SKIPPED)

    def _accept(self, sequence: int, segment: Optional[TranscriptSegment]) -> None:
        if sequence < self._next_to_apply or sequence in self._pending:
            logger.debug("transcript_result_ignored", sequence=sequence, reason="stale_or_duplicate")
            return
        if sequence >= self._next_sequence:
            logger.warning("transcript_result_ignored", sequence=sequence, reason="not_reserved")
            return
        self._pending[sequence] = segment
        self._drain()

    def _drain(self) -> None:
        applied: List[TranscriptSegment] = []
        while self._next_to_apply in self._pending:
            segment = self._pending.pop(self._next_to_apply)
            self._next_to_apply += 1
            if segment is _SKIPPED or not segment.text.strip():
                continue
            self._segments.append(segment)
            self._transcript = f"{self._transcript} {segment.text.strip()}".strip()
            applied.append(segment)

        if not applied:
            return

        self._word_count = len(self._transcript.split())
        logger.debug(
            "transcript_advanced",
            applied=len(applied),
            word_count=self._word_count,
            pending=len(self._pending),
        )
        if self._on_change is not None:
            self._on_change(
                TranscriptUpdate(
                    transcript=self._transcript,
                    word_count=self._word_count,
                    new_segments=applied,
                )
            )

"""
Port interface for the inference backend.

Concrete providers live in core_intelligence/providers/. Services depend on
this contract only: every call is async, has latency, and raises
InferenceError on any failure (transport, non-2xx, empty answer).
"""

from __future__ import annotations

from typing import List, Optional, Protocol, runtime_checkable

from domain.models import ChatTurn


@runtime_checkable
class InferenceBackendPort(Protocol):
    """Abstract interface for text, vision and speech inference."""

    async def generate_text(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        """Generate text from a single prompt.

        Args:
            prompt: Full prompt text.
            max_tokens: Optional completion budget.

        Returns:
            Generated text.

        Raises:
            InferenceError: If the backend call fails.
        """
        ...

    async def generate_multimodal(self, messages: List[ChatTurn]) -> str:
        """Generate text from chat turns mixing text and images.

        Raises:
            InferenceError: If the backend call fails.
        """
        ...

    async def transcribe_audio(self, audio: bytes, language: str = "en") -> str:
        """Transcribe a WAV-encoded audio chunk.

        Raises:
            InferenceError: If the backend call fails.
        """
        ...

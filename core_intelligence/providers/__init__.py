"""
Abstract base classes for swappable providers.
Enables dependency injection and flexible component swapping.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
import logging

from domain.models import ChatTurn


class BaseProvider(ABC):
    """Base class for all providers."""

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    @abstractmethod
    def initialize(self) -> None:
        """Initialize provider. Called after instantiation."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if provider is available and credentials are valid."""
        pass


class InferenceProviderBase(BaseProvider):
    """Abstract base for inference providers (text, vision, speech).

    Subclasses satisfy ``ports.inference_backend.InferenceBackendPort``.
    """

    @abstractmethod
    async def generate_text(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        """Generate text from a prompt."""
        pass

    @abstractmethod
    async def generate_multimodal(self, messages: List[ChatTurn]) -> str:
        """Generate text from turns mixing text and images."""
        pass

    @abstractmethod
    async def transcribe_audio(self, audio: bytes, language: str = "en") -> str:
        """Transcribe a WAV-encoded chunk."""
        pass

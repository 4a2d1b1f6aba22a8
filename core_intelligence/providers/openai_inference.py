"""
OpenAI inference provider implementation.

Text and vision go through llama-index OpenAI LLMs; speech goes through the
OpenAI audio transcription endpoint.
"""

from typing import List, Optional

from llama_index.core.llms import ChatMessage, ImageBlock, TextBlock
from llama_index.llms.openai import OpenAI
from openai import AsyncOpenAI

from core_intelligence.providers import InferenceProviderBase
from domain.models import ChatTurn
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import InferenceError


def to_chat_messages(messages: List[ChatTurn]) -> List[ChatMessage]:
    """Convert domain chat turns into llama-index messages with content blocks."""
    converted = []
    for turn in messages:
        blocks = []
        for part in turn.parts:
            if part.type == "text" and part.text:
                blocks.append(TextBlock(text=part.text))
            elif part.type == "image" and part.image:
                blocks.append(ImageBlock(image=part.image, image_mimetype=part.mime_type))
        converted.append(ChatMessage(role=turn.role, blocks=blocks))
    return converted


class WhisperTranscriber:
    """Speech-to-text over the OpenAI audio transcription endpoint."""

    def __init__(self, model_id: str, api_key: str, timeout: float = Defaults.REQUEST_TIMEOUT):
        self.model_id = model_id
        self._client = AsyncOpenAI(api_key=api_key, timeout=timeout)

    async def transcribe(self, audio: bytes, language: str = Defaults.TRANSCRIPTION_LANGUAGE) -> str:
        try:
            result = await self._client.audio.transcriptions.create(
                model=self.model_id,
                file=("chunk.wav", audio, "audio/wav"),
                language=language,
            )
        except Exception as e:
            raise InferenceError("transcription", str(e), context={"model_id": self.model_id})
        return (result.text or "").strip()


class OpenAIInferenceProvider(InferenceProviderBase):
    """OpenAI text, vision and transcription provider."""

    def __init__(
        self,
        api_key: str,
        text_model_id: str,
        vision_model_id: str,
        transcription_model_id: str,
        timeout: float = Defaults.REQUEST_TIMEOUT,
    ):
        super().__init__(name=f"OpenAIInference({text_model_id})")
        self.api_key = api_key
        self.text_model_id = text_model_id
        self.vision_model_id = vision_model_id
        self.transcription_model_id = transcription_model_id
        self.timeout = timeout
        self._text_llm = None
        self._vision_llm = None
        self._transcriber = None

    def initialize(self) -> None:
        """Initialize OpenAI clients."""
        try:
            self._text_llm = OpenAI(model=self.text_model_id, api_key=self.api_key, timeout=self.timeout)
            self._vision_llm = OpenAI(model=self.vision_model_id, api_key=self.api_key, timeout=self.timeout)
            self._transcriber = WhisperTranscriber(self.transcription_model_id, self.api_key, self.timeout)
            self.logger.info(
                "Initialized OpenAI inference provider",
                extra={
                    "scope": LogScope.PROVIDER,
                    "text_model_id": self.text_model_id,
                    "vision_model_id": self.vision_model_id,
                }
            )
        except Exception as e:
            self.logger.error(
                "Failed to initialize OpenAI inference provider",
                extra={"scope": LogScope.PROVIDER, "error": str(e)}
            )
            raise

    def is_available(self) -> bool:
        """Check if the OpenAI clients are ready."""
        return self._text_llm is not None and self._vision_llm is not None

    def _require_ready(self, operation: str) -> None:
        if not self.is_available():
            raise InferenceError(operation, "OpenAI inference provider not initialized")

    async def generate_text(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        """Complete a prompt with the text model."""
        self._require_ready("text_generation")
        kwargs = {"max_tokens": max_tokens} if max_tokens else {}
        try:
            response = await self._text_llm.acomplete(prompt, **kwargs)
        except Exception as e:
            self.logger.error(
                "Text generation failed",
                extra={"scope": LogScope.PROVIDER, "error": str(e)}
            )
            raise InferenceError("text_generation", str(e), context={"model_id": self.text_model_id})
        text = (response.text or "").strip()
        if not text:
            raise InferenceError("text_generation", "empty response", context={"model_id": self.text_model_id})
        return text

    async def generate_multimodal(self, messages: List[ChatTurn]) -> str:
        """Chat with the vision model using text and image blocks."""
        self._require_ready("multimodal_generation")
        try:
            response = await self._vision_llm.achat(to_chat_messages(messages))
        except Exception as e:
            self.logger.error(
                "Multimodal generation failed",
                extra={"scope": LogScope.PROVIDER, "error": str(e)}
            )
            raise InferenceError("multimodal_generation", str(e), context={"model_id": self.vision_model_id})
        text = (response.message.content or "").strip()
        if not text:
            raise InferenceError("multimodal_generation", "empty response", context={"model_id": self.vision_model_id})
        return text

    async def transcribe_audio(self, audio: bytes, language: str = Defaults.TRANSCRIPTION_LANGUAGE) -> str:
        if self._transcriber is None:
            raise InferenceError("transcription", "OpenAI inference provider not initialized")
        return await self._transcriber.transcribe(audio, language)

"""
Bedrock inference provider implementation.

Uses the bedrock-runtime Converse API for text and images. boto3 is blocking,
so every call runs in a worker thread. Bedrock has no speech-to-text model;
transcription is delegated to an optional transcriber.
"""

import asyncio
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config

from core_intelligence.providers import InferenceProviderBase
from core_intelligence.providers.openai_inference import WhisperTranscriber
from domain.models import ChatTurn
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import InferenceError


_IMAGE_FORMATS = {
    "image/png": "png",
    "image/jpeg": "jpeg",
    "image/jpg": "jpeg",
    "image/gif": "gif",
    "image/webp": "webp",
}


def to_converse_messages(messages: List[ChatTurn]) -> List[Dict[str, Any]]:
    """Convert domain chat turns into Converse API messages.

    Converse takes system prompts separately; system turns are folded into
    the first user turn here.
    """
    converted: List[Dict[str, Any]] = []
    system_text: List[str] = []
    for turn in messages:
        content: List[Dict[str, Any]] = []
        for part in turn.parts:
            if part.type == "text" and part.text:
                content.append({"text": part.text})
            elif part.type == "image" and part.image:
                fmt = _IMAGE_FORMATS.get(part.mime_type.lower(), "jpeg")
                content.append({"image": {"format": fmt, "source": {"bytes": part.image}}})
        if turn.role == "system":
            system_text.extend(c["text"] for c in content if "text" in c)
            continue
        converted.append({"role": turn.role, "content": content})

    if system_text and converted and converted[0]["role"] == "user":
        converted[0]["content"].insert(0, {"text": "\n".join(system_text)})
    return converted


def _response_text(response: Dict[str, Any]) -> str:
    content = response.get("output", {}).get("message", {}).get("content", [])
    return "".join(block.get("text", "") for block in content).strip()


class BedrockInferenceProvider(InferenceProviderBase):
    """AWS Bedrock inference provider."""

    def __init__(
        self,
        llm_model_id: str,
        vision_model_id: str,
        region: str,
        transcriber: Optional[WhisperTranscriber] = None,
        timeout: float = Defaults.REQUEST_TIMEOUT,
        max_tokens: int = Defaults.SUGGESTION_MAX_TOKENS,
    ):
        super().__init__(name=f"BedrockInference({llm_model_id})")
        self.llm_model_id = llm_model_id
        self.vision_model_id = vision_model_id
        self.region = region
        self.timeout = timeout
        self.max_tokens = max_tokens
        self._transcriber = transcriber
        self._client = None

    def initialize(self) -> None:
        """Initialize the bedrock-runtime client."""
        try:
            self._client = boto3.client(
                "bedrock-runtime",
                region_name=self.region,
                config=Config(read_timeout=self.timeout, retries={"max_attempts": 2}),
            )
            self.logger.info(
                "Initialized Bedrock inference provider",
                extra={
                    "scope": LogScope.PROVIDER,
                    "model_id": self.llm_model_id,
                    "region": self.region
                }
            )
        except Exception as e:
            self.logger.error(
                "Failed to initialize Bedrock inference provider",
                extra={"scope": LogScope.PROVIDER, "error": str(e)}
            )
            raise

    def is_available(self) -> bool:
        """Check if Bedrock client is available."""
        return self._client is not None

    async def _converse(self, operation: str, model_id: str, messages: List[Dict[str, Any]], max_tokens: int) -> str:
        if not self.is_available():
            raise InferenceError(operation, "Bedrock inference provider not initialized")
        try:
            response = await asyncio.to_thread(
                self._client.converse,
                modelId=model_id,
                messages=messages,
                inferenceConfig={"maxTokens": max_tokens},
            )
        except Exception as e:
            self.logger.error(
                "Bedrock converse failed",
                extra={"scope": LogScope.PROVIDER, "operation": operation, "error": str(e)}
            )
            raise InferenceError(operation, str(e), context={"model_id": model_id})

        text = _response_text(response)
        if not text:
            raise InferenceError(operation, "empty response", context={"model_id": model_id})
        return text

    async def generate_text(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        messages = [{"role": "user", "content": [{"text": prompt}]}]
        return await self._converse("text_generation", self.llm_model_id, messages, max_tokens or self.max_tokens)

    async def generate_multimodal(self, messages: List[ChatTurn]) -> str:
        return await self._converse(
            "multimodal_generation",
            self.vision_model_id,
            to_converse_messages(messages),
            self.max_tokens,
        )

    async def transcribe_audio(self, audio: bytes, language: str = Defaults.TRANSCRIPTION_LANGUAGE) -> str:
        if self._transcriber is None:
            raise InferenceError("transcription", "no transcriber configured for Bedrock provider")
        return await self._transcriber.transcribe(audio, language)

"""
Tests for the inference providers and the provider factory.

llama-index, the OpenAI SDK and boto3 are patched; no network calls.
"""

from typing import Dict
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from core_intelligence.providers.bedrock_inference import BedrockInferenceProvider, to_converse_messages
from core_intelligence.providers.factory import InferenceProviderFactory
from core_intelligence.providers.openai_inference import (
    OpenAIInferenceProvider,
    WhisperTranscriber,
    to_chat_messages,
)
from domain.models import ChatTurn, MessagePart
from ports.inference_backend import InferenceBackendPort
from shared_utils.config_loader import Settings
from shared_utils.error_handler import ConfigurationError, InferenceError


def _vision_turns() -> list:
    return [
        ChatTurn(role="system", parts=[MessagePart(type="text", text="Be brief")]),
        ChatTurn(
            role="user",
            parts=[
                MessagePart(type="text", text="Describe the screen"),
                MessagePart(type="image", image=b"png-bytes", mime_type="image/png"),
            ],
        ),
    ]


# ======================================================================
# Message conversion
# ======================================================================

class TestMessageConversion:
    def test_converse_folds_system_into_first_user_turn(self) -> None:
        converted = to_converse_messages(_vision_turns())
        assert len(converted) == 1
        content = converted[0]["content"]
        assert content[0] == {"text": "Be brief"}
        assert content[1] == {"text": "Describe the screen"}
        assert content[2] == {"image": {"format": "png", "source": {"bytes": b"png-bytes"}}}

    def test_chat_messages_keep_roles_and_blocks(self) -> None:
        converted = to_chat_messages(_vision_turns())
        assert [m.role.value for m in converted] == ["system", "user"]
        assert len(converted[1].blocks) == 2


# ======================================================================
# OpenAIInferenceProvider
# ======================================================================

class TestOpenAIInferenceProvider:
    @pytest.fixture()
    def llms(self):
        text_llm, vision_llm = MagicMock(), MagicMock()
        with patch("core_intelligence.providers.openai_inference.OpenAI", side_effect=[text_llm, vision_llm]), \
                patch("core_intelligence.providers.openai_inference.AsyncOpenAI") as mock_client:
            yield text_llm, vision_llm, mock_client.return_value

    @pytest.fixture()
    def provider(self, llms) -> OpenAIInferenceProvider:
        provider = OpenAIInferenceProvider(
            api_key="sk-test",
            text_model_id="gpt-4o-mini",
            vision_model_id="gpt-4o",
            transcription_model_id="whisper-1",
        )
        provider.initialize()
        return provider

    def test_satisfies_port(self, provider) -> None:
        assert isinstance(provider, InferenceBackendPort)
        assert provider.is_available()

    async def test_generate_text_passes_max_tokens(self, provider, llms) -> None:
        text_llm, _, _ = llms
        text_llm.acomplete = AsyncMock(return_value=MagicMock(text="  [] "))
        assert await provider.generate_text("prompt", max_tokens=500) == "[]"
        text_llm.acomplete.assert_awaited_once_with("prompt", max_tokens=500)

    async def test_generate_text_empty_is_error(self, provider, llms) -> None:
        text_llm, _, _ = llms
        text_llm.acomplete = AsyncMock(return_value=MagicMock(text=""))
        with pytest.raises(InferenceError, match="empty response"):
            await provider.generate_text("prompt")

    async def test_generate_text_failure_wrapped(self, provider, llms) -> None:
        text_llm, _, _ = llms
        text_llm.acomplete = AsyncMock(side_effect=TimeoutError("slow"))
        with pytest.raises(InferenceError) as exc_info:
            await provider.generate_text("prompt")
        assert exc_info.value.context["operation"] == "text_generation"

    async def test_generate_multimodal(self, provider, llms) -> None:
        _, vision_llm, _ = llms
        vision_llm.achat = AsyncMock(return_value=MagicMock(message=MagicMock(content='{"content": "x"}')))
        assert await provider.generate_multimodal(_vision_turns()) == '{"content": "x"}'

    async def test_transcribe(self, provider, llms) -> None:
        _, _, client = llms
        client.audio.transcriptions.create = AsyncMock(return_value=MagicMock(text=" hello "))
        assert await provider.transcribe_audio(b"RIFF", "en") == "hello"
        kwargs = client.audio.transcriptions.create.call_args[1]
        assert kwargs["model"] == "whisper-1"
        assert kwargs["file"] == ("chunk.wav", b"RIFF", "audio/wav")

    async def test_uninitialised_raises(self) -> None:
        provider = OpenAIInferenceProvider("sk", "a", "b", "c")
        with pytest.raises(InferenceError, match="not initialized"):
            await provider.generate_text("prompt")


class TestWhisperTranscriber:
    async def test_failure_is_inference_error(self) -> None:
        with patch("core_intelligence.providers.openai_inference.AsyncOpenAI") as mock_client:
            mock_client.return_value.audio.transcriptions.create = AsyncMock(side_effect=RuntimeError("429"))
            transcriber = WhisperTranscriber("whisper-1", "sk")
            with pytest.raises(InferenceError, match="transcription failed: 429"):
                await transcriber.transcribe(b"RIFF")


# ======================================================================
# BedrockInferenceProvider
# ======================================================================

class TestBedrockInferenceProvider:
    @pytest.fixture()
    def client(self):
        with patch("core_intelligence.providers.bedrock_inference.boto3") as mock_boto3:
            yield mock_boto3.client.return_value

    @pytest.fixture()
    def provider(self, client) -> BedrockInferenceProvider:
        provider = BedrockInferenceProvider(
            llm_model_id="anthropic.claude-3-haiku",
            vision_model_id="anthropic.claude-3-sonnet",
            region="eu-west-2",
        )
        provider.initialize()
        return provider

    async def test_generate_text(self, provider, client) -> None:
        client.converse.return_value = {"output": {"message": {"content": [{"text": "ok"}]}}}
        assert await provider.generate_text("prompt", max_tokens=200) == "ok"
        kwargs = client.converse.call_args[1]
        assert kwargs["modelId"] == "anthropic.claude-3-haiku"
        assert kwargs["inferenceConfig"] == {"maxTokens": 200}

    async def test_generate_multimodal_uses_vision_model(self, provider, client) -> None:
        client.converse.return_value = {"output": {"message": {"content": [{"text": "{}"}]}}}
        await provider.generate_multimodal(_vision_turns())
        assert client.converse.call_args[1]["modelId"] == "anthropic.claude-3-sonnet"

    async def test_converse_failure(self, provider, client) -> None:
        client.converse.side_effect = RuntimeError("throttled")
        with pytest.raises(InferenceError, match="throttled"):
            await provider.generate_text("prompt")

    async def test_empty_answer(self, provider, client) -> None:
        client.converse.return_value = {"output": {"message": {"content": []}}}
        with pytest.raises(InferenceError, match="empty response"):
            await provider.generate_text("prompt")

    async def test_transcription_without_transcriber(self, provider) -> None:
        with pytest.raises(InferenceError, match="no transcriber"):
            await provider.transcribe_audio(b"RIFF")

    async def test_transcription_delegates(self, client) -> None:
        transcriber = MagicMock()
        transcriber.transcribe = AsyncMock(return_value="hi")
        provider = BedrockInferenceProvider("a", "b", "eu-west-2", transcriber=transcriber)
        assert await provider.transcribe_audio(b"RIFF", "de") == "hi"
        transcriber.transcribe.assert_awaited_once_with(b"RIFF", "de")


# ======================================================================
# InferenceProviderFactory
# ======================================================================

class TestInferenceProviderFactory:
    def test_openai_requires_key(self, base_settings_kwargs: Dict[str, str]) -> None:
        settings = Settings(**{**base_settings_kwargs, "llm_provider": "openai", "openai_api_key": None})
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            InferenceProviderFactory.create(settings)

    @patch("core_intelligence.providers.factory.OpenAIInferenceProvider")
    def test_openai(self, mock_provider: MagicMock, base_settings_kwargs: Dict[str, str]) -> None:
        settings = Settings(**{**base_settings_kwargs, "llm_provider": "openai", "openai_api_key": "sk"})
        assert InferenceProviderFactory.create(settings) is mock_provider.return_value
        mock_provider.return_value.initialize.assert_called_once()

    @patch("core_intelligence.providers.factory.WhisperTranscriber")
    @patch("core_intelligence.providers.factory.BedrockInferenceProvider")
    def test_bedrock_borrows_whisper_when_key_present(
        self, mock_provider: MagicMock, mock_whisper: MagicMock, base_settings_kwargs: Dict[str, str]
    ) -> None:
        settings = Settings(**{**base_settings_kwargs, "openai_api_key": "sk"})
        InferenceProviderFactory.create(settings)
        assert mock_provider.call_args[1]["transcriber"] is mock_whisper.return_value

    @patch("core_intelligence.providers.factory.BedrockInferenceProvider")
    def test_bedrock_without_key_has_no_transcriber(
        self, mock_provider: MagicMock, base_settings_kwargs: Dict[str, str]
    ) -> None:
        settings = Settings(**{**base_settings_kwargs, "openai_api_key": None})
        InferenceProviderFactory.create(settings)
        assert mock_provider.call_args[1]["transcriber"] is None

"""
Factory for creating the configured inference provider.
Handles provider instantiation with dependency injection.
"""

from typing import Optional
import logging

from core_intelligence.providers import InferenceProviderBase
from core_intelligence.providers.bedrock_inference import BedrockInferenceProvider
from core_intelligence.providers.openai_inference import OpenAIInferenceProvider, WhisperTranscriber
from shared_utils.config_loader import Settings, get_settings
from shared_utils.constants import LLMProvider, LogScope
from shared_utils.error_handler import ConfigurationError


logger = logging.getLogger(__name__)


class InferenceProviderFactory:
    """Factory for creating inference providers."""

    @staticmethod
    def create(settings: Optional[Settings] = None) -> InferenceProviderBase:
        """Create configured inference provider.

        Args:
            settings: Optional override. If None, uses cached settings.

        Returns:
            Initialized inference provider.

        Raises:
            ConfigurationError: If the provider is unknown or misconfigured.
        """
        settings = settings or get_settings()
        llm_provider = settings.llm_provider

        logger.info(
            "Creating inference provider",
            extra={"scope": LogScope.CONFIG, "provider": llm_provider}
        )

        try:
            if llm_provider == LLMProvider.OPENAI.value:
                if not settings.openai_api_key:
                    raise ConfigurationError("OPENAI_API_KEY not configured")

                provider = OpenAIInferenceProvider(
                    api_key=settings.openai_api_key,
                    text_model_id=settings.openai_text_model_id,
                    vision_model_id=settings.openai_vision_model_id,
                    transcription_model_id=settings.openai_transcription_model_id,
                    timeout=settings.request_timeout,
                )
                provider.initialize()
                return provider

            elif llm_provider == LLMProvider.BEDROCK.value:
                if not settings.bedrock_region or not settings.bedrock_llm_model_id:
                    raise ConfigurationError("BEDROCK_REGION or BEDROCK_LLM_MODEL_ID not configured")

                # Bedrock has no speech model; borrow OpenAI's when a key exists
                transcriber = None
                if settings.openai_api_key:
                    transcriber = WhisperTranscriber(
                        settings.openai_transcription_model_id,
                        settings.openai_api_key,
                        settings.request_timeout,
                    )

                provider = BedrockInferenceProvider(
                    llm_model_id=settings.bedrock_llm_model_id,
                    vision_model_id=settings.bedrock_vision_model_id,
                    region=settings.bedrock_region,
                    transcriber=transcriber,
                    timeout=settings.request_timeout,
                )
                provider.initialize()
                return provider
            else:
                raise ConfigurationError(f"Unknown inference provider: {llm_provider}")

        except Exception as e:
            logger.error(
                "Failed to create inference provider",
                extra={"scope": LogScope.CONFIG, "provider": llm_provider, "error": str(e)}
            )
            raise

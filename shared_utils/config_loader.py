from pydantic_settings import BaseSettings
from pydantic import ConfigDict, field_validator
from functools import lru_cache
from typing import Optional
import os
import json
import logging
import boto3

from shared_utils.constants import Defaults, ModelIDs

logger = logging.getLogger(__name__)


def get_secret_from_aws(secret_name: str, region: str = Defaults.AWS_REGION) -> str:
    """Fetch the OpenAI API key from AWS Secrets Manager.

    Args:
        secret_name: Name of the secret in Secrets Manager
        region: AWS region

    Returns:
        Secret value or empty string if fetch fails
    """
    try:
        client = boto3.client("secretsmanager", region_name=region)
        response = client.get_secret_value(SecretId=secret_name)
        if "SecretString" in response:
            secret = json.loads(response["SecretString"])
            return secret.get("openai_api_key", "")
        return ""
    except Exception as e:
        logger.warning(f"Could not fetch secret from Secrets Manager: {e}")
        return ""


class Settings(BaseSettings):
    """Application configuration with environment variable precedence.

    Precedence: 1) Environment Variables > 2) .env file > 3) Class defaults
    """
    # Application metadata
    app_name: str = "Live Coaching Orchestrator"
    app_version: str = "0.3.0"
    app_description: str = "Real-time multimodal coaching for live sessions"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Inference
    llm_provider: str = "openai"  # "openai" or "bedrock"
    openai_api_key: Optional[str] = None
    openai_secret_name: Optional[str] = None
    openai_text_model_id: str = ModelIDs.OPENAI_TEXT
    openai_vision_model_id: str = ModelIDs.OPENAI_VISION
    openai_transcription_model_id: str = ModelIDs.OPENAI_TRANSCRIPTION
    bedrock_region: str = Defaults.AWS_REGION
    bedrock_llm_model_id: str = ModelIDs.BEDROCK_CLAUDE_3_HAIKU
    bedrock_vision_model_id: str = ModelIDs.BEDROCK_CLAUDE_3_SONNET
    transcription_language: str = Defaults.TRANSCRIPTION_LANGUAGE
    request_timeout: float = Defaults.REQUEST_TIMEOUT

    # Session store
    store_backend: str = "memory"  # "memory", "json" or "dynamodb"
    json_store_path: str = "data/sessions/store.json"
    dynamodb_table_name: str = "CoachingSessions"
    aws_region: str = Defaults.AWS_REGION
    aws_endpoint_url: str = ""  # LocalStack in dev

    # Orchestrator timing (seconds)
    audio_chunk_seconds: float = Defaults.AUDIO_CHUNK_SECONDS
    audio_sample_rate: int = Defaults.AUDIO_SAMPLE_RATE
    screen_capture_interval: float = Defaults.SCREEN_CAPTURE_INTERVAL
    visual_analysis_interval: float = Defaults.VISUAL_ANALYSIS_INTERVAL
    min_analysis_gap: float = Defaults.MIN_ANALYSIS_GAP
    suggestion_word_interval: int = Defaults.SUGGESTION_WORD_INTERVAL
    transcript_debounce: float = Defaults.TRANSCRIPT_DEBOUNCE
    feedback_sweep_interval: float = Defaults.FEEDBACK_SWEEP_INTERVAL
    low_priority_feedback_ttl: float = Defaults.LOW_PRIORITY_FEEDBACK_TTL
    meeting_insights_interval: float = Defaults.MEETING_INSIGHTS_INTERVAL
    frame_buffer_size: int = Defaults.FRAME_BUFFER_SIZE
    analysis_history_size: int = Defaults.ANALYSIS_HISTORY_SIZE
    feedback_history_size: int = Defaults.FEEDBACK_HISTORY_SIZE
    speaking_level_threshold: float = Defaults.SPEAKING_LEVEL_THRESHOLD

    # Environment
    environment: str = "development"
    log_level: str = Defaults.LOG_LEVEL

    model_config = ConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator('llm_provider')
    @classmethod
    def validate_llm_provider(cls, v: str) -> str:
        """Validate inference provider is supported."""
        valid_providers = {"openai", "bedrock"}
        if v.lower() not in valid_providers:
            raise ValueError(f"llm_provider must be one of {valid_providers}, got {v}")
        return v.lower()

    @field_validator('store_backend')
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        """Validate session store backend is supported."""
        valid_backends = {"memory", "json", "dynamodb"}
        if v.lower() not in valid_backends:
            raise ValueError(f"store_backend must be one of {valid_backends}, got {v}")
        return v.lower()

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is recognized."""
        valid_envs = {"development", "staging", "production"}
        if v.lower() not in valid_envs:
            raise ValueError(f"environment must be one of {valid_envs}, got {v}")
        return v.lower()

    @field_validator(
        'audio_chunk_seconds',
        'screen_capture_interval',
        'visual_analysis_interval',
        'transcript_debounce',
        'feedback_sweep_interval',
        'low_priority_feedback_ttl',
        'meeting_insights_interval',
    )
    @classmethod
    def validate_positive_interval(cls, v: float) -> float:
        """Timer intervals must be strictly positive."""
        if v <= 0:
            raise ValueError(f"interval must be > 0, got {v}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Load and cache application settings.

    If the OpenAI provider is configured and OPENAI_SECRET_NAME is provided,
    fetches the API key from AWS Secrets Manager.

    Returns:
        Validated Settings instance

    Raises:
        ValueError: If settings are invalid
    """
    settings = Settings()

    needs_openai = settings.llm_provider == "openai" and not settings.openai_api_key

    if needs_openai and settings.openai_secret_name:
        secret_key = get_secret_from_aws(settings.openai_secret_name, settings.aws_region)
        if secret_key:
            settings.openai_api_key = secret_key
            os.environ["OPENAI_API_KEY"] = secret_key
            logger.debug("fetched_openai_key_from_secrets_manager")

    logger.info(
        "configuration_loaded environment=%s llm_provider=%s store_backend=%s",
        settings.environment,
        settings.llm_provider,
        settings.store_backend,
    )

    return settings

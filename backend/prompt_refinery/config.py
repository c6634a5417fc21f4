"""
Configuration management for the Multi-Modal Prompt Refinement service.
Loads API keys, model identifiers and pipeline limits from environment variables.
"""
import logging
import os
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# Pick up a local .env before any setting is read
load_dotenv()

logger = logging.getLogger(__name__)


def _split_env(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(',') if item.strip()]


class Config:
    """Configuration class for model access, limits and pipeline thresholds."""

    # Environment
    ENVIRONMENT: str = os.getenv('ENVIRONMENT', 'development')
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')

    # Text completion (Groq, OpenAI-compatible API)
    GROQ_API_KEY: Optional[str] = os.getenv('GROQ_API_KEY')
    GROQ_API_BASE: str = os.getenv('GROQ_API_BASE', 'https://api.groq.com/openai/v1')
    TEXT_MODEL: str = os.getenv('TEXT_MODEL', 'llama-3.3-70b-versatile')

    # Vision captioning (OpenRouter, OpenAI-compatible API)
    OPENROUTER_API_KEY: Optional[str] = os.getenv('OPENROUTER_API_KEY')
    OPENROUTER_API_BASE: str = os.getenv('OPENROUTER_API_BASE', 'https://openrouter.ai/api/v1')
    VISION_MODEL: str = os.getenv('VISION_MODEL', 'allenai/molmo-2-8b:free')
    APP_REFERER: str = os.getenv('APP_REFERER', 'http://localhost:5000')
    APP_TITLE: str = os.getenv('APP_TITLE', 'Multi-Modal Prompt Refinement System')

    # Timeouts (seconds) and sampling
    LLM_TIMEOUT: float = float(os.getenv('LLM_TIMEOUT', '20'))
    VISION_TIMEOUT: float = float(os.getenv('VISION_TIMEOUT', '30'))
    LLM_TEMPERATURE: float = float(os.getenv('LLM_TEMPERATURE', '0.3'))
    LLM_TOP_P: float = float(os.getenv('LLM_TOP_P', '0.9'))
    LLM_MAX_TOKENS: int = int(os.getenv('LLM_MAX_TOKENS', '4096'))
    VISION_MAX_TOKENS: int = int(os.getenv('VISION_MAX_TOKENS', '500'))

    # Uploads
    MAX_FILE_SIZE: int = int(os.getenv('MAX_FILE_SIZE', str(10 * 1024 * 1024)))  # 10MB
    MAX_DOCUMENTS: int = int(os.getenv('MAX_DOCUMENTS', '5'))
    ALLOWED_IMAGE_TYPES: List[str] = _split_env(
        'ALLOWED_IMAGE_TYPES', 'image/jpeg,image/png,image/webp,image/gif'
    )
    ALLOWED_DOC_TYPES: List[str] = _split_env('ALLOWED_DOC_TYPES', 'application/pdf')
    UPLOAD_DIR: str = os.getenv('UPLOAD_DIR', 'uploads')

    # Pipeline thresholds
    MIN_CONFIDENCE_SCORE: float = float(os.getenv('MIN_CONFIDENCE_SCORE', '0.6'))
    MIN_PROMPT_LENGTH: int = int(os.getenv('MIN_PROMPT_LENGTH', '10'))
    MAX_PROMPT_LENGTH: int = int(os.getenv('MAX_PROMPT_LENGTH', '5000'))

    # OCR fallback for scanned PDFs (AWS Textract)
    ENABLE_TEXTRACT_FALLBACK: bool = os.getenv('ENABLE_TEXTRACT_FALLBACK', 'false').lower() == 'true'
    AWS_PROFILE: Optional[str] = os.getenv('AWS_PROFILE')
    AWS_ACCESS_KEY_ID: Optional[str] = os.getenv('AWS_ACCESS_KEY_ID')
    AWS_SECRET_ACCESS_KEY: Optional[str] = os.getenv('AWS_SECRET_ACCESS_KEY')
    AWS_SESSION_TOKEN: Optional[str] = os.getenv('AWS_SESSION_TOKEN')
    AWS_REGION: str = os.getenv('AWS_REGION', 'us-east-1')

    # API Settings
    API_HOST: str = os.getenv('API_HOST', '0.0.0.0')
    API_PORT: int = int(os.getenv('API_PORT', '5000'))
    CORS_ORIGINS: List[str] = _split_env('CORS_ORIGINS', 'http://localhost:3000')

    @classmethod
    def is_production(cls) -> bool:
        """Internal error details are only exposed outside production."""
        return cls.ENVIRONMENT.lower() == 'production'

    @classmethod
    def validate(cls) -> bool:
        """
        Check required settings before the service graph is built.

        Raises:
            ValueError: on a missing text-completion key, inconsistent limits,
                or an enabled OCR fallback without usable AWS credentials
        """
        if not cls.GROQ_API_KEY:
            raise ValueError("GROQ_API_KEY environment variable is required.")

        if not cls.OPENROUTER_API_KEY:
            logger.warning(
                "OPENROUTER_API_KEY is not set. Image inputs will fail perception "
                "and the image layer will report unhealthy."
            )

        if not 0.0 <= cls.MIN_CONFIDENCE_SCORE <= 1.0:
            raise ValueError("MIN_CONFIDENCE_SCORE must be between 0 and 1.")

        if cls.MIN_PROMPT_LENGTH > cls.MAX_PROMPT_LENGTH:
            raise ValueError("MIN_PROMPT_LENGTH cannot exceed MAX_PROMPT_LENGTH.")

        if cls.ENABLE_TEXTRACT_FALLBACK:
            cls._validate_aws_credentials()
        return True

    @classmethod
    def _validate_aws_credentials(cls):
        has_static_keys = bool(cls.AWS_ACCESS_KEY_ID and cls.AWS_SECRET_ACCESS_KEY)
        if not (cls.AWS_PROFILE or has_static_keys):
            raise ValueError(
                "ENABLE_TEXTRACT_FALLBACK is set but no AWS credentials were found. "
                "Provide AWS_PROFILE, or AWS_ACCESS_KEY_ID together with AWS_SECRET_ACCESS_KEY."
            )

        # ASIA-prefixed keys are STS temporary credentials
        is_temporary = (cls.AWS_ACCESS_KEY_ID or '').startswith('ASIA')
        if is_temporary and not cls.AWS_SESSION_TOKEN:
            raise ValueError(
                "AWS_ACCESS_KEY_ID holds temporary (ASIA) credentials, "
                "which also need AWS_SESSION_TOKEN."
            )

    @classmethod
    def get_boto3_config(cls) -> Dict[str, Any]:
        """Keyword arguments for building a boto3 session or client."""
        if cls.AWS_PROFILE:
            return {'profile_name': cls.AWS_PROFILE, 'region_name': cls.AWS_REGION}

        kwargs: Dict[str, Any] = {'region_name': cls.AWS_REGION}
        if cls.AWS_ACCESS_KEY_ID and cls.AWS_SECRET_ACCESS_KEY:
            kwargs['aws_access_key_id'] = cls.AWS_ACCESS_KEY_ID
            kwargs['aws_secret_access_key'] = cls.AWS_SECRET_ACCESS_KEY
            if cls.AWS_SESSION_TOKEN:
                kwargs['aws_session_token'] = cls.AWS_SESSION_TOKEN
        return kwargs

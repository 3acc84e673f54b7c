# ============================================================================
# src/clinical_provenance/config/model_config.py
# ============================================================================
"""
Model Collaborator Configuration
- Backend and host
- Model identifiers per pipeline
- Token limits
- Retry policy
- Concurrency cap
"""

from pydantic import Field
from pydantic_settings import BaseSettings

class ModelSettings(BaseSettings):
    MODEL_BACKEND: str = Field(
        default="ollama",
        description="Inference backend used by create_client"
    )
    OLLAMA_HOST: str = Field(
        default="http://localhost:11434",
        description="Ollama server URL"
    )
    EXTRACTION_MODEL: str = Field(
        default="llama3.1:8b-instruct-q8_0",
        description="Model used for structured document extraction"
    )
    FAST_EXTRACTION_MODEL: str = Field(
        default="llama3.2:3b-instruct-q8_0",
        description="Small model used for the identity-only fast extraction"
    )
    EXTRACTION_MAX_TOKENS: int = Field(
        default=4096,
        description="Maximum tokens for structured extraction"
    )
    FAST_EXTRACTION_MAX_TOKENS: int = Field(
        default=256,
        description="Maximum tokens for identity-only extraction (3 fields)"
    )
    FAST_EXTRACTION_MAX_TEXT_LENGTH: int = Field(
        default=50000,
        description="Document text is truncated to this many characters for fast extraction"
    )
    REQUEST_TIMEOUT: int = Field(
        default=300,
        description="Per-request timeout for a model call (seconds)"
    )

    # Retry policy for structured extraction
    RETRY_MAX_RETRIES: int = Field(default=3, ge=0, description="Retries after the first attempt")
    RETRY_INITIAL_DELAY: float = Field(default=0.5, gt=0.0, description="First backoff delay (seconds)")
    RETRY_MULTIPLIER: float = Field(default=2.0, ge=1.0, description="Backoff multiplier")
    RETRY_MAX_DELAY: float = Field(default=10.0, gt=0.0, description="Backoff cap (seconds)")

    # Retry policy for fast extraction
    FAST_RETRY_MAX_RETRIES: int = Field(default=2, ge=0)
    FAST_RETRY_INITIAL_DELAY: float = Field(default=0.5, gt=0.0)
    FAST_RETRY_MAX_DELAY: float = Field(default=2.0, gt=0.0)

    MAX_CONCURRENT_EXTRACTIONS: int = Field(
        default=3,
        ge=1,
        description="Cap on simultaneous model calls issued by the coordinator"
    )

model_settings = ModelSettings()

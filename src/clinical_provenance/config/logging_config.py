# ============================================================================
# src/clinical_provenance/config/logging_config.py
# ============================================================================
"""
Logging Settings
- Log level
- JSON output
- Audit trail
"""

from pydantic import Field
from pydantic_settings import BaseSettings

class LoggingSettings(BaseSettings):
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level"
    )
    LOG_JSON: bool = Field(
        default=False,
        description="Emit log records as JSON lines"
    )
    ENABLE_AUDIT_TRAIL: bool = Field(
        default=True,
        description="Record audit events for extraction and provenance"
    )

logging_settings = LoggingSettings()

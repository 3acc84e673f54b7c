# ============================================================================
# src/clinical_provenance/config/base_config.py
# ============================================================================
"""
Base Configuration
- Data directory
- Job store DB
- Audit DB
"""

from pathlib import Path
from pydantic import Field
from pydantic_settings import BaseSettings

class BaseSettingsConfig(BaseSettings):
    DATA_DIR: Path = Field(
        default=Path("data"),
        description="Local data directory for SQLite stores"
    )

    # Extraction job store
    JOB_DB_PATH: Path = Field(
        default=Path("data/jobs.db"),
        description="SQLite database holding extraction jobs and their payloads"
    )

    # Audit trail database
    AUDIT_DB_PATH: Path = Field(
        default=Path("data/audit.db"),
        description="SQLite database for append-only audit events"
    )

    def create_directories(self):
        """Create all necessary directories if they don't exist"""
        dirs = [
            self.DATA_DIR,
            self.JOB_DB_PATH.parent,
            self.AUDIT_DB_PATH.parent
        ]
        for directory in dirs:
            directory.mkdir(parents=True, exist_ok=True)

# Global instance
base_settings = BaseSettingsConfig()

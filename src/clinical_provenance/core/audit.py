# ============================================================================
# src/clinical_provenance/core/audit.py
# ============================================================================
"""
Audit Trail Logger

Append-only record of extraction and provenance events. Metadata holds
field names, counts, flags and model identifiers, never clinical values.

All audit data stored locally in SQLite database.
"""

from pathlib import Path
from typing import Dict, Any, List, Optional
import logging
import sqlite3
from datetime import datetime, timezone
import json

from ..config.base_config import base_settings


class AuditLogger:
    """
    Audit trail management.

    The pipeline only appends through `record`; `get_trail` exists for
    reviewers and tests.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or base_settings.AUDIT_DB_PATH)
        self.logger = logging.getLogger(__name__)

        self._init_database()

    def _init_database(self):
        """Create audit database schema if not exists"""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(str(self.db_path))
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS audit_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                event TEXT NOT NULL,
                resource_id TEXT,
                metadata TEXT
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_audit_resource
            ON audit_events (resource_id)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_audit_timestamp
            ON audit_events (timestamp)
        """)

        conn.commit()
        conn.close()

        self.logger.info(f"Audit database initialized: {self.db_path}")

    def record(self, event: str, metadata: Dict[str, Any], resource_id: Optional[str] = None):
        """Append one audit event"""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        cursor = conn.cursor()

        cursor.execute("""
            INSERT INTO audit_events (timestamp, event, resource_id, metadata)
            VALUES (?, ?, ?, ?)
        """, (
            datetime.now(timezone.utc).isoformat(),
            event,
            resource_id,
            json.dumps(metadata, default=str, sort_keys=True),
        ))

        conn.commit()
        conn.close()

    def get_trail(self, resource_id: str) -> List[Dict[str, Any]]:
        """Retrieve the audit trail for a document or letter, oldest first"""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()

        cursor.execute("""
            SELECT * FROM audit_events
            WHERE resource_id = ?
            ORDER BY id
        """, (resource_id,))

        trail = []
        for row in cursor.fetchall():
            entry = dict(row)
            entry["metadata"] = json.loads(entry["metadata"]) if entry["metadata"] else {}
            trail.append(entry)

        conn.close()

        return trail

# ============================================================================
# src/clinical_provenance/core/job_store.py
# ============================================================================
"""
Extraction Job Store

SQLite-backed extraction jobs, one row per document. Raw sqlite3 with a
JSON column for the typed payload, the same way the audit trail is kept.

Status transitions:
    PENDING -> PROCESSING -> COMPLETE | FAILED
    FAILED  -> PROCESSING (retry)

Acquisition is a single conditional UPDATE inside an immediate
transaction. SQLite serializes writers, so exactly one concurrent caller
sees rowcount == 1.
"""

import sqlite3
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime, timezone

from ..config.base_config import base_settings
from ..utils.exceptions import LockConflictError
from .context.enums import DocumentType, JobStatus

logger = logging.getLogger(__name__)

# Seconds a writer waits on a locked database before failing
BUSY_TIMEOUT = 30.0


@dataclass(frozen=True)
class ExtractionJob:
    document_id: str
    document_type: DocumentType
    status: JobStatus
    attempt: int
    lock_owner: Optional[str]
    error: Optional[str]
    payload: Optional[Dict[str, Any]]
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class DocumentContent:
    text: Optional[str]
    image_base64: Optional[str]
    mime_type: Optional[str]

    @property
    def is_image(self) -> bool:
        return bool(self.image_base64)

    @property
    def is_empty(self) -> bool:
        return not (self.text and self.text.strip()) and not self.image_base64


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobStore:
    """
    SQLite store for extraction jobs and the document content they read.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or base_settings.JOB_DB_PATH)
        self._init_database()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------
    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path), timeout=BUSY_TIMEOUT)

    def _init_database(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        cur = conn.cursor()

        cur.execute("""
            CREATE TABLE IF NOT EXISTS extraction_jobs (
                document_id     TEXT PRIMARY KEY,
                document_type   TEXT NOT NULL,
                status          TEXT NOT NULL DEFAULT 'PENDING',
                attempt         INTEGER NOT NULL DEFAULT 0,
                lock_owner      TEXT,
                error           TEXT,
                payload         TEXT,
                content_text    TEXT,
                image_base64    TEXT,
                mime_type       TEXT,
                created_at      TEXT NOT NULL,
                updated_at      TEXT NOT NULL
            )
        """)
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_extraction_jobs_status
            ON extraction_jobs (status)
        """)

        conn.commit()
        conn.close()
        logger.info(f"Job store initialized: {self.db_path}")

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------
    def create_job(
        self,
        document_id: str,
        document_type: DocumentType,
        content_text: Optional[str] = None,
        image_base64: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> bool:
        """
        Queue a document for extraction. Returns False if the job already exists.
        """
        now = _now()
        conn = self._connect()
        cur = conn.cursor()
        cur.execute("""
            INSERT OR IGNORE INTO extraction_jobs
                (document_id, document_type, status, content_text,
                 image_base64, mime_type, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            document_id,
            DocumentType(document_type).value,
            JobStatus.PENDING.value,
            content_text,
            image_base64,
            mime_type,
            now,
            now,
        ))
        created = cur.rowcount == 1
        conn.commit()
        conn.close()
        return created

    def try_acquire(self, document_id: str, owner: str) -> bool:
        """
        Atomically move PENDING or FAILED to PROCESSING.

        Returns True for exactly one caller per transition.
        """
        conn = self._connect()
        # Write lock up front; contenders wait out BUSY_TIMEOUT
        conn.isolation_level = None
        cur = conn.cursor()
        cur.execute("BEGIN IMMEDIATE")
        cur.execute("""
            UPDATE extraction_jobs
            SET status = ?, lock_owner = ?, attempt = attempt + 1,
                error = NULL, updated_at = ?
            WHERE document_id = ? AND status IN (?, ?)
        """, (
            JobStatus.PROCESSING.value,
            owner,
            _now(),
            document_id,
            JobStatus.PENDING.value,
            JobStatus.FAILED.value,
        ))
        acquired = cur.rowcount == 1
        cur.execute("COMMIT")
        conn.close()
        return acquired

    def acquire(self, document_id: str, owner: str) -> ExtractionJob:
        """
        Raises:
            LockConflictError: job is already PROCESSING, COMPLETE, or missing
        """
        if not self.try_acquire(document_id, owner):
            raise LockConflictError(document_id)
        return self.get(document_id)

    def _finish(self, document_id: str, owner: str, status: JobStatus,
                payload: Optional[Dict[str, Any]], error: Optional[str]) -> bool:
        conn = self._connect()
        cur = conn.cursor()
        cur.execute("""
            UPDATE extraction_jobs
            SET status = ?, payload = ?, error = ?, updated_at = ?
            WHERE document_id = ? AND status = ? AND lock_owner = ?
        """, (
            status.value,
            json.dumps(payload, default=str) if payload is not None else None,
            error,
            _now(),
            document_id,
            JobStatus.PROCESSING.value,
            owner,
        ))
        updated = cur.rowcount == 1
        conn.commit()
        conn.close()
        if not updated:
            logger.warning(f"Job {document_id} no longer held by {owner}; {status.value} not recorded")
        return updated

    def mark_complete(self, document_id: str, owner: str, payload: Dict[str, Any]) -> bool:
        """PROCESSING -> COMPLETE with the typed payload. Only the lock owner may finish."""
        return self._finish(document_id, owner, JobStatus.COMPLETE, payload, None)

    def mark_failed(self, document_id: str, owner: str, error: str) -> bool:
        """PROCESSING -> FAILED with a short reason."""
        return self._finish(document_id, owner, JobStatus.FAILED, None, error)

    def reset(self, document_id: str) -> bool:
        """Operator retry: FAILED -> PENDING."""
        conn = self._connect()
        cur = conn.cursor()
        cur.execute("""
            UPDATE extraction_jobs SET status = ?, lock_owner = NULL, updated_at = ?
            WHERE document_id = ? AND status = ?
        """, (JobStatus.PENDING.value, _now(), document_id, JobStatus.FAILED.value))
        reset = cur.rowcount == 1
        conn.commit()
        conn.close()
        return reset

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------
    def get(self, document_id: str) -> Optional[ExtractionJob]:
        conn = self._connect()
        conn.row_factory = sqlite3.Row
        cur = conn.cursor()
        cur.execute("""
            SELECT document_id, document_type, status, attempt, lock_owner,
                   error, payload, created_at, updated_at
            FROM extraction_jobs WHERE document_id = ?
        """, (document_id,))
        row = cur.fetchone()
        conn.close()
        if row is None:
            return None
        return ExtractionJob(
            document_id=row["document_id"],
            document_type=DocumentType(row["document_type"]),
            status=JobStatus(row["status"]),
            attempt=row["attempt"],
            lock_owner=row["lock_owner"],
            error=row["error"],
            payload=json.loads(row["payload"]) if row["payload"] else None,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def get_content(self, document_id: str) -> Optional[DocumentContent]:
        conn = self._connect()
        cur = conn.cursor()
        cur.execute("""
            SELECT content_text, image_base64, mime_type
            FROM extraction_jobs WHERE document_id = ?
        """, (document_id,))
        row = cur.fetchone()
        conn.close()
        if row is None:
            return None
        return DocumentContent(text=row[0], image_base64=row[1], mime_type=row[2])

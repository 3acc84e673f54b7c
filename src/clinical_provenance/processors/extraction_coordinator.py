# ============================================================================
# src/clinical_provenance/processors/extraction_coordinator.py
# ============================================================================
"""
Extraction Job Coordinator

Runs one extraction attempt per job:
1. Acquire the job (single conditional write; losers get an in-progress
   outcome, not an error)
2. Load the document content; fail fast on empty content, no model call
3. Call the model at temperature 0 with the type's prompt
4. Parse into the typed record; ParseError -> FAILED with its message
5. Persist COMPLETE + payload, audit the present field names

The identity-only fast extraction is a side pipeline: it holds no job
lock, and any failure degrades to "no identity hint".

Model calls are the only suspension point. A semaphore caps how many are
in flight at once.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import asyncio
import logging
import time
import uuid

from ..config.logging_config import logging_settings
from ..config.model_config import model_settings
from ..config.thresholds_config import threshold_settings
from ..core.audit import AuditLogger
from ..core.context.enums import JobStatus
from ..core.job_store import DocumentContent, ExtractionJob, JobStore
from ..extractors.patient_identity import FAST_PATIENT_EXTRACTION_PROMPT, PatientIdentity, parse_patient_identity
from ..extractors.registry import ExtractorSpec, StructuredExtraction, get_extractor
from ..llm.base import BaseModelClient, ModelResponse
from ..llm.retry import RetryPolicy
from ..utils.exceptions import ClinicalProvenanceError, DataError, ModelInvocationError, ParseError

logger = logging.getLogger(__name__)

# Deterministic extraction
EXTRACTION_TEMPERATURE = 0.0


@dataclass(frozen=True)
class ExtractionOutcome:
    document_id: str
    status: Optional[JobStatus]
    in_progress: bool = False
    record: Optional[StructuredExtraction] = None
    error: Optional[str] = None
    completeness: float = 0.0
    requires_review: bool = False
    input_tokens: int = 0
    output_tokens: int = 0
    processing_time_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.COMPLETE and self.record is not None


@dataclass(frozen=True)
class DocumentProcessingResult:
    outcome: ExtractionOutcome
    identity: Optional[PatientIdentity]


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class ExtractionCoordinator:
    """
    Orchestrates extraction jobs against injected collaborators.

    Args:
        model_client: model collaborator (text + vision generation)
        job_store: job persistence with atomic acquire
        audit_logger: append-only audit trail (optional)
    """

    def __init__(
        self,
        model_client: BaseModelClient,
        job_store: JobStore,
        audit_logger: Optional[AuditLogger] = None,
        model_id: Optional[str] = None,
        fast_model_id: Optional[str] = None,
        max_tokens: Optional[int] = None,
        fast_max_tokens: Optional[int] = None,
        fast_max_text_length: Optional[int] = None,
        retry_policy: Optional[RetryPolicy] = None,
        fast_retry_policy: Optional[RetryPolicy] = None,
        max_concurrency: Optional[int] = None,
        worker_id: Optional[str] = None,
    ):
        self.model_client = model_client
        self.job_store = job_store
        # ENABLE_AUDIT_TRAIL=false turns every audit write into a no-op
        self.audit_logger = audit_logger if logging_settings.ENABLE_AUDIT_TRAIL else None

        self.model_id = model_id or model_settings.EXTRACTION_MODEL
        self.fast_model_id = fast_model_id or model_settings.FAST_EXTRACTION_MODEL
        self.max_tokens = max_tokens or model_settings.EXTRACTION_MAX_TOKENS
        self.fast_max_tokens = fast_max_tokens or model_settings.FAST_EXTRACTION_MAX_TOKENS
        self.fast_max_text_length = fast_max_text_length or model_settings.FAST_EXTRACTION_MAX_TEXT_LENGTH
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.fast_retry_policy = fast_retry_policy or RetryPolicy.fast_from_settings()
        self.max_concurrency = max_concurrency or model_settings.MAX_CONCURRENT_EXTRACTIONS
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"

        self._semaphore = asyncio.Semaphore(self.max_concurrency)

    # ------------------------------------------------------------------
    # Structured extraction
    # ------------------------------------------------------------------
    async def run(self, document_id: str) -> ExtractionOutcome:
        """
        One extraction attempt for a queued document.

        Never raises for extraction failures; they come back as a FAILED
        outcome with a short reason.
        Anything unexpected still marks the job FAILED before propagating.
        """
        owner = f"{self.worker_id}:{uuid.uuid4().hex[:8]}"

        if not self.job_store.try_acquire(document_id, owner):
            return self._not_acquired(document_id)

        job = self.job_store.get(document_id)
        start = time.monotonic()
        logger.info(f"Extracting {document_id} ({job.document_type.value}, attempt {job.attempt})")

        try:
            return await self._extract(job, owner, start)
        except (DataError, ParseError, ModelInvocationError) as e:
            return self._fail(job, owner, e, start)
        except asyncio.CancelledError:
            self.job_store.mark_failed(document_id, owner, "extraction cancelled")
            raise
        except Exception as e:
            # Never leave the job PROCESSING; the bug still surfaces
            logger.error(f"Unexpected error extracting {document_id}", exc_info=True)
            self._fail(job, owner, e, start)
            raise

    def _not_acquired(self, document_id: str) -> ExtractionOutcome:
        job = self.job_store.get(document_id)
        if job is None:
            logger.warning(f"No extraction job for document {document_id}")
            return ExtractionOutcome(document_id=document_id, status=None, error="document not found")

        logger.info(f"Extraction for {document_id} not started: job is {job.status.value}")
        return ExtractionOutcome(
            document_id=document_id,
            status=job.status,
            in_progress=job.status == JobStatus.PROCESSING,
        )

    async def _extract(self, job: ExtractionJob, owner: str, start: float) -> ExtractionOutcome:
        content = self.job_store.get_content(job.document_id)
        if content is None or content.is_empty:
            raise DataError("no extracted text content", job.document_id)

        spec = get_extractor(job.document_type)
        response = await self._invoke(spec, content)

        record = spec.parser(response.content, response.model, _elapsed_ms(start))
        metadata = record.metadata
        requires_review = (
            metadata.completeness < threshold_settings.LOW_YIELD_COMPLETENESS
            or metadata.overall_confidence.value < threshold_settings.LOW_CONFIDENCE_REVIEW
        )
        processing_time_ms = _elapsed_ms(start)

        payload = {
            "document_type": job.document_type.value,
            "data": record.to_dict(),
            "confidence_level": metadata.overall_confidence.level.value,
            "requires_review": requires_review,
            "input_tokens": response.input_tokens,
            "output_tokens": response.output_tokens,
        }
        if not self.job_store.mark_complete(job.document_id, owner, payload):
            return self._not_recorded(job.document_id, owner, start)

        present = record.present_fields()
        self._audit("document.extract_structured", job.document_id, {
            "document_type": job.document_type.value,
            "model": response.model,
            "fields_present": present,
            "field_count": len(present),
            "overall_confidence": metadata.overall_confidence.value,
            "confidence_level": metadata.overall_confidence.level.value,
            "completeness": metadata.completeness,
            "requires_review": requires_review,
            "input_tokens": response.input_tokens,
            "output_tokens": response.output_tokens,
            "processing_time_ms": processing_time_ms,
        })

        logger.info(
            f"Extracted {job.document_id}: {len(present)} fields, "
            f"confidence {metadata.overall_confidence.value:.2f}, "
            f"completeness {metadata.completeness:.2f}"
            + (" (review)" if requires_review else "")
        )

        return ExtractionOutcome(
            document_id=job.document_id,
            status=JobStatus.COMPLETE,
            record=record,
            completeness=metadata.completeness,
            requires_review=requires_review,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            processing_time_ms=processing_time_ms,
        )

    def _not_recorded(self, document_id: str, owner: str, start: float) -> ExtractionOutcome:
        logger.warning(f"Discarding result for {document_id}: lock lost by {owner}")
        job = self.job_store.get(document_id)
        status = job.status if job is not None else None
        return ExtractionOutcome(
            document_id=document_id,
            status=status,
            in_progress=status == JobStatus.PROCESSING,
            error="extraction lock lost before the result was recorded",
            processing_time_ms=_elapsed_ms(start),
        )

    async def _invoke(self, spec: ExtractorSpec, content: DocumentContent) -> ModelResponse:
        max_tokens = spec.max_tokens or self.max_tokens
        async with self._semaphore:
            if content.is_image:
                return await self.model_client.generate_vision(
                    image_base64=content.image_base64,
                    mime_type=content.mime_type or "",
                    prompt=spec.build_prompt(),
                    model_id=self.model_id,
                    max_tokens=max_tokens,
                    temperature=EXTRACTION_TEMPERATURE,
                    retry_policy=self.retry_policy,
                )
            return await self.model_client.generate_text(
                prompt=spec.build_prompt(content.text),
                model_id=self.model_id,
                max_tokens=max_tokens,
                temperature=EXTRACTION_TEMPERATURE,
                retry_policy=self.retry_policy,
            )

    def _fail(self, job: ExtractionJob, owner: str, error: Exception, start: float) -> ExtractionOutcome:
        if isinstance(error, ClinicalProvenanceError):
            reason = str(error)
        else:
            reason = f"unexpected {type(error).__name__}: {error}"
        self.job_store.mark_failed(job.document_id, owner, reason)
        self._audit("document.extract_failed", job.document_id, {
            "document_type": job.document_type.value,
            "error_type": type(error).__name__,
            "reason": reason,
            "attempt": job.attempt,
        })
        logger.warning(f"Extraction failed for {job.document_id}: {type(error).__name__}: {reason}")
        return ExtractionOutcome(
            document_id=job.document_id,
            status=JobStatus.FAILED,
            error=reason,
            processing_time_ms=_elapsed_ms(start),
        )

    async def run_many(self, document_ids: List[str]) -> List[ExtractionOutcome]:
        """Run several jobs concurrently; the semaphore bounds model calls."""
        return list(await asyncio.gather(*(self.run(d) for d in document_ids)))

    # ------------------------------------------------------------------
    # Fast identity extraction (best effort)
    # ------------------------------------------------------------------
    async def extract_identity(self, document_id: str, text: Optional[str]) -> Optional[PatientIdentity]:
        """
        Name / DOB / MRN hint from a small model.

        Returns None instead of raising on any extraction failure.
        """
        if not text or not text.strip():
            logger.debug(f"No text for identity extraction on {document_id}")
            return None

        truncated = text[:self.fast_max_text_length]
        prompt = f"{FAST_PATIENT_EXTRACTION_PROMPT}\n\n---\n\nDOCUMENT TEXT:\n{truncated}"
        start = time.monotonic()

        try:
            async with self._semaphore:
                response = await self.model_client.generate_text(
                    prompt=prompt,
                    model_id=self.fast_model_id,
                    max_tokens=self.fast_max_tokens,
                    temperature=EXTRACTION_TEMPERATURE,
                    retry_policy=self.fast_retry_policy,
                )
            identity = parse_patient_identity(response.content, response.model, _elapsed_ms(start))
            self._audit("document.extract_identity", document_id, {
                "model": response.model,
                "has_name": identity.patient_name.present,
                "has_dob": identity.date_of_birth.present,
                "has_identifier": identity.mrn.present,
                "overall_confidence": identity.metadata.overall_confidence.value,
                "processing_time_ms": _elapsed_ms(start),
            })
        except ClinicalProvenanceError as e:
            logger.warning(f"Identity extraction unavailable for {document_id}: {type(e).__name__}: {e}")
            return None
        except Exception:
            logger.warning(f"Identity extraction failed for {document_id}", exc_info=True)
            return None

        return identity

    async def process_document(self, document_id: str) -> DocumentProcessingResult:
        """Structured extraction and the identity hint, side by side."""
        content = self.job_store.get_content(document_id)
        text = content.text if content is not None else None

        outcome, identity = await asyncio.gather(
            self.run(document_id),
            self.extract_identity(document_id, text),
        )
        return DocumentProcessingResult(outcome=outcome, identity=identity)

    # ------------------------------------------------------------------
    def _audit(self, event: str, document_id: str, metadata: Dict[str, Any]):
        if self.audit_logger is not None:
            self.audit_logger.record(event, metadata, resource_id=document_id)

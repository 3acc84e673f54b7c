# ============================================================================
# FILE: tests/conftest.py
# ============================================================================
"""
Pytest configuration and shared fixtures for testing.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest

from src.clinical_provenance.core.audit import AuditLogger
from src.clinical_provenance.core.job_store import JobStore
from src.clinical_provenance.llm.base import BackendType, BaseModelClient, ModelResponse
from src.clinical_provenance.llm.ollama_client import OllamaModelClient
from src.clinical_provenance.llm.retry import RetryPolicy


class FakeModelClient(BaseModelClient):
    """
    Scripted model client.

    Each queued item is response text, an exception to raise for that
    attempt, or a callable taking (prompt, model_id) that returns either.
    The last item repeats once the others are used up.
    """

    def __init__(self, responses: Optional[List[Any]] = None, model: str = "fake-model"):
        super().__init__({})
        self.responses = list(responses or [])
        self.model = model
        self.calls: List[Dict[str, Any]] = []

    @property
    def backend_type(self) -> BackendType:
        return BackendType.OLLAMA

    @property
    def default_model(self) -> str:
        return self.model

    def queue(self, *items: Any):
        self.responses.extend(items)

    async def _generate_once(self, prompt, model_id, max_tokens, temperature, system_prompt=None, images=None):
        self.calls.append({
            "prompt": prompt,
            "model_id": model_id,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "images": images,
        })
        if not self.responses:
            raise AssertionError("FakeModelClient called with no scripted response")
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if callable(item):
            item = item(prompt, model_id)
        if isinstance(item, Exception):
            raise item
        return ModelResponse(content=item, input_tokens=120, output_tokens=40, model=model_id)

    async def health_check(self) -> Dict[str, Any]:
        return {"healthy": True, "backend": "fake", "model": self.model, "details": "scripted"}



class FakeResponse:
    """aiohttp response stand-in; the body is the payload, else the text parsed as JSON"""

    def __init__(self, status=200, payload=None, text=""):
        self.status = status
        self._payload = payload
        self._text = text

    async def json(self, content_type="application/json"):
        if self._payload is None:
            return json.loads(self._text)
        return self._payload

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    closed = False

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.posted = []

    def post(self, url, json=None):
        self.posted.append((url, json))
        if self.error is not None:
            raise self.error
        return self.response

    async def close(self):
        self.closed = True

@pytest.fixture
def make_client():
    """Factory for scripted model clients"""
    return FakeModelClient


@pytest.fixture
def fast_retry():
    """Retry policy with millisecond delays"""
    return RetryPolicy(max_retries=2, initial_delay=0.001, multiplier=2.0, max_delay=0.005)


@pytest.fixture
def job_store(tmp_path):
    return JobStore(db_path=tmp_path / "jobs.db")


@pytest.fixture
def audit_logger(tmp_path):
    return AuditLogger(db_path=tmp_path / "audit.db")


@pytest.fixture
def echo_response():
    """Model output for a moderately complete echo report"""
    return json.dumps({
        "confidence": 0.9,
        "lvef": 45,
        "lvefMethod": "Simpson's biplane",
        "lvedd": "5.6",
        "lvesd": "not measured",
        "tapse": 18,
        "aorticValve": {
            "stenosisSeverity": "moderate",
            "meanGradient": 28,
            "valveArea": 1.1,
        },
        "mitralValve": {
            "regurgitationSeverity": None,
            "stenosisSeverity": None,
        },
        "laPressure": "elevated",
        "eePrime": 15.2,
        "conclusions": ["Moderate aortic stenosis", "", 42, "Mildly reduced LV function"],
    })


@pytest.fixture
def identity_response():
    return json.dumps({
        "name": "Jane Citizen",
        "nameConfidence": 1.0,
        "dob": "15/03/1965",
        "dobConfidence": 0.8,
        "mrn": "MRN-00123",
        "mrnConfidence": 0.6,
    })


@pytest.fixture
def letter_sources():
    """Transcript, one echo document and user notes"""
    from src.clinical_provenance.core.context.enums import SourceType
    from src.clinical_provenance.letters.source_anchoring import SourceRecord, SourceRegistry

    return SourceRegistry(
        transcript=SourceRecord(
            source_id="transcript-1",
            source_type=SourceType.TRANSCRIPT,
            text="Patient reports exertional chest tightness. Blood pressure today 138/84. "
                 "We started metoprolol 25 mg last month.",
        ),
        documents=[
            SourceRecord(
                source_id="doc-echo-1",
                source_type=SourceType.DOCUMENT,
                text="Transthoracic echo. LVEF 45% by Simpson's biplane. Moderate aortic stenosis.",
                name="echo_2024_03_12.pdf",
                extracted_data={"lvef": 45, "aorticValve": {"stenosis": "moderate"}},
            ),
            SourceRecord(
                source_id="doc-angio-1",
                source_type=SourceType.DOCUMENT,
                text="Coronary angiogram 12/03/2024. LAD 70% stenosis proximal. "
                     "PCI with 3.0 x 18 mm stent.",
                name="angio_report.pdf",
            ),
        ],
        user_input=SourceRecord(
            source_id="user-notes",
            source_type=SourceType.USER_INPUT,
            text="Follow up in six weeks.",
        ),
    )


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def ollama_client_with():
    """Real Ollama client bound to a scripted HTTP session (call inside a running loop)"""
    def _build(session, **config):
        client = OllamaModelClient({"ollama_host": "http://ollama.local:11434/", **config})
        client._session = session
        client._session_loop = asyncio.get_running_loop()
        return client
    return _build

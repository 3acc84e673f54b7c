# ============================================================================
# FILE: tests/unit/test_retry.py
# ============================================================================
"""
Unit tests for the retry policy and model client base
"""

import pytest

from src.clinical_provenance.llm.retry import NO_RETRY, RetryPolicy, call_with_retry
from src.clinical_provenance.utils.exceptions import DataError, TerminalModelError, TransientModelError


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def test_policy_delays():
    """Test exponential backoff with a cap"""
    policy = RetryPolicy(max_retries=4, initial_delay=0.5, multiplier=2.0, max_delay=3.0)
    assert policy.max_attempts == 5
    assert [policy.delay_for(i) for i in range(4)] == [0.5, 1.0, 2.0, 3.0]


def test_policy_validation():
    """Test invalid policies are rejected"""
    with pytest.raises(ValueError):
        RetryPolicy(max_retries=-1)
    with pytest.raises(ValueError):
        RetryPolicy(initial_delay=0)
    with pytest.raises(ValueError):
        RetryPolicy(multiplier=0.5)


def test_policy_from_settings():
    """Test default policy comes from model settings"""
    policy = RetryPolicy.from_settings()
    assert policy.max_retries == 3
    assert policy.initial_delay == 0.5
    assert RetryPolicy.fast_from_settings().max_retries == 2


@pytest.mark.asyncio
async def test_retry_until_success():
    """Test transient failures are retried with backoff"""
    attempts = []

    async def operation():
        attempts.append(1)
        if len(attempts) < 3:
            raise TransientModelError("timeout")
        return "ok"

    sleep = RecordingSleep()
    result = await call_with_retry(operation, RetryPolicy(max_retries=3, initial_delay=0.5), sleep=sleep)

    assert result == "ok"
    assert len(attempts) == 3
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_retry_exhausted_is_terminal():
    """Test exhausting retries raises TerminalModelError"""
    async def operation():
        raise TransientModelError("connection refused")

    sleep = RecordingSleep()
    with pytest.raises(TerminalModelError) as exc:
        await call_with_retry(operation, RetryPolicy(max_retries=2, initial_delay=0.1), sleep=sleep)

    assert exc.value.attempts == 3
    assert isinstance(exc.value.__cause__, TransientModelError)
    assert len(sleep.delays) == 2


@pytest.mark.asyncio
async def test_terminal_error_not_retried():
    """Test terminal failures stop immediately"""
    calls = []

    async def operation():
        calls.append(1)
        raise TerminalModelError("bad request")

    with pytest.raises(TerminalModelError) as exc:
        await call_with_retry(operation, RetryPolicy(max_retries=3), sleep=RecordingSleep())
    assert len(calls) == 1
    assert exc.value.attempts == 1


@pytest.mark.asyncio
async def test_no_retry_policy():
    """Test NO_RETRY makes a single attempt"""
    calls = []

    async def operation():
        calls.append(1)
        raise TransientModelError("503")

    with pytest.raises(TerminalModelError):
        await call_with_retry(operation, NO_RETRY, sleep=RecordingSleep())
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_client_generate_text_retries(make_client, fast_retry):
    """Test generate_text retries through the policy and tracks statistics"""
    client = make_client([TransientModelError("timeout"), '{"lvef": 55}'])

    response = await client.generate_text("prompt", None, 256, 0.0, fast_retry)

    assert response.content == '{"lvef": 55}'
    assert len(client.calls) == 2
    assert client.calls[0]["temperature"] == 0.0
    stats = client.get_statistics()
    assert stats["inference_count"] == 1
    assert stats["input_tokens"] == 120


@pytest.mark.asyncio
async def test_client_logs_model_override_once(make_client, fast_retry):
    """Test the override log-once state belongs to the instance"""
    client = make_client(['{}'])
    other = make_client(['{}'])

    await client.generate_text("p", "other-model", 16, 0.0, fast_retry)
    await client.generate_text("p", "other-model", 16, 0.0, fast_retry)

    assert client.has_logged_override("other-model")
    assert not other.has_logged_override("other-model")
    assert not client.has_logged_override("fake-model")


@pytest.mark.asyncio
async def test_client_vision_rejects_unsupported_type(make_client, fast_retry):
    """Test unsupported image types fail before any model call"""
    client = make_client(['{}'])
    with pytest.raises(DataError) as exc:
        await client.generate_vision("aGVsbG8=", "application/pdf", "p", None, 64, 0.0, fast_retry)
    assert str(exc.value) == "unsupported content type"
    assert client.calls == []


@pytest.mark.asyncio
async def test_client_vision_passes_image(make_client, fast_retry):
    """Test vision requests carry the image payload"""
    client = make_client(['{}'])
    await client.generate_vision("aGVsbG8=", "image/png", "p", None, 64, 0.0, fast_retry)
    assert client.calls[0]["images"] == ["aGVsbG8="]

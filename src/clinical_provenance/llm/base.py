# ============================================================================
# src/clinical_provenance/llm/base.py
# ============================================================================
"""
Base Model Client Interface

Defines the contract the extraction coordinator consumes:
- generate_text(): prompt -> ModelResponse, retried per RetryPolicy
- generate_vision(): image + prompt -> ModelResponse
- health_check(): verify the backend is reachable

Backends implement a single attempt (`_generate_once`) and raise
TransientModelError for retryable failures and TerminalModelError for
everything else. Retries live here, driven by the policy the caller
passes in.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set
from enum import Enum
import logging
import time

from ..utils.exceptions import DataError
from .retry import RetryPolicy, call_with_retry

SUPPORTED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")


class BackendType(Enum):
    """Supported inference backends."""
    OLLAMA = "ollama"    # Ollama server


@dataclass(frozen=True)
class ModelResponse:
    content: str
    input_tokens: int
    output_tokens: int
    model: str


class BaseModelClient(ABC):
    """
    Abstract base class for model clients.

    One instance is constructed by the caller and handed to whatever needs
    it; there is no module-level client cache.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.logger = logging.getLogger(self.__class__.__name__)

        self._inference_count = 0
        self._total_inference_time = 0.0
        self._total_input_tokens = 0
        self._total_output_tokens = 0

        # Model ids we have already reported as overriding the default
        self._logged_model_overrides: Set[str] = set()

    @property
    @abstractmethod
    def backend_type(self) -> BackendType:
        """Return the backend type."""
        pass

    @property
    @abstractmethod
    def default_model(self) -> str:
        """Model used when the caller passes no model id."""
        pass

    @abstractmethod
    async def _generate_once(
        self,
        prompt: str,
        model_id: str,
        max_tokens: int,
        temperature: float,
        system_prompt: Optional[str] = None,
        images: Optional[List[str]] = None,
    ) -> ModelResponse:
        """
        Single generation attempt.

        Raises:
            TransientModelError: timeout, connection failure, throttling
            TerminalModelError: anything a retry will not fix
        """
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """
        Check if the backend is available and ready.

        Returns:
            {"healthy": bool, "backend": str, "model": str, "details": str}
        """
        pass

    async def close(self):
        """Release network resources (no-op by default)."""
        return None

    def _resolve_model(self, model_id: Optional[str]) -> str:
        if not model_id:
            return self.default_model
        if model_id != self.default_model and model_id not in self._logged_model_overrides:
            self._logged_model_overrides.add(model_id)
            self.logger.info(f"Using model override '{model_id}' (default: {self.default_model})")
        return model_id

    def has_logged_override(self, model_id: str) -> bool:
        return model_id in self._logged_model_overrides

    async def generate_text(
        self,
        prompt: str,
        model_id: Optional[str],
        max_tokens: int,
        temperature: float,
        retry_policy: RetryPolicy,
        system_prompt: Optional[str] = None,
    ) -> ModelResponse:
        """
        Generate text from a prompt.

        Raises:
            TerminalModelError: retries exhausted or non-retryable failure
        """
        model = self._resolve_model(model_id)

        async def attempt() -> ModelResponse:
            return await self._generate_once(
                prompt=prompt,
                model_id=model,
                max_tokens=max_tokens,
                temperature=temperature,
                system_prompt=system_prompt,
            )

        return await self._timed(attempt, retry_policy, f"text generation ({model})")

    async def generate_vision(
        self,
        image_base64: str,
        mime_type: str,
        prompt: str,
        model_id: Optional[str],
        max_tokens: int,
        temperature: float,
        retry_policy: RetryPolicy,
        system_prompt: Optional[str] = None,
    ) -> ModelResponse:
        """
        Generate text from an image plus prompt.

        Raises:
            DataError: unsupported image type or empty payload
            TerminalModelError: retries exhausted or non-retryable failure
        """
        if mime_type not in SUPPORTED_IMAGE_TYPES:
            raise DataError("unsupported content type")
        if not image_base64:
            raise DataError("no extracted text content")

        model = self._resolve_model(model_id)

        async def attempt() -> ModelResponse:
            return await self._generate_once(
                prompt=prompt,
                model_id=model,
                max_tokens=max_tokens,
                temperature=temperature,
                system_prompt=system_prompt,
                images=[image_base64],
            )

        return await self._timed(attempt, retry_policy, f"vision generation ({model})")

    async def _timed(self, attempt, retry_policy: RetryPolicy, description: str) -> ModelResponse:
        start = time.monotonic()
        response = await call_with_retry(attempt, retry_policy, description=description)
        elapsed = time.monotonic() - start

        self._inference_count += 1
        self._total_inference_time += elapsed
        self._total_input_tokens += response.input_tokens
        self._total_output_tokens += response.output_tokens
        self.logger.info(
            f"{description}: {response.input_tokens} in / {response.output_tokens} out "
            f"tokens in {elapsed:.2f}s"
        )
        return response

    def get_statistics(self) -> Dict[str, Any]:
        """Get inference statistics."""
        avg_time = (
            self._total_inference_time / self._inference_count
            if self._inference_count > 0
            else 0.0
        )
        return {
            "backend": self.backend_type.value,
            "model": self.default_model,
            "inference_count": self._inference_count,
            "total_inference_time": self._total_inference_time,
            "average_inference_time": avg_time,
            "input_tokens": self._total_input_tokens,
            "output_tokens": self._total_output_tokens,
        }

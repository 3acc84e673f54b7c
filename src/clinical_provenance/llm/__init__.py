# ============================================================================
# src/clinical_provenance/llm/__init__.py
# ============================================================================
"""
Model collaborator: text and vision generation with explicit retry policy.
"""

from .base import BackendType, BaseModelClient, ModelResponse
from .retry import RetryPolicy, call_with_retry
from .ollama_client import OllamaModelClient
from .client import create_client

__all__ = [
    "BackendType",
    "BaseModelClient",
    "ModelResponse",
    "RetryPolicy",
    "call_with_retry",
    "OllamaModelClient",
    "create_client",
]

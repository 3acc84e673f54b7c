# ============================================================================
# src/clinical_provenance/llm/client.py
# ============================================================================
"""
Model Client Factory

Usage:
    from src.clinical_provenance.llm.client import create_client

    client = create_client()                      # settings from the environment
    client = create_client({'ollama_host': 'http://gpu-box:11434'})

Each call returns a new client. Construct one at startup and pass it to
the services that need it.
"""

from typing import Dict, Any, Optional

from ..config.model_config import model_settings
from .base import BaseModelClient
from .ollama_client import OllamaModelClient


def settings_config() -> Dict[str, Any]:
    """Client config derived from ModelSettings."""
    return {
        'backend': model_settings.MODEL_BACKEND,
        'ollama_host': model_settings.OLLAMA_HOST,
        'ollama_model': model_settings.EXTRACTION_MODEL,
        'timeout': model_settings.REQUEST_TIMEOUT,
    }


def create_client(config: Optional[Dict[str, Any]] = None) -> BaseModelClient:
    """
    Create a model client.

    Passed config values take precedence over settings.

    Raises:
        ValueError: If backend type is not supported
    """
    config = {**settings_config(), **(config or {})}
    backend = config.get('backend', 'ollama').lower()

    if backend == "ollama":
        return OllamaModelClient(config)

    raise ValueError(f"Unknown backend: {backend}. Supported backends: ollama")

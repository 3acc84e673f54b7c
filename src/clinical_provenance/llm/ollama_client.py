# ============================================================================
# src/clinical_provenance/llm/ollama_client.py
# ============================================================================
"""
Ollama Model Client

Uses a local Ollama server for inference over its HTTP API, so clinical
text never leaves the machine.

Setup:
    1. Install Ollama: https://ollama.ai
    2. Pull the extraction models, e.g. ollama pull llama3.1:8b-instruct-q8_0
    3. Start server: ollama serve (or it runs automatically)

Error mapping:
    timeout, connection failure, 429, 5xx -> TransientModelError
    any other non-200                    -> TerminalModelError
"""

import aiohttp
import asyncio
from typing import Dict, Any, List, Optional

from ..utils.exceptions import TerminalModelError, TransientModelError
from .base import BaseModelClient, BackendType, ModelResponse


DEFAULT_OLLAMA_HOST = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama3.1:8b-instruct-q8_0"


class OllamaModelClient(BaseModelClient):
    """
    Ollama-based inference client.

    Config options:
        ollama_host: Ollama server URL (default: http://localhost:11434)
        ollama_model: Default model name
        timeout: Per-request timeout in seconds (default: 300)
        json_mode: Constrain output to JSON via Ollama's format option (default: True)
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)

        self.host = self.config.get('ollama_host', DEFAULT_OLLAMA_HOST).rstrip('/')
        self._model_name = self.config.get('ollama_model', DEFAULT_OLLAMA_MODEL)
        self.timeout = self.config.get('timeout', 300)
        self.json_mode = self.config.get('json_mode', True)

        # HTTP session (created lazily, tied to event loop)
        self._session: Optional[aiohttp.ClientSession] = None
        self._session_loop: Optional[asyncio.AbstractEventLoop] = None

        self.logger.info(f"Initialized Ollama client: {self.host} / {self._model_name}")

    @property
    def backend_type(self) -> BackendType:
        return BackendType.OLLAMA

    @property
    def default_model(self) -> str:
        return self._model_name

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session for current event loop."""
        current_loop = asyncio.get_running_loop()

        needs_new_session = (
            self._session is None
            or self._session.closed
            or self._session_loop is not current_loop
        )

        if needs_new_session:
            if self._session is not None and not self._session.closed:
                await self._session.close()

            timeout = aiohttp.ClientTimeout(
                total=None,       # per-request limit applied with wait_for
                sock_connect=30,
                sock_read=600,
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._session_loop = current_loop

        return self._session

    async def close(self):
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
        self._session_loop = None

    async def health_check(self) -> Dict[str, Any]:
        """
        Check if Ollama server is running and the default model is available.
        """
        try:
            session = await self._get_session()

            async with session.get(f"{self.host}/api/tags") as response:
                if response.status != 200:
                    return {
                        "healthy": False,
                        "backend": "ollama",
                        "model": self._model_name,
                        "details": f"Ollama server returned status {response.status}"
                    }

                data = await response.json()
                models = [m.get('name', '') for m in data.get('models', [])]

                if not any(self._model_name in m for m in models):
                    return {
                        "healthy": False,
                        "backend": "ollama",
                        "model": self._model_name,
                        "details": f"Model not found. Run: ollama pull {self._model_name}"
                    }

                return {
                    "healthy": True,
                    "backend": "ollama",
                    "model": self._model_name,
                    "details": "Ollama server running and model available"
                }

        except aiohttp.ClientError as e:
            return {
                "healthy": False,
                "backend": "ollama",
                "model": self._model_name,
                "details": f"Cannot reach Ollama at {self.host}: {e}"
            }

    def build_payload(
        self,
        prompt: str,
        model_id: str,
        max_tokens: int,
        temperature: float,
        system_prompt: Optional[str] = None,
        images: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        payload = {
            "model": model_id,
            "prompt": prompt,
            "stream": False,
            "options": {
                "num_predict": max_tokens,
                "temperature": temperature,
            }
        }
        if system_prompt:
            payload["system"] = system_prompt
        if images:
            payload["images"] = images
        if self.json_mode:
            payload["format"] = "json"
        return payload

    async def _generate_once(
        self,
        prompt: str,
        model_id: str,
        max_tokens: int,
        temperature: float,
        system_prompt: Optional[str] = None,
        images: Optional[List[str]] = None,
    ) -> ModelResponse:
        payload = self.build_payload(prompt, model_id, max_tokens, temperature, system_prompt, images)
        session = await self._get_session()

        async def _do_request():
            async with session.post(f"{self.host}/api/generate", json=payload) as response:
                if response.status != 200:
                    error_text = await response.text()
                    message = f"Ollama error ({response.status}): {error_text[:200]}"
                    if response.status == 429 or response.status >= 500:
                        raise TransientModelError(message)
                    raise TerminalModelError(message)
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise TerminalModelError(f"Ollama returned a non-JSON body: {e}")

        try:
            data = await asyncio.wait_for(_do_request(), timeout=self.timeout)
        except asyncio.TimeoutError:
            self.logger.error(f"Ollama request timed out after {self.timeout}s (model={model_id})")
            raise TransientModelError(f"Model request timed out after {self.timeout}s")
        except aiohttp.ClientConnectorError:
            raise TransientModelError(
                f"Cannot connect to Ollama at {self.host}. Make sure Ollama is running: ollama serve"
            )
        except aiohttp.ClientError as e:
            raise TransientModelError(f"Ollama request failed: {e}")

        if not isinstance(data, dict) or 'response' not in data:
            raise TerminalModelError("Ollama response has no 'response' field")
        if not isinstance(data['response'], str):
            raise TerminalModelError(
                f"Ollama 'response' field is {type(data['response']).__name__}, expected text"
            )

        return ModelResponse(
            content=data['response'].strip(),
            input_tokens=data.get('prompt_eval_count', 0),
            output_tokens=data.get('eval_count', 0),
            model=data.get('model', model_id),
        )

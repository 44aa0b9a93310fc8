"""Ollama client backing the model-based classifier."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

import httpx

from inbox_sync.core.config import LlmSettings

LOGGER = logging.getLogger(__name__)

# A category label is a couple of words; anything longer is ignored anyway.
_MAX_LABEL_TOKENS = 16


class LLMError(RuntimeError):
    """Raised when the LLM provider fails to respond as expected."""


class LLMClient(Protocol):
    """Protocol describing the minimal LLM client behaviour."""

    @property
    def provider_id(self) -> str:
        """Identifier describing the backing model/provider."""
        raise NotImplementedError

    def generate(self, prompt: str) -> str:
        """Return the raw text completion for ``prompt``."""
        raise NotImplementedError


class OllamaClient:
    """Synchronous client for Ollama's ``/api/generate`` endpoint.

    Transport failures are retried with exponential backoff; a malformed
    response is not, since asking again will not fix it.
    """

    def __init__(
        self,
        settings: LlmSettings,
        *,
        attempts: int = 3,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self._settings = settings
        self._attempts = attempts
        self._client = client
        self._sleep = sleep
        self._endpoint = settings.base_url.rstrip("/") + "/api/generate"

    @property
    def provider_id(self) -> str:
        """Return a human readable identifier for the configured model."""
        return f"ollama:{self._settings.model}"

    def generate(self, prompt: str) -> str:
        """Return the completion text for ``prompt``."""
        payload = {
            "model": self._settings.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self._settings.temperature,
                "num_predict": _MAX_LABEL_TOKENS,
            },
        }
        data = self._post_with_retries(payload)
        result = data.get("response")
        if not isinstance(result, str):
            raise LLMError("LLM response missing 'response' field")
        return result

    def _post_with_retries(self, payload: dict[str, Any]) -> dict[str, Any]:
        for attempt in range(1, self._attempts + 1):
            try:
                response = self._post(payload)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                LOGGER.warning(
                    "%s request failed (attempt %d/%d): %s",
                    self.provider_id,
                    attempt,
                    self._attempts,
                    exc,
                )
                if attempt == self._attempts:
                    raise LLMError("LLM request failed after retries") from exc
                self._sleep(min(2**attempt, 8))
                continue
            try:
                data = response.json()
            except ValueError as exc:
                raise LLMError("LLM returned invalid JSON") from exc
            if not isinstance(data, dict):
                raise LLMError("LLM returned an unexpected payload")
            return data
        raise LLMError("LLM request was never attempted")

    def _post(self, payload: dict[str, Any]) -> httpx.Response:
        timeout = self._settings.timeout_seconds
        if self._client is not None:
            return self._client.post(self._endpoint, json=payload, timeout=timeout)
        return httpx.post(self._endpoint, json=payload, timeout=timeout)


__all__ = ["LLMClient", "LLMError", "OllamaClient"]

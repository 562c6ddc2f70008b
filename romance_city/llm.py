"""LLM client — HTTP connection to a structured-generation backend.

The turn resolver injects an LLM callable matching the protocol:

    async def __call__(self, prompt: str, *, system_instruction: str,
                       response_schema: dict) -> str: ...

The callable returns the raw response text, which may be empty when the
backend produced no candidate. Parsing is the caller's job.

    GeminiLLM — real HTTP client for the Gemini generateContent endpoint.

Production code constructs a GeminiLLM from Settings and passes it to the
TurnResolver. Tests use StubLLM (defined in the test helpers) instead.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

HARM_CATEGORIES = (
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
    "HARM_CATEGORY_HARASSMENT",
)


# ---------------------------------------------------------------------------
# Protocol: every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(
        self, prompt: str, *, system_instruction: str, response_schema: dict
    ) -> str: ...


# ---------------------------------------------------------------------------
# GeminiLLM: connects to the real backend
# ---------------------------------------------------------------------------

class GeminiLLM:
    """Async HTTP client for Gemini structured output.

    POST {base_url}/v1beta/models/{model}:generateContent
      {"contents": [...], "systemInstruction": {...},
       "generationConfig": {"responseMimeType": "application/json",
                            "responseSchema": ..., "temperature": ...},
       "safetySettings": [...]}
    Response: {"candidates": [{"content": {"parts": [{"text": "..."}]}}]}

    Args:
        api_key:     Gemini API key. Required.
        model:       Model identifier. Defaults to "gemini-2.5-flash".
        base_url:    API root, overridable for proxies and tests.
        temperature: Sampling temperature. Defaults to 0.9.
        timeout:     HTTP timeout in seconds. Defaults to 120.

    Raises:
        MissingCredentialError: if api_key is empty.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com",
        temperature: float = 0.9,
        timeout: float = 120.0,
    ) -> None:
        if not api_key:
            raise MissingCredentialError("Gemini API key is not configured")
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._temperature = temperature
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "x-goog-api-key": self._api_key}

    def _build_request(
        self, prompt: str, system_instruction: str, response_schema: dict
    ) -> tuple[str, dict]:
        """Return (url, body)."""
        url = f"{self._base_url}/v1beta/models/{self._model}:generateContent"
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": response_schema,
                "temperature": self._temperature,
            },
            "safetySettings": [
                {"category": c, "threshold": "BLOCK_NONE"} for c in HARM_CATEGORIES
            ],
        }
        return url, body

    def _parse_response(self, data: dict) -> str:
        """Concatenate the text parts of the first candidate ("" if none)."""
        candidates = data.get("candidates")
        if not candidates:
            logger.warning("No candidates in response: %r", data.get("promptFeedback"))
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts)

    async def __call__(
        self, prompt: str, *, system_instruction: str, response_schema: dict
    ) -> str:
        url, body = self._build_request(prompt, system_instruction, response_schema)
        logger.debug("llm call model=%s prompt_len=%d", self._model, len(prompt))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to Gemini at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise LLMError(
                f"Gemini returned HTTP {status}{_error_status(e.response)}",
                status=status,
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"Gemini timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise LLMError(f"Gemini request failed: {e!r}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("Gemini returned a non-JSON body") from e
        text = self._parse_response(data)
        logger.debug("llm response len=%d", len(text))
        return text


def _error_status(response: httpx.Response) -> str:
    """Google's error status (e.g. RESOURCE_EXHAUSTED) as a message suffix."""
    try:
        status = response.json()["error"]["status"]
    except (ValueError, KeyError, TypeError):
        return ""
    return f" ({status})"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class MissingCredentialError(LLMError):
    """Raised when no API key is available to start a session."""


def is_rate_limited(error: BaseException | None) -> bool:
    """True for HTTP 429 or a RESOURCE_EXHAUSTED signal in the message."""
    if error is None:
        return False
    if getattr(error, "status", None) == 429:
        return True
    message = str(error)
    return "429" in message or "RESOURCE_EXHAUSTED" in message

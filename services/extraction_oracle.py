"""Retrying adapter around the natural-language extraction service.

The adapter owns the retry policy and the translation of upstream failures
into a small set of categories.  It does not know what the returned JSON
means; callers validate the object against their own schema.
"""

from __future__ import annotations

import json
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol

from config.settings import Settings, settings as default_settings
from services.llm_client import LLMClientError

logger = logging.getLogger(__name__)

_RETRYABLE_CODES = {"ECONNRESET", "ETIMEDOUT"}


class CompletionClient(Protocol):
    def complete(self, system_instruction: str, user_prompt: str) -> str: ...


class OracleErrorKind(str, Enum):
    INVALID_CREDENTIAL = "invalid_credential"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    TIMED_OUT = "timed_out"
    UPSTREAM_ERROR = "upstream_error"


_KIND_MESSAGES = {
    OracleErrorKind.INVALID_CREDENTIAL: "Invalid extraction service API key",
    OracleErrorKind.RATE_LIMITED: "Extraction service rate limit exceeded. Please try again later.",
    OracleErrorKind.UPSTREAM_UNAVAILABLE: "Extraction service is temporarily unavailable",
    OracleErrorKind.TIMED_OUT: "Extraction service request timed out",
    OracleErrorKind.UPSTREAM_ERROR: "Extraction service request failed",
}


class OracleError(RuntimeError):
    """Upstream communication failure, reduced to a fixed category."""

    def __init__(self, kind: OracleErrorKind) -> None:
        super().__init__(_KIND_MESSAGES[kind])
        self.kind = kind


class MalformedOutputError(ValueError):
    """The service answered, but not with a usable JSON object."""

    def __init__(self, message: str = "Extraction service returned malformed output", errors=None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


def is_retryable(exc: Exception) -> bool:
    status_code = getattr(exc, "status_code", None)
    if status_code == 429:
        return True
    if isinstance(status_code, int) and status_code >= 500:
        return True
    if getattr(exc, "code", None) in _RETRYABLE_CODES:
        return True
    return "timeout" in str(exc).lower()


def classify_error(exc: Exception) -> OracleErrorKind:
    status_code = getattr(exc, "status_code", None)
    if status_code == 401:
        return OracleErrorKind.INVALID_CREDENTIAL
    if status_code == 429:
        return OracleErrorKind.RATE_LIMITED
    if status_code in (500, 503):
        return OracleErrorKind.UPSTREAM_UNAVAILABLE
    if getattr(exc, "code", None) == "ETIMEDOUT" or "timeout" in str(exc).lower():
        return OracleErrorKind.TIMED_OUT
    return OracleErrorKind.UPSTREAM_ERROR


class ExtractionOracle:
    """Turn a (system instruction, prompt) pair into a JSON object.

    Transient failures (429, 5xx, connection resets and timeouts) are retried
    up to ``max_retries`` times with delays of ``base_delay * 2 ** attempt``
    seconds.  ``sleep_fn`` is injectable so backoff can be observed in tests.
    """

    def __init__(
        self,
        client: CompletionClient,
        *,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        sleep_fn: Callable[[float], None] = time.sleep,
        config: Optional[Settings] = None,
    ) -> None:
        config = config or default_settings
        self._client = client
        self.max_retries = config.oracle_max_retries if max_retries is None else max_retries
        self.base_delay = config.oracle_base_delay_seconds if base_delay is None else base_delay
        self._sleep = sleep_fn

    def complete(self, system_instruction: str, task_prompt: str) -> str:
        attempt = 0
        while True:
            try:
                return self._client.complete(system_instruction, task_prompt)
            except (LLMClientError, OSError) as exc:
                if attempt < self.max_retries and is_retryable(exc):
                    delay = self.base_delay * (2 ** attempt)
                    attempt += 1
                    logger.warning(
                        "Extraction call failed (%s); retry %d/%d in %.1fs",
                        exc,
                        attempt,
                        self.max_retries,
                        delay,
                    )
                    self._sleep(delay)
                    continue
                kind = classify_error(exc)
                logger.warning(
                    "Extraction call failed after %d attempt(s) as %s: %s",
                    attempt + 1,
                    kind.value,
                    exc,
                )
                raise OracleError(kind) from None
            except Exception:
                logger.exception("Extraction call failed with an unexpected error")
                raise OracleError(OracleErrorKind.UPSTREAM_ERROR) from None

    def extract(self, system_instruction: str, task_prompt: str) -> Dict[str, Any]:
        """Return the service reply decoded as a single JSON object."""

        text = self.complete(system_instruction, task_prompt)
        try:
            payload = json.loads(text)
        except (TypeError, ValueError):
            logger.warning("Extraction service returned non-JSON content (%d chars)", len(text or ""))
            raise MalformedOutputError() from None
        if not isinstance(payload, dict):
            raise MalformedOutputError("Extraction service returned JSON that is not an object")
        return payload


__all__ = [
    "CompletionClient",
    "ExtractionOracle",
    "MalformedOutputError",
    "OracleError",
    "OracleErrorKind",
    "classify_error",
    "is_retryable",
]

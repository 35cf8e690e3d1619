"""Lightweight client for an OpenAI-compatible chat completions endpoint."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from config.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class LLMClientError(RuntimeError):
    """Raised when the chat completions endpoint cannot produce a reply.

    ``status_code`` carries the HTTP status for error responses and ``code``
    names transport failures (``ETIMEDOUT`` or ``ECONNRESET``) so callers can
    tell transient failures apart from permanent ones.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class ChatCompletionClient:
    """Thin wrapper over ``POST /v1/chat/completions`` asking for JSON output."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        config: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        config = config or default_settings
        url = base_url or config.llm_base_url
        if not url.startswith("http"):
            url = f"https://{url}"
        self.base_url = url.rstrip("/")
        self.api_key = api_key or config.llm_api_key
        self.model = model or config.llm_model
        self.timeout = timeout or config.llm_timeout
        self.temperature = config.llm_temperature if temperature is None else temperature
        self.max_tokens = max_tokens or config.llm_max_tokens
        self._session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post(self, path: str, payload: Dict[str, Any]) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.post(
                url, json=payload, headers=self._headers(), timeout=self.timeout
            )
            response.raise_for_status()
            return response
        except requests.HTTPError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            message = exc.response.text if exc.response is not None else str(exc)
            raise LLMClientError(message, status_code=status_code) from exc
        except requests.Timeout as exc:
            raise LLMClientError(f"request timeout: {exc}", code="ETIMEDOUT") from exc
        except requests.ConnectionError as exc:
            raise LLMClientError(str(exc), code="ECONNRESET") from exc
        except requests.RequestException as exc:
            raise LLMClientError(str(exc)) from exc

    @staticmethod
    def _coerce_message_content(payload: Any) -> str:
        if not isinstance(payload, dict):
            return ""
        choices = payload.get("choices") or []
        if isinstance(choices, list) and choices:
            first = choices[0] if isinstance(choices[0], dict) else {}
            message = first.get("message") or {}
            if isinstance(message, dict):
                content = message.get("content")
                if isinstance(content, str):
                    return content
        for key in ("text", "response", "output", "content"):
            value = payload.get(key)
            if isinstance(value, str):
                return value
        return ""

    def complete(self, system_instruction: str, user_prompt: str) -> str:
        """Return the assistant text for one system + user exchange."""

        messages: List[Dict[str, str]] = [
            {"role": "system", "content": system_instruction},
            {"role": "user", "content": user_prompt},
        ]
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "response_format": {"type": "json_object"},
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        response = self._post("/v1/chat/completions", payload)
        try:
            data = response.json() if response.content else {}
        except ValueError as exc:
            raise LLMClientError(f"invalid response body: {exc}") from exc
        return self._coerce_message_content(data)


__all__ = ["ChatCompletionClient", "LLMClientError"]

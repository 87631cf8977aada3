"""Chat-completion client for an OpenAI-compatible endpoint (GitHub Models by default)."""

from __future__ import annotations

import json
import logging
import os
import re
import time
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import requests

logger = logging.getLogger(__name__)

API_KEY_ENV_VARS = ("BRAIN_LLM_API_KEY", "GH_TOKEN", "GITHUB_TOKEN")


@dataclass(frozen=True)
class ChatMessage:
    """A message in a conversation."""

    role: str  # "system", "user" or "assistant"
    content: str


@dataclass(frozen=True)
class Choice:
    """A single response choice."""

    index: int
    message: ChatMessage
    finish_reason: str | None = None


@dataclass(frozen=True)
class Usage:
    """Token usage information."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass(frozen=True)
class ChatCompletionResponse:
    """Response from a chat completion API call."""

    id: str
    model: str
    choices: tuple[Choice, ...]
    usage: Usage | None = None


class LLMClientError(Exception):
    """Error communicating with the LLM endpoint."""


class RateLimitError(LLMClientError):
    """Rate limit exceeded - request can be retried after delay."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


def resolve_api_key() -> str | None:
    """Return the first API key found in the environment."""
    for name in API_KEY_ENV_VARS:
        value = os.environ.get(name)
        if value:
            return value
    return None


class LLMClient:
    """Client for chat completions used by the fact extractor.

    Every call is bounded by ``timeout``; HTTP 429 responses are retried with
    exponential backoff (honouring ``Retry-After``) up to ``max_retries``.
    """

    DEFAULT_API_URL = "https://models.inference.ai.azure.com"
    DEFAULT_MODEL = "gpt-4o-mini"
    DEFAULT_MAX_OUTPUT_TOKENS = 2000
    DEFAULT_TEMPERATURE = 0.3

    DEFAULT_MAX_RETRIES = 3
    DEFAULT_INITIAL_BACKOFF = 2.0  # seconds
    DEFAULT_MAX_BACKOFF = 60.0
    DEFAULT_BACKOFF_MULTIPLIER = 2.0

    def __init__(
        self,
        *,
        api_key: str | None = None,
        api_url: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        timeout: float = 60,
        max_retries: int | None = None,
        initial_backoff: float | None = None,
        max_backoff: float | None = None,
        session: Any = None,
    ):
        """Initialize the client.

        Args:
            api_key: Bearer token. Defaults to BRAIN_LLM_API_KEY, GH_TOKEN or GITHUB_TOKEN.
            api_url: Base URL for the API.
            model: Default model to use.
            max_tokens: Default maximum tokens for completions.
            temperature: Default sampling temperature (0.0-1.0).
            timeout: Request timeout in seconds.
            max_retries: Retry attempts for rate limits.
            initial_backoff: Initial backoff delay in seconds.
            max_backoff: Maximum backoff delay in seconds.
            session: Optional ``requests.Session`` (or compatible) to send requests with.
        """
        self.api_key = api_key or resolve_api_key()
        if not self.api_key:
            raise LLMClientError(
                "LLM API key required. Set BRAIN_LLM_API_KEY (or GH_TOKEN/GITHUB_TOKEN) "
                "or pass api_key parameter."
            )

        self.api_url = (api_url or self.DEFAULT_API_URL).rstrip("/")
        self.model = model or self.DEFAULT_MODEL
        self.max_tokens = max_tokens or self.DEFAULT_MAX_OUTPUT_TOKENS
        self.temperature = self.DEFAULT_TEMPERATURE if temperature is None else temperature
        self.timeout = timeout
        self.max_retries = max_retries if max_retries is not None else self.DEFAULT_MAX_RETRIES
        self.initial_backoff = initial_backoff or self.DEFAULT_INITIAL_BACKOFF
        self.max_backoff = max_backoff or self.DEFAULT_MAX_BACKOFF
        self._session = session

    def chat_completion(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> ChatCompletionResponse:
        """Create a chat completion.

        Raises:
            LLMClientError: If the API request fails or times out.
            RateLimitError: If rate limiting persists after all retries.
        """
        url = f"{self.api_url}/chat/completions"
        payload: dict[str, Any] = {
            "model": model or self.model,
            "messages": list(messages),
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": self.temperature if temperature is None else temperature,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        return self._request_with_retry(url, payload, headers)

    def _request_with_retry(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
    ) -> ChatCompletionResponse:
        backoff = self.initial_backoff
        client = self._session or requests

        for attempt in range(self.max_retries + 1):
            try:
                response = client.post(url, json=payload, headers=headers, timeout=self.timeout)
                response.raise_for_status()
            except requests.Timeout as exc:
                raise LLMClientError(f"LLM request timed out after {self.timeout}s") from exc
            except requests.RequestException as exc:
                if exc.response is not None and exc.response.status_code == 429:
                    retry_after = self._parse_retry_after(exc.response)
                    wait_time = min(retry_after if retry_after else backoff, self.max_backoff)
                    if attempt < self.max_retries:
                        logger.warning(
                            "Rate limit hit (attempt %d/%d). Waiting %.1f seconds before retry.",
                            attempt + 1,
                            self.max_retries + 1,
                            wait_time,
                        )
                        time.sleep(wait_time)
                        backoff = min(backoff * self.DEFAULT_BACKOFF_MULTIPLIER, self.max_backoff)
                        continue
                    raise RateLimitError(
                        f"Rate limit exceeded after {self.max_retries + 1} attempts: "
                        f"{self._build_error_message(exc)}",
                        retry_after=retry_after,
                    ) from exc
                raise LLMClientError(self._build_error_message(exc)) from exc

            try:
                data = response.json()
            except ValueError as exc:
                raise LLMClientError(f"Invalid JSON response: {exc}") from exc
            return self._parse_response(data)

        raise LLMClientError("Request failed unexpectedly")

    def _parse_retry_after(self, response: requests.Response) -> float | None:
        retry_after = response.headers.get("Retry-After")
        if not retry_after:
            try:
                data = response.json()
            except ValueError:
                return None
            message = ""
            if isinstance(data, dict):
                message = str(data.get("message", "") or data.get("details", ""))
            match = re.search(r"wait\s+(\d+)\s*second", message, re.IGNORECASE)
            return float(match.group(1)) if match else None
        try:
            return float(retry_after)
        except ValueError:
            return None

    def _build_error_message(self, exc: requests.RequestException) -> str:
        error_msg = f"LLM API request failed: {exc}"
        if exc.response is not None:
            try:
                error_data = exc.response.json()
            except ValueError:
                return error_msg
            if isinstance(error_data, dict) and "error" in error_data:
                error_msg = f"{error_msg} - {error_data['error']}"
        return error_msg

    def _parse_response(self, data: Any) -> ChatCompletionResponse:
        if not isinstance(data, dict):
            raise LLMClientError(f"Malformed response: expected an object, got {type(data).__name__}")
        raw_choices = data.get("choices") or []
        if not isinstance(raw_choices, list):
            raise LLMClientError("Malformed response: 'choices' is not a list")

        choices = []
        for choice_data in raw_choices:
            if not isinstance(choice_data, dict):
                raise LLMClientError("Malformed response: choice is not an object")
            message_data = choice_data.get("message") or {}
            if not isinstance(message_data, dict):
                raise LLMClientError("Malformed response: message is not an object")
            content = message_data.get("content") or ""
            if not isinstance(content, str):
                raise LLMClientError("Malformed response: message content is not a string")
            choices.append(
                Choice(
                    index=choice_data.get("index", 0),
                    message=ChatMessage(
                        role=message_data.get("role", "assistant"),
                        content=content,
                    ),
                    finish_reason=choice_data.get("finish_reason"),
                )
            )

        usage = None
        if isinstance(data.get("usage"), dict):
            usage = Usage(
                prompt_tokens=data["usage"].get("prompt_tokens", 0),
                completion_tokens=data["usage"].get("completion_tokens", 0),
                total_tokens=data["usage"].get("total_tokens", 0),
            )

        return ChatCompletionResponse(
            id=data.get("id", ""),
            model=data.get("model", ""),
            choices=tuple(choices),
            usage=usage,
        )


def dumps_for_prompt(payload: Any) -> str:
    """Pretty JSON for embedding structured data in a prompt."""
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)

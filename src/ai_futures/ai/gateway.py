"""OpenAI-compatible chat-completion gateway."""

from __future__ import annotations

import time
from typing import Any, Callable

import httpx
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from ai_futures.ai.providers import AuthStrategy, ProviderConfig, resolve_provider
from ai_futures.config import Settings
from ai_futures.utils.logging import get_logger, log_llm_call

# Network-level failures worth another attempt. HTTP status errors are not.
_TRANSIENT_HTTPX_ERRORS: tuple[type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


class AIGatewayError(Exception):
    """Base gateway error."""


class AITransientError(AIGatewayError):
    """Raised for retryable transport failures (timeouts, resets, DNS)."""


class AIRequestError(AIGatewayError):
    """Raised for failures that another attempt would not fix."""


class AIGateway:
    """Send one system + user prompt pair and return the raw completion text."""

    def __init__(
        self,
        settings: Settings,
        *,
        provider: ProviderConfig | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings
        self._provider = provider or resolve_provider(settings)
        self._transport = transport
        self._sleep = sleep
        self._logger = get_logger("ai_futures.ai.gateway")

    @property
    def provider(self) -> ProviderConfig:
        return self._provider

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return the assistant text, retrying transient failures.

        Raises:
            AITransientError: every attempt failed at the transport level.
            AIRequestError: a non-retryable failure (auth, bad request,
                empty body, missing key).
        """
        step = self._settings.ai_retry_backoff_seconds
        retrying = Retrying(
            retry=retry_if_exception_type(AITransientError),
            wait=wait_incrementing(start=step, increment=step),
            stop=stop_after_attempt(self._settings.ai_max_attempts),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        started = time.perf_counter()
        try:
            content = retrying(self._request_completion, system_prompt, user_prompt)
        except AIGatewayError as exc:
            log_llm_call(
                self._logger,
                model=self._provider.model_name,
                success=False,
                latency_ms=(time.perf_counter() - started) * 1000,
                provider=self._provider.provider.value,
                reason=str(exc),
            )
            raise

        log_llm_call(
            self._logger,
            model=self._provider.model_name,
            success=True,
            latency_ms=(time.perf_counter() - started) * 1000,
            provider=self._provider.provider.value,
            response_chars=len(content),
        )
        return content

    def _request_completion(self, system_prompt: str, user_prompt: str) -> str:
        headers = {"Content-Type": "application/json"}
        if self._provider.auth_strategy == AuthStrategy.BEARER:
            if not self._settings.ai_api_key:
                raise AIRequestError("missing_ai_api_key")
            headers["Authorization"] = f"Bearer {self._settings.ai_api_key}"

        payload = {
            "model": self._provider.model_name,
            "temperature": self._settings.ai_temperature,
            "max_tokens": self._settings.ai_max_tokens,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }

        try:
            with httpx.Client(timeout=self._settings.ai_timeout, transport=self._transport) as client:
                response = client.post(self._provider.completions_url, headers=headers, json=payload)
                response.raise_for_status()
                body = response.json()
        except _TRANSIENT_HTTPX_ERRORS as exc:
            raise AITransientError(f"{type(exc).__name__}: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            raise AIRequestError(
                f"http_{exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise AIRequestError(f"{type(exc).__name__}: {exc}") from exc

        return _extract_message_content(body)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        self._logger.warning(
            "llm_call_retry",
            attempt=retry_state.attempt_number,
            max_attempts=self._settings.ai_max_attempts,
            error=str(outcome.exception()) if outcome is not None else None,
            sleep_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        )


def _extract_message_content(payload: Any) -> str:
    """Read assistant content from a chat-completion response payload."""
    if not isinstance(payload, dict):
        raise AIRequestError("invalid_response_body")
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        raise AIRequestError("empty_choices")
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str) or not content.strip():
        raise AIRequestError("empty_message_content")
    return content

"""
Async Direct Line HTTP transport for relaygate.

Handles async HTTP communication with the Direct Line API using the httpx
async client, with the same retry and error handling rules as the sync
transport.
"""

import asyncio
import random
import time
from collections.abc import Callable, Coroutine
from typing import Any

import httpx

from relaygate.exceptions import RelayGateError, ServerError, UpstreamError
from relaygate.logging import log_http_request, log_http_response
from relaygate.transport import (
    CONVERSATIONS_PATH,
    DEFAULT_BASE_URL,
    TOKENS_GENERATE_PATH,
    RetryConfig,
    activities_path,
    parse_activity_page,
    parse_body,
    parse_error_response,
)
from relaygate.types.activities import ActivityPage


class AsyncDirectLineTransport:
    """
    Async HTTP transport for the Direct Line API.

    Handles:
    - Bearer authentication with a secret (issuance) or token (everything else)
    - Exponential backoff with jitter for GET retries
    - Retry-After header respect for rate limiting
    - Error response parsing into typed exceptions
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        retry_config: RetryConfig | None = None,
    ) -> None:
        """
        Initialize the async Direct Line transport.

        Args:
            base_url: Base URL of the Direct Line service
            timeout: Request timeout in seconds
            retry_config: Configuration for retry behavior
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "AsyncDirectLineTransport":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def issue_credential(self, secret: str) -> dict[str, Any]:
        """Exchange a Direct Line secret for a short-lived token."""
        return await self.request("POST", TOKENS_GENERATE_PATH, secret, body={})

    async def create_conversation(self, token: str) -> str:
        """Start a new conversation and return its id."""
        data = await self.request("POST", CONVERSATIONS_PATH, token, body={})
        conversation_id = data.get("conversationId")
        if not isinstance(conversation_id, str) or not conversation_id:
            raise ServerError(
                "MALFORMED_RESPONSE", "Conversation response carried no conversationId"
            )
        return conversation_id

    async def post_activity(
        self, token: str, conversation_id: str, sender_id: str, text: str
    ) -> str | None:
        """Post a message activity into a conversation."""
        body = {
            "type": "message",
            "from": {"id": sender_id},
            "text": text,
        }
        data = await self.request(
            "POST", activities_path(conversation_id), token, body=body
        )
        return data.get("id")

    async def list_activities(
        self,
        token: str,
        conversation_id: str,
        watermark: str | None = None,
        retry: bool = True,
    ) -> ActivityPage:
        """
        Read the activity feed of a conversation.

        Raises:
            ServerError: If the feed is not shaped like an activity set
        """
        params = {"watermark": watermark} if watermark else None
        data = await self.request(
            "GET", activities_path(conversation_id), token, params=params, retry=retry
        )
        return parse_activity_page(data, watermark)

    async def request(
        self,
        method: str,
        path: str,
        bearer: str,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        retry: bool | None = None,
    ) -> dict[str, Any]:
        """
        Make an authenticated request. Only GET is retried by default.

        Raises:
            UpstreamError: On API errors
        """
        headers = {"Authorization": f"Bearer {bearer}"}

        async def make_request() -> httpx.Response:
            log_http_request(method, f"{self.base_url}{path}", headers, body)
            started = time.monotonic()
            response = await self._client.request(
                method, path, params=params, json=body, headers=headers
            )
            log_http_response(
                response.status_code,
                f"{self.base_url}{path}",
                elapsed_ms=(time.monotonic() - started) * 1000,
            )
            return response

        is_get = method.upper() == "GET"
        return await self._execute_with_retry(
            make_request, retry=is_get if retry is None else retry and is_get
        )

    async def _execute_with_retry(
        self,
        request_fn: Callable[[], Coroutine[Any, Any, httpx.Response]],
        retry: bool = True,
    ) -> dict[str, Any]:
        """
        Execute a request, retrying retryable errors when ``retry`` is set.

        Args:
            request_fn: Async function that makes the HTTP request
            retry: Whether the request is safe to repeat

        Returns:
            Parsed JSON response

        Raises:
            UpstreamError: On non-retryable errors or after max retries
        """
        max_retries = self.retry_config.max_retries if retry else 0
        last_error: Exception | None = None

        for attempt in range(max_retries + 1):
            try:
                response = await request_fn()

                if response.status_code < 400:
                    return parse_body(response)

                error: UpstreamError = parse_error_response(response)

                if attempt >= max_retries or not self._should_retry(
                    response.status_code, attempt
                ):
                    raise error

                last_error = error

                retry_after = response.headers.get("Retry-After")
                await asyncio.sleep(self._get_backoff_time(attempt, retry_after))

            except httpx.RequestError as e:
                # Network errors are retryable
                if attempt >= max_retries:
                    raise ServerError("CONNECTION_ERROR", str(e)) from e

                last_error = e
                await asyncio.sleep(self._get_backoff_time(attempt, None))

        if last_error:
            if isinstance(last_error, RelayGateError):
                raise last_error
            raise ServerError("MAX_RETRIES_EXCEEDED", str(last_error))

        raise ServerError("UNKNOWN_ERROR", "Request failed with no error details")

    def _should_retry(self, status_code: int, attempt: int) -> bool:
        """Determine if a request should be retried."""
        if attempt >= self.retry_config.max_retries:
            return False

        return status_code in self.retry_config.retry_on

    def _get_backoff_time(
        self, attempt: int, retry_after: str | None
    ) -> float:
        """
        Calculate backoff time for retry.

        Uses exponential backoff with jitter, respecting Retry-After header
        if present.
        """
        if retry_after and self.retry_config.respect_retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass  # Fall through to exponential backoff

        base_wait = self.retry_config.backoff_factor ** attempt

        jitter_range = base_wait * self.retry_config.jitter
        jitter = random.uniform(-jitter_range, jitter_range)
        wait_time = base_wait + jitter

        return min(wait_time, self.retry_config.max_backoff)

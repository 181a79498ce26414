"""
Direct Line HTTP transport for relaygate.

Handles HTTP communication with the Bot Framework Direct Line 3.0 API:
bearer authentication, retry of idempotent reads, and error handling.
"""

import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from relaygate.exceptions import (
    AuthenticationError,
    RateLimitedError,
    RelayGateError,
    ServerError,
    UpstreamError,
)
from relaygate.logging import log_http_request, log_http_response
from relaygate.types.activities import Activity, ActivityPage

DEFAULT_BASE_URL = "https://directline.botframework.com"

TOKENS_GENERATE_PATH = "/v3/directline/tokens/generate"
CONVERSATIONS_PATH = "/v3/directline/conversations"


def activities_path(conversation_id: str) -> str:
    return f"{CONVERSATIONS_PATH}/{conversation_id}/activities"


@dataclass
class RetryConfig:
    """Configuration for automatic retry of idempotent requests."""

    max_retries: int = 3
    backoff_factor: float = 2.0
    retry_on: list[int] = field(default_factory=lambda: [429, 500, 502, 503])
    respect_retry_after: bool = True
    max_backoff: float = 60.0  # Maximum backoff time in seconds
    jitter: float = 0.1  # Jitter factor (0.1 = ±10%)


class DirectLineTransport:
    """
    HTTP transport for the Direct Line API.

    Handles:
    - Bearer authentication with a secret (issuance) or token (everything else)
    - Exponential backoff with jitter for GET retries
    - Retry-After header respect for rate limiting
    - Error response parsing into typed exceptions

    POST requests are sent exactly once. Issuing a token or posting an
    activity twice is not harmless, so failures surface to the caller.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        retry_config: RetryConfig | None = None,
    ) -> None:
        """
        Initialize the Direct Line transport.

        Args:
            base_url: Base URL of the Direct Line service
            timeout: Request timeout in seconds
            retry_config: Configuration for retry behavior
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()

        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "DirectLineTransport":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def issue_credential(self, secret: str) -> dict[str, Any]:
        """
        Exchange a Direct Line secret for a short-lived token.

        Args:
            secret: The agent's Direct Line secret

        Returns:
            Raw response payload (``token``, ``expires_in``, ``conversationId``)

        Raises:
            UpstreamError: On API errors
        """
        return self.request("POST", TOKENS_GENERATE_PATH, secret, body={})

    def create_conversation(self, token: str) -> str:
        """
        Start a new conversation.

        Returns:
            The upstream conversation id

        Raises:
            UpstreamError: On API errors or a response without a conversation id
        """
        data = self.request("POST", CONVERSATIONS_PATH, token, body={})
        conversation_id = data.get("conversationId")
        if not isinstance(conversation_id, str) or not conversation_id:
            raise ServerError(
                "MALFORMED_RESPONSE", "Conversation response carried no conversationId"
            )
        return conversation_id

    def post_activity(
        self, token: str, conversation_id: str, sender_id: str, text: str
    ) -> str | None:
        """
        Post a message activity into a conversation.

        Returns:
            The activity id assigned upstream, if any
        """
        body = {
            "type": "message",
            "from": {"id": sender_id},
            "text": text,
        }
        data = self.request("POST", activities_path(conversation_id), token, body=body)
        return data.get("id")

    def list_activities(
        self,
        token: str,
        conversation_id: str,
        watermark: str | None = None,
        retry: bool = True,
        timeout: float | None = None,
    ) -> ActivityPage:
        """
        Read the activity feed of a conversation.

        Args:
            token: Bearer token
            conversation_id: Conversation to read
            watermark: Only return activities after this watermark
            retry: Retry transient failures with backoff (the poller
                disables this and applies its own cadence)
            timeout: Upper bound for this request in seconds, never above
                the transport timeout

        Returns:
            ActivityPage with parsed activities and the next watermark

        Raises:
            ServerError: If the feed is not shaped like an activity set
        """
        params = {"watermark": watermark} if watermark else None
        data = self.request(
            "GET",
            activities_path(conversation_id),
            token,
            params=params,
            retry=retry,
            timeout=timeout,
        )
        return parse_activity_page(data, watermark)

    def request(
        self,
        method: str,
        path: str,
        bearer: str,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        retry: bool | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """
        Make an authenticated request. Only GET is retried by default.

        Args:
            method: HTTP method
            path: API path
            bearer: Secret or token for the Authorization header
            params: Query parameters
            body: Request body (for POST)
            retry: Override the retry decision (never retry a POST)
            timeout: Per-request timeout, capped at the transport timeout

        Returns:
            Parsed JSON response

        Raises:
            UpstreamError: On API errors
        """
        headers = {"Authorization": f"Bearer {bearer}"}
        request_timeout = self.timeout
        if timeout is not None:
            request_timeout = max(min(timeout, self.timeout), 0.0)

        def make_request() -> httpx.Response:
            log_http_request(method, f"{self.base_url}{path}", headers, body)
            started = time.monotonic()
            response = self._client.request(
                method,
                path,
                params=params,
                json=body,
                headers=headers,
                timeout=request_timeout,
            )
            log_http_response(
                response.status_code,
                f"{self.base_url}{path}",
                elapsed_ms=(time.monotonic() - started) * 1000,
            )
            return response

        is_get = method.upper() == "GET"
        return self._execute_with_retry(
            make_request, retry=is_get if retry is None else retry and is_get
        )

    def _execute_with_retry(
        self, request_fn: Callable[[], httpx.Response], retry: bool = True
    ) -> dict[str, Any]:
        """
        Execute a request, retrying retryable errors when ``retry`` is set.

        Args:
            request_fn: Function that makes the HTTP request
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
                response = request_fn()

                if response.status_code < 400:
                    return parse_body(response)

                error = self._parse_error_response(response)

                if attempt >= max_retries or not self._should_retry(
                    response.status_code, attempt
                ):
                    raise error

                last_error = error

                retry_after = response.headers.get("Retry-After")
                time.sleep(self._get_backoff_time(attempt, retry_after))

            except httpx.RequestError as e:
                # Network errors are retryable
                if attempt >= max_retries:
                    raise ServerError("CONNECTION_ERROR", str(e)) from e

                last_error = e
                time.sleep(self._get_backoff_time(attempt, None))

        if last_error:
            if isinstance(last_error, RelayGateError):
                raise last_error
            raise ServerError("MAX_RETRIES_EXCEEDED", str(last_error))

        raise ServerError("UNKNOWN_ERROR", "Request failed with no error details")

    def _should_retry(self, status_code: int, attempt: int) -> bool:
        """
        Determine if a request should be retried.

        Args:
            status_code: HTTP status code
            attempt: Current attempt number (0-indexed)

        Returns:
            True if the request should be retried
        """
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

        Args:
            attempt: Current attempt number (0-indexed)
            retry_after: Value of Retry-After header (if present)

        Returns:
            Time to wait in seconds
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

    def _parse_error_response(self, response: httpx.Response) -> UpstreamError:
        """
        Parse an error response into a typed exception.

        Args:
            response: HTTP response with error status

        Returns:
            Appropriate UpstreamError subclass
        """
        return parse_error_response(response)


def parse_error_response(response: httpx.Response) -> UpstreamError:
    """Map a Direct Line error response onto the exception hierarchy."""
    try:
        data = response.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    error = data.get("error") or {}
    code = error.get("code") or "UNKNOWN_ERROR"
    message = error.get("message") or f"HTTP {response.status_code}"

    status_code = response.status_code

    if status_code in (401, 403):
        return AuthenticationError(code, message, status_code)
    elif status_code == 429:
        retry_after_str = response.headers.get("Retry-After", "60")
        try:
            retry_after = int(retry_after_str)
        except ValueError:
            retry_after = 60
        return RateLimitedError(code, message, retry_after, status_code)
    elif status_code >= 500:
        return ServerError(code, message, status_code)
    else:
        return UpstreamError(code, message, status_code)


def parse_body(response: httpx.Response) -> dict[str, Any]:
    """Decode a successful response; empty bodies decode to ``{}``."""
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError as e:
        raise ServerError(
            "MALFORMED_RESPONSE",
            f"HTTP {response.status_code} response was not JSON",
            status_code=response.status_code,
        ) from e
    if not isinstance(data, dict):
        raise ServerError(
            "MALFORMED_RESPONSE",
            f"HTTP {response.status_code} response was not a JSON object",
            status_code=response.status_code,
        )
    return data


def parse_activity_page(data: dict[str, Any], watermark: str | None) -> ActivityPage:
    """
    Build an ActivityPage from a feed response.

    Entries that are not objects are skipped; a missing watermark keeps the
    one the query was made with.

    Raises:
        ServerError: If ``activities`` is present but not a list
    """
    items = data.get("activities")
    if items is None:
        items = []
    if not isinstance(items, list):
        raise ServerError(
            "MALFORMED_RESPONSE", "Activity feed response carried no activity list"
        )
    next_watermark = data.get("watermark")
    return ActivityPage(
        activities=[Activity.from_dict(item) for item in items if isinstance(item, dict)],
        watermark=str(next_watermark) if next_watermark not in (None, "") else watermark,
    )

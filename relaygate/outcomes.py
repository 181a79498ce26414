"""
Result values handed across the request-layer boundary.

The relay core raises typed exceptions; the gateway converts them into
``Outcome`` values so an HTTP (or any other) layer only has to map a status.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from relaygate.exceptions import (
    AgentNotFoundError,
    ConflictError,
    CredentialIssuanceError,
    NoMatchingParentTurnError,
    RelayGateError,
    UpstreamError,
    UpstreamRelayError,
    ValidationError,
)
from relaygate.types.activities import TimeoutOutcome

T = TypeVar("T")


class OutcomeStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    CLIENT_ERROR = "client_error"
    CONFLICT = "conflict"
    SERVICE_UNAVAILABLE = "service_unavailable"
    BAD_GATEWAY = "bad_gateway"
    TIMEOUT = "timeout"


_HTTP_STATUS = {
    OutcomeStatus.OK: 200,
    OutcomeStatus.NOT_FOUND: 404,
    OutcomeStatus.CLIENT_ERROR: 400,
    OutcomeStatus.CONFLICT: 409,
    OutcomeStatus.SERVICE_UNAVAILABLE: 503,
    OutcomeStatus.BAD_GATEWAY: 502,
    OutcomeStatus.TIMEOUT: 504,
}

# Checked in order; first match wins.
_ERROR_STATUS: list[tuple[type[RelayGateError], OutcomeStatus]] = [
    (AgentNotFoundError, OutcomeStatus.NOT_FOUND),
    (NoMatchingParentTurnError, OutcomeStatus.CLIENT_ERROR),
    (ValidationError, OutcomeStatus.CLIENT_ERROR),
    (ConflictError, OutcomeStatus.CONFLICT),
    (CredentialIssuanceError, OutcomeStatus.SERVICE_UNAVAILABLE),
    (UpstreamRelayError, OutcomeStatus.BAD_GATEWAY),
    (UpstreamError, OutcomeStatus.BAD_GATEWAY),
]


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Status plus either a value or the error that produced it."""

    status: OutcomeStatus
    value: T | None = None
    error: RelayGateError | None = None

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.OK

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self.status]

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        if isinstance(value, TimeoutOutcome):
            return cls(OutcomeStatus.TIMEOUT, value=value)
        return cls(OutcomeStatus.OK, value=value)

    @classmethod
    def failure(cls, error: RelayGateError) -> "Outcome[T]":
        for error_type, status in _ERROR_STATUS:
            if isinstance(error, error_type):
                return cls(status, error=error)
        return cls(OutcomeStatus.SERVICE_UNAVAILABLE, error=error)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready body for a transport layer."""
        body: dict[str, Any] = {"status": self.status.value}
        if self.error is not None:
            body["error"] = {"code": self.error.code, "message": self.error.message}
        elif self.value is not None:
            body["data"] = _serialize(self.value)
        return body


def capture(fn: Callable[..., T], *args: Any, **kwargs: Any) -> Outcome[T]:
    """Run ``fn`` and fold any relaygate error into an Outcome."""
    try:
        return Outcome.success(fn(*args, **kwargs))
    except RelayGateError as e:
        return Outcome.failure(e)


async def acapture(
    fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
) -> Outcome[T]:
    """Await ``fn`` and fold any relaygate error into an Outcome."""
    try:
        return Outcome.success(await fn(*args, **kwargs))
    except RelayGateError as e:
        return Outcome.failure(e)


def _serialize(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    if hasattr(value, "__dataclass_fields__"):
        return {
            name: _serialize(getattr(value, name))
            for name in value.__dataclass_fields__
            if name not in ("credential", "secret")
        }
    return value

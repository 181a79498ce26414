"""relaygate exception classes."""


class RelayGateError(Exception):
    """Base exception for all relaygate errors."""

    def __init__(
        self, code: str, message: str, request_id: str | None = None
    ) -> None:
        self.code = code
        self.message = message
        self.request_id = request_id
        super().__init__(f"[{code}] {message}")


class ConfigurationError(RelayGateError):
    """Raised when gateway configuration is invalid or missing."""

    def __init__(self, message: str) -> None:
        super().__init__("CONFIGURATION_ERROR", message)


class ValidationError(RelayGateError):
    """Raised on invalid input (unknown sender role, empty agent id, ...)."""

    pass


class ConflictError(RelayGateError):
    """Raised when registering an agent id that already exists."""

    pass


class AgentNotFoundError(RelayGateError):
    """Raised when no agent is registered under the given id or capability."""

    def __init__(
        self, agent_id: str | None = None, capability: str | None = None
    ) -> None:
        if capability is not None:
            message = f"No agent found for capability {capability!r}"
        else:
            message = f"No agent registered with id {agent_id!r}"
        super().__init__("AGENT_NOT_FOUND", message)
        self.agent_id = agent_id
        self.capability = capability


class CredentialIssuanceError(RelayGateError):
    """Raised when the upstream refuses or fails to issue a bearer token."""

    def __init__(self, agent_id: str, message: str) -> None:
        super().__init__("CREDENTIAL_ISSUANCE_FAILED", message)
        self.agent_id = agent_id


class UpstreamRelayError(RelayGateError):
    """Raised when conversation creation or message posting fails.

    Never retried automatically: a second post could deliver twice.
    """

    def __init__(
        self,
        agent_id: str,
        message: str,
        conversation_id: str | None = None,
    ) -> None:
        super().__init__("UPSTREAM_RELAY_FAILED", message)
        self.agent_id = agent_id
        self.conversation_id = conversation_id


class NoMatchingParentTurnError(RelayGateError):
    """Raised when a child reply cannot be tied to any parent turn."""

    def __init__(self, agent_id: str, conversation_id: str | None = None) -> None:
        if conversation_id is None:
            message = f"No parent turn recorded for agent {agent_id!r}"
        else:
            message = (
                f"No parent turn recorded for agent {agent_id!r} "
                f"in conversation {conversation_id!r}"
            )
        super().__init__("NO_MATCHING_PARENT_TURN", message)
        self.agent_id = agent_id
        self.conversation_id = conversation_id


class UpstreamError(RelayGateError):
    """Base class for errors returned by the Direct Line service."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int | None = None,
        request_id: str | None = None,
    ) -> None:
        super().__init__(code, message, request_id)
        self.status_code = status_code


class AuthenticationError(UpstreamError):
    """Raised when the secret or token is rejected (401/403)."""

    pass


class RateLimitedError(UpstreamError):
    """Raised when rate limited."""

    def __init__(
        self,
        code: str,
        message: str,
        retry_after: int,
        status_code: int | None = 429,
        request_id: str | None = None,
    ) -> None:
        super().__init__(code, message, status_code, request_id)
        self.retry_after = retry_after


class ServerError(UpstreamError):
    """Raised on server errors (5xx) and connection failures."""

    pass

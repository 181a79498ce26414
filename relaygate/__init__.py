"""relaygate - relay gateway between a parent agent and Direct Line child bots."""

from relaygate.async_gateway import AsyncRelayGateway
from relaygate.async_relay import AsyncRelayDispatcher, AsyncResponsePoller, AsyncTokenManager
from relaygate.async_transport import AsyncDirectLineTransport
from relaygate.config import GatewayConfig
from relaygate.correlator import InboundCorrelator
from relaygate.credentials import CredentialStore
from relaygate.dispatcher import DispatchReceipt, RelayDispatcher
from relaygate.exceptions import (
    AgentNotFoundError,
    AuthenticationError,
    ConfigurationError,
    ConflictError,
    CredentialIssuanceError,
    NoMatchingParentTurnError,
    RateLimitedError,
    RelayGateError,
    ServerError,
    UpstreamError,
    UpstreamRelayError,
    ValidationError,
)
from relaygate.gateway import RelayGateway
from relaygate.ledger import ConversationLedger
from relaygate.logging import configure_logging, get_logger
from relaygate.outcomes import Outcome, OutcomeStatus
from relaygate.poller import PollConfig, ResponsePoller
from relaygate.registry import AgentRegistry, InMemoryAgentRegistry
from relaygate.tokens import TokenManager
from relaygate.transport import DirectLineTransport, RetryConfig
from relaygate.types import (
    Activity,
    AgentProfile,
    AgentRecord,
    AgentSpec,
    ConversationTurn,
    Credential,
    Reply,
    Sender,
    TimeoutOutcome,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Gateways
    "RelayGateway",
    "AsyncRelayGateway",
    "GatewayConfig",
    # Core components
    "CredentialStore",
    "TokenManager",
    "ConversationLedger",
    "RelayDispatcher",
    "DispatchReceipt",
    "ResponsePoller",
    "PollConfig",
    "InboundCorrelator",
    "AgentRegistry",
    "InMemoryAgentRegistry",
    # Async components
    "AsyncTokenManager",
    "AsyncRelayDispatcher",
    "AsyncResponsePoller",
    # Transport
    "DirectLineTransport",
    "AsyncDirectLineTransport",
    "RetryConfig",
    # Types
    "Activity",
    "AgentProfile",
    "AgentRecord",
    "AgentSpec",
    "ConversationTurn",
    "Credential",
    "Reply",
    "Sender",
    "TimeoutOutcome",
    "Outcome",
    "OutcomeStatus",
    # Exceptions
    "RelayGateError",
    "ConfigurationError",
    "ValidationError",
    "ConflictError",
    "AgentNotFoundError",
    "CredentialIssuanceError",
    "UpstreamRelayError",
    "NoMatchingParentTurnError",
    "UpstreamError",
    "AuthenticationError",
    "RateLimitedError",
    "ServerError",
    # Logging
    "configure_logging",
    "get_logger",
]

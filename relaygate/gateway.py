"""
relaygate main gateway.

Wires the registry, token manager, ledger, dispatcher, poller and correlator
together and exposes them to a request layer as ``Outcome`` values.
"""

import logging
import threading
from typing import Any

from relaygate.config import GatewayConfig
from relaygate.correlator import InboundCorrelator
from relaygate.credentials import CredentialStore
from relaygate.dispatcher import RelayDispatcher
from relaygate.exceptions import AgentNotFoundError
from relaygate.ledger import ConversationLedger
from relaygate.outcomes import Outcome, capture
from relaygate.poller import ResponsePoller
from relaygate.registry import InMemoryAgentRegistry
from relaygate.tokens import TokenManager
from relaygate.transport import DirectLineTransport
from relaygate.types.activities import Reply, TimeoutOutcome
from relaygate.types.agents import AgentProfile, AgentSpec
from relaygate.types.turns import ConversationTurn, Sender

logger = logging.getLogger(__name__)


class RelayGateway:
    """
    Relay between a parent orchestrator and child agents over Direct Line.

    Every public method returns an ``Outcome``; relaygate errors never cross
    this boundary as exceptions.

    Example:
        ```python
        from relaygate import RelayGateway

        with RelayGateway.from_env() as gateway:
            gateway.register_agent("b1", "Billing bot", secret="...", capabilities=["billing"])
            outcome = gateway.send_and_wait("b1", "What is my balance?", deadline=20)
            if outcome.ok:
                print(outcome.value.text)
        ```
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        registry: InMemoryAgentRegistry | None = None,
        ledger: ConversationLedger | None = None,
        transport: DirectLineTransport | None = None,
        credential_store: CredentialStore | None = None,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            config: Gateway settings (defaults if omitted)
            registry: Agent registry to read from
            ledger: Conversation ledger to record turns in
            transport: Direct Line transport (built from config if omitted)
            credential_store: Token cache shared with other gateways, if any
        """
        self.config = config or GatewayConfig()
        self.registry = registry if registry is not None else InMemoryAgentRegistry()
        self.ledger = ledger if ledger is not None else ConversationLedger()

        self._owns_transport = transport is None
        self._transport = transport or DirectLineTransport(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            retry_config=self.config.retry,
        )

        self.tokens = TokenManager(
            self._transport,
            store=credential_store,
            lease=self.config.token_lease,
            safety_margin=self.config.token_safety_margin,
        )
        self.dispatcher = RelayDispatcher(
            self.registry,
            self.tokens,
            self._transport,
            self.ledger,
            sender_id=self.config.sender_id,
        )
        self.poller = ResponsePoller(self._transport, self.config.poll)
        self.correlator = InboundCorrelator(self.ledger)

    @classmethod
    def from_env(cls, **kwargs: Any) -> "RelayGateway":
        """
        Create a gateway configured from ``RELAYGATE_*`` environment variables.

        Raises:
            ConfigurationError: If an environment variable is invalid
        """
        return cls(config=GatewayConfig.from_env(), **kwargs)

    @property
    def transport(self) -> DirectLineTransport:
        """Get the underlying Direct Line transport (for advanced use cases)."""
        return self._transport

    def register_agent(
        self,
        agent_id: str,
        display_name: str,
        secret: str,
        capabilities: list[str] | None = None,
    ) -> Outcome[AgentProfile]:
        spec = AgentSpec(
            agent_id=agent_id,
            display_name=display_name,
            secret=secret,
            capabilities=list(capabilities or []),
        )
        return capture(self.registry.register, spec)

    def list_agents(self) -> Outcome[list[AgentProfile]]:
        return capture(self.registry.list)

    def find_agent(self, capability: str) -> Outcome[AgentProfile]:
        """Find an agent advertising ``capability``."""
        profile = self.registry.find_by_capability(capability)
        if profile is None:
            return Outcome.failure(AgentNotFoundError(capability=capability))
        return Outcome.success(profile)

    def dispatch(self, agent_id: str, message: str) -> Outcome[str]:
        """Relay a parent message; the value is the new conversation id."""
        return capture(self.dispatcher.dispatch, agent_id, message)

    def await_reply(
        self,
        agent_id: str,
        conversation_id: str,
        deadline: float | None = None,
        cancel: threading.Event | None = None,
    ) -> Outcome[Reply | TimeoutOutcome]:
        """Wait for the reply in an existing conversation."""
        return capture(self._await_reply, agent_id, conversation_id, deadline, cancel)

    def send_and_wait(
        self,
        agent_id: str,
        message: str,
        deadline: float | None = None,
        cancel: threading.Event | None = None,
    ) -> Outcome[Reply | TimeoutOutcome]:
        """Dispatch a message and block until the child answers or the wait ends."""
        return capture(self._send_and_wait, agent_id, message, deadline, cancel)

    def correlate_child_reply(
        self,
        agent_id: str,
        message: str,
        conversation_id: str | None = None,
    ) -> Outcome[str]:
        """Record a reply pushed by a child; the value is its conversation id."""
        return capture(
            self.correlator.correlate_child_reply, agent_id, message, conversation_id
        )

    def latest_turn(
        self,
        agent_id: str | None = None,
        sender: Sender | str | None = None,
    ) -> Outcome[ConversationTurn]:
        """Newest matching turn; the value is None when nothing matches."""
        return capture(self.ledger.latest_turn, agent_id, sender)

    def _await_reply(
        self,
        agent_id: str,
        conversation_id: str,
        deadline: float | None,
        cancel: threading.Event | None,
    ) -> Reply | TimeoutOutcome:
        agent = self.registry.lookup(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        credential = self.tokens.get_valid_credential(agent)
        return self.poller.await_reply(
            agent_id,
            conversation_id,
            self.config.sender_id,
            credential,
            self._deadline(deadline),
            cancel,
        )

    def _send_and_wait(
        self,
        agent_id: str,
        message: str,
        deadline: float | None,
        cancel: threading.Event | None,
    ) -> Reply | TimeoutOutcome:
        receipt = self.dispatcher.dispatch_with_receipt(agent_id, message)
        return self.poller.await_reply(
            agent_id,
            receipt.conversation_id,
            self.config.sender_id,
            receipt.credential,
            self._deadline(deadline),
            cancel,
        )

    def _deadline(self, deadline: float | None) -> float:
        return self.config.reply_deadline if deadline is None else deadline

    def close(self) -> None:
        """Close the gateway and release its HTTP connections."""
        if self._owns_transport:
            self._transport.close()

    def __enter__(self) -> "RelayGateway":
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit - closes the gateway."""
        self.close()

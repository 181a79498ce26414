"""
relaygate async gateway.

Provides the async interface to the relay. The registry, ledger and
correlator are shared with the sync gateway when passed in.
"""

import asyncio
from typing import Any

from relaygate.async_relay import (
    AsyncRelayDispatcher,
    AsyncResponsePoller,
    AsyncTokenManager,
)
from relaygate.async_transport import AsyncDirectLineTransport
from relaygate.config import GatewayConfig
from relaygate.correlator import InboundCorrelator
from relaygate.credentials import CredentialStore
from relaygate.exceptions import AgentNotFoundError
from relaygate.ledger import ConversationLedger
from relaygate.outcomes import Outcome, acapture, capture
from relaygate.registry import InMemoryAgentRegistry
from relaygate.types.activities import Reply, TimeoutOutcome
from relaygate.types.agents import AgentProfile, AgentSpec
from relaygate.types.turns import ConversationTurn, Sender


class AsyncRelayGateway:
    """
    Async relay between a parent orchestrator and child agents.

    Example:
        ```python
        import asyncio
        from relaygate import AsyncRelayGateway

        async def main():
            async with AsyncRelayGateway.from_env() as gateway:
                gateway.register_agent("b1", "Billing bot", secret="...")
                outcome = await gateway.send_and_wait("b1", "ping", deadline=10)
                print(outcome.status, outcome.value)

        asyncio.run(main())
        ```
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        registry: InMemoryAgentRegistry | None = None,
        ledger: ConversationLedger | None = None,
        transport: AsyncDirectLineTransport | None = None,
        credential_store: CredentialStore | None = None,
    ) -> None:
        self.config = config or GatewayConfig()
        self.registry = registry if registry is not None else InMemoryAgentRegistry()
        self.ledger = ledger if ledger is not None else ConversationLedger()

        self._owns_transport = transport is None
        self._transport = transport or AsyncDirectLineTransport(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            retry_config=self.config.retry,
        )

        self.tokens = AsyncTokenManager(
            self._transport,
            store=credential_store,
            lease=self.config.token_lease,
            safety_margin=self.config.token_safety_margin,
        )
        self.dispatcher = AsyncRelayDispatcher(
            self.registry,
            self.tokens,
            self._transport,
            self.ledger,
            sender_id=self.config.sender_id,
        )
        self.poller = AsyncResponsePoller(self._transport, self.config.poll)
        self.correlator = InboundCorrelator(self.ledger)

    @classmethod
    def from_env(cls, **kwargs: Any) -> "AsyncRelayGateway":
        """Create a gateway configured from ``RELAYGATE_*`` environment variables."""
        return cls(config=GatewayConfig.from_env(), **kwargs)

    @property
    def transport(self) -> AsyncDirectLineTransport:
        """Get the underlying async Direct Line transport."""
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
        profile = self.registry.find_by_capability(capability)
        if profile is None:
            return Outcome.failure(AgentNotFoundError(capability=capability))
        return Outcome.success(profile)

    async def dispatch(self, agent_id: str, message: str) -> Outcome[str]:
        return await acapture(self.dispatcher.dispatch, agent_id, message)

    async def await_reply(
        self,
        agent_id: str,
        conversation_id: str,
        deadline: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> Outcome[Reply | TimeoutOutcome]:
        return await acapture(
            self._await_reply, agent_id, conversation_id, deadline, cancel
        )

    async def send_and_wait(
        self,
        agent_id: str,
        message: str,
        deadline: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> Outcome[Reply | TimeoutOutcome]:
        return await acapture(self._send_and_wait, agent_id, message, deadline, cancel)

    def correlate_child_reply(
        self,
        agent_id: str,
        message: str,
        conversation_id: str | None = None,
    ) -> Outcome[str]:
        return capture(
            self.correlator.correlate_child_reply, agent_id, message, conversation_id
        )

    def latest_turn(
        self,
        agent_id: str | None = None,
        sender: Sender | str | None = None,
    ) -> Outcome[ConversationTurn]:
        return capture(self.ledger.latest_turn, agent_id, sender)

    async def _await_reply(
        self,
        agent_id: str,
        conversation_id: str,
        deadline: float | None,
        cancel: asyncio.Event | None,
    ) -> Reply | TimeoutOutcome:
        agent = self.registry.lookup(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        credential = await self.tokens.get_valid_credential(agent)
        return await self.poller.await_reply(
            agent_id,
            conversation_id,
            self.config.sender_id,
            credential,
            self.config.reply_deadline if deadline is None else deadline,
            cancel,
        )

    async def _send_and_wait(
        self,
        agent_id: str,
        message: str,
        deadline: float | None,
        cancel: asyncio.Event | None,
    ) -> Reply | TimeoutOutcome:
        receipt = await self.dispatcher.dispatch_with_receipt(agent_id, message)
        return await self.poller.await_reply(
            agent_id,
            receipt.conversation_id,
            self.config.sender_id,
            receipt.credential,
            self.config.reply_deadline if deadline is None else deadline,
            cancel,
        )

    async def close(self) -> None:
        """Close the gateway and release its HTTP connections."""
        if self._owns_transport:
            await self._transport.close()

    async def __aenter__(self) -> "AsyncRelayGateway":
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit - closes the gateway."""
        await self.close()

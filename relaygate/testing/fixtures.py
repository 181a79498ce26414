"""
Pytest fixtures for relaygate testing.

Provides common fixtures for testing code that relays through relaygate.
"""

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest

from relaygate.config import GatewayConfig
from relaygate.gateway import RelayGateway
from relaygate.ledger import ConversationLedger
from relaygate.poller import PollConfig
from relaygate.registry import InMemoryAgentRegistry
from relaygate.testing.mock import FakeDirectLine
from relaygate.types.agents import AgentRecord, AgentSpec


class FrozenClock:
    """Callable UTC clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def create_agent_spec(
    agent_id: str = "b1",
    display_name: str = "Billing bot",
    secret: str = "s1",
    capabilities: list[str] | None = None,
) -> AgentSpec:
    """Build an AgentSpec with test defaults."""
    return AgentSpec(
        agent_id=agent_id,
        display_name=display_name,
        secret=secret,
        capabilities=list(capabilities) if capabilities is not None else ["billing"],
    )


def create_agent_record(
    agent_id: str = "b1",
    display_name: str = "Billing bot",
    secret: str = "s1",
    capabilities: tuple[str, ...] = ("billing",),
) -> AgentRecord:
    """Build an AgentRecord with test defaults."""
    return AgentRecord(
        agent_id=agent_id,
        display_name=display_name,
        capabilities=capabilities,
        secret=secret,
    )


def fast_config(**overrides: object) -> GatewayConfig:
    """GatewayConfig with millisecond poll cadence for tests."""
    config = GatewayConfig(
        poll=PollConfig(initial_interval=0.01, max_interval=0.02, backoff_factor=1.5),
        reply_deadline=1.0,
    )
    for name, value in overrides.items():
        setattr(config, name, value)
    return config


# ============================================================================
# Component Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FrozenClock:
    """Provide a controllable UTC clock."""
    return FrozenClock()


@pytest.fixture
def fake_directline() -> FakeDirectLine:
    """Provide an in-memory Direct Line that accepts the test secrets."""
    return FakeDirectLine(secrets={"b1": "s1", "b2": "s2"})


@pytest.fixture
def agent_registry() -> InMemoryAgentRegistry:
    """Provide a registry holding agents b1 (secret s1) and b2 (secret s2)."""
    return InMemoryAgentRegistry(
        [
            create_agent_spec(),
            create_agent_spec("b2", "Support bot", "s2", ["support"]),
        ]
    )


@pytest.fixture
def ledger() -> ConversationLedger:
    """Provide an empty conversation ledger."""
    return ConversationLedger()


@pytest.fixture
def gateway(
    fake_directline: FakeDirectLine,
    agent_registry: InMemoryAgentRegistry,
    ledger: ConversationLedger,
) -> Generator[RelayGateway, None, None]:
    """
    Provide a RelayGateway wired to the fake Direct Line.

    Example:
        ```python
        def test_relay(gateway, fake_directline):
            fake_directline.configure_auto_reply(lambda text: "pong")
            outcome = gateway.send_and_wait("b1", "ping")
            assert outcome.value.text == "pong"
        ```
    """
    with RelayGateway(
        config=fast_config(),
        registry=agent_registry,
        ledger=ledger,
        transport=fake_directline,  # type: ignore[arg-type]
    ) as gw:
        yield gw

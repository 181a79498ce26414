"""relaygate testing utilities.

Provides an in-memory Direct Line and fixtures for testing code built on the
relay gateway.
"""

from relaygate.testing.fixtures import (
    FrozenClock,
    create_agent_record,
    create_agent_spec,
    fast_config,
)
from relaygate.testing.mock import AsyncFakeDirectLine, FakeDirectLine, MockCall

__all__ = [
    # Fake upstream
    "FakeDirectLine",
    "AsyncFakeDirectLine",
    "MockCall",
    # Helper functions
    "FrozenClock",
    "create_agent_spec",
    "create_agent_record",
    "fast_config",
]

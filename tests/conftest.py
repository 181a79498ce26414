"""Shared fixtures for the relaygate test suite."""

# Re-exported so pytest discovers the plugin fixtures
from relaygate.testing.fixtures import (  # noqa: F401
    agent_registry,
    clock,
    fake_directline,
    gateway,
    ledger,
)

"""
Pytest plugin for relaygate testing fixtures.

To use these fixtures in your tests, add this to your conftest.py:

    pytest_plugins = ["relaygate.testing.conftest"]
"""

# Re-export all fixtures for pytest auto-discovery
from relaygate.testing.fixtures import (
    agent_registry,
    clock,
    fake_directline,
    gateway,
    ledger,
)

__all__ = [
    "agent_registry",
    "clock",
    "fake_directline",
    "gateway",
    "ledger",
]

"""relaygate type definitions.

This module exports all data model types used by the gateway.
"""

from relaygate.types.activities import Activity, ActivityPage, Reply, TimeoutOutcome
from relaygate.types.agents import AgentProfile, AgentRecord, AgentSpec
from relaygate.types.credentials import Credential
from relaygate.types.turns import ConversationTurn, Sender

__all__ = [
    # Agent types
    "AgentProfile",
    "AgentRecord",
    "AgentSpec",
    # Credential types
    "Credential",
    # Ledger types
    "ConversationTurn",
    "Sender",
    # Upstream feed types
    "Activity",
    "ActivityPage",
    "Reply",
    "TimeoutOutcome",
]

"""Agent registry consumed by the relay core."""

import threading
from typing import Protocol

from relaygate.exceptions import ConflictError, ValidationError
from relaygate.types.agents import AgentProfile, AgentRecord, AgentSpec


class AgentRegistry(Protocol):
    """What the relay core needs from an agent registry."""

    def lookup(self, agent_id: str) -> AgentRecord | None: ...

    def list(self) -> list[AgentProfile]: ...

    def register(self, spec: AgentSpec) -> AgentProfile: ...


class InMemoryAgentRegistry:
    """Process-local registry, kept in registration order."""

    def __init__(self, agents: list[AgentSpec] | None = None) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, AgentRecord] = {}
        for spec in agents or []:
            self.register(spec)

    def register(self, spec: AgentSpec) -> AgentProfile:
        """
        Register a new child agent.

        Args:
            spec: Registration request

        Returns:
            Public profile of the new agent (no secret)

        Raises:
            ValidationError: If agent_id or secret is empty
            ConflictError: If agent_id is already registered
        """
        agent_id = (spec.agent_id or "").strip()
        if not agent_id:
            raise ValidationError("INVALID_AGENT", "agent_id is required")
        if not spec.secret:
            raise ValidationError("INVALID_AGENT", "secret is required")

        capabilities = tuple(dict.fromkeys(c.strip() for c in spec.capabilities if c.strip()))
        record = AgentRecord(
            agent_id=agent_id,
            display_name=spec.display_name or agent_id,
            capabilities=capabilities,
            secret=spec.secret,
        )

        with self._lock:
            if agent_id in self._records:
                raise ConflictError(
                    "AGENT_EXISTS", f"Agent {agent_id!r} is already registered"
                )
            self._records[agent_id] = record
        return record.profile()

    def lookup(self, agent_id: str) -> AgentRecord | None:
        with self._lock:
            return self._records.get(agent_id)

    def list(self) -> list[AgentProfile]:
        with self._lock:
            return [record.profile() for record in self._records.values()]

    def find_by_capability(self, capability: str) -> AgentProfile | None:
        """Return the earliest registered agent advertising ``capability``."""
        with self._lock:
            for record in self._records.values():
                if capability in record.capabilities:
                    return record.profile()
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

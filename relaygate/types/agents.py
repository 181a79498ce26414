"""Agent registry data models."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class AgentProfile:
    """Public view of a registered agent. Never carries the secret."""

    agent_id: str
    display_name: str
    capabilities: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "agentId": self.agent_id,
            "displayName": self.display_name,
            "capabilities": list(self.capabilities),
        }


@dataclass(frozen=True)
class AgentRecord:
    """Full registry entry, including the Direct Line secret.

    Only the token manager reads ``secret``; every read path hands out
    ``profile()`` instead.
    """

    agent_id: str
    display_name: str
    capabilities: tuple[str, ...] = ()
    secret: str = field(default="", repr=False)

    def profile(self) -> AgentProfile:
        return AgentProfile(
            agent_id=self.agent_id,
            display_name=self.display_name,
            capabilities=self.capabilities,
        )


@dataclass
class AgentSpec:
    """Registration request for a new child agent."""

    agent_id: str
    display_name: str
    secret: str = field(repr=False)
    capabilities: list[str] = field(default_factory=list)

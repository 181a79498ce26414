"""Conversation ledger data models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from relaygate.exceptions import ValidationError


class Sender(str, Enum):
    """Which side of the relay authored a turn."""

    PARENT = "parent"
    CHILD = "child"

    @classmethod
    def parse(cls, value: "str | Sender") -> "Sender":
        """
        Parse a sender role from user input.

        Raises:
            ValidationError: If the value is neither "parent" nor "child"
        """
        if isinstance(value, Sender):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        raise ValidationError(
            "INVALID_SENDER",
            f"Sender must be 'parent' or 'child', got {value!r}",
        )


@dataclass(frozen=True)
class ConversationTurn:
    """One recorded message. Immutable once appended to the ledger."""

    conversation_id: str
    agent_id: str
    sender: Sender
    message: str
    timestamp: datetime
    sequence: int

    def to_dict(self) -> dict[str, object]:
        return {
            "conversationId": self.conversation_id,
            "agentId": self.agent_id,
            "sender": self.sender.value,
            "message": self.message,
            "timestamp": self.timestamp.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
        }

"""
Append-only conversation ledger.

Records every relayed message as an immutable turn and answers
"latest turn matching" queries used for reply correlation.
"""

import threading
from collections.abc import Callable
from datetime import datetime, timezone

from relaygate.types.turns import ConversationTurn, Sender


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationLedger:
    """
    Time-ordered record of parent and child turns.

    Timestamps never decrease: if the clock steps backwards, the new turn
    reuses the previous timestamp. Every turn also gets an insertion
    sequence number, and ties on timestamp go to the later insertion.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._turns: list[ConversationTurn] = []

    def append(
        self,
        conversation_id: str,
        agent_id: str,
        sender: Sender | str,
        message: str,
    ) -> ConversationTurn:
        """
        Record a turn.

        Raises:
            ValidationError: If ``sender`` is not a known role
        """
        role = Sender.parse(sender)
        with self._lock:
            timestamp = self._clock()
            if self._turns and timestamp < self._turns[-1].timestamp:
                timestamp = self._turns[-1].timestamp
            turn = ConversationTurn(
                conversation_id=conversation_id,
                agent_id=agent_id,
                sender=role,
                message=message,
                timestamp=timestamp,
                sequence=len(self._turns),
            )
            self._turns.append(turn)
        return turn

    def latest_turn(
        self,
        agent_id: str | None = None,
        sender: Sender | str | None = None,
        conversation_id: str | None = None,
    ) -> ConversationTurn | None:
        """
        Return the most recent turn matching every given filter.

        Omitted filters match anything, so ``latest_turn(sender=Sender.CHILD)``
        is the newest child reply across all agents.
        """
        role = Sender.parse(sender) if sender is not None else None
        return max(
            self._matching(agent_id, role, conversation_id),
            key=lambda turn: (turn.timestamp, turn.sequence),
            default=None,
        )

    def turns(
        self,
        conversation_id: str | None = None,
        agent_id: str | None = None,
    ) -> list[ConversationTurn]:
        """Matching turns in the order they were recorded."""
        return self._matching(agent_id, None, conversation_id)

    def _matching(
        self,
        agent_id: str | None,
        sender: Sender | None,
        conversation_id: str | None,
    ) -> list[ConversationTurn]:
        with self._lock:
            snapshot = list(self._turns)
        return [
            turn
            for turn in snapshot
            if (agent_id is None or turn.agent_id == agent_id)
            and (sender is None or turn.sender is sender)
            and (conversation_id is None or turn.conversation_id == conversation_id)
        ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._turns)

"""Correlation of replies pushed directly by child agents."""

import logging

from relaygate.exceptions import NoMatchingParentTurnError
from relaygate.ledger import ConversationLedger
from relaygate.types.turns import Sender

logger = logging.getLogger(__name__)


class InboundCorrelator:
    """Attaches an unsolicited child reply to the parent turn it answers."""

    def __init__(self, ledger: ConversationLedger) -> None:
        self.ledger = ledger

    def correlate_child_reply(
        self,
        agent_id: str,
        text: str,
        conversation_id: str | None = None,
    ) -> str:
        """
        Record a child reply against the matching parent turn.

        Without ``conversation_id`` the reply goes to the agent's most recent
        parent turn, which assumes one outstanding exchange per agent. Children
        that echo the conversation id get exact attribution instead.

        Returns:
            The conversation id the reply was recorded under

        Raises:
            NoMatchingParentTurnError: If no parent turn matches; nothing is recorded
        """
        parent = self.ledger.latest_turn(
            agent_id=agent_id,
            sender=Sender.PARENT,
            conversation_id=conversation_id,
        )
        if parent is None:
            logger.warning("Discarding reply from %s: no matching parent turn", agent_id)
            raise NoMatchingParentTurnError(agent_id, conversation_id)

        self.ledger.append(parent.conversation_id, agent_id, Sender.CHILD, text)
        logger.info("Correlated reply from %s to conversation %s", agent_id, parent.conversation_id)
        return parent.conversation_id

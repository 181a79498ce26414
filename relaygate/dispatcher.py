"""Outbound relay: parent message to a child agent's Direct Line conversation."""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from relaygate.exceptions import (
    AgentNotFoundError,
    AuthenticationError,
    UpstreamError,
    UpstreamRelayError,
    ValidationError,
)
from relaygate.ledger import ConversationLedger
from relaygate.types.credentials import Credential
from relaygate.types.turns import ConversationTurn, Sender

if TYPE_CHECKING:
    from relaygate.async_relay import AsyncTokenManager
    from relaygate.registry import AgentRegistry
    from relaygate.tokens import TokenManager
    from relaygate.transport import DirectLineTransport

logger = logging.getLogger(__name__)

DEFAULT_SENDER_ID = "parentBot"


@dataclass(frozen=True)
class DispatchReceipt:
    """Everything a caller needs to wait for the reply to a dispatched message."""

    conversation_id: str
    agent_id: str
    credential: Credential
    turn: ConversationTurn
    activity_id: str | None = None


def check_message(text: object) -> str:
    if not isinstance(text, str):
        raise ValidationError("INVALID_MESSAGE", "message must be a string")
    return text


class RelayDispatcher:
    """Opens a conversation with a child agent and posts the parent's message."""

    def __init__(
        self,
        registry: "AgentRegistry",
        token_manager: "TokenManager",
        transport: "DirectLineTransport",
        ledger: ConversationLedger,
        sender_id: str = DEFAULT_SENDER_ID,
    ) -> None:
        self.registry = registry
        self.token_manager = token_manager
        self.transport = transport
        self.ledger = ledger
        self.sender_id = sender_id

    def dispatch(self, agent_id: str, text: str) -> str:
        """
        Relay ``text`` to the agent and return the new conversation id.

        Raises:
            AgentNotFoundError: If the agent is not registered
            CredentialIssuanceError: If no token could be obtained
            UpstreamRelayError: If creating the conversation or posting fails
        """
        return self.dispatch_with_receipt(agent_id, text).conversation_id

    def dispatch_with_receipt(self, agent_id: str, text: str) -> DispatchReceipt:
        """
        Like ``dispatch`` but also returns the credential and recorded turn.

        The parent turn is recorded only after the upstream post succeeded.
        """
        text = check_message(text)
        agent = self.registry.lookup(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)

        credential = self.token_manager.get_valid_credential(agent)

        try:
            conversation_id = self.transport.create_conversation(credential.value)
        except UpstreamError as e:
            raise relay_failure(
                self.token_manager, agent_id, "Conversation creation failed", e
            ) from e

        try:
            activity_id = self.transport.post_activity(
                credential.value, conversation_id, self.sender_id, text
            )
        except UpstreamError as e:
            raise relay_failure(
                self.token_manager, agent_id, "Message post failed", e, conversation_id
            ) from e

        turn = self.ledger.append(conversation_id, agent_id, Sender.PARENT, text)
        logger.info("Relayed message to %s in conversation %s", agent_id, conversation_id)
        return DispatchReceipt(
            conversation_id=conversation_id,
            agent_id=agent_id,
            credential=credential,
            turn=turn,
            activity_id=activity_id,
        )


def relay_failure(
    token_manager: "TokenManager | AsyncTokenManager",
    agent_id: str,
    stage: str,
    error: UpstreamError,
    conversation_id: str | None = None,
) -> UpstreamRelayError:
    """Wrap an upstream error, dropping the cached token if it was rejected."""
    if isinstance(error, AuthenticationError):
        token_manager.invalidate(agent_id)
    logger.warning("%s for agent %s: %s", stage, agent_id, error)
    return UpstreamRelayError(agent_id, f"{stage}: {error.message}", conversation_id)

"""
Async relay core.

asyncio counterparts of the token manager, dispatcher and poller. They share
the credential store, ledger and registry types with the sync stack.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from relaygate.credentials import CredentialStore
from relaygate.dispatcher import (
    DEFAULT_SENDER_ID,
    DispatchReceipt,
    check_message,
    relay_failure,
)
from relaygate.exceptions import (
    AgentNotFoundError,
    CredentialIssuanceError,
    UpstreamError,
)
from relaygate.ledger import ConversationLedger
from relaygate.logging import log_token_issued
from relaygate.poller import (
    CANCELLED,
    CREDENTIAL_EXPIRED,
    DEADLINE,
    PollConfig,
    pick_reply,
)
from relaygate.tokens import (
    DEFAULT_LEASE,
    DEFAULT_SAFETY_MARGIN,
    credential_from_payload,
    utcnow,
)
from relaygate.types.activities import Reply, TimeoutOutcome
from relaygate.types.agents import AgentRecord
from relaygate.types.credentials import Credential
from relaygate.types.turns import Sender

if TYPE_CHECKING:
    from relaygate.async_transport import AsyncDirectLineTransport
    from relaygate.registry import AgentRegistry

logger = logging.getLogger(__name__)


class AsyncTokenManager:
    """
    Async token manager with per-agent single-flight issuance.

    Concurrent callers that miss the cache await one shared issuance task.
    A caller being cancelled does not cancel the issuance for the others.
    """

    def __init__(
        self,
        transport: "AsyncDirectLineTransport",
        store: CredentialStore | None = None,
        lease: timedelta = DEFAULT_LEASE,
        safety_margin: timedelta = DEFAULT_SAFETY_MARGIN,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.transport = transport
        self.store = store if store is not None else CredentialStore()
        self.lease = lease
        self.safety_margin = safety_margin
        self._clock = clock
        self._flights: dict[str, "asyncio.Task[Credential]"] = {}

    async def get_valid_credential(self, agent: AgentRecord) -> Credential:
        """
        Return a credential that is usable right now.

        Raises:
            CredentialIssuanceError: If issuance fails or returns a malformed payload
        """
        cached = self.store.get(agent.agent_id)
        if cached is not None and cached.is_usable(self._clock(), self.safety_margin):
            return cached

        flight = self._flights.get(agent.agent_id)
        if flight is None:
            flight = asyncio.ensure_future(self._issue(agent))
            self._flights[agent.agent_id] = flight
            flight.add_done_callback(
                lambda task, agent_id=agent.agent_id: self._land(agent_id, task)
            )
        else:
            logger.debug("Joining in-flight token issuance for %s", agent.agent_id)

        return await asyncio.shield(flight)

    def invalidate(self, agent_id: str) -> None:
        """Forget the cached credential so the next call re-issues."""
        self.store.discard(agent_id)

    def _land(self, agent_id: str, task: "asyncio.Task[Credential]") -> None:
        if self._flights.get(agent_id) is task:
            del self._flights[agent_id]
        if not task.cancelled():
            # Mark the error retrieved even if every waiter was cancelled.
            task.exception()

    async def _issue(self, agent: AgentRecord) -> Credential:
        logger.info("Generating new Direct Line token for %s", agent.display_name or agent.agent_id)
        try:
            payload = await self.transport.issue_credential(agent.secret)
        except UpstreamError as e:
            raise CredentialIssuanceError(
                agent.agent_id, f"Token issuance failed: {e.message}"
            ) from e

        credential = credential_from_payload(
            agent.agent_id, payload, self._clock(), self.lease
        )
        self.store.put(agent.agent_id, credential)
        log_token_issued(agent.agent_id, credential.expires_at)
        return credential


class AsyncRelayDispatcher:
    """Async version of ``RelayDispatcher``."""

    def __init__(
        self,
        registry: "AgentRegistry",
        token_manager: AsyncTokenManager,
        transport: "AsyncDirectLineTransport",
        ledger: ConversationLedger,
        sender_id: str = DEFAULT_SENDER_ID,
    ) -> None:
        self.registry = registry
        self.token_manager = token_manager
        self.transport = transport
        self.ledger = ledger
        self.sender_id = sender_id

    async def dispatch(self, agent_id: str, text: str) -> str:
        """Relay ``text`` to the agent and return the new conversation id."""
        receipt = await self.dispatch_with_receipt(agent_id, text)
        return receipt.conversation_id

    async def dispatch_with_receipt(self, agent_id: str, text: str) -> DispatchReceipt:
        text = check_message(text)
        agent = self.registry.lookup(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)

        credential = await self.token_manager.get_valid_credential(agent)

        try:
            conversation_id = await self.transport.create_conversation(credential.value)
        except UpstreamError as e:
            raise relay_failure(
                self.token_manager, agent_id, "Conversation creation failed", e
            ) from e

        try:
            activity_id = await self.transport.post_activity(
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


class AsyncResponsePoller:
    """
    Async version of ``ResponsePoller``.

    Each feed query is bounded by the time left, so a hung request is
    cancelled (and its connection released) when the deadline passes.
    Cancelling the awaiting task propagates ``CancelledError`` as usual.
    """

    def __init__(
        self,
        transport: "AsyncDirectLineTransport",
        config: PollConfig | None = None,
        monotonic: Callable[[], float] = time.monotonic,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.transport = transport
        self.config = config or PollConfig()
        self._monotonic = monotonic
        self._clock = clock

    async def await_reply(
        self,
        agent_id: str,
        conversation_id: str,
        sender_id: str,
        credential: Credential,
        deadline: float,
        cancel: asyncio.Event | None = None,
    ) -> Reply | TimeoutOutcome:
        """Wait until the child replies or the wait is over."""
        started = self._monotonic()
        stop_at = started + deadline
        polls = 0
        watermark: str | None = None

        def timed_out(reason: str) -> TimeoutOutcome:
            elapsed = self._monotonic() - started
            logger.info(
                "No reply from %s in conversation %s (%s after %d polls, %.2fs)",
                agent_id, conversation_id, reason, polls, elapsed,
            )
            return TimeoutOutcome(conversation_id, reason, polls, elapsed)

        while True:
            if cancel is not None and cancel.is_set():
                return timed_out(CANCELLED)
            if not credential.is_usable(self._clock()):
                return timed_out(CREDENTIAL_EXPIRED)

            polls += 1
            remaining = max(stop_at - self._monotonic(), 0.0)
            try:
                page = await asyncio.wait_for(
                    self.transport.list_activities(
                        credential.value, conversation_id, watermark, retry=False
                    ),
                    timeout=remaining,
                )
            except asyncio.TimeoutError:
                return timed_out(DEADLINE)
            except UpstreamError as e:
                logger.warning(
                    "Polling conversation %s for %s failed, retrying: %s",
                    conversation_id, agent_id, e,
                )
            else:
                watermark = page.watermark
                activity = pick_reply(page.activities, sender_id)
                if activity is not None:
                    logger.info("Received reply from %s in conversation %s", agent_id, conversation_id)
                    return Reply(
                        conversation_id=conversation_id,
                        text=activity.text or "",
                        author_id=activity.author_id,
                        activity_id=activity.activity_id,
                        polls=polls,
                    )

            remaining = stop_at - self._monotonic()
            if remaining <= 0:
                return timed_out(DEADLINE)
            if await self._pause(min(self.config.interval(polls - 1), remaining), cancel):
                return timed_out(CANCELLED)
            if self._monotonic() >= stop_at:
                return timed_out(DEADLINE)

    @staticmethod
    async def _pause(seconds: float, cancel: asyncio.Event | None) -> bool:
        """Sleep for ``seconds``; True if ``cancel`` was set meanwhile."""
        if cancel is None:
            await asyncio.sleep(seconds)
            return False
        try:
            await asyncio.wait_for(cancel.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

"""
Bounded wait for a child agent's reply on the Direct Line activity feed.

Polls until an activity authored by someone other than the original sender
shows up, the deadline passes, the caller cancels, or the token stops being
usable. Transient feed errors are logged and polling continues.
"""

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from relaygate.exceptions import UpstreamError
from relaygate.tokens import utcnow
from relaygate.types.activities import Activity, Reply, TimeoutOutcome
from relaygate.types.credentials import Credential

if TYPE_CHECKING:
    from relaygate.transport import DirectLineTransport

logger = logging.getLogger(__name__)

DEADLINE = "deadline"
CANCELLED = "cancelled"
CREDENTIAL_EXPIRED = "credential_expired"


@dataclass
class PollConfig:
    """Poll cadence: starts at ``initial_interval`` and backs off to ``max_interval``."""

    initial_interval: float = 0.25
    max_interval: float = 2.0
    backoff_factor: float = 1.5

    def interval(self, attempt: int) -> float:
        return min(
            self.initial_interval * self.backoff_factor ** attempt,
            self.max_interval,
        )


def pick_reply(activities: Iterable[Activity], sender_id: str) -> Activity | None:
    """Return the most recent message activity not authored by ``sender_id``."""
    latest = None
    for activity in activities:
        if activity.type != "message" or activity.text is None:
            continue
        if activity.author_id == sender_id:
            continue
        latest = activity
    return latest


class ResponsePoller:
    """Waits on a conversation's activity feed for the child's answer."""

    def __init__(
        self,
        transport: "DirectLineTransport",
        config: PollConfig | None = None,
        monotonic: Callable[[], float] = time.monotonic,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.transport = transport
        self.config = config or PollConfig()
        self._monotonic = monotonic
        self._clock = clock

    def await_reply(
        self,
        agent_id: str,
        conversation_id: str,
        sender_id: str,
        credential: Credential,
        deadline: float,
        cancel: threading.Event | None = None,
    ) -> Reply | TimeoutOutcome:
        """
        Block until the child replies or the wait is over.

        Each feed query is given the time left as its timeout, so a hung
        request ends at the deadline. ``cancel`` is checked between queries.

        Args:
            agent_id: Agent the conversation belongs to (for logging)
            conversation_id: Conversation to watch
            sender_id: Author id of the parent; its own activities are ignored
            credential: Token used for the feed queries
            deadline: Maximum wait in seconds
            cancel: Set this event to stop waiting early

        Returns:
            Reply with the newest child message, or TimeoutOutcome
        """
        cancel = cancel or threading.Event()
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
            if cancel.is_set():
                return timed_out(CANCELLED)
            if not credential.is_usable(self._clock()):
                return timed_out(CREDENTIAL_EXPIRED)

            try:
                page = self.transport.list_activities(
                    credential.value,
                    conversation_id,
                    watermark,
                    retry=False,
                    timeout=max(stop_at - self._monotonic(), 0.0),
                )
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
                        polls=polls + 1,
                    )
            finally:
                polls += 1

            remaining = stop_at - self._monotonic()
            if remaining <= 0:
                return timed_out(DEADLINE)
            if cancel.wait(min(self.config.interval(polls - 1), remaining)):
                return timed_out(CANCELLED)
            if self._monotonic() >= stop_at:
                return timed_out(DEADLINE)

"""
Direct Line token management.

Issues bearer tokens from each agent's secret, caches them until shortly
before expiry, and collapses concurrent refreshes for the same agent into a
single upstream call.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, cast

from relaygate.credentials import CredentialStore
from relaygate.exceptions import CredentialIssuanceError, UpstreamError
from relaygate.logging import log_token_issued
from relaygate.types.agents import AgentRecord
from relaygate.types.credentials import Credential

if TYPE_CHECKING:
    from relaygate.transport import DirectLineTransport

logger = logging.getLogger(__name__)

# Direct Line tokens live 30 minutes; stay well inside that.
DEFAULT_LEASE = timedelta(minutes=25)
DEFAULT_SAFETY_MARGIN = timedelta(seconds=60)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def credential_from_payload(
    agent_id: str,
    payload: Any,
    now: datetime,
    lease: timedelta,
) -> Credential:
    """
    Build a Credential from a ``tokens/generate`` response.

    The expiry is ``now + lease``, shortened to the upstream ``expires_in``
    when that is smaller.

    Raises:
        CredentialIssuanceError: If the payload carries no token, or the token
            would already be expired
    """
    if not isinstance(payload, dict):
        raise CredentialIssuanceError(agent_id, "Token response was not a JSON object")

    token = payload.get("token")
    if not isinstance(token, str) or not token:
        raise CredentialIssuanceError(agent_id, "Token response carried no token")

    ttl = lease
    expires_in = payload.get("expires_in")
    if isinstance(expires_in, (int, float)) and not isinstance(expires_in, bool):
        ttl = min(ttl, timedelta(seconds=expires_in))

    credential = Credential(value=token, expires_at=now + ttl)
    if not credential.is_usable(now):
        raise CredentialIssuanceError(agent_id, "Issued token expires immediately")
    return credential


class _Flight:
    """One in-progress issuance that concurrent callers wait on."""

    def __init__(self) -> None:
        self._done = threading.Event()
        self._credential: Credential | None = None
        self._error: Exception | None = None

    def resolve(self, credential: Credential) -> None:
        self._credential = credential
        self._done.set()

    def fail(self, error: Exception) -> None:
        self._error = error
        self._done.set()

    def wait(self) -> Credential:
        self._done.wait()
        if self._error is not None:
            raise self._error
        return cast(Credential, self._credential)


class TokenManager:
    """
    Hands out usable Direct Line credentials per agent.

    Example:
        ```python
        manager = TokenManager(transport)
        credential = manager.get_valid_credential(agent)
        transport.create_conversation(credential.value)
        ```
    """

    def __init__(
        self,
        transport: "DirectLineTransport",
        store: CredentialStore | None = None,
        lease: timedelta = DEFAULT_LEASE,
        safety_margin: timedelta = DEFAULT_SAFETY_MARGIN,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        Initialize the token manager.

        Args:
            transport: Direct Line transport used for issuance
            store: Credential cache (a private one is created if omitted)
            lease: How long an issued token is trusted
            safety_margin: Refresh this long before the lease runs out
            clock: Returns the current UTC time
        """
        self.transport = transport
        self.store = store if store is not None else CredentialStore()
        self.lease = lease
        self.safety_margin = safety_margin
        self._clock = clock
        self._flights_lock = threading.Lock()
        self._flights: dict[str, _Flight] = {}

    def get_valid_credential(self, agent: AgentRecord) -> Credential:
        """
        Return a credential that is usable right now.

        Args:
            agent: Registry record of the agent (its secret is used on a miss)

        Returns:
            A cached credential, or a freshly issued one

        Raises:
            CredentialIssuanceError: If issuance fails or returns a malformed payload
        """
        cached = self.store.get(agent.agent_id)
        if cached is not None and cached.is_usable(self._clock(), self.safety_margin):
            return cached

        with self._flights_lock:
            # Re-check under the lock: a flight may have finished meanwhile.
            cached = self.store.get(agent.agent_id)
            if cached is not None and cached.is_usable(self._clock(), self.safety_margin):
                return cached
            flight = self._flights.get(agent.agent_id)
            leader = flight is None
            if leader:
                flight = _Flight()
                self._flights[agent.agent_id] = flight

        if not leader:
            logger.debug("Joining in-flight token issuance for %s", agent.agent_id)
            return flight.wait()

        try:
            credential = self._issue(agent)
        except Exception as e:
            flight.fail(e)
            raise
        else:
            flight.resolve(credential)
            return credential
        finally:
            with self._flights_lock:
                self._flights.pop(agent.agent_id, None)

    def invalidate(self, agent_id: str) -> None:
        """Forget the cached credential so the next call re-issues."""
        self.store.discard(agent_id)

    def _issue(self, agent: AgentRecord) -> Credential:
        logger.info("Generating new Direct Line token for %s", agent.display_name or agent.agent_id)
        try:
            payload = self.transport.issue_credential(agent.secret)
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

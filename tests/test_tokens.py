"""
Tests for Direct Line token management.

Feature: relaygate
"""

import threading
from collections.abc import Callable
from datetime import timedelta
from typing import Any

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from relaygate.credentials import CredentialStore
from relaygate.exceptions import (
    AuthenticationError,
    CredentialIssuanceError,
    ServerError,
)
from relaygate.testing import FakeDirectLine, FrozenClock, create_agent_record
from relaygate.tokens import (
    DEFAULT_LEASE,
    DEFAULT_SAFETY_MARGIN,
    TokenManager,
    credential_from_payload,
)


class GatedIssuer:
    """Transport whose issuance blocks until released, to hold a flight open."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.release = threading.Event()
        self.calls = 0
        self._lock = threading.Lock()

    def issue_credential(self, secret: str) -> dict[str, Any]:
        with self._lock:
            self.calls += 1
            n = self.calls
        self.release.wait(5)
        if self.error is not None:
            raise self.error
        return {"token": f"gated-{n}", "expires_in": 1800}


def run_concurrently(
    count: int, fn: Callable[[], Any]
) -> tuple[list[Any], list[Exception], list[threading.Thread]]:
    results: list[Any] = []
    errors: list[Exception] = []
    barrier = threading.Barrier(count)

    def worker() -> None:
        barrier.wait()
        try:
            results.append(fn())
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for thread in threads:
        thread.start()
    return results, errors, threads


# ============================================================================
# Caching
# ============================================================================


def test_second_call_reuses_cached_credential(clock) -> None:
    fake = FakeDirectLine(secrets={"b1": "s1"})
    manager = TokenManager(fake, clock=clock)
    agent = create_agent_record()

    first = manager.get_valid_credential(agent)
    second = manager.get_valid_credential(agent)

    assert first == second
    assert fake.call_count("issue_credential") == 1


def test_expired_credential_is_replaced(clock) -> None:
    fake = FakeDirectLine(secrets={"b1": "s1"})
    manager = TokenManager(fake, clock=clock)
    agent = create_agent_record()

    first = manager.get_valid_credential(agent)
    clock.advance(seconds=DEFAULT_LEASE.total_seconds() + 1)
    second = manager.get_valid_credential(agent)

    assert second.value != first.value
    assert second.expires_at == clock.now + DEFAULT_LEASE
    assert fake.call_count("issue_credential") == 2


def test_credential_inside_safety_margin_is_refreshed(clock) -> None:
    fake = FakeDirectLine(secrets={"b1": "s1"})
    manager = TokenManager(fake, clock=clock)
    agent = create_agent_record()

    manager.get_valid_credential(agent)
    clock.advance(seconds=(DEFAULT_LEASE - DEFAULT_SAFETY_MARGIN).total_seconds())
    manager.get_valid_credential(agent)

    assert fake.call_count("issue_credential") == 2


@given(elapsed=st.floats(min_value=0, max_value=(DEFAULT_LEASE - DEFAULT_SAFETY_MARGIN).total_seconds() - 0.001))
@settings(max_examples=100)
def test_no_reissue_while_outside_safety_margin(elapsed: float) -> None:
    """Within the lease minus the margin, the cached token is always served."""
    clock = FrozenClock()
    fake = FakeDirectLine(secrets={"b1": "s1"})
    manager = TokenManager(fake, clock=clock)
    agent = create_agent_record()

    first = manager.get_valid_credential(agent)
    clock.advance(seconds=elapsed)

    assert manager.get_valid_credential(agent) is first
    assert fake.call_count("issue_credential") == 1


def test_invalidate_forces_reissue(clock) -> None:
    fake = FakeDirectLine(secrets={"b1": "s1"})
    manager = TokenManager(fake, clock=clock)
    agent = create_agent_record()

    manager.get_valid_credential(agent)
    manager.invalidate("b1")
    manager.get_valid_credential(agent)

    assert fake.call_count("issue_credential") == 2


def test_agents_have_separate_credentials(clock) -> None:
    fake = FakeDirectLine(secrets={"b1": "s1", "b2": "s2"})
    store = CredentialStore()
    manager = TokenManager(fake, store=store, clock=clock)

    one = manager.get_valid_credential(create_agent_record())
    two = manager.get_valid_credential(create_agent_record("b2", secret="s2"))

    assert one.value != two.value
    assert store.get("b1") == one
    assert store.get("b2") == two


# ============================================================================
# Expiry computation
# ============================================================================


def test_upstream_expiry_shorter_than_lease_wins(clock) -> None:
    credential = credential_from_payload(
        "b1", {"token": "t", "expires_in": 600}, clock.now, DEFAULT_LEASE
    )

    assert credential.expires_at == clock.now + timedelta(seconds=600)


def test_lease_applies_when_upstream_expiry_is_longer(clock) -> None:
    credential = credential_from_payload(
        "b1", {"token": "t", "expires_in": 3600}, clock.now, DEFAULT_LEASE
    )

    assert credential.expires_at == clock.now + DEFAULT_LEASE


def test_lease_applies_without_upstream_expiry(clock) -> None:
    credential = credential_from_payload("b1", {"token": "t"}, clock.now, DEFAULT_LEASE)

    assert credential.expires_at == clock.now + DEFAULT_LEASE


@pytest.mark.parametrize(
    "payload",
    [None, [], "token", {}, {"token": ""}, {"token": 42}, {"expires_in": 1800}],
)
def test_malformed_payload_is_rejected(clock, payload: Any) -> None:
    with pytest.raises(CredentialIssuanceError) as exc_info:
        credential_from_payload("b1", payload, clock.now, DEFAULT_LEASE)

    assert exc_info.value.agent_id == "b1"


# ============================================================================
# Failures
# ============================================================================


def test_rejected_secret_raises_issuance_error(clock) -> None:
    fake = FakeDirectLine(secrets={"b1": "s1"})
    manager = TokenManager(fake, clock=clock)

    with pytest.raises(CredentialIssuanceError) as exc_info:
        manager.get_valid_credential(create_agent_record(secret="wrong"))

    assert isinstance(exc_info.value.__cause__, AuthenticationError)
    assert manager.store.get("b1") is None


def test_malformed_issuance_is_not_cached(clock) -> None:
    fake = FakeDirectLine(secrets={"b1": "s1"})
    fake.configure_issue_payload({"conversationId": "x"})
    manager = TokenManager(fake, clock=clock)

    with pytest.raises(CredentialIssuanceError):
        manager.get_valid_credential(create_agent_record())

    assert len(manager.store) == 0


@pytest.mark.parametrize("expires_in", [0, -5])
def test_token_expiring_on_arrival_is_rejected(clock, expires_in: int) -> None:
    with pytest.raises(CredentialIssuanceError):
        credential_from_payload(
            "b1", {"token": "t", "expires_in": expires_in}, clock.now, DEFAULT_LEASE
        )


def test_zero_lease_never_hands_out_a_dead_token(clock) -> None:
    fake = FakeDirectLine(secrets={"b1": "s1"})
    manager = TokenManager(fake, lease=timedelta(0), clock=clock)

    with pytest.raises(CredentialIssuanceError):
        manager.get_valid_credential(create_agent_record())

    assert manager.store.get("b1") is None


def test_failure_does_not_poison_later_calls(clock) -> None:
    fake = FakeDirectLine(secrets={"b1": "s1"})
    fake.fail_next("issue_credential", ServerError("Busy", "try later", 503))
    manager = TokenManager(fake, clock=clock)
    agent = create_agent_record()

    with pytest.raises(CredentialIssuanceError):
        manager.get_valid_credential(agent)

    assert manager.get_valid_credential(agent).value.startswith("token-")


# ============================================================================
# Single-flight
# ============================================================================


def test_concurrent_misses_share_one_issuance() -> None:
    fake = FakeDirectLine(secrets={"b1": "s1"}, issue_delay=0.2)
    manager = TokenManager(fake)
    agent = create_agent_record()

    results, errors, threads = run_concurrently(8, lambda: manager.get_valid_credential(agent))
    for thread in threads:
        thread.join(5)

    assert errors == []
    assert len(results) == 8
    assert len({credential.value for credential in results}) == 1
    assert fake.call_count("issue_credential") == 1


def test_concurrent_waiters_all_see_the_same_failure() -> None:
    issuer = GatedIssuer(error=ServerError("Busy", "try later", 503))
    manager = TokenManager(issuer)  # type: ignore[arg-type]
    agent = create_agent_record()

    results, errors, threads = run_concurrently(5, lambda: manager.get_valid_credential(agent))
    # Let every thread reach the flight before the issuance resolves
    threading.Event().wait(0.2)
    issuer.release.set()
    for thread in threads:
        thread.join(5)

    assert results == []
    assert len(errors) == 5
    assert all(isinstance(e, CredentialIssuanceError) for e in errors)
    assert issuer.calls == 1


def test_flight_is_cleared_after_completion() -> None:
    issuer = GatedIssuer()
    issuer.release.set()
    manager = TokenManager(issuer)  # type: ignore[arg-type]
    agent = create_agent_record()

    manager.get_valid_credential(agent)
    manager.invalidate(agent.agent_id)
    manager.get_valid_credential(agent)

    assert issuer.calls == 2
    assert manager._flights == {}


def test_different_agents_do_not_share_a_flight() -> None:
    issuer = GatedIssuer()
    manager = TokenManager(issuer)  # type: ignore[arg-type]

    results: dict[str, str] = {}

    def fetch(agent_id: str) -> None:
        results[agent_id] = manager.get_valid_credential(
            create_agent_record(agent_id)
        ).value

    threads = [threading.Thread(target=fetch, args=(a,)) for a in ("b1", "b2")]
    for thread in threads:
        thread.start()
    threading.Event().wait(0.2)
    issuer.release.set()
    for thread in threads:
        thread.join(5)

    assert issuer.calls == 2
    assert results["b1"] != results["b2"]

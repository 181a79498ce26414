"""
Tests for the relay gateway and its Outcome boundary.

Feature: relaygate
"""

from datetime import timedelta
from unittest.mock import patch

import httpx
import pytest

from relaygate import RelayGateway
from relaygate.config import GatewayConfig
from relaygate.exceptions import (
    AgentNotFoundError,
    ConfigurationError,
    RelayGateError,
    ServerError,
    UpstreamError,
    ValidationError,
)
from relaygate.outcomes import Outcome, OutcomeStatus, capture
from relaygate.testing import FakeDirectLine, fast_config
from relaygate.transport import DirectLineTransport
from relaygate.types.activities import Reply, TimeoutOutcome
from relaygate.types.turns import Sender


# ============================================================================
# End-to-end relay
# ============================================================================


def test_ping_pong_exchange(gateway, fake_directline) -> None:
    """Dispatch, push-style child reply, and ledger queries line up."""
    dispatched = gateway.dispatch("b1", "ping")
    assert dispatched.ok
    conversation_id = dispatched.value

    latest_parent = gateway.latest_turn("b1", "parent")
    assert latest_parent.value.conversation_id == conversation_id
    assert latest_parent.value.message == "ping"

    correlated = gateway.correlate_child_reply("b1", "pong")
    assert correlated.value == conversation_id

    latest_child = gateway.latest_turn(sender=Sender.CHILD)
    assert latest_child.value.message == "pong"
    assert latest_child.value.conversation_id == conversation_id


def test_send_and_wait_returns_child_reply(gateway, fake_directline) -> None:
    fake_directline.configure_auto_reply(lambda text: text.upper(), after_polls=1)

    outcome = gateway.send_and_wait("b2", "hello")

    assert outcome.ok
    assert outcome.http_status == 200
    assert isinstance(outcome.value, Reply)
    assert outcome.value.text == "HELLO"
    # Polled replies are returned, not written to the ledger
    assert [t.sender for t in gateway.ledger.turns()] == [Sender.PARENT]


def test_await_reply_on_existing_conversation(gateway, fake_directline) -> None:
    conversation_id = gateway.dispatch("b1", "ping").value
    fake_directline.add_activity(conversation_id, "pong")

    outcome = gateway.await_reply("b1", conversation_id, deadline=1.0)

    assert outcome.ok
    assert outcome.value.text == "pong"


def test_silent_child_times_out(gateway) -> None:
    outcome = gateway.send_and_wait("b1", "anyone there?", deadline=0.05)

    assert outcome.status is OutcomeStatus.TIMEOUT
    assert outcome.http_status == 504
    assert isinstance(outcome.value, TimeoutOutcome)
    assert outcome.error is None


def test_register_and_find_agent(gateway) -> None:
    registered = gateway.register_agent("w1", "Weather bot", "s3", ["weather"])

    assert registered.ok
    assert gateway.find_agent("weather").value.agent_id == "w1"
    assert gateway.find_agent("astrology").status is OutcomeStatus.NOT_FOUND


def test_list_agents_exposes_no_secrets(gateway) -> None:
    outcome = gateway.list_agents()

    body = outcome.to_dict()
    assert body["status"] == "ok"
    assert [agent["agentId"] for agent in body["data"]] == ["b1", "b2"]
    assert "s1" not in repr(body)


def test_latest_turn_with_no_match_is_ok_and_empty(gateway) -> None:
    outcome = gateway.latest_turn("b1", "child")

    assert outcome.ok
    assert outcome.value is None
    assert outcome.to_dict() == {"status": "ok"}


# ============================================================================
# Error mapping
# ============================================================================


def test_unknown_agent_maps_to_not_found(gateway) -> None:
    outcome = gateway.dispatch("nope", "ping")

    assert outcome.status is OutcomeStatus.NOT_FOUND
    assert outcome.http_status == 404
    assert isinstance(outcome.error, AgentNotFoundError)
    assert outcome.to_dict()["error"]["code"] == "AGENT_NOT_FOUND"


def test_await_reply_for_unknown_agent_is_not_found(gateway) -> None:
    assert gateway.await_reply("nope", "c1").http_status == 404


def test_issuance_failure_maps_to_service_unavailable(gateway, fake_directline) -> None:
    fake_directline.fail_next("issue_credential", ServerError("Busy", "down", 503))

    outcome = gateway.dispatch("b1", "ping")

    assert outcome.status is OutcomeStatus.SERVICE_UNAVAILABLE
    assert outcome.http_status == 503


def test_post_failure_maps_to_bad_gateway(gateway, fake_directline) -> None:
    fake_directline.fail_next("post_activity", ServerError("Busy", "down", 503))

    outcome = gateway.dispatch("b1", "ping")

    assert outcome.status is OutcomeStatus.BAD_GATEWAY
    assert outcome.http_status == 502
    assert len(gateway.ledger) == 0


def test_orphan_child_reply_maps_to_client_error(gateway) -> None:
    outcome = gateway.correlate_child_reply("b1", "pong")

    assert outcome.status is OutcomeStatus.CLIENT_ERROR
    assert outcome.http_status == 400
    assert outcome.error.code == "NO_MATCHING_PARENT_TURN"


def test_invalid_sender_maps_to_client_error(gateway) -> None:
    outcome = gateway.latest_turn("b1", "robot")

    assert outcome.http_status == 400
    assert isinstance(outcome.error, ValidationError)


def test_duplicate_agent_maps_to_conflict(gateway) -> None:
    outcome = gateway.register_agent("b1", "Again", "s9")

    assert outcome.status is OutcomeStatus.CONFLICT
    assert outcome.http_status == 409


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (UpstreamError("BadArgument", "x", 400), OutcomeStatus.BAD_GATEWAY),
        (RelayGateError("ODD", "x"), OutcomeStatus.SERVICE_UNAVAILABLE),
    ],
)
def test_failure_status_for_other_errors(error: RelayGateError, status: OutcomeStatus) -> None:
    assert Outcome.failure(error).status is status


def test_capture_lets_non_relaygate_errors_through() -> None:
    def broken() -> None:
        raise KeyError("bug")

    with pytest.raises(KeyError):
        capture(broken)


def test_reply_serializes_to_plain_data() -> None:
    outcome = Outcome.success(Reply("c1", "pong", "childBot", "c1|0000001", 2))

    assert outcome.to_dict() == {
        "status": "ok",
        "data": {
            "conversation_id": "c1",
            "text": "pong",
            "author_id": "childBot",
            "activity_id": "c1|0000001",
            "polls": 2,
        },
    }


# ============================================================================
# Configuration
# ============================================================================


def test_config_from_env() -> None:
    config = GatewayConfig.from_env(
        {
            "RELAYGATE_DIRECTLINE_URL": "https://europe.directline.botframework.com",
            "RELAYGATE_SENDER_ID": " orchestrator ",
            "RELAYGATE_TIMEOUT": "10",
            "RELAYGATE_TOKEN_LEASE_SECONDS": "600",
            "RELAYGATE_TOKEN_SAFETY_MARGIN": "30",
            "RELAYGATE_POLL_INTERVAL": "0.5",
            "RELAYGATE_POLL_MAX_INTERVAL": "4",
            "RELAYGATE_REPLY_DEADLINE": "45",
        }
    )

    assert config.base_url == "https://europe.directline.botframework.com"
    assert config.sender_id == "orchestrator"
    assert config.timeout == 10.0
    assert config.token_lease == timedelta(seconds=600)
    assert config.token_safety_margin == timedelta(seconds=30)
    assert config.poll.initial_interval == 0.5
    assert config.poll.max_interval == 4.0
    assert config.reply_deadline == 45.0


def test_config_defaults_from_empty_env() -> None:
    assert GatewayConfig.from_env({}) == GatewayConfig()


@pytest.mark.parametrize(
    "environ",
    [
        {"RELAYGATE_TIMEOUT": "soon"},
        {"RELAYGATE_REPLY_DEADLINE": "-1"},
        {"RELAYGATE_SENDER_ID": "  "},
        {"RELAYGATE_POLL_INTERVAL": "0"},
        {"RELAYGATE_TOKEN_LEASE_SECONDS": "0"},
        {"RELAYGATE_TOKEN_LEASE_SECONDS": "60", "RELAYGATE_TOKEN_SAFETY_MARGIN": "60"},
    ],
)
def test_invalid_env_raises_configuration_error(environ: dict[str, str]) -> None:
    with pytest.raises(ConfigurationError):
        GatewayConfig.from_env(environ)


def test_gateway_from_env_uses_environment(monkeypatch) -> None:
    monkeypatch.setenv("RELAYGATE_SENDER_ID", "orchestrator")
    fake = FakeDirectLine()

    with RelayGateway.from_env(transport=fake) as gateway:  # type: ignore[arg-type]
        assert gateway.config.sender_id == "orchestrator"
        assert gateway.dispatcher.sender_id == "orchestrator"

    # Injected transports belong to the caller
    assert not fake.closed


def test_gateway_owns_default_transport() -> None:
    with RelayGateway(config=fast_config()) as gateway:
        transport = gateway.transport
        assert isinstance(transport, DirectLineTransport)

    assert transport._client.is_closed


def test_malformed_feed_never_escapes_as_exception() -> None:
    transport = DirectLineTransport(base_url="https://directline.test")

    def fake_request(method, path, **kwargs):
        if path.endswith("/tokens/generate"):
            return httpx.Response(200, json={"token": "tok", "expires_in": 1800})
        if method == "POST" and path.endswith("/conversations"):
            return httpx.Response(201, json={"conversationId": "c1"})
        if method == "POST":
            return httpx.Response(200, json={"id": "c1|0000000"})
        return httpx.Response(200, json={"activities": 5})

    with RelayGateway(config=fast_config(), transport=transport) as gateway:
        gateway.register_agent("b1", "Billing bot", "s1")
        with patch.object(transport._client, "request", side_effect=fake_request):
            outcome = gateway.send_and_wait("b1", "ping", deadline=0.1)

    transport.close()
    assert outcome.status is OutcomeStatus.TIMEOUT
    assert outcome.value.reason == "deadline"
    assert outcome.value.polls >= 1


def test_find_agent_miss_is_typed_not_found(gateway) -> None:
    outcome = gateway.find_agent("astrology")

    assert outcome.http_status == 404
    assert isinstance(outcome.error, AgentNotFoundError)
    assert outcome.error.capability == "astrology"
    assert "astrology" in outcome.error.message

#!/usr/bin/env python3
"""
Basic relaygate usage example.

Runs the whole relay against the in-memory Direct Line, so no network or
bot secret is needed. The fake lives in relaygate.testing, so install the
"test" extra first.
Run with: python examples/basic_usage.py
"""

import logging

from relaygate import RelayGateway, Sender, configure_logging
from relaygate.testing import FakeDirectLine, fast_config

configure_logging(level=logging.INFO)

print("=== relaygate Basic Usage Example ===\n")

fake = FakeDirectLine(secrets={"b1": "s1"})
fake.configure_auto_reply(lambda text: "pong" if text == "ping" else f"echo: {text}", after_polls=1)

with RelayGateway(config=fast_config(), transport=fake) as gateway:
    # 1. Register a child agent
    print("1. Registering agent b1...")
    outcome = gateway.register_agent("b1", "Billing bot", secret="s1", capabilities=["billing"])
    print(f"   {outcome.http_status} {outcome.to_dict()}\n")

    # 2. Find it by capability
    print("2. Looking up an agent for 'billing'...")
    outcome = gateway.find_agent("billing")
    print(f"   {outcome.http_status} {outcome.to_dict()}\n")

    # 3. Send and wait for the polled reply
    print("3. Sending 'ping' and waiting for the reply...")
    outcome = gateway.send_and_wait("b1", "ping", deadline=2.0)
    print(f"   {outcome.http_status} {outcome.to_dict()}\n")

    # 4. Dispatch, then record a reply the child pushed back to us
    print("4. Dispatching and correlating a pushed reply...")
    conversation = gateway.dispatch("b1", "invoice 42?")
    correlated = gateway.correlate_child_reply("b1", "paid")
    assert correlated.value == conversation.value
    print(f"   reply recorded in conversation {correlated.value}\n")

    # 5. Query the ledger
    print("5. Latest child turn across all agents...")
    latest = gateway.latest_turn(sender=Sender.CHILD)
    print(f"   {latest.to_dict()}\n")

    # 6. Errors come back as outcomes, not exceptions
    print("6. Dispatching to an unknown agent...")
    outcome = gateway.dispatch("nobody", "hello")
    print(f"   {outcome.http_status} {outcome.to_dict()}\n")

#!/usr/bin/env python3
"""
relaygate - Live Direct Line Workflow Example

Relays one question to a real child bot and waits for the answer:
1. Register the bot with its Direct Line secret
2. Send a message and poll for the reply
3. Record the exchange in the ledger

Environment:
    RELAYGATE_CHILD_SECRET: Direct Line secret of the child bot (required)
    RELAYGATE_*: Gateway settings, see GatewayConfig.from_env
"""

import asyncio
import os
import sys

from relaygate import AsyncRelayGateway, RelayGateError, TimeoutOutcome


async def main() -> int:
    """Run the live relay workflow."""
    print("=== relaygate Live Workflow ===\n")

    secret = os.environ.get("RELAYGATE_CHILD_SECRET")
    if not secret:
        print("Set RELAYGATE_CHILD_SECRET to the child bot's Direct Line secret")
        return 1
    question = " ".join(sys.argv[1:]) or "Hello from the parent agent"

    try:
        async with AsyncRelayGateway.from_env() as gateway:
            print("Step 1: Registering child bot...")
            registered = gateway.register_agent("child", "Child bot", secret)
            print(f"  Registered: {registered.value.display_name}\n")

            print(f"Step 2: Asking {question!r}...")
            outcome = await gateway.send_and_wait("child", question, deadline=30)
            if outcome.error is not None:
                print(f"  Failed ({outcome.http_status}): {outcome.error.message}")
                return 1
            if isinstance(outcome.value, TimeoutOutcome):
                print(f"  No reply ({outcome.value.reason} after {outcome.value.polls} polls)")
                return 2
            print(f"  Reply: {outcome.value.text}\n")

            print("Step 3: Ledger")
            for turn in gateway.ledger.turns():
                print(f"  [{turn.sender.value}] {turn.message}")
    except RelayGateError as e:
        print(f"Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

"""Gateway configuration."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta

from relaygate.dispatcher import DEFAULT_SENDER_ID
from relaygate.exceptions import ConfigurationError
from relaygate.poller import PollConfig
from relaygate.tokens import DEFAULT_LEASE, DEFAULT_SAFETY_MARGIN
from relaygate.transport import DEFAULT_BASE_URL, RetryConfig


@dataclass
class GatewayConfig:
    """Settings for a relay gateway. Every field has a working default."""

    base_url: str = DEFAULT_BASE_URL
    sender_id: str = DEFAULT_SENDER_ID
    timeout: float = 30.0
    token_lease: timedelta = DEFAULT_LEASE
    token_safety_margin: timedelta = DEFAULT_SAFETY_MARGIN
    reply_deadline: float = 30.0
    poll: PollConfig = field(default_factory=PollConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GatewayConfig":
        """
        Create a config from environment variables.

        Environment variables:
            RELAYGATE_DIRECTLINE_URL: Direct Line base URL
            RELAYGATE_SENDER_ID: Author id used for parent messages (default: parentBot)
            RELAYGATE_TIMEOUT: HTTP timeout in seconds (default: 30)
            RELAYGATE_TOKEN_LEASE_SECONDS: Token lease (default: 1500)
            RELAYGATE_TOKEN_SAFETY_MARGIN: Refresh margin in seconds (default: 60)
            RELAYGATE_POLL_INTERVAL: First poll interval in seconds (default: 0.25)
            RELAYGATE_POLL_MAX_INTERVAL: Poll interval cap in seconds (default: 2.0)
            RELAYGATE_REPLY_DEADLINE: Default reply wait in seconds (default: 30)

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed, or the
                token lease does not exceed the safety margin
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def number(name: str, default: float) -> float:
            raw = env.get(name)
            if raw is None or raw.strip() == "":
                return default
            try:
                value = float(raw)
            except ValueError:
                raise ConfigurationError(f"Invalid {name}: {raw!r} is not a number") from None
            if value < 0:
                raise ConfigurationError(f"Invalid {name}: must not be negative")
            return value

        sender_id = env.get("RELAYGATE_SENDER_ID", defaults.sender_id).strip()
        if not sender_id:
            raise ConfigurationError("RELAYGATE_SENDER_ID must not be empty")

        if number("RELAYGATE_POLL_INTERVAL", defaults.poll.initial_interval) == 0:
            raise ConfigurationError("Invalid RELAYGATE_POLL_INTERVAL: must be positive")

        token_lease = timedelta(
            seconds=number(
                "RELAYGATE_TOKEN_LEASE_SECONDS", defaults.token_lease.total_seconds()
            )
        )
        token_safety_margin = timedelta(
            seconds=number(
                "RELAYGATE_TOKEN_SAFETY_MARGIN",
                defaults.token_safety_margin.total_seconds(),
            )
        )
        if token_lease <= token_safety_margin:
            raise ConfigurationError(
                "Invalid RELAYGATE_TOKEN_LEASE_SECONDS: must exceed RELAYGATE_TOKEN_SAFETY_MARGIN"
            )

        return cls(
            base_url=env.get("RELAYGATE_DIRECTLINE_URL", defaults.base_url),
            sender_id=sender_id,
            timeout=number("RELAYGATE_TIMEOUT", defaults.timeout),
            token_lease=token_lease,
            token_safety_margin=token_safety_margin,
            reply_deadline=number("RELAYGATE_REPLY_DEADLINE", defaults.reply_deadline),
            poll=PollConfig(
                initial_interval=number(
                    "RELAYGATE_POLL_INTERVAL", defaults.poll.initial_interval
                ),
                max_interval=number(
                    "RELAYGATE_POLL_MAX_INTERVAL", defaults.poll.max_interval
                ),
            ),
        )

"""Bearer credential data model."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta


@dataclass(frozen=True)
class Credential:
    """A Direct Line bearer token and the instant it stops being usable."""

    value: str = field(repr=False)
    expires_at: datetime

    def is_usable(self, now: datetime, margin: timedelta = timedelta(0)) -> bool:
        """True while ``now`` is before ``expires_at`` minus ``margin``."""
        return now < self.expires_at - margin

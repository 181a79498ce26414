"""Direct Line activity and reply-wait data models."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Activity:
    """A single entry in a Direct Line conversation feed."""

    activity_id: str | None
    author_id: str | None
    text: str | None
    timestamp: datetime | None = None
    type: str = "message"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Activity":
        author = data.get("from")
        if not isinstance(author, dict):
            author = {}
        text = data.get("text")
        timestamp = data.get("timestamp")
        parsed_ts = None
        if isinstance(timestamp, str) and timestamp:
            try:
                parsed_ts = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
            except ValueError:
                parsed_ts = None
        return cls(
            activity_id=data.get("id"),
            author_id=author.get("id") if isinstance(author.get("id"), str) else None,
            text=text if isinstance(text, str) else None,
            timestamp=parsed_ts,
            type=str(data.get("type") or "message"),
        )


@dataclass(frozen=True)
class ActivityPage:
    """Activities returned by one feed query plus the watermark to resume from."""

    activities: list[Activity]
    watermark: str | None = None


@dataclass(frozen=True)
class Reply:
    """A child's answer picked up from the activity feed."""

    conversation_id: str
    text: str
    author_id: str | None
    activity_id: str | None
    polls: int


@dataclass(frozen=True)
class TimeoutOutcome:
    """Terminal "no reply yet" state of a wait. Not an error."""

    conversation_id: str
    reason: str  # "deadline", "cancelled" or "credential_expired"
    polls: int
    elapsed: float

"""Messages exchanged between plugins."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Message:
    """A message sent directly to one plugin or published on a topic."""

    id: str
    from_plugin: str
    to: str
    payload: bytes
    msg_type: str | None = None
    topic: str | None = None
    timestamp: datetime = field(default_factory=_utc_now)

    @classmethod
    def new(cls, from_plugin: str, to: str, payload: bytes) -> Message:
        """Create a point-to-point message with a fresh identifier."""
        return cls(
            id=str(uuid.uuid4()),
            from_plugin=from_plugin,
            to=to,
            payload=bytes(payload),
        )

    @classmethod
    def new_topic(cls, from_plugin: str, topic: str, payload: bytes) -> Message:
        """Create a publish-subscribe message; it has no specific recipient."""
        return cls(
            id=str(uuid.uuid4()),
            from_plugin=from_plugin,
            to="",
            payload=bytes(payload),
            topic=topic,
        )

    def with_type(self, msg_type: str) -> Message:
        """Return a copy carrying the given message type."""
        return replace(self, msg_type=msg_type)

    def with_topic(self, topic: str) -> Message:
        """Return a copy carrying the given topic."""
        return replace(self, topic=topic)

    def is_topic_message(self) -> bool:
        return self.topic is not None


class DeliveryStatus(Enum):
    SUCCESS = "success"
    PLUGIN_NOT_FOUND = "plugin_not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class MessageResult:
    """Outcome of routing one message."""

    status: DeliveryStatus
    detail: str | None = None

    @staticmethod
    def success() -> MessageResult:
        return MessageResult(DeliveryStatus.SUCCESS)

    @staticmethod
    def plugin_not_found(target: str) -> MessageResult:
        return MessageResult(DeliveryStatus.PLUGIN_NOT_FOUND, target)

    @staticmethod
    def failed(reason: str) -> MessageResult:
        return MessageResult(DeliveryStatus.FAILED, reason)
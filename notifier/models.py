"""Core domain models used across layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal

MentionMode = Literal["visible", "dm"]
MENTION_MODES: tuple[str, ...] = ("visible", "dm")


@dataclass(slots=True)
class Message:
    """Inbound message normalized by the transport adapter."""

    group_id: str
    sender_id: str
    text: str
    timestamp: datetime
    message_id: str | None = None
    is_group: bool = True


@dataclass(frozen=True, slots=True)
class Conversation:
    """A chat as seen by the messaging client."""

    id: str
    name: str
    is_group: bool
    members: tuple[str, ...] = ()


@dataclass(slots=True)
class RosterEntry:
    """Filtered member list cached for one conversation."""

    conversation_id: str
    members: list[str]
    fetched_at: float


@dataclass(frozen=True, slots=True)
class DispatchConfig:
    """Process-wide dispatch configuration.

    Instances are immutable; reconfiguration swaps in a new instance so a run
    holding an older snapshot is never affected by a concurrent update.
    """

    target_id: str | None
    message_template: str
    cadence: str
    mode: MentionMode = "visible"
    enabled: bool = True


@dataclass(slots=True)
class DeliveryReport:
    """Outcome of one delivery run, used for logging and the summary message."""

    success_count: int = 0
    fail_count: int = 0
    skipped_reason: str | None = None
    failures: list[str] = field(default_factory=list)

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    SCHEDULED = "scheduled"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"

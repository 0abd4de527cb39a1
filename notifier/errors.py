"""Exceptions raised by the notifier core and its adapters.

None of these are fatal inside a dispatch run: each is caught at the narrowest
scope, logged, and folded into the run's counters where that makes sense.
"""

from __future__ import annotations


class NotifierError(Exception):
    """Base class for notifier errors."""


class ResolutionFailure(NotifierError):
    """No resolution tier produced a target conversation."""


class RosterFetchFailure(NotifierError):
    """The conversation membership could not be read."""


class SendFailure(NotifierError):
    """A single outbound message could not be delivered."""

    def __init__(self, recipient: str, reason: str) -> None:
        super().__init__(f"send to {recipient} failed: {reason}")
        self.recipient = recipient
        self.reason = reason


class ConfigurationInvalid(NotifierError):
    """A configuration value (usually the cadence) failed validation."""


class ClientNotReady(NotifierError):
    """The messaging transport is not connected."""

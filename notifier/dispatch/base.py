"""Delivery strategy contract."""

from __future__ import annotations

from abc import ABC, abstractmethod

from notifier.models import Conversation, DeliveryReport


class DispatchStrategy(ABC):
    """Delivers one reminder to the members of a resolved target."""

    mode: str

    @abstractmethod
    async def deliver(self, target: Conversation, message_text: str) -> DeliveryReport:
        """Send message_text to the target's roster and report the outcome."""


def summary_text(report: DeliveryReport, channel: str) -> str:
    text = f"Reminder sent {channel} to {report.success_count} members."
    if report.fail_count:
        text += f"\n{report.fail_count} failed."
    return text

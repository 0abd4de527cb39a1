"""Rate-limited direct-message fan-out."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from notifier.dispatch.base import DispatchStrategy, summary_text
from notifier.messaging.base import MessagingClient
from notifier.models import Conversation, DeliveryReport
from notifier.participants import ParticipantProvider
from notifier.rate_limit import RateLimitedQueue

LOGGER = logging.getLogger(__name__)


class DirectFanout(DispatchStrategy):
    """Sends the message to every roster member individually."""

    mode = "dm"

    def __init__(
        self,
        client: MessagingClient,
        participants: ParticipantProvider,
        spacing_seconds: float = 0.4,
        queue_factory: Callable[[float], RateLimitedQueue] = RateLimitedQueue,
    ) -> None:
        self._client = client
        self._participants = participants
        self._spacing_seconds = spacing_seconds
        self._queue_factory = queue_factory

    async def deliver(self, target: Conversation, message_text: str) -> DeliveryReport:
        members = await self._participants.get_participants(target)
        if not members:
            LOGGER.warning("No participants to DM for %s", target.id)
            return DeliveryReport(skipped_reason="empty roster")

        LOGGER.info("Sending DMs to %d participants", len(members))
        report = DeliveryReport()

        async def send_one(address: str) -> None:
            try:
                conversation = await self._client.get_direct_conversation(address)
                await self._client.send_message(
                    conversation.id, message_text, is_group=conversation.is_group
                )
            except Exception as exc:  # noqa: BLE001
                report.fail_count += 1
                report.failures.append(address)
                LOGGER.warning("DM to %s failed: %s", address, exc)
            else:
                report.success_count += 1
                LOGGER.debug("DM sent to %s", address)

        queue = self._queue_factory(self._spacing_seconds)
        futures = [queue.submit(lambda address=address: send_one(address)) for address in members]
        try:
            await queue.drain()
        finally:
            await queue.close()
        await asyncio.gather(*futures, return_exceptions=True)

        try:
            await self._client.send_message(target.id, summary_text(report, "via DM"))
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Failed to send DM summary to %s: %s", target.id, exc)

        LOGGER.info("DM fan-out finished: %d sent, %d failed", report.success_count, report.fail_count)
        return report

"""Visible-mention broadcast into the target group."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from notifier.chunk import DEFAULT_CHUNK_SIZE, chunk_members, render_mention_text
from notifier.dispatch.base import DispatchStrategy, summary_text
from notifier.messaging.base import MessagingClient
from notifier.models import Conversation, DeliveryReport
from notifier.participants import ParticipantProvider

LOGGER = logging.getLogger(__name__)


class GroupBroadcast(DispatchStrategy):
    """Posts the message into the group, mentioning members in paced batches."""

    mode = "visible"

    def __init__(
        self,
        client: MessagingClient,
        participants: ParticipantProvider,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        batch_delay_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._participants = participants
        self._chunk_size = chunk_size
        self._batch_delay_seconds = batch_delay_seconds
        self._sleep = sleep

    async def deliver(self, target: Conversation, message_text: str) -> DeliveryReport:
        members = await self._participants.get_participants(target)
        if not members:
            LOGGER.warning("No participants to mention in %s", target.id)
            return DeliveryReport(skipped_reason="empty roster")

        chunks = chunk_members(members, self._chunk_size)
        LOGGER.info(
            "Broadcasting to %s: %d participants in %d batches", target.id, len(members), len(chunks)
        )

        report = DeliveryReport()
        for index, chunk in enumerate(chunks, start=1):
            mention_text = render_mention_text(chunk)
            if len(chunks) > 1:
                text = f"{message_text}\n\nBatch {index}/{len(chunks)}:\n{mention_text}"
            else:
                text = f"{message_text}\n\n{mention_text}"

            try:
                await self._client.send_message(target.id, text, mentions=chunk)
            except Exception as exc:  # noqa: BLE001
                report.fail_count += len(chunk)
                report.failures.append(f"batch {index}: {exc}")
                LOGGER.error("Batch %d/%d to %s failed: %s", index, len(chunks), target.id, exc)
            else:
                report.success_count += len(chunk)
                LOGGER.info("Batch %d/%d sent (%d mentions)", index, len(chunks), len(chunk))

            if index < len(chunks):
                await self._sleep(self._batch_delay_seconds)

        try:
            await self._client.send_message(target.id, summary_text(report, "in the group"))
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Failed to send broadcast summary to %s: %s", target.id, exc)

        LOGGER.info(
            "Group broadcast finished: %d sent, %d failed", report.success_count, report.fail_count
        )
        return report

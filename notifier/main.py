"""Application entrypoint."""

from __future__ import annotations

import asyncio
import logging

from notifier.commands import CommandDispatcher
from notifier.config import allowed_senders, initial_dispatch_config, load_settings
from notifier.db import TARGET_GROUP_KEY, Database
from notifier.dispatch.broadcast import GroupBroadcast
from notifier.dispatch.direct import DirectFanout
from notifier.errors import SendFailure
from notifier.messaging.signal_cli import SignalClient
from notifier.participants import ParticipantProvider
from notifier.resolver import TargetResolver
from notifier.scheduler import ScheduleController

LOGGER = logging.getLogger(__name__)


async def run() -> None:
    """Initialize app layers and start processing loop."""

    settings = load_settings()
    logging.basicConfig(level=settings.log_level)

    db = Database(settings.database_path)
    db.initialize()
    record = db.get_meta_record(TARGET_GROUP_KEY)
    if record:
        LOGGER.info("Saved target group %s (updated %s)", record["value"], record["updated_at"])

    client = SignalClient(
        signal_cli_path=settings.signal_cli_path,
        account=settings.signal_account,
        poll_interval_seconds=settings.signal_poll_interval_seconds,
        owner_number=settings.signal_owner_number,
        allowed_senders=allowed_senders(settings),
    )
    await client.connect()

    resolver = TargetResolver(client=client, db=db, group_name=settings.group_name)
    participants = ParticipantProvider(client, ttl_seconds=settings.roster_cache_ttl_seconds)
    strategies = {
        strategy.mode: strategy
        for strategy in (
            GroupBroadcast(
                client,
                participants,
                chunk_size=settings.mention_chunk_size,
                batch_delay_seconds=settings.batch_delay_seconds,
            ),
            DirectFanout(client, participants, spacing_seconds=settings.dm_spacing_seconds),
        )
    }

    config = initial_dispatch_config(settings)
    controller = ScheduleController(
        client=client,
        resolver=resolver,
        strategies=strategies,
        config=config,
        timezone=settings.timezone,
        locale=settings.message_locale,
    )
    commands = CommandDispatcher(
        controller=controller,
        resolver=resolver,
        participants=participants,
        chunk_size=settings.mention_chunk_size,
        locale=settings.message_locale,
    )

    if config.enabled:
        controller.start()
    else:
        LOGGER.warning("Scheduler disabled by configuration")

    try:
        async for message in client.poll_messages():
            reply = await commands.dispatch(message)
            if reply is None:
                continue
            try:
                await client.send_message(message.group_id, reply, is_group=message.is_group)
            except SendFailure as exc:
                LOGGER.error("Failed to reply to command: %s", exc)
    except asyncio.CancelledError:
        raise
    finally:
        await controller.shutdown()
        client.disconnect()
        LOGGER.info("Notifier shutdown complete")


def main() -> None:
    """Synchronous wrapper for asyncio entrypoint."""

    asyncio.run(run())


if __name__ == "__main__":
    main()

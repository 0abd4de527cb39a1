"""Cron-driven reminder scheduler with live reconfiguration."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from datetime import datetime
from typing import Callable, Mapping
from zoneinfo import ZoneInfo

from croniter import croniter

from notifier.dispatch.base import DispatchStrategy
from notifier.errors import ClientNotReady, ConfigurationInvalid, ResolutionFailure
from notifier.messaging.base import MessagingClient
from notifier.models import MENTION_MODES, DeliveryReport, DispatchConfig, SchedulerState
from notifier.resolver import TargetResolver
from notifier.templates import fill_message_template

LOGGER = logging.getLogger(__name__)


def validate_cadence(cadence: str) -> None:
    if not cadence or not croniter.is_valid(cadence):
        raise ConfigurationInvalid(f"Invalid cron expression: {cadence!r}")


class ScheduleController:
    """Owns the dispatch configuration and fires a dispatch run on every cadence tick.

    Only one trigger is ever registered. Ticks that arrive while a run is still
    in flight are skipped with a warning rather than run concurrently. Each run
    works on the configuration snapshot taken when it started.
    """

    def __init__(
        self,
        client: MessagingClient,
        resolver: TargetResolver,
        strategies: Mapping[str, DispatchStrategy],
        config: DispatchConfig,
        timezone: str = "Asia/Jakarta",
        locale: str = "id",
        now: Callable[[ZoneInfo], datetime] = datetime.now,
    ) -> None:
        self._client = client
        self._resolver = resolver
        self._strategies = dict(strategies)
        self._config = config
        self._tz = ZoneInfo(timezone)
        self._locale = locale
        self._now = now
        self._trigger: asyncio.Task[None] | None = None
        self._runs: set[asyncio.Task[DeliveryReport | None]] = set()
        self._run_in_progress = False

    @property
    def state(self) -> SchedulerState:
        if self._trigger is not None and not self._trigger.done():
            return SchedulerState.SCHEDULED
        return SchedulerState.STOPPED

    @property
    def run_in_progress(self) -> bool:
        return self._run_in_progress

    def get_configuration(self) -> DispatchConfig:
        return self._config

    def local_now(self) -> datetime:
        return self._now(self._tz)

    def next_fire_time(self) -> datetime | None:
        if self.state is not SchedulerState.SCHEDULED:
            return None
        return croniter(self._config.cadence, self.local_now()).get_next(datetime)

    def start(self) -> bool:
        """Register the cadence trigger. Returns True when scheduling is active."""

        if self.state is SchedulerState.SCHEDULED:
            LOGGER.warning("Scheduler already running")
            return True

        cadence = self._config.cadence
        try:
            validate_cadence(cadence)
        except ConfigurationInvalid as exc:
            LOGGER.error("%s; scheduling stays off", exc)
            return False

        self._trigger = asyncio.create_task(self._trigger_loop(cadence), name="reminder-trigger")
        LOGGER.info("Scheduler started with cadence %r (%s)", cadence, self._tz.key)
        return True

    def stop(self) -> None:
        """Cancel future ticks. Runs already in flight complete normally."""

        if self._trigger is None:
            return
        self._trigger.cancel()
        self._trigger = None
        LOGGER.info("Scheduler stopped")

    def update_configuration(
        self,
        cadence: str | None = None,
        message: str | None = None,
        target_id: str | None = None,
        mode: str | None = None,
        enabled: bool | None = None,
    ) -> DispatchConfig:
        """Replace the configuration and re-register the trigger.

        Raises ConfigurationInvalid, leaving the current configuration in
        place, when any new value is rejected.
        """
        changes: dict[str, object] = {}
        if cadence is not None:
            cadence = cadence.strip()
            validate_cadence(cadence)
            changes["cadence"] = cadence
        if message is not None:
            if not message.strip():
                raise ConfigurationInvalid("Message must not be empty")
            changes["message_template"] = message
        if mode is not None:
            if mode not in MENTION_MODES:
                raise ConfigurationInvalid(f"Invalid mode {mode!r}; use one of {', '.join(MENTION_MODES)}")
            changes["mode"] = mode
        if target_id is not None:
            changes["target_id"] = target_id
        if enabled is not None:
            changes["enabled"] = enabled

        previous = self._config
        updated = dataclasses.replace(previous, **changes)
        if updated.enabled:
            validate_cadence(updated.cadence)
        self._config = updated
        if "target_id" in changes and target_id != previous.target_id:
            self._resolver.invalidate()
        LOGGER.info("Dispatch configuration updated: %s", sorted(changes))

        self.stop()
        if self._config.enabled:
            self.start()
        return self._config

    async def run_now(self) -> DeliveryReport | None:
        """Dispatch immediately, outside the cadence."""

        return await self.on_tick()

    async def on_tick(self) -> DeliveryReport | None:
        if self._run_in_progress:
            LOGGER.warning("Previous reminder run still in progress, skipping this tick")
            return None
        self._run_in_progress = True
        config = self._config
        try:
            return await self._run(config)
        except ClientNotReady as exc:
            LOGGER.warning("%s, skipping reminder", exc)
        except ResolutionFailure as exc:
            LOGGER.error("%s, skipping reminder", exc)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Error while running scheduled reminder")
        finally:
            self._run_in_progress = False
        return None

    async def _run(self, config: DispatchConfig) -> DeliveryReport | None:
        if not self._client.is_ready():
            raise ClientNotReady("Messaging client not ready")

        target = await self._resolver.resolve(config.target_id)
        if target is None:
            raise ResolutionFailure("Target group not found")

        strategy = self._strategies.get(config.mode)
        if strategy is None:
            LOGGER.error("No delivery strategy for mode %r", config.mode)
            return None

        text = fill_message_template(config.message_template, self.local_now(), self._locale)
        LOGGER.info("Running reminder for %s in %s mode", target.id, config.mode)
        report = await strategy.deliver(target, text)
        if report.skipped:
            LOGGER.warning("Reminder skipped: %s", report.skipped_reason)
        else:
            LOGGER.info("Reminder finished: %d sent, %d failed", report.success_count, report.fail_count)
        return report

    async def _trigger_loop(self, cadence: str) -> None:
        schedule = croniter(cadence, self.local_now())
        while True:
            fire_at = schedule.get_next(datetime)
            delay = (fire_at - self.local_now()).total_seconds()
            if delay > 0:
                await asyncio.sleep(delay)
            run = asyncio.create_task(self.on_tick(), name="reminder-run")
            self._runs.add(run)
            run.add_done_callback(self._runs.discard)

    async def wait_idle(self) -> None:
        """Wait for runs started by the trigger to finish."""

        if self._runs:
            await asyncio.gather(*self._runs, return_exceptions=True)

    async def shutdown(self) -> None:
        self.stop()
        await self.wait_idle()

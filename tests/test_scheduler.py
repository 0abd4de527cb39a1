import asyncio
import logging
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest

from fakes import FakeClient, group
from notifier.errors import ConfigurationInvalid
from notifier.models import DeliveryReport, DispatchConfig, SchedulerState
from notifier.scheduler import ScheduleController

JAKARTA = ZoneInfo("Asia/Jakarta")
FIXED_NOW = datetime(2026, 10, 19, 8, 0, tzinfo=JAKARTA)


class RecordingStrategy:
    def __init__(self, gate: asyncio.Event | None = None) -> None:
        self.texts: list[str] = []
        self.started = asyncio.Event()
        self._gate = gate

    async def deliver(self, target, message_text):  # noqa: ANN001, ANN201
        self.texts.append(message_text)
        self.started.set()
        if self._gate is not None:
            await self._gate.wait()
        return DeliveryReport(success_count=1)


def _resolver(target=None):  # noqa: ANN001, ANN202
    resolver = MagicMock()
    resolver.resolve = AsyncMock(return_value=target)
    return resolver


def _controller(
    client: FakeClient | None = None,
    resolver=None,  # noqa: ANN001
    strategy: RecordingStrategy | None = None,
    cadence: str = "0 8 * * 1-5",
    message: str = "Standup {{weekday}} {{date}}",
    mode: str = "visible",
) -> ScheduleController:
    strategy = strategy or RecordingStrategy()
    return ScheduleController(
        client=client or FakeClient([group()]),
        resolver=resolver or _resolver(group()),
        strategies={"visible": strategy, "dm": strategy},
        config=DispatchConfig(target_id="g1", message_template=message, cadence=cadence, mode=mode),
        timezone="Asia/Jakarta",
        locale="en",
        now=lambda tz: FIXED_NOW,
    )


class TestStartStop:
    @pytest.mark.asyncio
    async def test_invalid_cadence_stays_stopped(self, caplog):
        controller = _controller(cadence="not-a-cron")

        with caplog.at_level(logging.ERROR):
            assert controller.start() is False

        assert controller.state is SchedulerState.STOPPED
        assert controller._trigger is None
        assert "Invalid cron expression" in caplog.text

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        controller = _controller()

        assert controller.start() is True
        trigger = controller._trigger
        assert controller.start() is True

        assert controller._trigger is trigger
        assert controller.state is SchedulerState.SCHEDULED
        controller.stop()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        controller = _controller()
        controller.start()

        controller.stop()
        controller.stop()

        assert controller.state is SchedulerState.STOPPED

    @pytest.mark.asyncio
    async def test_next_fire_time_uses_timezone(self):
        controller = _controller(cadence="30 9 * * *")
        controller.start()

        assert controller.next_fire_time() == datetime(2026, 10, 19, 9, 30, tzinfo=JAKARTA)
        controller.stop()
        assert controller.next_fire_time() is None


class TestUpdateConfiguration:
    @pytest.mark.asyncio
    async def test_update_replaces_trigger(self):
        controller = _controller()
        controller.start()
        old_trigger = controller._trigger

        config = controller.update_configuration(cadence="*/5 * * * *")
        await asyncio.gather(old_trigger, return_exceptions=True)

        assert config.cadence == "*/5 * * * *"
        assert old_trigger.cancelled()
        assert controller._trigger is not old_trigger
        assert controller.state is SchedulerState.SCHEDULED
        controller.stop()

    @pytest.mark.asyncio
    async def test_invalid_cadence_rejected_and_config_kept(self):
        controller = _controller()
        before = controller.get_configuration()

        with pytest.raises(ConfigurationInvalid):
            controller.update_configuration(cadence="not-a-cron", message="new")

        assert controller.get_configuration() is before

    @pytest.mark.asyncio
    async def test_enabling_with_invalid_cadence_is_rejected(self):
        controller = _controller(cadence="not-a-cron")
        controller.update_configuration(enabled=False)

        with pytest.raises(ConfigurationInvalid):
            controller.update_configuration(enabled=True)

        assert controller.get_configuration().enabled is False
        assert controller.state is SchedulerState.STOPPED

    @pytest.mark.asyncio
    async def test_invalid_mode_rejected(self):
        controller = _controller()

        with pytest.raises(ConfigurationInvalid):
            controller.update_configuration(mode="shout")

    @pytest.mark.asyncio
    async def test_target_change_invalidates_resolver(self):
        resolver = _resolver(group())
        controller = _controller(resolver=resolver)

        controller.update_configuration(target_id="g2")

        resolver.invalidate.assert_called_once()
        assert controller.get_configuration().target_id == "g2"
        controller.stop()

    @pytest.mark.asyncio
    async def test_disable_stops_scheduling(self):
        controller = _controller()
        controller.start()

        controller.update_configuration(enabled=False)

        assert controller.state is SchedulerState.STOPPED

    @pytest.mark.asyncio
    async def test_in_flight_run_keeps_old_template(self):
        gate = asyncio.Event()
        strategy = RecordingStrategy(gate)
        controller = _controller(strategy=strategy, message="old")

        run = asyncio.create_task(controller.on_tick())
        await strategy.started.wait()
        controller.update_configuration(message="new")
        gate.set()
        await run

        await controller.on_tick()
        controller.stop()

        assert strategy.texts == ["old", "new"]


class TestOnTick:
    @pytest.mark.asyncio
    async def test_fills_template_and_uses_mode_strategy(self):
        visible = RecordingStrategy()
        dm = RecordingStrategy()
        controller = ScheduleController(
            client=FakeClient([group()]),
            resolver=_resolver(group()),
            strategies={"visible": visible, "dm": dm},
            config=DispatchConfig(
                target_id="g1", message_template="{{weekday}} {{date}} {{time}}", cadence="0 8 * * *", mode="dm"
            ),
            timezone="Asia/Jakarta",
            locale="en",
            now=lambda tz: FIXED_NOW,
        )

        report = await controller.on_tick()

        assert report.success_count == 1
        assert visible.texts == []
        assert dm.texts == ["Monday 19 October 2026 08:00"]

    @pytest.mark.asyncio
    async def test_client_not_ready_skips(self):
        strategy = RecordingStrategy()
        resolver = _resolver(group())
        controller = _controller(client=FakeClient(ready=False), resolver=resolver, strategy=strategy)

        assert await controller.on_tick() is None
        resolver.resolve.assert_not_awaited()
        assert strategy.texts == []

    @pytest.mark.asyncio
    async def test_target_not_found_skips(self):
        strategy = RecordingStrategy()
        controller = _controller(resolver=_resolver(None), strategy=strategy)

        assert await controller.on_tick() is None
        assert strategy.texts == []

    @pytest.mark.asyncio
    async def test_errors_are_caught(self):
        resolver = MagicMock()
        resolver.resolve = AsyncMock(side_effect=RuntimeError("boom"))
        controller = _controller(resolver=resolver)

        assert await controller.on_tick() is None
        assert controller.run_in_progress is False

    @pytest.mark.asyncio
    async def test_overlapping_tick_is_skipped(self, caplog):
        gate = asyncio.Event()
        strategy = RecordingStrategy(gate)
        controller = _controller(strategy=strategy)

        first = asyncio.create_task(controller.on_tick())
        await strategy.started.wait()
        with caplog.at_level(logging.WARNING):
            assert await controller.on_tick() is None
        gate.set()
        await first

        assert len(strategy.texts) == 1
        assert "still in progress" in caplog.text

    @pytest.mark.asyncio
    async def test_stop_does_not_abort_in_flight_run(self):
        gate = asyncio.Event()
        strategy = RecordingStrategy(gate)
        controller = _controller(strategy=strategy)
        controller.start()

        run = asyncio.create_task(controller.on_tick())
        await strategy.started.wait()
        controller.stop()
        gate.set()
        report = await run

        assert report.success_count == 1

    @pytest.mark.asyncio
    async def test_trigger_fires_when_due(self):
        strategy = RecordingStrategy()
        controller = _controller(strategy=strategy, cadence="30 8 * * *")
        times = iter([FIXED_NOW, FIXED_NOW.replace(hour=9)])
        controller._now = lambda tz: next(times, FIXED_NOW.replace(hour=9))

        controller.start()
        await asyncio.wait_for(strategy.started.wait(), timeout=1)
        controller.stop()
        await controller.wait_idle()

        assert len(strategy.texts) >= 1

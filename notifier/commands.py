"""Operator command dispatcher for !-prefixed messages.

Commands map onto ScheduleController operations. Authorization is handled
upstream by the transport adapter, which drops messages from senders outside
the allowed set. An unrecognised !command returns None.
"""

from __future__ import annotations

import logging

from notifier.errors import ConfigurationInvalid
from notifier.models import MENTION_MODES, DeliveryReport, Message
from notifier.participants import ParticipantProvider
from notifier.resolver import TargetResolver
from notifier.scheduler import ScheduleController
from notifier.templates import fill_message_template

LOGGER = logging.getLogger(__name__)

_HELP = (
    "Commands:\n"
    "!ping\n"
    "!preview\n"
    "!config\n"
    "!who\n"
    "!now\n"
    "!setmsg <text>\n"
    "!setcron <cron expression>\n"
    f"!setmode <{'|'.join(MENTION_MODES)}>\n"
    "!settarget (run inside the target group)\n"
    "!start / !stop"
)


def parse_command(text: str) -> tuple[str, str] | None:
    """Split a !-prefixed message into (command, raw argument text).

    Returns:
        A (command, args) tuple where command is lowercased and args keeps its
        original case and inner spacing, or None if text is not a !command.
    """
    text = text.strip()
    if not text.startswith("!"):
        return None
    parts = text[1:].split(maxsplit=1)
    if not parts:
        return None
    command = parts[0].lower()
    args = parts[1].strip() if len(parts) > 1 else ""
    return command, args


class CommandDispatcher:
    """Routes operator commands to the scheduler."""

    def __init__(
        self,
        controller: ScheduleController,
        resolver: TargetResolver,
        participants: ParticipantProvider,
        chunk_size: int = 50,
        locale: str = "id",
    ) -> None:
        self._controller = controller
        self._resolver = resolver
        self._participants = participants
        self._chunk_size = chunk_size
        self._locale = locale

    async def dispatch(self, message: Message) -> str | None:
        """Dispatch a message to a command handler.

        Returns:
            A reply string for recognised commands, or None for unknown ones.
        """
        parsed = parse_command(message.text)
        if parsed is None:
            return None
        command, args = parsed
        LOGGER.info("Command dispatch: command=%r sender=%s", command, message.sender_id)
        if command == "ping":
            return f"Pong! {self._controller.local_now():%Y-%m-%d %H:%M}"
        if command == "help":
            return _HELP
        if command == "preview":
            return self._handle_preview()
        if command == "config":
            return self._handle_config()
        if command == "setmsg":
            return self._update("Message", message=args)
        if command == "setcron":
            return self._update("Cadence", cadence=args)
        if command == "setmode":
            return self._update("Mode", mode=args.lower())
        if command == "settarget":
            return self._handle_settarget(message)
        if command == "start":
            return self._update("Scheduler", enabled=True)
        if command == "stop":
            return self._update("Scheduler", enabled=False)
        if command == "who":
            return await self._handle_who()
        if command == "now":
            return _report_reply(await self._controller.run_now())
        return None

    def _handle_preview(self) -> str:
        config = self._controller.get_configuration()
        preview = fill_message_template(config.message_template, self._controller.local_now(), self._locale)
        return f"Message preview:\n\n{preview}\n\nMode: {config.mode}"

    def _handle_config(self) -> str:
        config = self._controller.get_configuration()
        next_run = self._controller.next_fire_time()
        lines = [
            f"Target: {config.target_id or self._resolver.cached_id or '(by name)'}",
            f"Cadence: {config.cadence}",
            f"Mode: {config.mode}",
            f"Enabled: {'yes' if config.enabled else 'no'}",
            f"Scheduler: {self._controller.state.value}",
            f"Next run: {next_run:%Y-%m-%d %H:%M %Z}" if next_run else "Next run: -",
            f"Message: {config.message_template}",
        ]
        return "\n".join(lines)

    def _handle_settarget(self, message: Message) -> str:
        if not message.is_group:
            return "Send !settarget from inside the group that should receive reminders."
        return self._update("Target", target_id=message.group_id)

    def _update(self, label: str, **changes: object) -> str:
        for key in ("message", "cadence", "mode"):
            if key in changes and not changes[key]:
                return f"Usage: {_usage_for(key)}"
        try:
            self._controller.update_configuration(**changes)  # type: ignore[arg-type]
        except ConfigurationInvalid as exc:
            LOGGER.warning("Rejected configuration change: %s", exc)
            return f"Rejected: {exc}"
        if "enabled" in changes:
            return f"Scheduler is now {self._controller.state.value}."
        value = next(iter(changes.values()))
        return f"{label} updated: {value}"

    async def _handle_who(self) -> str:
        config = self._controller.get_configuration()
        target = await self._resolver.resolve(config.target_id)
        if target is None:
            return "Target group not found."
        members = await self._participants.get_participants(target)
        return f"Group: {target.name}\nParticipants: {len(members)}\nMax per batch: {self._chunk_size}"


def _usage_for(key: str) -> str:
    return {
        "message": "!setmsg <text>",
        "cadence": "!setcron <cron expression>",
        "mode": f"!setmode <{'|'.join(MENTION_MODES)}>",
    }[key]


def _report_reply(report: DeliveryReport | None) -> str:
    if report is None:
        return "Reminder not sent; check the logs (client not ready, target missing or run in progress)."
    if report.skipped:
        return f"Reminder skipped: {report.skipped_reason}."
    return f"Reminder run finished: {report.success_count} sent, {report.fail_count} failed."

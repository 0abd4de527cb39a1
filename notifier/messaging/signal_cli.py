"""Signal CLI adapter."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Sequence

from notifier.chunk import mention_token, render_mention_text
from notifier.errors import RosterFetchFailure, SendFailure
from notifier.messaging.base import MessagingClient
from notifier.models import ConnectionState, Conversation, Message

LOGGER = logging.getLogger(__name__)

_E164 = re.compile(r"^\+\d{6,15}$")
_UUID = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


class SignalClient(MessagingClient):
    """Adapter around signal-cli JSON commands.

    Connection state moves DISCONNECTED -> CONNECTING -> READY and drops back
    to DISCONNECTED whenever signal-cli stops answering.
    """

    def __init__(
        self,
        signal_cli_path: str,
        account: str,
        poll_interval_seconds: float,
        owner_number: str,
        allowed_senders: frozenset[str],
    ) -> None:
        self._signal_cli_path = signal_cli_path
        self._account = account
        self._poll_interval_seconds = poll_interval_seconds
        self._owner_number = owner_number
        self._allowed_senders = allowed_senders
        self._state = ConnectionState.DISCONNECTED

    @property
    def own_address(self) -> str:
        return self._account

    @property
    def state(self) -> ConnectionState:
        return self._state

    def is_ready(self) -> bool:
        return self._state is ConnectionState.READY

    def is_individual_address(self, address: str) -> bool:
        return bool(_E164.match(address) or _UUID.match(address))

    async def connect(self) -> bool:
        """Probe the account; the client is ready only if signal-cli answers."""

        self._set_state(ConnectionState.CONNECTING)
        try:
            await self._run_json("listGroups")
        except (RuntimeError, json.JSONDecodeError) as exc:
            LOGGER.warning("signal-cli probe failed: %s", exc)
            self._set_state(ConnectionState.DISCONNECTED)
            return False
        self._set_state(ConnectionState.READY)
        return True

    def disconnect(self) -> None:
        self._set_state(ConnectionState.DISCONNECTED)

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            LOGGER.info("Signal client state %s -> %s", self._state.value, state.value)
            self._state = state

    async def _run(self, *args: str) -> str:
        process = await asyncio.create_subprocess_exec(
            self._signal_cli_path,
            "-o",
            "json",
            "-a",
            self._account,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            raise RuntimeError(f"signal-cli {args[0]} failed: {stderr.decode().strip()}")
        return stdout.decode()

    async def _run_json(self, *args: str) -> Any:
        raw = (await self._run(*args)).strip()
        if not raw:
            return []
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            # Some signal-cli versions print one JSON object per line.
            return [json.loads(line) for line in raw.splitlines() if line.strip()]

    async def list_conversations(self) -> list[Conversation]:
        try:
            payload = await self._run_json("listGroups", "-d")
        except (RuntimeError, json.JSONDecodeError) as exc:
            raise RosterFetchFailure(str(exc)) from exc
        if isinstance(payload, dict):
            payload = [payload]
        return [group for group in (_to_conversation(item) for item in payload) if group is not None]

    async def get_conversation_by_id(self, conversation_id: str) -> Conversation | None:
        for conversation in await self.list_conversations():
            if conversation.id == conversation_id:
                return conversation
        if _E164.match(conversation_id):
            return await self.get_direct_conversation(conversation_id)
        return None

    async def send_message(
        self,
        target_id: str,
        text: str,
        mentions: Sequence[str] | None = None,
        is_group: bool = True,
    ) -> None:
        """Send text message to a Signal group or recipient."""

        recipient = target_id
        if not is_group and not recipient.startswith("+") and not _UUID.match(recipient):
            recipient = await self.resolve_number(recipient)

        args = ["send", "-m", text]
        for spec in _mention_specs(text, mentions or ()):
            args.extend(["--mention", spec])
        if is_group:
            args.extend(["-g", recipient])
        else:
            args.append(recipient)

        try:
            await self._run(*args)
        except RuntimeError as exc:
            raise SendFailure(recipient, str(exc)) from exc

    async def poll_messages(self) -> AsyncIterator[Message]:
        """Poll receive endpoint and yield messages from authorized senders."""

        while True:
            try:
                stdout = await self._run("receive", "-t", str(int(self._poll_interval_seconds)))
            except RuntimeError as exc:
                LOGGER.warning("%s", exc)
                self._set_state(ConnectionState.DISCONNECTED)
                await asyncio.sleep(self._poll_interval_seconds)
                continue
            self._set_state(ConnectionState.READY)

            for line in stdout.splitlines():
                line = line.strip()
                if not line:
                    continue
                try:
                    message = _to_message(json.loads(line))
                except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                    continue
                if message is None:
                    continue
                sender = message.sender_id
                if not sender.startswith("+"):
                    sender = await self.resolve_number(sender)
                    message.sender_id = sender
                if sender not in self._allowed_senders:
                    LOGGER.warning("Dropping message from unauthorized sender %s", message.sender_id)
                    continue
                yield message

    async def resolve_number(self, uuid: str) -> str:
        """Return the phone number for a UUID by scanning the contacts list.

        Falls back to the original UUID if not found.
        """
        try:
            raw = await self._run("listContacts")
        except RuntimeError as exc:
            LOGGER.warning("Could not list contacts: %s", exc)
            return uuid
        for line in raw.splitlines():
            try:
                contacts = json.loads(line)
            except json.JSONDecodeError:
                continue
            for contact in contacts if isinstance(contacts, list) else [contacts]:
                if isinstance(contact, dict) and contact.get("uuid") == uuid and contact.get("number"):
                    return contact["number"]
        LOGGER.warning("Could not resolve UUID %s via contacts", uuid)
        return uuid


def _mention_specs(text: str, mentions: Sequence[str]) -> list[str]:
    """Build signal-cli --mention arguments (start:length:recipient, UTF-16 offsets)."""

    specs: list[str] = []
    # Mentions trail the message body, so offsets are taken from the mention block.
    block = render_mention_text(mentions)
    search_from = len(text) - len(block) if block and text.endswith(block) else 0
    for address in mentions:
        token = mention_token(address)
        index = text.find(token, search_from)
        if index < 0:
            LOGGER.debug("Mention token %s not found in text", token)
            continue
        start = len(text[:index].encode("utf-16-le")) // 2
        length = len(token.encode("utf-16-le")) // 2
        specs.append(f"{start}:{length}:{address}")
        search_from = index + len(token)
    return specs


def _member_address(raw: object) -> str | None:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict):
        return raw.get("number") or raw.get("uuid")
    return None


def _to_conversation(payload: object) -> Conversation | None:
    if not isinstance(payload, dict) or not isinstance(payload.get("id"), str):
        return None
    if payload.get("isMember") is False:
        return None
    members = tuple(
        address for address in (_member_address(m) for m in payload.get("members") or []) if address
    )
    return Conversation(
        id=payload["id"],
        name=str(payload.get("name") or ""),
        is_group=True,
        members=members,
    )


def _to_message(payload: dict[str, object]) -> Message | None:
    envelope = payload.get("envelope")
    if not isinstance(envelope, dict):
        return None
    data_message = envelope.get("dataMessage")
    if not isinstance(data_message, dict):
        return None

    text = data_message.get("message")
    text = text.strip() if isinstance(text, str) else ""
    if not text:
        return None

    source = str(envelope.get("source") or "unknown")
    timestamp_ms = int(envelope.get("timestamp") or 0)
    timestamp = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)

    group_info = data_message.get("groupInfo")
    if isinstance(group_info, dict) and isinstance(group_info.get("groupId"), str):
        group_id = group_info["groupId"]
        is_group = True
    else:
        group_id = source
        is_group = False

    return Message(
        group_id=group_id,
        sender_id=source,
        text=text,
        timestamp=timestamp,
        message_id=str(envelope.get("timestamp") or ""),
        is_group=is_group,
    )

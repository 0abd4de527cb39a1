"""Target group resolution.

The target conversation is found by walking an ordered list of tiers:

1. the id resolved earlier in this process (memory),
2. the explicitly configured id,
3. the id persisted by a previous run,
4. a lookup of all conversations by configured display name.

Each tier either produces a conversation or defers to the next one. Only a
tier that produced a fresh result asks for the id to be persisted, and the
write-back happens in exactly one place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from notifier.db import TARGET_GROUP_KEY, Database
from notifier.messaging.base import MessagingClient
from notifier.models import Conversation

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Resolution:
    conversation: Conversation
    tier: str
    persist: bool


Tier = Callable[[str | None], Awaitable[Resolution | None]]


class TargetResolver:
    """Determines the single active target conversation."""

    def __init__(
        self,
        client: MessagingClient,
        db: Database,
        group_name: str | None = None,
    ) -> None:
        self._client = client
        self._db = db
        self._group_name = group_name
        self._cached_id: str | None = None
        self._tiers: list[Tier] = [
            self._from_memory,
            self._from_explicit_id,
            self._from_persisted_id,
            self._from_name,
        ]

    @property
    def cached_id(self) -> str | None:
        return self._cached_id

    def invalidate(self) -> None:
        """Forget the in-memory target so the next resolve walks the tiers again."""

        self._cached_id = None

    async def resolve(self, explicit_id: str | None = None) -> Conversation | None:
        """Return the target conversation, or None when every tier came up empty."""

        for tier in self._tiers:
            try:
                result = await tier(explicit_id)
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Target resolution tier %s failed: %s", tier.__name__, exc)
                continue
            if result is None:
                continue
            self._cached_id = result.conversation.id
            if result.persist:
                self._persist(result.conversation.id)
            LOGGER.debug("Target %s resolved via %s", result.conversation.id, result.tier)
            return result.conversation

        LOGGER.error("Target group not found (id=%s, name=%s)", explicit_id, self._group_name)
        return None

    def _persist(self, conversation_id: str) -> None:
        try:
            self._db.put_meta(TARGET_GROUP_KEY, conversation_id)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Failed to persist target group id %s: %s", conversation_id, exc)
            return
        LOGGER.info("Persisted target group id %s", conversation_id)

    async def _fetch_group(self, conversation_id: str) -> Conversation | None:
        conversation = await self._client.get_conversation_by_id(conversation_id)
        if conversation is None or not conversation.is_group:
            return None
        return conversation

    async def _from_memory(self, explicit_id: str | None) -> Resolution | None:
        if self._cached_id is None:
            return None
        # A newly configured id takes precedence over whatever was resolved before.
        if explicit_id and explicit_id != self._cached_id:
            return None
        conversation = await self._fetch_group(self._cached_id)
        if conversation is None:
            LOGGER.warning("Cached target %s is gone, re-resolving", self._cached_id)
            self._cached_id = None
            return None
        return Resolution(conversation, tier="memory", persist=False)

    async def _from_explicit_id(self, explicit_id: str | None) -> Resolution | None:
        if not explicit_id:
            return None
        conversation = await self._fetch_group(explicit_id)
        if conversation is None:
            LOGGER.error("Configured group id %s is not a reachable group", explicit_id)
            return None
        LOGGER.info("Target group found via configured id %s", explicit_id)
        return Resolution(conversation, tier="explicit_id", persist=True)

    async def _from_persisted_id(self, explicit_id: str | None) -> Resolution | None:
        persisted_id = self._db.get_meta(TARGET_GROUP_KEY)
        if not persisted_id or persisted_id == explicit_id:
            return None
        conversation = await self._fetch_group(persisted_id)
        if conversation is None:
            LOGGER.warning("Persisted group id %s is stale, searching by name", persisted_id)
            return None
        LOGGER.info("Target group found via persisted id %s", persisted_id)
        return Resolution(conversation, tier="persisted_id", persist=False)

    async def _from_name(self, explicit_id: str | None) -> Resolution | None:
        if not self._group_name:
            return None
        conversation = await self._client.get_conversation_by_name(self._group_name)
        if conversation is None:
            return None
        LOGGER.info("Target group %r found by name: %s", self._group_name, conversation.id)
        return Resolution(conversation, tier="name", persist=True)

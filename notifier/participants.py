"""Cached roster lookup for the target conversation."""

from __future__ import annotations

import logging
import time
from typing import Callable

from notifier.errors import RosterFetchFailure
from notifier.messaging.base import MessagingClient
from notifier.models import Conversation, RosterEntry

LOGGER = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30 * 60


class ParticipantProvider:
    """Fetches conversation members and caches them per conversation with a TTL."""

    def __init__(
        self,
        client: MessagingClient,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: dict[str, RosterEntry] = {}

    async def get_participants(self, target: Conversation, force_refresh: bool = False) -> list[str]:
        """Return the filtered roster for target.

        A fetch failure yields an empty list so one directory error does not
        abort the whole notification cycle.
        """
        entry = self._cache.get(target.id)
        if not force_refresh and entry is not None:
            if self._clock() - entry.fetched_at < self._ttl_seconds:
                LOGGER.debug("Using cached roster for %s", target.id)
                return entry.members

        try:
            members = await self._fetch_members(target)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Failed to fetch participants for %s: %s", target.id, exc)
            return []

        own = self._client.own_address
        filtered = [
            address
            for address in members
            if address != own and self._client.is_individual_address(address)
        ]
        self._cache[target.id] = RosterEntry(
            conversation_id=target.id,
            members=filtered,
            fetched_at=self._clock(),
        )
        LOGGER.info("Fetched %d participants for %s", len(filtered), target.id)
        return filtered

    async def _fetch_members(self, target: Conversation) -> tuple[str, ...]:
        live = await self._client.get_conversation_by_id(target.id)
        if live is None:
            raise RosterFetchFailure(f"conversation {target.id} not found")
        return live.members

    def clear(self) -> None:
        self._cache.clear()
        LOGGER.info("Participants cache cleared")

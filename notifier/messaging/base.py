"""Messaging client interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from notifier.models import Conversation


class MessagingClient(ABC):
    """Transport capabilities the dispatch core relies on."""

    @property
    @abstractmethod
    def own_address(self) -> str:
        """Address of the bot account itself."""

    @abstractmethod
    def is_ready(self) -> bool:
        """Return True when the transport can send."""

    @abstractmethod
    async def get_conversation_by_id(self, conversation_id: str) -> Conversation | None:
        """Fetch one conversation with its membership, or None if unknown."""

    @abstractmethod
    async def list_conversations(self) -> list[Conversation]:
        """Enumerate every conversation visible to the account."""

    @abstractmethod
    async def send_message(
        self,
        target_id: str,
        text: str,
        mentions: Sequence[str] | None = None,
        is_group: bool = True,
    ) -> None:
        """Send text to a conversation, raising SendFailure on error."""

    async def get_conversation_by_name(self, name: str) -> Conversation | None:
        for conversation in await self.list_conversations():
            if conversation.is_group and conversation.name == name:
                return conversation
        return None

    async def get_direct_conversation(self, address: str) -> Conversation:
        return Conversation(id=address, name=address, is_group=False, members=(address,))

    def is_individual_address(self, address: str) -> bool:
        return bool(address)

"""Mention batching helpers."""

from __future__ import annotations

from typing import Sequence

DEFAULT_CHUNK_SIZE = 50


def chunk_members(members: Sequence[str], max_size: int = DEFAULT_CHUNK_SIZE) -> list[list[str]]:
    """Split members into consecutive batches of at most max_size.

    Order is preserved across batches and only the last batch may be short.
    """
    if max_size < 1:
        raise ValueError(f"max_size must be >= 1, got {max_size}")
    return [list(members[i : i + max_size]) for i in range(0, len(members), max_size)]


def mention_token(address: str) -> str:
    """Return the visible @-token for an address, e.g. '+628123@s.net' -> '@628123'."""

    local = str(address).split("@", 1)[0]
    return f"@{local.lstrip('+')}"


def render_mention_text(chunk: Sequence[str]) -> str:
    return " ".join(mention_token(address) for address in chunk)

"""Helpers for lazily consuming record and identifier streams."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Iterable
from typing import TypeVar

_T = TypeVar("_T")


async def aiterate(source: Iterable[_T] | AsyncIterable[_T]) -> AsyncIterator[_T]:
    """Yield from a sync or async iterable."""
    if isinstance(source, AsyncIterable):
        async for item in source:
            yield item
    else:
        for item in source:
            yield item


async def chunked(source: Iterable[_T] | AsyncIterable[_T], size: int) -> AsyncIterator[list[_T]]:
    """Group a (possibly lazy) stream into lists of at most *size* items.

    Only one chunk is held in memory at a time.
    """
    if size < 1:
        raise ValueError("Chunk size must be at least 1")
    batch: list[_T] = []
    async for item in aiterate(source):
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch

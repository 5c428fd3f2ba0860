"""
Utility functions for the Tracker Catalog Miner.

This module provides small helpers shared by the processors: title
cleanup, topic id extraction, the dedup predicate and the async
concurrency primitives.
"""

import asyncio
import html
import re
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

# Listing links look like "viewtopic.php?t=6543210"
TOPIC_ID_RE = re.compile(r"t=(\d+)")

# Bracketed tags such as "[PS2] [NTSC/RUS]" in listing titles
BRACKET_TAG_RE = re.compile(r"\[.*?\]")

WHITESPACE_RE = re.compile(r"\s+")


def clean_title(title: Optional[str]) -> str:
    """
    Normalize a listing title for storage.

    Args:
        title: Raw title text from the listing page

    Returns:
        The title with HTML entities decoded, bracketed tags removed and
        whitespace collapsed. Empty string for None/empty input.

    Example:
        clean_title("[PS2] Gran Turismo 4 &amp; more [NTSC]")
        # Returns: "Gran Turismo 4 & more"
    """
    if not title:
        return ""

    cleaned = html.unescape(title)
    cleaned = BRACKET_TAG_RE.sub("", cleaned)
    cleaned = WHITESPACE_RE.sub(" ", cleaned)
    return cleaned.strip()


def extract_topic_id(url: str) -> Optional[str]:
    """Return the numeric topic id from a listing URL, or None if absent."""
    match = TOPIC_ID_RE.search(url or "")
    return match.group(1) if match else None


def topic_exists(records: Iterable[Mapping[str, Any]], topic_id: str) -> bool:
    """True if any stored record carries ``topic_id``."""
    return any(record.get("topicId") == topic_id for record in records)


async def delay(seconds: float) -> None:
    """Sleep for ``seconds``; zero or negative values return immediately."""
    if seconds > 0:
        await asyncio.sleep(seconds)


async def map_limit(
    items: Sequence[T],
    limit: int,
    worker: Callable[[T], Awaitable[R]],
) -> List[R]:
    """
    Run ``worker`` over ``items`` with at most ``limit`` calls in flight.

    Results keep the order of ``items``. A worker exception propagates,
    so workers that must not abort the batch handle their own errors.

    Args:
        items: Items to process
        limit: Maximum number of concurrent workers (clamped to >= 1)
        worker: Coroutine function applied to each item

    Returns:
        List of worker results in input order
    """
    if not items:
        return []

    semaphore = asyncio.Semaphore(max(1, int(limit or 1)))

    async def run(item: T) -> R:
        async with semaphore:
            return await worker(item)

    return list(await asyncio.gather(*[run(item) for item in items]))

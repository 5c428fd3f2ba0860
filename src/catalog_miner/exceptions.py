"""
Error taxonomy for the Tracker Catalog Miner.

Every failure is scoped to the smallest unit that can be skipped safely:

- ConfigLoadError: one config source is unusable, the next tier is tried
- StoreParseError: a store file is corrupt, it is treated as empty
- StoreWriteError: a store file could not be rewritten
- NetworkError: an HTTP fetch failed (after the single 403 re-attempt)
- DetailFetchError: one topic could not be enriched, the stub is kept
- PageFetchError: one listing page failed, the crawl moves on
- CategoryError: one category failed, the other categories still run
"""

from typing import Optional


class MinerError(Exception):
    """Base class for all errors raised by this package."""


class ConfigLoadError(MinerError):
    """A category config source is missing, unreadable or malformed."""


class StoreParseError(MinerError):
    """A per-category store file could not be parsed."""


class StoreWriteError(MinerError):
    """A per-category store file could not be written."""


class NetworkError(MinerError):
    """
    An HTTP request failed.

    Attributes:
        url: The URL that was requested
        status: HTTP status code, or None for transport errors and timeouts
    """

    def __init__(self, url: str, status: Optional[int] = None, message: str = ""):
        self.url = url
        self.status = status
        detail = message or (f"HTTP {status}" if status is not None else "request failed")
        super().__init__(f"{detail} for {url}")


class DetailFetchError(MinerError):
    """A topic detail page did not contain the expected post body."""


class PageFetchError(MinerError):
    """A listing page could not be fetched or parsed."""


class CategoryError(MinerError):
    """A category could not be processed (unknown id, disabled, ...)."""

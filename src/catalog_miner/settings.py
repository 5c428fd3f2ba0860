"""
Runtime settings for the Tracker Catalog Miner.

Tunables come from ``SCRAPER_*`` environment variables and fall back to
the defaults below. Delays are configured in milliseconds (as in the
environment) and exposed in seconds for asyncio.sleep().
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "SCRAPER_"

DEFAULT_PAGE_DELAY_MS = 2000
DEFAULT_TOPIC_DELAY_MS = 500
DEFAULT_IMAGE_DELAY_MS = 500
DEFAULT_MAX_CONCURRENT_TOPICS = 2


def _read_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(ENV_PREFIX + key)
    if raw is None or raw == "":
        return default
    try:
        return int(float(raw))
    except (ValueError, OverflowError):
        logger.warning("Ignoring invalid %s%s=%r, using %s", ENV_PREFIX, key, raw, default)
        return default


@dataclass
class Settings:
    """
    Scraper tunables.

    Attributes:
        data_dir: Directory holding the per-category store files
        config_dir: Writable directory holding the categories.json override
        proxy_url: Optional outbound proxy applied to every request
        page_delay: Seconds between two listing page fetches
        topic_delay: Seconds a worker slot waits after each topic
        image_delay: Seconds between two cover resolution attempts
        max_concurrent_topics: Width of the enrichment worker pool
    """
    data_dir: Path = Path("data")
    config_dir: Path = Path("config")
    proxy_url: Optional[str] = None
    page_delay: float = DEFAULT_PAGE_DELAY_MS / 1000
    topic_delay: float = DEFAULT_TOPIC_DELAY_MS / 1000
    image_delay: float = DEFAULT_IMAGE_DELAY_MS / 1000
    max_concurrent_topics: int = DEFAULT_MAX_CONCURRENT_TOPICS

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ``SCRAPER_*`` variables (os.environ by default)."""
        if environ is None:
            environ = os.environ

        cwd = Path.cwd()
        data_dir = environ.get(ENV_PREFIX + "DATA_DIR") or str(cwd / "data")
        config_dir = environ.get(ENV_PREFIX + "CONFIG_DIR") or str(cwd / "config")

        return cls(
            data_dir=Path(data_dir),
            config_dir=Path(config_dir),
            proxy_url=environ.get(ENV_PREFIX + "PROXY_URL") or None,
            page_delay=max(0, _read_int(environ, "PAGE_DELAY_MS", DEFAULT_PAGE_DELAY_MS)) / 1000,
            topic_delay=max(0, _read_int(environ, "TOPIC_DELAY_MS", DEFAULT_TOPIC_DELAY_MS)) / 1000,
            image_delay=max(0, _read_int(environ, "IMAGE_DELAY_MS", DEFAULT_IMAGE_DELAY_MS)) / 1000,
            max_concurrent_topics=max(
                1, _read_int(environ, "MAX_CONCURRENT_TOPICS", DEFAULT_MAX_CONCURRENT_TOPICS)
            ),
        )

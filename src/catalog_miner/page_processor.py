"""
Listing page processing for the Tracker Catalog Miner.

A category listing is paginated with a ``start`` offset of 50 topics per
page. Each page is scanned for topic links whose title carries the
category's filter token; topics already present in the store are counted
as duplicates and skipped.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from .config_manager import correct_stale_host
from .exceptions import MinerError, PageFetchError
from .models import Category, PageResult, TopicStub
from .utils import clean_title, extract_topic_id, topic_exists

logger = logging.getLogger(__name__)

BASE_URL = "https://rutracker.org"

TOPICS_PER_PAGE = 50

# The tracker refuses offsets beyond this value (page 130)
MAX_START = 6450

TOPIC_LINK_SELECTOR = "a.torTopic"

# Both markers are present on the "no more results" page
INFO_HEADER_SELECTOR = 'table.forumline.message th:-soup-contains("Информация")'
NOT_FOUND_SELECTOR = 'div:-soup-contains("Подходящих тем или сообщений не найдено")'


def is_last_page(soup: BeautifulSoup) -> bool:
    return (
        soup.select_one(INFO_HEADER_SELECTOR) is not None
        and soup.select_one(NOT_FOUND_SELECTOR) is not None
    )


def generate_page_url(category: Category, page_number: int) -> str:
    """
    Build the listing URL for ``page_number`` (1-based).

    Example:
        generate_page_url(ps2, 1)  # ".../viewforum.php?f=357"
        generate_page_url(ps2, 3)  # ".../viewforum.php?f=357&start=100"
    """
    start = (page_number - 1) * TOPICS_PER_PAGE
    base_url = correct_stale_host(category.base_url or BASE_URL)
    if start <= 0:
        return base_url
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}start={start}"


def has_reached_max_start(page_number: int) -> bool:
    """True once the page offset hits the tracker's hard ceiling."""
    return (page_number - 1) * TOPICS_PER_PAGE >= MAX_START


def resolve_topic_url(href: str, category: Category) -> str:
    """Absolute topic URL, relative hrefs resolved against the category's origin."""
    if href.startswith("http"):
        return href

    parsed = urlparse(correct_stale_host(category.base_url or BASE_URL))
    origin = f"{parsed.scheme}://{parsed.netloc}" if parsed.scheme and parsed.netloc else BASE_URL
    if href.startswith("/"):
        return f"{origin}{href}"
    return f"{origin}/forum/{href}"


class PageProcessor:
    """
    Fetches one listing page and turns it into topic stubs.

    Args:
        request_manager: Fetcher shared with the rest of the run
    """

    generate_page_url = staticmethod(generate_page_url)
    has_reached_max_start = staticmethod(has_reached_max_start)

    def __init__(self, request_manager):
        self.request_manager = request_manager

    async def _fetch_listing(self, page_url: str) -> BeautifulSoup:
        try:
            html = await self.request_manager.fetch(page_url)
            return BeautifulSoup(html, "lxml")
        except MinerError as e:
            raise PageFetchError(str(e)) from e

    async def process_category_page(
        self,
        page_url: str,
        category: Category,
        existing: List[Dict[str, Any]],
    ) -> PageResult:
        """
        Scan one listing page.

        Args:
            page_url: Listing URL (see generate_page_url)
            category: Category being crawled
            existing: Records already in the category store

        Returns:
            PageResult with new stubs and counters, ``is_last_page`` set on
            the terminal page, or ``error`` set when the page failed
        """
        logger.info("Processing %s page: %s", category.name, page_url)

        try:
            soup = await self._fetch_listing(page_url)
        except PageFetchError as e:
            logger.error("Could not process page %s: %s", page_url, e)
            return PageResult(error=str(e))

        if is_last_page(soup):
            logger.info("Last page reached for %s", category.name)
            return PageResult(is_last_page=True)

        result = PageResult()
        scraped_at = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

        for link in soup.select(TOPIC_LINK_SELECTOR):
            title = link.get_text().strip()
            href = link.get("href")
            if not title or not href or category.title_search not in title:
                continue

            topic_id = extract_topic_id(href)
            if topic_id is None:
                logger.debug("No topic id in %s, skipping", href)
                continue

            if topic_exists(existing, topic_id) or any(t.topic_id == topic_id for t in result.topics):
                result.duplicates += 1
                logger.debug("Topic already stored: %s", topic_id)
                continue

            result.topics.append(TopicStub(
                topic_id=topic_id,
                title=clean_title(title),
                url=resolve_topic_url(href, category),
                category=category.id,
                scraped_at=scraped_at,
            ))
            result.new += 1

        logger.info("%s page processed: %d new, %d duplicates",
                    category.name, result.new, result.duplicates)
        return result

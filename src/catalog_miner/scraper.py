"""
Multi-category crawl orchestrator for the Tracker Catalog Miner.

For every enabled category the scraper walks the listing pages in order:

    load store -> (fetch page -> enrich new topics -> merge + save)* -> done

Pages are processed one at a time because each page's dedup depends on
the store as updated by the previous page. Concurrency only exists inside
the per-page enrichment batch. Progress is saved after every page, so a
crash loses at most the page in flight.

Usage:
    async with Scraper(Settings.from_env()) as scraper:
        result = await scraper.start_scraping(max_pages=10)
"""

import logging
from typing import Callable, Optional

from bs4 import BeautifulSoup

from .category_manager import CategoryManager
from .config_manager import ConfigManager
from .exceptions import CategoryError, MinerError, StoreWriteError
from .image_processor import ImageProcessor
from .models import Category, CategoryResult, CategoryStats, RunResult
from .page_processor import PageProcessor
from .request_manager import RequestManager
from .settings import Settings
from .topic_processor import TopicProcessor
from .utils import delay

logger = logging.getLogger(__name__)

BASE_URL = "https://rutracker.org"

DEFAULT_MAX_PAGES = 133

# Progress stages reported to the progress callback
STAGE_PAGE = "page"
STAGE_ENRICH = "enrich"
STAGE_SAVED = "saved"
STAGE_LAST_PAGE = "last_page"
STAGE_PAGE_ERROR = "page_error"
STAGE_DONE = "done"

# progress_callback(category, page, total_pages, stage, message)
ProgressCallback = Callable[[Category, int, int, str, str], None]


class Scraper:
    """
    Drives the category loop, the page loop, enrichment and saving.

    Collaborators are built from ``settings`` unless injected; they are
    plain objects owned by this scraper, shared by reference with the
    processors that need them.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        request_manager: Optional[RequestManager] = None,
        config_manager: Optional[ConfigManager] = None,
        category_manager: Optional[CategoryManager] = None,
        page_processor: Optional[PageProcessor] = None,
        topic_processor: Optional[TopicProcessor] = None,
    ):
        self.settings = settings or Settings.from_env()
        self.request_manager = request_manager or RequestManager(proxy_url=self.settings.proxy_url)
        self.config_manager = config_manager or ConfigManager(self.settings.config_dir)
        self.category_manager = category_manager or CategoryManager(self.settings.data_dir)
        self.page_processor = page_processor or PageProcessor(self.request_manager)
        self.topic_processor = topic_processor or TopicProcessor(
            self.request_manager,
            image_processor=ImageProcessor(self.request_manager, self.settings.image_delay),
            max_concurrent=self.settings.max_concurrent_topics,
            topic_delay=self.settings.topic_delay,
        )

    async def __aenter__(self) -> "Scraper":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        await self.request_manager.aclose()

    async def start_scraping(
        self,
        progress_callback: Optional[ProgressCallback] = None,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> RunResult:
        """
        Crawl every enabled category in config order.

        A failing category is recorded in the result and the run moves on
        to the next one. The request cache is cleared when the run ends.

        Returns:
            RunResult with one CategoryResult per category id
        """
        logger.info("Starting multi-category scrape")
        try:
            categories = self.config_manager.load_categories()
            logger.info("Enabled categories: %s", ", ".join(c.name for c in categories))

            results = RunResult(success=True, message="Multi-category scrape finished")
            for index, category in enumerate(categories, start=1):
                logger.info("Processing category %s (%d/%d)", category.name, index, len(categories))
                try:
                    results.categories[category.id] = await self.process_category(
                        category, progress_callback, max_pages
                    )
                except Exception as e:
                    logger.exception("Category %s failed", category.name)
                    results.categories[category.id] = CategoryResult.failed(
                        str(e), f"Category {category.name} failed"
                    )
            return results
        except MinerError as e:
            logger.error("Scrape aborted: %s", e)
            return RunResult(success=False, message="Multi-category scrape failed", error=str(e))
        finally:
            self.request_manager.clear_cache()

    async def process_category(
        self,
        category: Category,
        progress_callback: Optional[ProgressCallback] = None,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> CategoryResult:
        """
        Crawl one category until its last page, ``max_pages`` or the
        offset ceiling, saving after every page that produced topics.
        """
        def report(page: int, stage: str, message: str):
            if progress_callback is not None:
                progress_callback(category, page, max_pages, stage, message)

        existing = await self.category_manager.load_category_data(category.id)
        initial_count = len(existing)
        stats = CategoryStats()

        page = 0
        while page < max_pages:
            page += 1
            page_url = self.page_processor.generate_page_url(category, page)
            report(page, STAGE_PAGE, f"{category.name}: page {page}/{max_pages}")

            page_result = await self.page_processor.process_category_page(page_url, category, existing)

            if page_result.is_last_page:
                logger.info("Last page found for %s", category.name)
                report(page, STAGE_LAST_PAGE, f"{category.name}: last page reached")
                break

            if page_result.error is not None:
                logger.warning("Page %d of %s failed, continuing: %s",
                               page, category.name, page_result.error)
                report(page, STAGE_PAGE_ERROR, page_result.error)
            else:
                stats.new_topics_found += page_result.new
                stats.duplicates_skipped += page_result.duplicates

                if page_result.topics:
                    report(page, STAGE_ENRICH,
                           f"{category.name}: enriching {len(page_result.topics)} topics")
                    processed = await self.topic_processor.process_topics_batch(page_result.topics)
                    records = [topic.to_dict() for topic in processed]
                    try:
                        await self.category_manager.save_category_data(category.id, existing, records)
                        existing.extend(records)
                        report(page, STAGE_SAVED, f"{category.name}: {len(records)} topics saved")
                    except StoreWriteError as e:
                        logger.error("Could not save progress for %s: %s", category.name, e)

            if self.page_processor.has_reached_max_start(page):
                logger.info("Maximum page offset reached for %s", category.name)
                break

            if page < max_pages:
                await delay(self.settings.page_delay)

        stats.pages_processed = page
        final_data = await self.category_manager.load_category_data(category.id)
        stats.total_in_file = len(final_data)
        stats.new_items = len(final_data) - initial_count

        logger.info(
            "Category %s: %d pages, %d new topics, %d duplicates skipped, %d new items, %d total",
            category.name, stats.pages_processed, stats.new_topics_found,
            stats.duplicates_skipped, stats.new_items, stats.total_in_file,
        )
        report(page, STAGE_DONE, f"{category.name}: done")

        return CategoryResult(
            success=True,
            message=f"Category {category.name} processed",
            stats=stats,
        )

    async def start_category_scraping(
        self,
        category_id: str,
        progress_callback: Optional[ProgressCallback] = None,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> CategoryResult:
        """Crawl a single enabled category by id."""
        logger.info("Starting scrape for category %s", category_id)
        try:
            self.config_manager.load_categories()
            category = self.config_manager.get_category_by_id(category_id)
            if category is None:
                raise CategoryError(f"Category {category_id} not found or disabled")
            return await self.process_category(category, progress_callback, max_pages)
        except Exception as e:
            logger.error("Scrape of category %s failed: %s", category_id, e)
            return CategoryResult.failed(str(e), f"Scrape of category {category_id} failed")
        finally:
            self.request_manager.clear_cache()

    async def test_connection(self) -> dict:
        """Fetch the site root and report its title."""
        logger.info("Testing connection to %s", BASE_URL)
        try:
            html = await self.request_manager.fetch(BASE_URL)
        except MinerError as e:
            logger.error("Connection failed: %s", e)
            return {"success": False, "error": str(e)}

        title_tag = BeautifulSoup(html, "lxml").title
        title = title_tag.get_text().strip() if title_tag else ""
        logger.info("Connection OK, title: %s", title)
        return {"success": True, "title": title}

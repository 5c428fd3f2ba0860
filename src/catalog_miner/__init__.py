"""
Tracker Catalog Miner

This package crawls the paginated category listings of a forum-style
torrent tracker, enriches every new topic with its cover image, magnet
link and size, and keeps one deduplicated JSON store per category.

Main components:
- Scraper: Orchestrates categories, pages, enrichment and saving
- PageProcessor / TopicProcessor / ImageProcessor: Parsing and enrichment
- CategoryManager / ConfigManager: Stores and category configuration
- RequestManager: Cached HTTP fetching

Usage:
    from catalog_miner import Scraper, Settings
    import asyncio

    async def main():
        async with Scraper(Settings.from_env()) as scraper:
            return await scraper.start_scraping(max_pages=5)

    asyncio.run(main())
"""

from .category_manager import CategoryManager
from .config_manager import ConfigManager
from .exceptions import (
    CategoryError,
    ConfigLoadError,
    DetailFetchError,
    MinerError,
    NetworkError,
    PageFetchError,
    StoreParseError,
    StoreWriteError,
)
from .image_processor import ImageProcessor
from .models import Category, CategoryResult, PageResult, RunResult, Topic, TopicStub
from .page_processor import PageProcessor
from .request_manager import RequestManager
from .scraper import Scraper
from .settings import Settings
from .topic_processor import TopicProcessor

__all__ = [
    'Scraper',
    'Settings',
    'RequestManager',
    'ConfigManager',
    'CategoryManager',
    'ImageProcessor',
    'PageProcessor',
    'TopicProcessor',
    'Category',
    'TopicStub',
    'Topic',
    'PageResult',
    'CategoryResult',
    'RunResult',
    'MinerError',
    'ConfigLoadError',
    'StoreParseError',
    'StoreWriteError',
    'NetworkError',
    'DetailFetchError',
    'PageFetchError',
    'CategoryError',
]

__version__ = '1.0.0'

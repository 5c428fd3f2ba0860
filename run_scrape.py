#!/usr/bin/env python3
"""
Entry point for the Tracker Catalog Miner.

This script runs a full multi-category scrape with settings taken from
the environment (and a .env file, if present).

Usage:
    python run_scrape.py

The scraper will:
    - Load the enabled categories (override dir, bundled default, built-ins)
    - Walk each category's listing pages until the last page
    - Enrich new topics with cover, magnet and size
    - Save data/<category>.json after every page

Environment:
    SCRAPER_DATA_DIR, SCRAPER_CONFIG_DIR, SCRAPER_PROXY_URL,
    SCRAPER_PAGE_DELAY_MS, SCRAPER_TOPIC_DELAY_MS,
    SCRAPER_MAX_CONCURRENT_TOPICS, MAX_PAGES
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Add src to path to import the package
# This allows running the script from repository root
sys.path.insert(0, str(Path(__file__).parent / "src"))

from catalog_miner.scraper import DEFAULT_MAX_PAGES, Scraper
from catalog_miner.settings import Settings

logger = logging.getLogger("run_scrape")


async def run(max_pages: int):
    async with Scraper(Settings.from_env()) as scraper:
        return await scraper.start_scraping(max_pages=max_pages)


def main() -> int:
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    max_pages = int(os.environ.get("MAX_PAGES", DEFAULT_MAX_PAGES))
    result = asyncio.run(run(max_pages))

    failed = [cid for cid, r in result.categories.items() if not r.success]
    logger.info("%s (%d categories, %d failed)", result.message, len(result.categories), len(failed))
    return 0 if result.success and not failed else 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.warning("Scraping interrupted by user; stores are saved after every page")
        sys.exit(0)

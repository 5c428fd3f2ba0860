"""CLI interface for the Tracker Catalog Miner."""

import asyncio
import logging
from pathlib import Path
from typing import Dict, Optional

import click
from dotenv import load_dotenv
from tqdm import tqdm

from .category_manager import CategoryManager
from .config_manager import ConfigManager
from .models import Category, CategoryResult
from .scraper import DEFAULT_MAX_PAGES, STAGE_DONE, Scraper
from .settings import Settings


class TqdmProgress:
    """Progress callback rendering one tqdm bar per category."""

    def __init__(self):
        self._bars: Dict[str, tqdm] = {}

    def __call__(self, category: Category, page: int, total_pages: int, stage: str, message: str):
        bar = self._bars.get(category.id)
        if bar is None:
            bar = tqdm(total=total_pages, desc=category.name, unit="page", leave=True)
            self._bars[category.id] = bar
        bar.n = page
        bar.set_postfix_str(stage)
        if stage == STAGE_DONE:
            bar.close()

    def close(self):
        for bar in self._bars.values():
            bar.close()


def _build_settings(data_dir: Optional[str], config_dir: Optional[str], proxy: Optional[str]) -> Settings:
    settings = Settings.from_env()
    if data_dir:
        settings.data_dir = Path(data_dir)
    if config_dir:
        settings.config_dir = Path(config_dir)
    if proxy:
        settings.proxy_url = proxy
    return settings


def _print_result(category_id: str, result: CategoryResult):
    if result.success and result.stats:
        s = result.stats
        click.echo(
            f"  {category_id}: {s.pages_processed} pages, {s.new_topics_found} new, "
            f"{s.duplicates_skipped} duplicates, {s.total_in_file} in store"
        )
    else:
        click.echo(f"  {category_id}: FAILED - {result.error}")


@click.group()
@click.option('--data-dir', default=None, help='Directory for per-category stores')
@click.option('--config-dir', default=None, help='Directory for the categories.json override')
@click.option('--proxy', default=None, help='Outbound proxy URL')
@click.option('--log-level', default='INFO',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False))
@click.pass_context
def main(ctx, data_dir, config_dir, proxy, log_level):
    """Tracker Catalog Miner - crawl tracker categories into JSON stores."""
    load_dotenv()
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = _build_settings(data_dir, config_dir, proxy)


@main.command()
@click.option('--max-pages', default=DEFAULT_MAX_PAGES, type=int, show_default=True,
              help='Page budget per category')
@click.pass_obj
def scrape(settings: Settings, max_pages: int):
    """Scrape every enabled category."""
    result = asyncio.run(_scrape_all(settings, max_pages))
    click.echo(result.message)
    for category_id, category_result in result.categories.items():
        _print_result(category_id, category_result)
    if not result.success:
        raise click.ClickException(result.error or "scrape failed")


async def _scrape_all(settings: Settings, max_pages: int):
    progress = TqdmProgress()
    try:
        async with Scraper(settings) as scraper:
            return await scraper.start_scraping(progress, max_pages)
    finally:
        progress.close()


@main.command('scrape-category')
@click.argument('category_id')
@click.option('--max-pages', default=DEFAULT_MAX_PAGES, type=int, show_default=True)
@click.pass_obj
def scrape_category(settings: Settings, category_id: str, max_pages: int):
    """Scrape a single category by id."""
    result = asyncio.run(_scrape_one(settings, category_id, max_pages))
    _print_result(category_id, result)
    if not result.success:
        raise SystemExit(2)


async def _scrape_one(settings: Settings, category_id: str, max_pages: int) -> CategoryResult:
    progress = TqdmProgress()
    try:
        async with Scraper(settings) as scraper:
            return await scraper.start_category_scraping(category_id, progress, max_pages)
    finally:
        progress.close()


@main.command()
@click.option('--max-pages', default=DEFAULT_MAX_PAGES, type=int, show_default=True)
@click.pass_obj
def refresh(settings: Settings, max_pages: int):
    """Re-scrape every category that already has a store file."""
    stores = CategoryManager(settings.data_dir)
    files = stores.list_category_files()
    if not files:
        click.echo(f"No store files in {settings.data_dir}. Nothing to refresh.")
        return

    click.echo(f"Found {len(files)} store files")
    failed = 0
    for name in files:
        category_id = Path(name).stem
        result = asyncio.run(_scrape_one(settings, category_id, max_pages))
        _print_result(category_id, result)
        if not result.success:
            failed += 1
    if failed:
        raise SystemExit(2)


@main.command('test-connection')
@click.pass_obj
def test_connection(settings: Settings):
    """Check that the tracker is reachable."""
    async def run():
        async with Scraper(settings) as scraper:
            return await scraper.test_connection()

    result = asyncio.run(run())
    if result["success"]:
        click.echo(f"Connection OK: {result['title']}")
    else:
        raise click.ClickException(f"Connection failed: {result['error']}")


@main.command()
@click.pass_obj
def categories(settings: Settings):
    """List the enabled categories."""
    for category in ConfigManager(settings.config_dir).load_categories():
        click.echo(f"{category.id:<24} {category.title_search:<20} {category.base_url}")


@main.command()
@click.pass_obj
def stats(settings: Settings):
    """Show how many topics each store holds."""
    stores = CategoryManager(settings.data_dir)

    async def collect():
        return {
            Path(name).stem: len(await stores.load_category_data(Path(name).stem))
            for name in stores.list_category_files()
        }

    counts = asyncio.run(collect())
    click.echo("=" * 60)
    for category_id, count in counts.items():
        click.echo(f"{category_id:<30} {count:>8} topics")
    click.echo("-" * 60)
    click.echo(f"{'total':<30} {sum(counts.values()):>8} topics")
    click.echo("=" * 60)


if __name__ == '__main__':
    main()

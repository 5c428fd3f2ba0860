"""Tests for the multi-category crawl loop (fake fetcher, temporary stores)."""

import asyncio

import orjson
import pytest

from catalog_miner.exceptions import NetworkError
from catalog_miner.scraper import (
    BASE_URL, STAGE_DONE, STAGE_ENRICH, STAGE_LAST_PAGE, STAGE_PAGE, STAGE_PAGE_ERROR, STAGE_SAVED,
    Scraper,
)
from catalog_miner.settings import Settings

PS2_URL = "https://rutracker.org/forum/viewforum.php?f=357"
PSP_URL = "https://rutracker.org/forum/viewforum.php?f=1352"

LAST_PAGE_HTML = """
<table class="forumline message"><tr><th>Информация</th></tr></table>
<div>Подходящих тем или сообщений не найдено</div>
"""

TOPIC_HTML = """
<div class="post_body">Размер: 1.2 GB</div>
<a class="magnet-link" href="magnet:?xt=urn:btih:00">magnet</a>
"""


def listing(*topics, token="[PS2]"):
    rows = "".join(
        f'<tr><td><a class="torTopic" href="viewtopic.php?t={tid}">{token} Game {tid}</a></td></tr>'
        for tid in topics
    )
    return f"<html><body><table>{rows}</table></body></html>"


def topic_url(tid):
    return f"https://rutracker.org/forum/viewtopic.php?t={tid}"


def topic_pages(*topics):
    return {topic_url(tid): TOPIC_HTML for tid in topics}


@pytest.fixture
def settings(tmp_path):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "categories.json").write_bytes(orjson.dumps({"categories": [
        {"id": "ps2", "name": "PS2", "baseUrl": PS2_URL, "titleSearch": "[PS2]", "enabled": True},
        {"id": "psp", "name": "PSP", "baseUrl": PSP_URL, "titleSearch": "[PSP]", "enabled": True},
        {"id": "off", "name": "Off", "baseUrl": PSP_URL, "titleSearch": "[X]", "enabled": False},
    ]}))
    return Settings(
        data_dir=tmp_path / "data",
        config_dir=config_dir,
        page_delay=0,
        topic_delay=0,
        image_delay=0,
        max_concurrent_topics=2,
    )


def read_store(settings, category_id):
    return orjson.loads((settings.data_dir / f"{category_id}.json").read_bytes())


class TestProcessCategory:
    def test_crawls_until_last_page(self, settings, make_requests):
        requests = make_requests({
            PS2_URL: listing("1", "2"),
            PS2_URL + "&start=50": listing("3"),
            PS2_URL + "&start=100": LAST_PAGE_HTML,
            **topic_pages("1", "2", "3"),
        })
        scraper = Scraper(settings, request_manager=requests)
        category = scraper.config_manager.load_categories()[0]

        result = asyncio.run(scraper.process_category(category, max_pages=10))

        assert result.success
        assert result.stats.pages_processed == 3
        assert result.stats.new_topics_found == 3
        assert result.stats.new_items == 3
        assert result.stats.total_in_file == 3
        store = read_store(settings, "ps2")
        assert {r["topicId"] for r in store} == {"1", "2", "3"}
        assert all(r["size"] == "1.2 GB" for r in store)

    def test_saves_after_each_page(self, settings, make_requests):
        requests = make_requests({
            PS2_URL: listing("1"),
            PS2_URL + "&start=50": NetworkError(PS2_URL + "&start=50", status=503),
            **topic_pages("1"),
        })
        scraper = Scraper(settings, request_manager=requests)
        category = scraper.config_manager.load_categories()[0]
        saved_sizes = []

        def progress(cat, page, total, stage, message):
            if stage == STAGE_SAVED:
                saved_sizes.append(len(read_store(settings, "ps2")))

        asyncio.run(scraper.process_category(category, progress, max_pages=2))

        assert saved_sizes == [1]

    def test_page_error_does_not_stop_the_category(self, settings, make_requests):
        requests = make_requests({
            PS2_URL: NetworkError(PS2_URL, status=500),
            PS2_URL + "&start=50": listing("7"),
            PS2_URL + "&start=100": LAST_PAGE_HTML,
            **topic_pages("7"),
        })
        scraper = Scraper(settings, request_manager=requests)
        category = scraper.config_manager.load_categories()[0]

        result = asyncio.run(scraper.process_category(category, max_pages=10))

        assert result.success
        assert result.stats.pages_processed == 3
        assert [r["topicId"] for r in read_store(settings, "ps2")] == ["7"]

    def test_existing_topics_skipped(self, settings, make_requests):
        settings.data_dir.mkdir()
        (settings.data_dir / "ps2.json").write_bytes(orjson.dumps([
            {"id": "topic_1", "topicId": "1", "title": "kept", "scrapedAt": "2023-01-01T00:00:00Z"},
        ]))
        requests = make_requests({
            PS2_URL: listing("1", "2"),
            PS2_URL + "&start=50": LAST_PAGE_HTML,
            **topic_pages("2"),
        })
        scraper = Scraper(settings, request_manager=requests)
        category = scraper.config_manager.load_categories()[0]

        result = asyncio.run(scraper.process_category(category, max_pages=10))

        assert result.stats.duplicates_skipped == 1
        assert result.stats.new_items == 1
        assert result.stats.total_in_file == 2
        assert topic_url("1") not in requests.requested
        kept = next(r for r in read_store(settings, "ps2") if r["topicId"] == "1")
        assert kept["title"] == "kept"

    def test_store_with_non_object_entries_still_crawls(self, settings, make_requests):
        settings.data_dir.mkdir()
        (settings.data_dir / "ps2.json").write_bytes(orjson.dumps([
            None,
            {"id": "topic_1", "topicId": "1", "title": "kept", "scrapedAt": "2023-01-01T00:00:00Z"},
        ]))
        requests = make_requests({
            PS2_URL: listing("1", "2"),
            PS2_URL + "&start=50": LAST_PAGE_HTML,
            **topic_pages("2"),
        })
        scraper = Scraper(settings, request_manager=requests)
        category = scraper.config_manager.load_categories()[0]

        result = asyncio.run(scraper.process_category(category, max_pages=10))

        assert result.success
        assert result.stats.duplicates_skipped == 1
        assert {r["topicId"] for r in read_store(settings, "ps2")} == {"1", "2"}

    def test_stops_at_offset_ceiling(self, settings, make_requests):
        empty_listing = "<html><body><table></table></body></html>"
        pages = {PS2_URL: empty_listing}
        pages.update({f"{PS2_URL}&start={(n - 1) * 50}": empty_listing for n in range(2, 134)})
        requests = make_requests(pages)
        scraper = Scraper(settings, request_manager=requests)
        category = scraper.config_manager.load_categories()[0]

        result = asyncio.run(scraper.process_category(category, max_pages=133))

        assert result.stats.pages_processed == 130
        assert len(requests.requested) == 130
        assert requests.requested[-1] == PS2_URL + "&start=6450"

    def test_failed_enrichment_saved_as_stub(self, settings, make_requests):
        requests = make_requests({
            PS2_URL: listing("1"),
            PS2_URL + "&start=50": LAST_PAGE_HTML,
        })
        scraper = Scraper(settings, request_manager=requests)
        category = scraper.config_manager.load_categories()[0]

        asyncio.run(scraper.process_category(category, max_pages=10))

        record = read_store(settings, "ps2")[0]
        assert record["topicId"] == "1"
        assert "size" not in record

    def test_max_pages_respected(self, settings, make_requests):
        requests = make_requests({
            PS2_URL: listing("1"),
            PS2_URL + "&start=50": listing("2"),
            **topic_pages("1", "2"),
        })
        scraper = Scraper(settings, request_manager=requests)
        category = scraper.config_manager.load_categories()[0]

        result = asyncio.run(scraper.process_category(category, max_pages=1))

        assert result.stats.pages_processed == 1
        assert PS2_URL + "&start=50" not in requests.requested

    def test_progress_stages(self, settings, make_requests):
        requests = make_requests({
            PS2_URL: listing("1"),
            PS2_URL + "&start=50": NetworkError(PS2_URL, status=502),
            PS2_URL + "&start=100": LAST_PAGE_HTML,
            **topic_pages("1"),
        })
        scraper = Scraper(settings, request_manager=requests)
        category = scraper.config_manager.load_categories()[0]
        events = []

        asyncio.run(scraper.process_category(
            category, lambda cat, page, total, stage, msg: events.append((page, stage)), max_pages=5
        ))

        assert events == [
            (1, STAGE_PAGE), (1, STAGE_ENRICH), (1, STAGE_SAVED),
            (2, STAGE_PAGE), (2, STAGE_PAGE_ERROR),
            (3, STAGE_PAGE), (3, STAGE_LAST_PAGE),
            (3, STAGE_DONE),
        ]


class TestStartScraping:
    def test_runs_enabled_categories_and_clears_cache(self, settings, make_requests):
        requests = make_requests({
            PS2_URL: listing("1"),
            PS2_URL + "&start=50": LAST_PAGE_HTML,
            PSP_URL: listing("9", token="[PSP]"),
            PSP_URL + "&start=50": LAST_PAGE_HTML,
            **topic_pages("1", "9"),
        })
        scraper = Scraper(settings, request_manager=requests)

        result = asyncio.run(scraper.start_scraping(max_pages=5))

        assert result.success
        assert list(result.categories) == ["ps2", "psp"]
        assert all(r.success for r in result.categories.values())
        assert requests.cache_cleared == 1
        assert [r["topicId"] for r in read_store(settings, "psp")] == ["9"]

    def test_category_failure_is_isolated(self, settings, make_requests):
        requests = make_requests({
            PSP_URL: listing("9", token="[PSP]"),
            PSP_URL + "&start=50": LAST_PAGE_HTML,
            **topic_pages("9"),
        })
        scraper = Scraper(settings, request_manager=requests)
        original = scraper.process_category

        async def failing_ps2(category, progress_callback=None, max_pages=5):
            if category.id == "ps2":
                raise RuntimeError("boom")
            return await original(category, progress_callback, max_pages)

        scraper.process_category = failing_ps2
        result = asyncio.run(scraper.start_scraping(max_pages=5))

        assert result.success
        assert result.categories["ps2"].success is False
        assert result.categories["ps2"].error == "boom"
        assert result.categories["psp"].success is True
        assert result.to_dict()["categories"]["ps2"]["stats"] is None


class TestStartCategoryScraping:
    def test_single_category(self, settings, make_requests):
        requests = make_requests({
            PSP_URL: listing("9", token="[PSP]"),
            PSP_URL + "&start=50": LAST_PAGE_HTML,
            **topic_pages("9"),
        })
        scraper = Scraper(settings, request_manager=requests)

        result = asyncio.run(scraper.start_category_scraping("psp", max_pages=5))

        assert result.success
        assert result.stats.total_in_file == 1
        assert not (settings.data_dir / "ps2.json").exists()
        assert requests.cache_cleared == 1

    @pytest.mark.parametrize("category_id", ["missing", "off"])
    def test_unknown_or_disabled_category(self, settings, make_requests, category_id):
        requests = make_requests()
        scraper = Scraper(settings, request_manager=requests)

        result = asyncio.run(scraper.start_category_scraping(category_id))

        assert result.success is False
        assert category_id in result.error
        assert requests.requested == []
        assert requests.cache_cleared == 1


class TestConnection:
    def test_reports_title(self, settings, make_requests):
        requests = make_requests({BASE_URL: "<html><head><title> RuTracker.org </title></head></html>"})
        result = asyncio.run(Scraper(settings, request_manager=requests).test_connection())
        assert result == {"success": True, "title": "RuTracker.org"}

    def test_reports_failure(self, settings, make_requests):
        result = asyncio.run(Scraper(settings, request_manager=make_requests()).test_connection())
        assert result["success"] is False
        assert "error" in result

    def test_context_manager_closes_fetcher(self, settings, make_requests):
        requests = make_requests()

        async def main():
            async with Scraper(settings, request_manager=requests):
                pass

        asyncio.run(main())
        assert requests.closed is True

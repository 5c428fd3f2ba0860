"""Tests for environment settings."""

from pathlib import Path

from catalog_miner.settings import Settings


class TestSettingsFromEnv:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.page_delay == 2.0
        assert settings.topic_delay == 0.5
        assert settings.image_delay == 0.5
        assert settings.max_concurrent_topics == 2
        assert settings.proxy_url is None
        assert settings.data_dir == Path.cwd() / "data"
        assert settings.config_dir == Path.cwd() / "config"

    def test_overrides(self, tmp_path):
        settings = Settings.from_env({
            "SCRAPER_DATA_DIR": str(tmp_path / "d"),
            "SCRAPER_CONFIG_DIR": str(tmp_path / "c"),
            "SCRAPER_PROXY_URL": "http://127.0.0.1:8080",
            "SCRAPER_PAGE_DELAY_MS": "0",
            "SCRAPER_TOPIC_DELAY_MS": "250",
            "SCRAPER_MAX_CONCURRENT_TOPICS": "4",
        })
        assert settings.data_dir == tmp_path / "d"
        assert settings.config_dir == tmp_path / "c"
        assert settings.proxy_url == "http://127.0.0.1:8080"
        assert settings.page_delay == 0
        assert settings.topic_delay == 0.25
        assert settings.max_concurrent_topics == 4

    def test_invalid_numbers_fall_back(self):
        settings = Settings.from_env({
            "SCRAPER_PAGE_DELAY_MS": "soon",
            "SCRAPER_MAX_CONCURRENT_TOPICS": "0",
        })
        assert settings.page_delay == 2.0
        assert settings.max_concurrent_topics == 1

    def test_non_finite_numbers_fall_back(self):
        settings = Settings.from_env({
            "SCRAPER_PAGE_DELAY_MS": "inf",
            "SCRAPER_TOPIC_DELAY_MS": "1e400",
        })
        assert settings.page_delay == 2.0
        assert settings.topic_delay == 0.5

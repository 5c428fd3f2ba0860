"""
Category configuration for the Tracker Catalog Miner.

Categories are resolved from a tiered fallback chain:

    1. <config_dir>/categories.json   (writable override)
    2. catalog_miner/config/categories.json   (bundled default)
    3. BUILTIN_CATEGORIES   (hard-coded)

Each unusable source falls through to the next one. Base URLs pointing
at a stale mirror host are rewritten to the canonical host and the
corrected list is written back to the override file.
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import orjson

from .exceptions import ConfigLoadError
from .models import Category

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "categories.json"
BUNDLED_CONFIG = Path(__file__).parent / "config" / CONFIG_FILENAME

CANONICAL_HOST = "rutracker.org"
STALE_HOSTS = ("EcoHub.org",)

FORUM_URL = f"https://{CANONICAL_HOST}/forum/viewforum.php?f="

# (id, name, forum id, title token, priority)
_BUILTIN_ROWS = [
    ("switch", "Nintendo Switch", 1605, "[Nintendo Switch]", 1),
    ("psx", "Playstation 1", 908, "[PS]", 2),
    ("ps2", "Playstation 2", 357, "[PS2]", 3),
    ("psp", "Playstation Portable", 1352, "[PSP]", 4),
    ("ps3", "Playstation 3", 886, "[PS3]", 5),
    ("ps4", "Playstation 4", 973, "[PS4]", 6),
    ("ps5", "Playstation 5", 546, "[PS5]", 7),
    ("psvita", "Playstation Vita", 595, "[PS Vita]", 8),
    ("xbox360", "Xbox 360", 510, "[XBOX360]", 9),
    ("wii", "Nintendo Wii", 773, "[Nintendo Wii]", 10),
    ("gamecube", "Nintendo GameCube", 773, "[GameCube]", 11),
    ("wiiu", "Nintendo Wii U", 773, "[Nintendo Wii U]", 12),
    ("ds", "Nintendo DS", 774, "[NDS]", 13),
    ("3ds", "Nintendo 3DS", 774, "[3DS]", 14),
    ("dreamcast", "Sega Dreamcast", 968, "[Dreamcast]", 15),
    ("windows-fight", "Windows Fight Games", 2203, "[DL]", 15),
    ("windows-first-person", "Windows First Person Games", 647, "[DL]", 15),
    ("windows-third-person", "Windows Third Person Games", 646, "[DL]", 15),
    ("windows-horror", "Windows Horror Games", 50, "[DL]", 15),
    ("windows-rpg", "Windows RPG Games", 52, "[DL]", 15),
    ("windows-rts", "Windows RTS Games", 51, "[DL]", 15),
    ("windows-arcade", "Windows Arcade Games", 127, "[DL]", 15),
]

BUILTIN_CATEGORIES = [
    Category(id=cid, name=name, base_url=f"{FORUM_URL}{forum}", title_search=token, priority=prio)
    for cid, name, forum, token, prio in _BUILTIN_ROWS
]


def correct_stale_host(url: str) -> str:
    """Rewrite a URL on a stale mirror host to the canonical host."""
    for stale in STALE_HOSTS:
        if stale in url:
            url = url.replace(stale, CANONICAL_HOST)
    return url


def _entries(config: Any) -> List[Dict[str, Any]]:
    """Accept both a bare array and ``{"categories": [...]}``."""
    if isinstance(config, dict):
        config = config.get("categories")
    if not isinstance(config, list):
        raise ConfigLoadError("expected a list of categories")
    return config


class ConfigManager:
    """
    Loads, repairs and persists category definitions.

    Usage:
        config = ConfigManager(Path("config"))
        categories = config.load_categories()   # enabled only, config order
        config.update_category("ps2", {"enabled": False})
    """

    def __init__(self, config_dir: Path, bundled_path: Path = BUNDLED_CONFIG):
        self.config_dir = Path(config_dir)
        self.categories_path = self.config_dir / CONFIG_FILENAME
        self.bundled_path = Path(bundled_path)
        self.categories: List[Category] = []

    def _read_config(self, path: Path) -> List[Category]:
        """Parse one config source; any problem is a ConfigLoadError."""
        try:
            raw = path.read_bytes()
        except OSError as e:
            raise ConfigLoadError(f"cannot read {path}: {e}") from e
        try:
            entries = _entries(orjson.loads(raw.lstrip(b"\xef\xbb\xbf")))
            return [Category.from_dict(entry) for entry in entries]
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise ConfigLoadError(f"invalid config {path}: {e}") from e

    def _read_all(self) -> List[Category]:
        """Read the full category list (enabled or not) from the tier chain."""
        try:
            return self._read_config(self.categories_path)
        except ConfigLoadError as e:
            logger.info("No usable override config (%s), using bundled default", e)

        try:
            categories = self._read_config(self.bundled_path)
        except ConfigLoadError as e:
            logger.error("Bundled config unusable (%s), using built-in categories", e)
            return [replace(c) for c in BUILTIN_CATEGORIES]

        self._write(categories)
        return categories

    def load_categories(self) -> List[Category]:
        """
        Load the enabled categories in config order.

        Stale-host base URLs are corrected in place and the corrected list
        is persisted back to the override file.

        Returns:
            List of enabled Category objects
        """
        categories = self._read_all()

        needs_update = False
        for category in categories:
            corrected = correct_stale_host(category.base_url)
            if corrected != category.base_url:
                logger.warning("Stale host in %s base URL, correcting to %s", category.name, CANONICAL_HOST)
                category.base_url = corrected
                needs_update = True

        if needs_update:
            logger.info("Saving corrected categories")
            self._write(categories)

        self.categories = [c for c in categories if c.enabled]
        logger.info("%d enabled categories loaded", len(self.categories))
        return self.categories

    def _write(self, categories: List[Category]) -> bool:
        """Atomically rewrite the override file."""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            data = {"categories": [c.to_dict() for c in categories]}
            tmp = self.categories_path.with_suffix('.tmp')
            tmp.write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2))
            tmp.replace(self.categories_path)
            logger.info("Categories saved to %s", self.categories_path)
            return True
        except OSError as e:
            logger.error("Could not save categories: %s", e)
            return False

    def save_categories(self, categories: List[Category]) -> bool:
        """Persist ``categories`` and reload the enabled list."""
        if not self._write(categories):
            return False
        self.load_categories()
        return True

    def update_category(self, category_id: str, updates: Dict[str, Any]) -> bool:
        """
        Merge partial fields into one category and persist the result.

        Args:
            category_id: Id of the category to update
            updates: Config-file keys to overwrite (e.g. {"enabled": False})

        Returns:
            True if the category existed and the config was saved
        """
        categories = self._read_all()
        for index, category in enumerate(categories):
            if category.id == category_id:
                merged = {**category.to_dict(), **updates, "id": category_id}
                categories[index] = Category.from_dict(merged)
                return self.save_categories(categories)

        logger.warning("Category %s not found, nothing updated", category_id)
        return False

    def get_category_by_id(self, category_id: str) -> Optional[Category]:
        return next((c for c in self.categories if c.id == category_id), None)

    def get_enabled_categories(self) -> List[Category]:
        return [c for c in self.categories if c.enabled]

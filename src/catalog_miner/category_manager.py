"""
Durable per-category stores for the Tracker Catalog Miner.

Each category owns one JSON document ``<data_dir>/<id>.json`` holding an
array of topic records. Saves always rewrite the whole file (read, merge,
write), so callers save after every page to bound what a crash can lose.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

import aiofiles
import orjson

from .exceptions import StoreParseError, StoreWriteError

logger = logging.getLogger(__name__)

# Aggregate file written next to the stores by external tooling
RESULTS_FILE = "results.json"

UTF8_BOM = b"\xef\xbb\xbf"


def _record_key(record: Dict[str, Any]):
    return record.get("topicId") or record.get("id")


def _timestamp_sort_key(record: Dict[str, Any]) -> Tuple[int, float]:
    """
    Sort key for newest-first ordering.

    Records without a parseable ``scrapedAt`` rank as newest, ahead of
    every dated record.
    """
    raw = record.get("scrapedAt")
    if isinstance(raw, str) and raw:
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return (1, 0.0)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return (0, parsed.timestamp())
    return (1, 0.0)


def remove_duplicates_by_id(records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Deduplicate records by topicId (falling back to id), first seen wins.

    Records without any key are dropped. The result is sorted by
    ``scrapedAt``, newest first; the sort is stable, so ties keep their
    merge order.
    """
    unique: Dict[Any, Dict[str, Any]] = {}
    for record in records:
        key = _record_key(record)
        if key and key not in unique:
            unique[key] = record
    return sorted(unique.values(), key=_timestamp_sort_key, reverse=True)


class CategoryManager:
    """
    Loads, merges and saves the per-category topic stores.

    Usage:
        stores = CategoryManager(Path("data"))
        existing = await stores.load_category_data("ps2")
        await stores.save_category_data("ps2", existing, new_records)
    """

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def ensure_data_dir(self) -> Path:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        return self.data_dir

    def get_category_file_path(self, category_id: str) -> Path:
        return self.data_dir / f"{category_id}.json"

    async def ensure_category_file(self, category_id: str) -> Path:
        """Create an empty store (``[]``) if the category has none yet."""
        self.ensure_data_dir()
        file_path = self.get_category_file_path(category_id)
        if not file_path.exists():
            async with aiofiles.open(file_path, "wb") as f:
                await f.write(b"[]")
            logger.info("Created empty store %s", file_path.name)
        return file_path

    async def _read_store(self, file_path: Path) -> List[Dict[str, Any]]:
        try:
            async with aiofiles.open(file_path, "rb") as f:
                raw = await f.read()
            data = orjson.loads(raw[len(UTF8_BOM):] if raw.startswith(UTF8_BOM) else raw)
        except (OSError, orjson.JSONDecodeError) as e:
            raise StoreParseError(f"cannot parse {file_path.name}: {e}") from e
        if not isinstance(data, list):
            raise StoreParseError(f"{file_path.name} is not a JSON array")

        records = [record for record in data if isinstance(record, dict)]
        if len(records) != len(data):
            logger.warning("Dropped %d non-object entries from %s", len(data) - len(records), file_path.name)
        return records

    async def load_category_data(self, category_id: str) -> List[Dict[str, Any]]:
        """
        Load the stored topic records of a category.

        Missing stores are created empty. A corrupt store is logged and
        treated as empty; it will be overwritten by the next save.

        Returns:
            List of topic record dicts (camelCase keys)
        """
        file_path = await self.ensure_category_file(category_id)
        try:
            records = await self._read_store(file_path)
        except StoreParseError as e:
            logger.warning("%s, starting with an empty store", e)
            return []

        logger.info("%d existing topics in %s", len(records), file_path.name)
        return records

    async def save_category_data(
        self,
        category_id: str,
        existing: List[Dict[str, Any]],
        incoming: Iterable[Dict[str, Any]] = (),
    ) -> Path:
        """
        Merge ``existing`` and ``incoming`` and rewrite the store file.

        Args:
            category_id: Category whose store is written
            existing: Records already in the store (win over duplicates)
            incoming: Newly enriched records

        Returns:
            Path of the written store file

        Raises:
            StoreWriteError: if the file cannot be written
        """
        unique = remove_duplicates_by_id([*existing, *incoming])
        payload = orjson.dumps(unique, option=orjson.OPT_INDENT_2)

        try:
            file_path = await self.ensure_category_file(category_id)
            tmp = file_path.with_suffix('.tmp')
            async with aiofiles.open(tmp, "wb") as f:
                await f.write(payload)
            tmp.replace(file_path)
        except OSError as e:
            raise StoreWriteError(f"cannot write store for {category_id}: {e}") from e

        logger.info("Saved %d topics to %s", len(unique), file_path.name)
        return file_path

    def list_category_files(self) -> List[str]:
        """Names of the store files in the data directory (sorted)."""
        self.ensure_data_dir()
        return sorted(
            p.name for p in self.data_dir.glob("*.json")
            if p.name != RESULTS_FILE
        )

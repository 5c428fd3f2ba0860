"""
Data models for the Tracker Catalog Miner.

This module defines typed data structures for categories, topics and the
results reported by the crawl. Store and config files use camelCase keys,
so each persisted model maps its fields in to_dict()/from_dict().
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

SIZE_UNKNOWN = "N/A"


@dataclass
class Category:
    """
    One independently paginated, independently filtered listing section.

    Attributes:
        id: Unique key, also the store file name (``<id>.json``)
        name: Human readable name
        base_url: Listing URL of page 1 (e.g. ".../viewforum.php?f=357")
        title_search: Token a listing title must contain (e.g. "[PS2]")
        enabled: Disabled categories are skipped by the crawl
        priority: Informational ordering hint from the config file

    Example:
        category = Category(
            id="ps2",
            name="Playstation 2",
            base_url="https://rutracker.org/forum/viewforum.php?f=357",
            title_search="[PS2]",
            priority=3
        )
    """
    id: str
    name: str
    base_url: str
    title_search: str = ""
    enabled: bool = True
    priority: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Category":
        """Build a category from a config entry (camelCase keys)."""
        return cls(
            id=str(data["id"]),
            name=data.get("name") or str(data["id"]),
            base_url=data.get("baseUrl", ""),
            title_search=data.get("titleSearch", ""),
            enabled=bool(data.get("enabled", True)),
            priority=int(data.get("priority", 0) or 0),
        )

    def to_dict(self) -> dict:
        """Convert the category to its config file representation."""
        return {
            "id": self.id,
            "name": self.name,
            "baseUrl": self.base_url,
            "titleSearch": self.title_search,
            "enabled": self.enabled,
            "priority": self.priority,
        }


@dataclass
class TopicStub:
    """
    A topic discovered on a listing page, before detail enrichment.

    Attributes:
        topic_id: Numeric id parsed from the listing URL ("t=<id>")
        title: Cleaned title (entities decoded, bracketed tags removed)
        url: Absolute URL of the topic detail page
        category: Id of the category the topic was found in
        scraped_at: ISO 8601 UTC discovery timestamp
    """
    topic_id: str
    title: str
    url: str
    category: str
    scraped_at: str

    @property
    def id(self) -> str:
        return f"topic_{self.topic_id}"

    def to_dict(self) -> dict:
        """Convert the stub to a store record (no enrichment fields)."""
        return {
            "id": self.id,
            "topicId": self.topic_id,
            "title": self.title,
            "url": self.url,
            "category": self.category,
            "scrapedAt": self.scraped_at,
        }


@dataclass
class Topic(TopicStub):
    """
    A fully enriched topic, the unit persisted in a category store.

    cover, magnet and size are independent: any of them may be missing
    without affecting the others.
    """
    cover: Optional[str] = None
    magnet: Optional[str] = None
    size: str = SIZE_UNKNOWN

    @classmethod
    def from_stub(
        cls,
        stub: TopicStub,
        cover: Optional[str] = None,
        magnet: Optional[str] = None,
        size: str = SIZE_UNKNOWN,
    ) -> "Topic":
        return cls(
            topic_id=stub.topic_id,
            title=stub.title,
            url=stub.url,
            category=stub.category,
            scraped_at=stub.scraped_at,
            cover=cover,
            magnet=magnet,
            size=size,
        )

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["cover"] = self.cover
        d["magnet"] = self.magnet
        d["size"] = self.size
        return d


@dataclass
class PageResult:
    """Outcome of scanning one listing page."""
    topics: List[TopicStub] = field(default_factory=list)
    is_last_page: bool = False
    new: int = 0
    duplicates: int = 0
    error: Optional[str] = None

    @property
    def stats(self) -> Optional[Dict[str, int]]:
        if self.error is not None or self.is_last_page:
            return None
        return {"new": self.new, "duplicates": self.duplicates}


@dataclass
class CategoryStats:
    pages_processed: int = 0
    new_topics_found: int = 0
    duplicates_skipped: int = 0
    new_items: int = 0
    total_in_file: int = 0


@dataclass
class CategoryResult:
    """
    Outcome of crawling one category.

    Attributes:
        success: False when the category failed as a whole
        message: Human readable summary
        stats: Page and topic counters (None for failed categories)
        error: Error message for failed categories
    """
    success: bool
    message: str = ""
    stats: Optional[CategoryStats] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str, message: str = "") -> "CategoryResult":
        return cls(success=False, message=message, error=error)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RunResult:
    """Aggregate outcome of a multi-category run, keyed by category id."""
    success: bool
    message: str = ""
    categories: Dict[str, CategoryResult] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "categories": {cid: r.to_dict() for cid, r in self.categories.items()},
            "error": self.error,
        }

"""
Topic detail enrichment for the Tracker Catalog Miner.

For each stub the topic page is fetched and three independent fields are
derived from it: the cover image, the magnet link and the size token.
Batches run under a bounded worker pool; a topic that fails to enrich is
kept as its original stub so the rest of the batch is unaffected.
"""

import logging
import re
from typing import Callable, List, Optional, Union

from bs4 import BeautifulSoup, Tag

from .exceptions import DetailFetchError
from .image_processor import ImageProcessor
from .models import SIZE_UNKNOWN, Topic, TopicStub
from .utils import delay, map_limit

logger = logging.getLogger(__name__)

POST_BODY_SELECTOR = ".post_body"
MAGNET_LINK_SELECTOR = "a.magnet-link"

SIZE_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*(GB|MB|KB)", re.IGNORECASE)

ProgressHook = Callable[[int, int], None]


def extract_magnet_link(soup: BeautifulSoup) -> Optional[str]:
    """The tracker's magnet button, else the first ``magnet:`` link on the page."""
    magnet_link = soup.select_one(MAGNET_LINK_SELECTOR)
    if magnet_link is not None and magnet_link.get("href"):
        return magnet_link["href"]

    for link in soup.find_all("a", href=True):
        if link["href"].startswith("magnet:"):
            return link["href"]
    return None


def extract_file_size(post_body: Tag, title: str) -> str:
    """
    Find a size token such as "4,37 GB" in the post text, then the title.

    Returns:
        "<number> <UNIT>" with the unit upper-cased, or "N/A"
    """
    description = post_body.get_text(" ").strip()
    match = SIZE_RE.search(description) or SIZE_RE.search(title or "")
    if match:
        return f"{match.group(1)} {match.group(2).upper()}"
    return SIZE_UNKNOWN


class TopicProcessor:
    """
    Enriches topic stubs with cover, magnet and size.

    Args:
        request_manager: Fetcher shared with the rest of the run
        image_processor: Cover resolver (built from request_manager if omitted)
        max_concurrent: Width of the worker pool
        topic_delay: Seconds a worker slot waits after each topic
    """

    def __init__(
        self,
        request_manager,
        image_processor: Optional[ImageProcessor] = None,
        max_concurrent: int = 2,
        topic_delay: float = 0.5,
    ):
        self.request_manager = request_manager
        self.image_processor = image_processor or ImageProcessor(request_manager)
        self.max_concurrent = max_concurrent
        self.topic_delay = topic_delay

    async def process_topic_details(self, stub: TopicStub) -> Topic:
        """
        Fetch a topic page and build the enriched Topic.

        Raises:
            DetailFetchError: if the page has no post body
            NetworkError: if the page cannot be fetched
        """
        html = await self.request_manager.fetch(stub.url)
        soup = BeautifulSoup(html, "lxml")

        post_body = soup.select_one(POST_BODY_SELECTOR)
        if post_body is None:
            raise DetailFetchError(f"post body not found in {stub.url}")

        cover = await self.image_processor.extract_first_image(soup, post_body, stub.url)
        magnet = extract_magnet_link(soup)
        size = extract_file_size(post_body, stub.title)

        return Topic.from_stub(stub, cover=cover, magnet=magnet, size=size)

    async def process_topics_batch(
        self,
        stubs: List[TopicStub],
        on_progress: Optional[ProgressHook] = None,
    ) -> List[Union[Topic, TopicStub]]:
        """
        Enrich a batch of stubs under the worker pool.

        Args:
            stubs: Stubs discovered on one listing page
            on_progress: Optional ``(completed, total)`` hook

        Returns:
            One entry per stub, in input order: the enriched Topic, or the
            original stub when its enrichment failed
        """
        total = len(stubs)
        if total == 0:
            return []

        completed = 0

        async def enrich(stub: TopicStub) -> Union[Topic, TopicStub]:
            nonlocal completed
            try:
                topic = await self.process_topic_details(stub)
                logger.info("Topic processed: %s", topic.title)
                return topic
            except Exception as e:
                logger.error("Could not enrich topic %s: %s", stub.title, e)
                return stub
            finally:
                completed += 1
                if on_progress is not None:
                    on_progress(completed, total)
                # Keep the slot busy so the next topic waits out the delay
                await delay(self.topic_delay)

        return await map_limit(stubs, self.max_concurrent, enrich)

"""
Cover image extraction for the Tracker Catalog Miner.

Topic posts rarely link a cover image directly. Images are embedded either
as ``<var class="postImg" title="...">`` lazy-load placeholders or as
regular ``<img>`` elements, and very often point at an image host's viewer
page instead of the image file. This module:

1. Collects candidate URLs from both markup idioms
2. Resolves viewer pages on the known indirection hosts to a direct URL
3. Returns the first candidate that ends in an image extension

Resolution is best effort: any failure moves on to the next candidate and
the worst outcome is ``None``.
"""

import logging
import re
from typing import List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from .utils import delay

logger = logging.getLogger(__name__)

DEFAULT_ORIGIN = "https://rutracker.org"

IMAGE_EXT_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp|bmp)(\?.*)?$", re.IGNORECASE)

# Only the first few candidates are worth a viewer round trip
MAX_CANDIDATES = 3

# A <var title="..."> is an image placeholder when its title mentions one of these
VAR_TITLE_MARKERS = ("fastpic", "imageban", ".jpg", ".png", ".jpeg")

# Decorative assets (forum icons, smilies, rating stars, magnet buttons)
IRRELEVANT_MARKERS = ("/icons/", "/smiles/", "magnet", "rating", "spacer")

# Indirection host -> selector of the image element on its viewer page
INDIRECTION_HOSTS = {
    "fastpic.ru": "#image",
    "fastpic.org": "#image",
    "imageban.ru": "img",
}

OG_IMAGE_SELECTOR = 'meta[property="og:image"]'
IMAGE_LINK_SELECTOR = 'a[href*=".jpg"], a[href*=".png"], a[href*=".jpeg"]'


def normalize_url(url: Optional[str]) -> Optional[str]:
    """Force https: protocol-relative and http URLs are upgraded."""
    if not url:
        return url
    if url.startswith("//"):
        return "https:" + url
    if url.startswith("http://"):
        return "https://" + url[len("http://"):]
    return url


def is_irrelevant_image(src: str) -> bool:
    return any(marker in src for marker in IRRELEVANT_MARKERS)


def convert_thumb_to_big(src: str) -> str:
    """Upgrade a thumbnail path (``/thumb/x_thumb.jpg``) to the full-size one."""
    if "/thumb/" in src:
        return src.replace("/thumb/", "/big/").replace("_thumb", "")
    return src


def topic_origin(ref_url: Optional[str]) -> str:
    """Scheme and host of the topic page, used for relative image paths."""
    if ref_url:
        parsed = urlparse(ref_url)
        if parsed.scheme and parsed.netloc:
            return f"{parsed.scheme}://{parsed.netloc}"
    return DEFAULT_ORIGIN


def _absolutize(src: str, origin: str) -> str:
    if src.startswith("http"):
        return src
    if src.startswith("//"):
        return "https:" + src
    return f"{origin}{'' if src.startswith('/') else '/'}{src}"


def _indirection_selector(url: str) -> Optional[str]:
    host = (urlparse(url).hostname or "").lower()
    for known, selector in INDIRECTION_HOSTS.items():
        if host == known or host.endswith("." + known):
            return selector
    return None


class ImageProcessor:
    """
    Finds and resolves the cover image of a topic.

    Args:
        request_manager: Fetcher used for image host viewer pages
        attempt_delay: Seconds to wait after a rejected candidate
    """

    def __init__(self, request_manager, attempt_delay: float = 0.5):
        self.request_manager = request_manager
        self.attempt_delay = attempt_delay

    async def extract_first_image(
        self,
        soup: BeautifulSoup,
        post_body: Optional[Tag],
        ref_url: Optional[str] = None,
    ) -> Optional[str]:
        """
        Return a direct https URL of the topic's cover image, or None.

        Args:
            soup: Parsed topic page
            post_body: The post content node (the whole page when None)
            ref_url: Topic URL, origin for relative image paths

        Never raises.
        """
        try:
            root = post_body if post_body is not None else soup
            candidates = self.collect_candidates(root, ref_url)
            logger.debug("%d image candidates in %s", len(candidates), ref_url)
            if not candidates:
                return None
            cover = await self.resolve_direct_image_url(candidates)
            if cover is None:
                logger.info("No direct cover image found for %s", ref_url)
            return cover
        except Exception as e:
            logger.error("Cover extraction failed for %s: %s", ref_url, e)
            return None

    def collect_candidates(self, root: Tag, ref_url: Optional[str] = None) -> List[str]:
        """Candidate image URLs in document order, placeholders first."""
        origin = topic_origin(ref_url)
        found: List[str] = []
        self._extract_from_var_elements(root, origin, found)
        self._extract_from_img_elements(root, origin, found)
        return found

    def _extract_from_var_elements(self, root: Tag, origin: str, found: List[str]):
        for var in root.find_all("var"):
            title = var.get("title")
            if not title or not any(marker in title for marker in VAR_TITLE_MARKERS):
                continue

            src = _absolutize(title, origin).split("?")[0]
            if is_irrelevant_image(src):
                continue
            src = convert_thumb_to_big(src)
            if src not in found:
                found.append(src)

    def _extract_from_img_elements(self, root: Tag, origin: str, found: List[str]):
        for img in root.find_all("img"):
            src = img.get("src") or img.get("data-src")
            if not src:
                continue

            src = src.split("?")[0]
            if is_irrelevant_image(src):
                continue
            src = convert_thumb_to_big(_absolutize(src, origin))
            src = normalize_url(src)
            if src not in found:
                found.append(src)

    async def resolve_direct_image_url(self, candidates: List[str]) -> Optional[str]:
        """
        Try the first MAX_CANDIDATES candidates and return the first direct URL.

        Returns:
            Normalized https image URL, or None if every candidate failed
        """
        tried = candidates[:MAX_CANDIDATES]
        for index, image_url in enumerate(tried, start=1):
            logger.debug("Resolving candidate %d/%d: %s", index, len(tried), image_url)
            try:
                direct = await self.get_direct_image_url(image_url)
            except Exception as e:
                logger.warning("Could not resolve %s: %s", image_url, e)
                direct = None

            if direct and IMAGE_EXT_RE.search(direct):
                return normalize_url(direct)

            logger.debug("Not a direct image URL: %s", direct)
            await delay(self.attempt_delay)

        return None

    async def get_direct_image_url(self, image_url: str) -> Optional[str]:
        """
        Map a candidate to a direct image URL.

        Image-extension URLs are returned as-is, viewer pages on an
        indirection host are fetched and resolved (None on failure), any
        other URL is passed through unresolved.
        """
        if IMAGE_EXT_RE.search(image_url):
            return image_url

        selector = _indirection_selector(image_url)
        if selector is None:
            return image_url

        return await self._resolve_viewer_page(image_url, selector)

    async def _resolve_viewer_page(self, viewer_url: str, selector: str) -> Optional[str]:
        """
        Extract the direct image URL from an image host viewer page.

        Priority: og:image meta tag, the host's image element, the first
        link to an image file.
        """
        html = await self.request_manager.fetch(viewer_url)
        page = BeautifulSoup(html, "lxml")

        og_image = page.select_one(OG_IMAGE_SELECTOR)
        if og_image and og_image.get("content"):
            return normalize_url(urljoin(viewer_url, og_image["content"]))

        element = page.select_one(selector)
        if element is not None:
            src = element.get("src")
            if src and IMAGE_EXT_RE.search(src.split("?")[0]):
                return normalize_url(urljoin(viewer_url, src))

        link = page.select_one(IMAGE_LINK_SELECTOR)
        if link is not None and link.get("href"):
            return normalize_url(urljoin(viewer_url, link["href"]))

        logger.debug("No direct image on viewer page %s", viewer_url)
        return None

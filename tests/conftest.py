"""Configure test paths and shared fakes."""
import sys
from pathlib import Path

import pytest

# Add src/ to path so tests can import the package
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from catalog_miner.exceptions import NetworkError  # noqa: E402


class FakeRequestManager:
    """
    Stand-in for RequestManager serving canned pages.

    ``pages`` maps URL -> body, or URL -> exception instance to raise.
    Unknown URLs raise NetworkError(404).
    """

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.requested = []
        self.cache_cleared = 0
        self.closed = False

    async def fetch(self, url):
        self.requested.append(url)
        body = self.pages.get(url)
        if body is None:
            raise NetworkError(url, status=404)
        if isinstance(body, Exception):
            raise body
        return body

    def clear_cache(self):
        self.cache_cleared += 1

    async def aclose(self):
        self.closed = True


@pytest.fixture
def make_requests():
    return FakeRequestManager

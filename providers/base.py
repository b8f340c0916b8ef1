"""Search provider contract."""

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from urllib.parse import quote_plus

from models.search_models import EngineConfig, EngineKind, RawResult

from .fetcher import PageFetcher


def validate_query(keyword: str, max_pages: int) -> str:
    """Return the stripped keyword or raise ValueError for unusable input."""
    if keyword is None or not str(keyword).strip():
        raise ValueError("keyword must not be empty")
    if isinstance(max_pages, bool) or not isinstance(max_pages, int) or max_pages < 1:
        raise ValueError("max_pages must be a positive integer")
    return str(keyword).strip()


class BaseProvider(ABC):
    """
    A pluggable search source.

    ``kind`` is the capability flag the orchestrator consults:
    STRUCTURED providers yield RawResults whose payload already holds the
    final fields, EXTRACTION providers yield markup that needs an AI pass.
    """

    kind: EngineKind

    def __init__(self, engine: EngineConfig, fetcher: PageFetcher):
        self.engine = engine
        self.fetcher = fetcher

    @property
    def engine_id(self) -> str:
        return self.engine.id

    def build_url(self, keyword: str, page: int) -> str:
        offset = int(self.engine.options.get("page_offset", 0))
        return self.engine.endpoint_template.format(keyword=quote_plus(keyword), page=page + offset)

    def search(self, keyword: str, max_pages: int, cancel_event: threading.Event) -> Iterator[RawResult]:
        """
        Lazily yield RawResults page by page.

        Stops when ``cancel_event`` is set (checked before each page fetch and
        between items), after ``max_pages`` pages, or at the first empty page.

        Raises:
            ValueError: For an empty keyword or max_pages < 1
            ProviderError: When a page cannot be fetched or understood
        """
        keyword = validate_query(keyword, max_pages)
        return self._iter_pages(keyword, max_pages, cancel_event)

    def _iter_pages(self, keyword: str, max_pages: int, cancel_event: threading.Event) -> Iterator[RawResult]:
        for page in range(1, max_pages + 1):
            if cancel_event.is_set():
                return
            url = self.build_url(keyword, page)
            body = self.fetcher.fetch(url, engine_id=self.engine_id)
            items = self.parse_page(body, page, url)
            if not items:
                return
            for item in items:
                if cancel_event.is_set():
                    return
                yield item

    @abstractmethod
    def parse_page(self, body: str, page: int, url: str) -> list[RawResult]:
        """Split one fetched page into RawResults."""

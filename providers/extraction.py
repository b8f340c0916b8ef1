"""Providers that hand raw markup to the AI extraction stage."""

import re

from models.search_models import EngineKind, RawResult

from .base import BaseProvider


class ExtractionProvider(BaseProvider):
    """
    Yields page markup for AI extraction.

    With the ``item_pattern`` option (a regex, DOTALL) each match becomes its
    own RawResult; without it the whole page is a single RawResult.
    """

    kind = EngineKind.EXTRACTION

    def __init__(self, engine, fetcher):
        super().__init__(engine, fetcher)
        pattern = engine.options.get("item_pattern")
        self._item_re = re.compile(pattern, re.DOTALL | re.IGNORECASE) if pattern else None

    def parse_page(self, body: str, page: int, url: str) -> list[RawResult]:
        if self._item_re is None:
            chunks = [body]
        else:
            chunks = [match.group(0) for match in self._item_re.finditer(body)]

        return [
            RawResult(engine_id=self.engine_id, page_index=page, payload=chunk, source_url=url)
            for chunk in chunks
            if chunk and chunk.strip()
        ]

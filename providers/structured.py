"""Providers whose endpoints return JSON that maps directly onto result fields."""

import json
from typing import Any

from models.errors import ProviderError, ProviderErrorKind
from models.search_models import EngineKind, RawResult

from .base import BaseProvider

DEFAULT_FIELD_MAP = {
    "title": "title",
    "magnet_link": "magnet_link",
    "size": "size",
    "source_url": "source_url",
}


def _dig(document: Any, dotted_path: str) -> Any:
    current = document
    for part in dotted_path.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return None
    return current


class StructuredProvider(BaseProvider):
    """
    Parses a JSON search API.

    Engine options:
        results_key: dotted path to the item list (default: the document when
            it is a list, otherwise "results")
        field_map: mapping of result field -> item key (dotted paths allowed)
    """

    kind = EngineKind.STRUCTURED

    def parse_page(self, body: str, page: int, url: str) -> list[RawResult]:
        try:
            document = json.loads(body)
        except json.JSONDecodeError as exc:
            raise ProviderError(
                ProviderErrorKind.MALFORMED_RESPONSE,
                f"Response from {url} is not valid JSON",
                engine_id=self.engine_id,
                details={"url": url, "error": str(exc)},
            ) from exc

        results_key = self.engine.options.get("results_key")
        if results_key:
            items = _dig(document, results_key)
        elif isinstance(document, list):
            items = document
        else:
            items = document.get("results") if isinstance(document, dict) else None

        if items is None:
            return []
        if not isinstance(items, list):
            raise ProviderError(
                ProviderErrorKind.MALFORMED_RESPONSE,
                f"Expected a list of results from {url}",
                engine_id=self.engine_id,
                details={"url": url, "results_key": results_key},
            )

        field_map = {**DEFAULT_FIELD_MAP, **(self.engine.options.get("field_map") or {})}
        raw_results = []
        for item in items:
            if not isinstance(item, dict):
                continue
            payload = {name: _dig(item, key) for name, key in field_map.items()}
            raw_results.append(
                RawResult(
                    engine_id=self.engine_id,
                    page_index=page,
                    payload=payload,
                    source_url=str(payload.get("source_url") or url),
                )
            )
        return raw_results

"""
ExtractionStage - AI conversion of raw result markup into SearchResults.

One synchronous AI call per RawResult. The orchestrator decides how many run
in parallel and applies the per-call timeout; this module only builds the
prompt, bounds its size and validates what comes back.
"""

import threading

from api.base_client import BaseAIClient
from models.errors import ExtractionError, ExtractionErrorKind
from models.search_models import RawResult, SearchResult
from orchestrator.response_validator import ResponseValidator
from utils.logger import get_logger

logger = get_logger(__name__)

EXTRACTION_SYSTEM_PROMPT = (
    "You extract torrent search results from HTML or text fragments. "
    "Reply with a single JSON object and nothing else, using the keys "
    '"title" (string), "magnet_link" (full magnet URI), '
    '"size" (human readable size or number of bytes, null if unknown) and '
    '"source_url" (detail page URL, null if unknown). '
    "Copy the magnet URI exactly as it appears. "
    'If the fragment contains no magnet link, reply {"magnet_link": null}.'
)


def truncate_utf8(text: str, max_bytes: int) -> tuple[str, bool]:
    """Cut ``text`` to at most ``max_bytes`` UTF-8 bytes without splitting a character."""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text, False
    return encoded[:max_bytes].decode("utf-8", errors="ignore"), True


class ExtractionStage:
    def __init__(
        self,
        client: BaseAIClient,
        max_payload_bytes: int = 12000,
        validator: ResponseValidator | None = None,
    ):
        if max_payload_bytes < 1:
            raise ValueError("max_payload_bytes must be >= 1")
        self.client = client
        self.max_payload_bytes = max_payload_bytes
        self.validator = validator or ResponseValidator()

    def build_messages(self, markup: str, source_url: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": f"Page URL: {source_url or 'unknown'}\n\nFragment:\n{markup}",
            },
        ]

    def extract(self, raw: RawResult, cancel_event: threading.Event | None = None) -> SearchResult | None:
        """
        Turn one markup RawResult into a SearchResult.

        Returns None only when cancellation was requested before the AI call.

        Raises:
            ExtractionError: schema_invalid for unusable input or output,
                service_unavailable when the AI call itself failed
        """
        if raw.is_structured or not isinstance(raw.payload, str) or not raw.payload.strip():
            raise ExtractionError(
                ExtractionErrorKind.SCHEMA_INVALID,
                "Extraction payload must be non-empty text",
                details={"engine_id": raw.engine_id, "page_index": raw.page_index},
            )

        markup, truncated = truncate_utf8(raw.payload, self.max_payload_bytes)
        if truncated:
            logger.debug(
                "Extraction payload truncated",
                extra={
                    "extra_fields": {
                        "engine_id": raw.engine_id,
                        "original_bytes": len(raw.payload.encode("utf-8")),
                        "max_bytes": self.max_payload_bytes,
                    }
                },
            )

        if cancel_event is not None and cancel_event.is_set():
            return None

        response = self.client.get_completion(
            messages=self.build_messages(markup, raw.source_url),
            json_mode=True,
            purpose="extraction",
        )

        if response.is_error:
            raise ExtractionError(
                ExtractionErrorKind.SERVICE_UNAVAILABLE,
                f"AI extraction call failed: {response.error.message}",
                details={
                    "engine_id": raw.engine_id,
                    "error_code": response.error.code,
                    "retryable": response.error.retryable,
                },
            )

        logger.debug("Extraction reply received", extra={"extra_fields": response.log_fields()})
        try:
            data = self.validator.parse_json(response.text)
            record = self.validator.validate_record(data)
        except ValueError as exc:
            raise ExtractionError(
                ExtractionErrorKind.SCHEMA_INVALID,
                f"AI extraction response rejected: {exc}",
                details={
                    "engine_id": raw.engine_id,
                    "request_id": response.request_id,
                    "truncated": response.truncated,
                    "reply": response.text_preview,
                },
            ) from exc

        return SearchResult(
            title=record.title,
            magnet_link=record.magnet_link,
            size_bytes=record.size_bytes,
            source_url=record.source_url or raw.source_url,
            engine_id=raw.engine_id,
        )

"""
AnalysisStage - batched AI enrichment of structured search results.

Items are grouped into batches of ``batch_size``; at most
``max_concurrent_batches`` batch calls are in flight. A failing batch marks
only its own items as failed. Nothing is retried automatically: callers
re-run ``AnalysisReport.failed_ids`` when they want another attempt.
"""

import asyncio
import json
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import Any

from api.base_client import BaseAIClient
from models.errors import AnalysisError, AnalysisErrorKind
from models.search_models import AnalysisResult, SearchResult, SearchSession
from orchestrator.blocking import run_blocking
from orchestrator.response_validator import ResponseValidator
from utils.logger import get_logger

logger = get_logger(__name__)

ANALYSIS_SYSTEM_PROMPT = (
    "You curate torrent search results. For every item you receive return an "
    "entry with: \"id\" (copied unchanged), \"cleaned_title\" (the release "
    "title without site spam, uploader tags or ads), \"tags\" (short lowercase "
    "labels such as resolution, codec, language, content type) and "
    "\"purity_score\" (integer 0-100; 100 means a clean, well-described, "
    "trustworthy release, 0 means spam, fake or unrelated). "
    'Reply with JSON only: {"results": [...]}.'
)

_ERROR_CODE_TO_KIND = {
    "rate_limit": AnalysisErrorKind.RATE_LIMITED,
    "timeout": AnalysisErrorKind.TIMEOUT,
}


@dataclass
class AnalysisReport:
    analyzed_ids: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    unknown_ids: list[str] = field(default_factory=list)
    batch_errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def failed_ids(self) -> list[str]:
        return list(self.failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "analyzed_ids": list(self.analyzed_ids),
            "failed": dict(self.failed),
            "unknown_ids": list(self.unknown_ids),
            "batch_errors": list(self.batch_errors),
        }


def make_batches(items: list[SearchResult], batch_size: int) -> list[list[SearchResult]]:
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    return [items[i : i + batch_size] for i in range(0, len(items), batch_size)]


class AnalysisStage:
    def __init__(
        self,
        client: BaseAIClient,
        batch_size: int = 10,
        max_concurrent_batches: int = 2,
        timeout_s: float = 60.0,
        priority_keywords: list[str] | None = None,
        validator: ResponseValidator | None = None,
    ):
        if max_concurrent_batches < 1:
            raise ValueError("max_concurrent_batches must be >= 1")
        self.client = client
        self.batch_size = batch_size
        self.max_concurrent_batches = max_concurrent_batches
        self.timeout_s = timeout_s
        self.priority_keywords = list(priority_keywords or [])
        self.validator = validator or ResponseValidator()

    def build_messages(self, batch: list[SearchResult]) -> list[dict[str, str]]:
        items = [
            {
                "id": item.id,
                "title": item.title,
                "size_bytes": item.size_bytes,
                "source_url": item.source_url,
            }
            for item in batch
        ]
        system = ANALYSIS_SYSTEM_PROMPT
        if self.priority_keywords:
            system += (
                " The user prefers releases matching these keywords; reflect a match "
                f"in the tags and score: {', '.join(self.priority_keywords)}."
            )
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": json.dumps({"items": items}, ensure_ascii=False)},
        ]

    def analyze_batch(self, batch: list[SearchResult]) -> tuple[dict[str, AnalysisResult], list[dict[str, Any]]]:
        """
        Run one synchronous AI call for ``batch``.

        Raises:
            AnalysisError: When the call fails or the reply is unusable as a whole
        """
        response = self.client.get_completion(
            messages=self.build_messages(batch),
            json_mode=True,
            purpose="analysis",
            max_tokens=max(512, 160 * len(batch)),
        )
        if response.is_error:
            kind = _ERROR_CODE_TO_KIND.get(response.error.code, AnalysisErrorKind.SERVICE_UNAVAILABLE)
            raise AnalysisError(
                kind,
                f"AI analysis call failed: {response.error.message}",
                details={"error_code": response.error.code, "request_id": response.request_id},
            )
        logger.debug("Analysis reply received", extra={"extra_fields": response.log_fields()})
        try:
            data = self.validator.parse_json(response.text)
            return self.validator.validate_analysis(data, [item.id for item in batch])
        except ValueError as exc:
            raise AnalysisError(
                AnalysisErrorKind.SCHEMA_INVALID,
                f"AI analysis response rejected: {exc}",
                details={
                    "request_id": response.request_id,
                    "truncated": response.truncated,
                    "reply": response.text_preview,
                },
            ) from exc

    async def run(
        self,
        session: SearchSession,
        items: list[SearchResult],
        executor: Executor | None = None,
    ) -> AnalysisReport:
        """Analyze ``items`` in bounded-parallel batches and update ``session``."""
        report = AnalysisReport()
        batches = make_batches(items, self.batch_size)
        if not batches:
            return report

        semaphore = asyncio.Semaphore(self.max_concurrent_batches)
        logger.info(
            f"Starting analysis of {len(items)} items in {len(batches)} batches",
            extra={
                "extra_fields": {
                    "session_id": session.id,
                    "item_count": len(items),
                    "batch_count": len(batches),
                    "max_concurrent_batches": self.max_concurrent_batches,
                }
            },
        )

        async def run_one(index: int, batch: list[SearchResult]) -> None:
            async with semaphore:
                await self._run_batch(session, index, batch, executor, report)

        await asyncio.gather(*(run_one(i, batch) for i, batch in enumerate(batches)))

        logger.info(
            f"Analysis complete: {len(report.analyzed_ids)} analyzed, {len(report.failed)} failed",
            extra={
                "extra_fields": {
                    "session_id": session.id,
                    "analyzed": len(report.analyzed_ids),
                    "failed": len(report.failed),
                    "failed_batches": len(report.batch_errors),
                }
            },
        )
        return report

    async def _run_batch(
        self,
        session: SearchSession,
        index: int,
        batch: list[SearchResult],
        executor: Executor | None,
        report: AnalysisReport,
    ) -> None:
        try:
            accepted, rejected = await run_blocking(executor, self.timeout_s, self.analyze_batch, batch)
        except asyncio.TimeoutError:
            self._fail_batch(
                session,
                index,
                batch,
                AnalysisError(AnalysisErrorKind.TIMEOUT, f"Analysis timed out after {self.timeout_s}s"),
                report,
            )
            return
        except AnalysisError as exc:
            self._fail_batch(session, index, batch, exc, report)
            return
        except Exception as exc:
            logger.error(
                f"Unexpected analysis failure in batch {index}: {exc}",
                exc_info=True,
                extra={"extra_fields": {"session_id": session.id, "batch_index": index}},
            )
            self._fail_batch(
                session,
                index,
                batch,
                AnalysisError(AnalysisErrorKind.SERVICE_UNAVAILABLE, f"Unexpected error: {exc}"),
                report,
            )
            return

        if rejected:
            logger.warning(
                f"Discarded {len(rejected)} analysis entries in batch {index}",
                extra={
                    "extra_fields": {
                        "session_id": session.id,
                        "batch_index": index,
                        "reasons": [r["reason"] for r in rejected],
                    }
                },
            )

        for item in batch:
            analysis = accepted.get(item.id)
            if analysis is None:
                session.mark_analysis_failed(item.id, "missing_from_response")
                report.failed[item.id] = "missing_from_response"
            else:
                session.attach_analysis(item.id, analysis)
                report.analyzed_ids.append(item.id)

    def _fail_batch(
        self,
        session: SearchSession,
        index: int,
        batch: list[SearchResult],
        error: AnalysisError,
        report: AnalysisReport,
    ) -> None:
        logger.warning(
            f"Analysis batch {index} failed: {error.kind.value}",
            extra={
                "extra_fields": {
                    "session_id": session.id,
                    "batch_index": index,
                    "batch_size": len(batch),
                    "error_kind": error.kind.value,
                    "error_message": error.message,
                }
            },
        )
        report.batch_errors.append(
            {"batch_index": index, "item_ids": [item.id for item in batch], **error.to_dict()}
        )
        for item in batch:
            session.mark_analysis_failed(item.id, error.kind.value)
            report.failed[item.id] = error.kind.value

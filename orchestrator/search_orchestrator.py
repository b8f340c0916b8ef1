"""
SearchOrchestrator - concurrent fan-out of a keyword search across engines.

Runs one asyncio task per enabled engine, routes extraction engines through
the AI extraction stage, deduplicates on magnet link through a single writer
and streams accepted results to the consumer as they arrive. One failing
engine never affects its siblings.

Blocking work (page fetches, AI calls, state store access) runs on a
bounded thread pool owned by the orchestrator, each call with its own
timeout.
"""

import asyncio
import concurrent.futures
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable

from api.base_client import BaseAIClient
from api.factory import create_ai_client
from config.config import Config
from models.errors import ExtractionError, ProviderError, ProviderErrorKind
from models.search_models import (
    AIConfig,
    AnalysisStatus,
    EngineConfig,
    EngineKind,
    RawResult,
    SearchResult,
    SearchSession,
    SessionStatus,
)
from orchestrator.analysis_stage import AnalysisReport, AnalysisStage
from orchestrator.blocking import run_blocking
from orchestrator.extraction_stage import ExtractionStage
from orchestrator.response_validator import ResponseValidator
from orchestrator.session import SearchHandle, SearchListener
from providers.base import BaseProvider, validate_query
from providers.factory import create_provider
from providers.fetcher import PageFetcher
from utils.logger import get_logger

logger = get_logger(__name__)

_EXHAUSTED = object()
_DONE = object()


class SearchOrchestrator:
    """
    Owns the current search session and the curation stages.

    Example usage:
        orchestrator = SearchOrchestrator(StateGateway())
        handle = await orchestrator.start_search("ubuntu 24.04", max_pages=2)
        async for event in handle.events():
            print(event.to_dict())
        report = await orchestrator.analyze()
    """

    def __init__(
        self,
        gateway,
        ai_client: BaseAIClient | None = None,
        *,
        config: Config | None = None,
        provider_factory: Callable[[EngineConfig, PageFetcher], BaseProvider] = create_provider,
        fetcher_factory: Callable[[AIConfig], PageFetcher] | None = None,
        max_workers: int | None = None,
    ):
        """
        Args:
            gateway: State gateway providing load_config()
            ai_client: AI client for extraction/analysis (built from config on first use if None)
            config: Environment configuration
            provider_factory: Builds a provider for an engine snapshot entry
            fetcher_factory: Builds the page fetcher shared by one session's providers
            max_workers: Size of the worker thread pool
        """
        self.gateway = gateway
        self.config = config or Config()
        self.provider_factory = provider_factory
        self.fetcher_factory = fetcher_factory or self._default_fetcher
        self.validator = ResponseValidator()
        self._ai_client = ai_client
        self._ai_client_injected = ai_client is not None
        self._ai_client_key: tuple[str, str, float] | None = None
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers or self.config.WORKER_THREADS,
            thread_name_prefix="curator-worker",
        )
        self._current: SearchHandle | None = None
        self._start_lock = asyncio.Lock()
        self.last_report: AnalysisReport | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def current_handle(self) -> SearchHandle | None:
        return self._current

    @property
    def current_session(self) -> SearchSession | None:
        return self._current.session if self._current else None

    async def start_search(
        self, keyword: str, max_pages: int = 1, listener: SearchListener | None = None
    ) -> SearchHandle:
        """
        Start a new search session, cancelling any search still running.

        Raises:
            ValueError: For an empty keyword or max_pages < 1
            PersistenceError: If the engine configuration cannot be loaded
        """
        keyword = validate_query(keyword, max_pages)

        async with self._start_lock:
            previous = self._current
            if previous is not None and not previous.done:
                logger.info(
                    "Cancelling previous search before starting a new one",
                    extra={"extra_fields": {"session_id": previous.session.id}},
                )
                await previous.cancel()

            stored = await self._load_config()
            engines = tuple(engine for engine in stored.engines if engine.enabled)

            session = SearchSession(keyword=keyword, max_pages=max_pages, engine_snapshot=engines)
            handle = SearchHandle(session, listener)
            self._current = handle

            session.status = SessionStatus.RUNNING
            handle.emit_status(SessionStatus.RUNNING)

            logger.info(
                f"Starting search with {len(engines)} engines",
                extra={
                    "extra_fields": {
                        "session_id": session.id,
                        "keyword": keyword,
                        "max_pages": max_pages,
                        "engines": [engine.id for engine in engines],
                    }
                },
            )
            handle._attach(asyncio.create_task(self._run(handle, stored.ai), name=f"search:{session.id}"))
            return handle

    async def cancel_search(self) -> SearchSession | None:
        """Cancel the running search and wait until every task has exited."""
        handle = self._current
        if handle is None:
            return None
        if handle.request_cancel():
            logger.info(
                "Search cancellation requested",
                extra={"extra_fields": {"session_id": handle.session.id}},
            )
        return await handle.wait()

    async def analyze(
        self, ids: list[str] | None = None, session: SearchSession | None = None
    ) -> AnalysisReport:
        """
        Run the analysis stage over results of ``session`` (default: current).

        Args:
            ids: Result ids to analyze; None selects every result not yet analyzed

        Raises:
            ValueError: If there is no session or no AI client can be built
            PersistenceError: If the AI settings cannot be loaded
        """
        session = session or self.current_session
        if session is None:
            raise ValueError("No search session to analyze")

        stored = await self._load_config()
        ai_config = stored.ai

        unknown: list[str] = []
        if ids is None:
            items = [r for r in session.snapshot() if r.analysis_status is not AnalysisStatus.ANALYZED]
        else:
            items = []
            for result_id in dict.fromkeys(ids):
                result = session.get_by_id(result_id)
                if result is None:
                    unknown.append(result_id)
                else:
                    items.append(result)

        stage = AnalysisStage(
            self._get_ai_client(ai_config),
            batch_size=ai_config.analysis_batch_size,
            max_concurrent_batches=ai_config.analysis_max_concurrent_batches,
            timeout_s=ai_config.ai_timeout_s,
            priority_keywords=stored.priority_keywords,
            validator=self.validator,
        )
        report = await stage.run(session, items, executor=self._executor)
        report.unknown_ids = unknown
        self.last_report = report
        return report

    async def retry_failed(
        self, report: AnalysisReport | None = None, session: SearchSession | None = None
    ) -> AnalysisReport:
        """Re-run analysis over only the items that failed in ``report`` (default: the last run)."""
        report = report or self.last_report
        failed_ids = report.failed_ids if report is not None else []
        return await self.analyze(failed_ids, session=session)

    def run_search_sync(
        self, keyword: str, max_pages: int = 1, listener: SearchListener | None = None
    ) -> SearchSession:
        """
        Synchronous wrapper: start a search and block until it finishes.

        Handles the case where an event loop is already running by executing
        in a separate thread with its own loop.
        """

        async def _search() -> SearchSession:
            handle = await self.start_search(keyword, max_pages, listener)
            return await handle.wait()

        return self._run_sync(_search)

    def analyze_sync(self, ids: list[str] | None = None, session: SearchSession | None = None) -> AnalysisReport:
        return self._run_sync(lambda: self.analyze(ids, session=session))

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Session execution
    # ------------------------------------------------------------------

    async def _run(self, handle: SearchHandle, ai_config: AIConfig) -> SearchSession:
        session = handle.session
        aborted = False
        try:
            await self._run_engines(handle, ai_config)
        except asyncio.CancelledError:
            session.cancel_event.set()
            self._finish(handle, aborted=False)
            raise
        except Exception as exc:
            aborted = True
            self._abort(handle, exc)
        self._finish(handle, aborted=aborted)
        return session

    async def _run_engines(self, handle: SearchHandle, ai_config: AIConfig) -> None:
        session = handle.session
        fetcher = self.fetcher_factory(ai_config)
        queue: asyncio.Queue = asyncio.Queue()
        writer = asyncio.create_task(self._write_results(handle, queue))

        try:
            tasks = [
                asyncio.create_task(
                    self._run_provider(handle, engine, fetcher, ai_config, queue),
                    name=f"provider:{engine.id}",
                )
                for engine in session.engine_snapshot
            ]
            handle._provider_tasks = tasks
            if session.cancel_requested:
                for task in tasks:
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            await queue.put(_DONE)
            await writer
            fetcher.close()

    def _abort(self, handle: SearchHandle, exc: Exception) -> None:
        """Fail every engine that has not reported yet after the search itself broke."""
        session = handle.session
        logger.error(
            f"Search aborted: {exc}",
            exc_info=True,
            extra={"extra_fields": {"session_id": session.id, "error_type": type(exc).__name__}},
        )
        if session.cancel_requested:
            return
        for engine in session.engine_snapshot:
            if engine.id in session.failures:
                continue
            error = ProviderError(
                ProviderErrorKind.UNREACHABLE,
                f"Search aborted before {engine.name} finished: {exc}",
                engine_id=engine.id,
                details={"error_type": type(exc).__name__},
            )
            session.record_failure(engine.id, error)
            handle.emit_provider_failed(engine.id, error)

    def _finish(self, handle: SearchHandle, aborted: bool) -> SessionStatus:
        session = handle.session
        if session.cancel_requested:
            status = SessionStatus.CANCELLED
        elif session.failures or aborted:
            status = SessionStatus.PARTIALLY_FAILED
        else:
            status = SessionStatus.COMPLETED

        session.status = status
        session.finished_at = datetime.now(timezone.utc)
        logger.info(
            f"Search finished: {status.value}",
            extra={
                "extra_fields": {
                    "session_id": session.id,
                    "status": status.value,
                    "result_count": len(session.results),
                    "failed_engines": sorted(session.failures),
                    "dropped_items": dict(session.dropped_items),
                }
            },
        )
        handle.emit_status(status)
        return status

    async def _write_results(self, handle: SearchHandle, queue: asyncio.Queue) -> None:
        """Single writer of session.results; emits results and provider failures."""
        session = handle.session
        while True:
            item = await queue.get()
            if item is _DONE:
                return
            if session.cancel_requested:
                continue

            kind, payload = item
            if kind == "failure":
                engine_id, error = payload
                session.record_failure(engine_id, error)
                handle.emit_provider_failed(engine_id, error)
            elif session.insert_if_absent(payload):
                handle.emit_result(payload)
            else:
                logger.debug(
                    "Duplicate magnet link discarded",
                    extra={"extra_fields": {"session_id": session.id, "engine_id": payload.engine_id}},
                )

    async def _run_provider(
        self,
        handle: SearchHandle,
        engine: EngineConfig,
        fetcher: PageFetcher,
        ai_config: AIConfig,
        queue: asyncio.Queue,
    ) -> None:
        session = handle.session
        loop = asyncio.get_running_loop()
        pending: deque[asyncio.Future] = deque()
        semaphore = asyncio.Semaphore(ai_config.extraction_concurrency)
        failure: ProviderError | None = None
        forwarded = 0

        try:
            provider = self.provider_factory(engine, fetcher)
            stage = None
            if provider.kind is EngineKind.EXTRACTION:
                stage = ExtractionStage(
                    self._get_ai_client(ai_config),
                    max_payload_bytes=ai_config.extraction_max_payload_bytes,
                    validator=self.validator,
                )

            iterator = provider.search(session.keyword, session.max_pages, session.cancel_event)
            while not session.cancel_requested:
                raw = await self._pull(iterator, engine, ai_config.provider_timeout_s)
                if raw is _EXHAUSTED:
                    break
                if stage is not None:
                    future = asyncio.create_task(
                        self._extract(session, stage, raw, semaphore, ai_config.ai_timeout_s)
                    )
                else:
                    future = loop.create_future()
                    future.set_result(self._convert_structured(session, raw))
                pending.append(future)
                forwarded += await self._forward_ready(pending, queue, wait=False)
        except asyncio.CancelledError:
            for future in pending:
                future.cancel()
            raise
        except ProviderError as exc:
            failure = exc
            if failure.engine_id is None:
                failure.engine_id = engine.id
        except ValueError as exc:
            # raised when the engine or the AI client is misconfigured
            failure = ProviderError(
                ProviderErrorKind.UNREACHABLE,
                f"Engine {engine.id} is not usable: {exc}",
                engine_id=engine.id,
                details={"error_type": type(exc).__name__},
            )
        except Exception as exc:
            logger.error(
                f"Unexpected error in provider {engine.id}: {exc}",
                exc_info=True,
                extra={"extra_fields": {"session_id": session.id, "engine_id": engine.id}},
            )
            failure = ProviderError(
                ProviderErrorKind.MALFORMED_RESPONSE,
                f"Unexpected provider error: {exc}",
                engine_id=engine.id,
                details={"error_type": type(exc).__name__},
            )

        try:
            # results accepted before a failure are still delivered, in order
            forwarded += await self._forward_ready(pending, queue, wait=True)
        except asyncio.CancelledError:
            for future in pending:
                future.cancel()
            raise

        if failure is not None:
            logger.warning(
                f"Provider {engine.id} failed: {failure.kind.value}",
                extra={
                    "extra_fields": {
                        "session_id": session.id,
                        "engine_id": engine.id,
                        "error_kind": failure.kind.value,
                        "error_message": failure.message,
                        "forwarded": forwarded,
                    }
                },
            )
            await queue.put(("failure", (engine.id, failure)))
        else:
            logger.info(
                f"Provider {engine.id} finished",
                extra={
                    "extra_fields": {
                        "session_id": session.id,
                        "engine_id": engine.id,
                        "forwarded": forwarded,
                        "dropped": session.dropped_items.get(engine.id, 0),
                    }
                },
            )

    async def _pull(self, iterator, engine: EngineConfig, timeout_s: float) -> Any:
        """Fetch the next RawResult on a worker thread, bounded by the provider timeout."""
        try:
            return await run_blocking(self._executor, timeout_s, next, iterator, _EXHAUSTED)
        except asyncio.TimeoutError:
            raise ProviderError(
                ProviderErrorKind.TIMEOUT,
                f"No response from {engine.name} within {timeout_s}s",
                engine_id=engine.id,
                details={"timeout_s": timeout_s},
            ) from None

    async def _forward_ready(self, pending: deque, queue: asyncio.Queue, wait: bool) -> int:
        """Move finished conversions to the writer queue, preserving provider order."""
        forwarded = 0
        while pending and (wait or pending[0].done()):
            result = await pending.popleft()
            if result is not None:
                await queue.put(("result", result))
                forwarded += 1
        return forwarded

    async def _extract(
        self,
        session: SearchSession,
        stage: ExtractionStage,
        raw: RawResult,
        semaphore: asyncio.Semaphore,
        timeout_s: float,
    ) -> SearchResult | None:
        log_fields = {"session_id": session.id, "engine_id": raw.engine_id, "page_index": raw.page_index}
        try:
            async with semaphore:
                return await run_blocking(self._executor, timeout_s, stage.extract, raw, session.cancel_event)
        except asyncio.TimeoutError:
            logger.warning(
                f"Extraction timed out after {timeout_s}s; item dropped",
                extra={"extra_fields": log_fields},
            )
        except ExtractionError as exc:
            logger.warning(
                f"Extraction failed ({exc.kind.value}); item dropped",
                extra={"extra_fields": {**log_fields, "error_kind": exc.kind.value, "error_message": exc.message}},
            )
        except Exception as exc:
            logger.error(
                f"Unexpected extraction error; item dropped: {exc}",
                exc_info=True,
                extra={"extra_fields": log_fields},
            )
        session.record_dropped(raw.engine_id)
        return None

    def _convert_structured(self, session: SearchSession, raw: RawResult) -> SearchResult | None:
        try:
            record = self.validator.validate_record(raw.payload)
        except ValueError as exc:
            session.record_dropped(raw.engine_id)
            logger.warning(
                f"Structured item rejected: {exc}",
                extra={"extra_fields": {"session_id": session.id, "engine_id": raw.engine_id}},
            )
            return None
        return SearchResult(
            title=record.title,
            magnet_link=record.magnet_link,
            size_bytes=record.size_bytes,
            source_url=record.source_url or raw.source_url,
            engine_id=raw.engine_id,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load_config(self):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.gateway.load_config)

    def _get_ai_client(self, ai_config: AIConfig) -> BaseAIClient:
        if self._ai_client_injected:
            return self._ai_client
        key = (ai_config.provider, ai_config.model, ai_config.ai_timeout_s)
        if self._ai_client is None or self._ai_client_key != key:
            self._ai_client = create_ai_client(ai_config, self.config)
            self._ai_client_key = key
        return self._ai_client

    def _default_fetcher(self, ai_config: AIConfig) -> PageFetcher:
        return PageFetcher(timeout_s=ai_config.provider_timeout_s, user_agent=self.config.HTTP_USER_AGENT)

    def _run_sync(self, coro_factory):
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(coro_factory())

        # Loop is running - execute in a separate thread with its own loop
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
            return executor.submit(asyncio.run, coro_factory()).result()

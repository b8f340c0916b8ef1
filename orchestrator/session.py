"""
Session handle and consumer-facing event feed for a running search.
"""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from models.errors import ProviderError
from models.search_models import SearchResult, SearchSession, SessionStatus
from utils.logger import get_logger

logger = get_logger(__name__)

EVENT_RESULT = "result"
EVENT_PROVIDER_FAILED = "provider_failed"
EVENT_STATUS = "status"


@dataclass(frozen=True)
class SessionEvent:
    type: str
    session_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    )

    @property
    def is_terminal(self) -> bool:
        return self.type == EVENT_STATUS and SessionStatus(self.payload["status"]).is_terminal

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "session_id": self.session_id, "timestamp": self.timestamp, **self.payload}


class SearchListener:
    """
    Callback interface for consumers of a search.

    Subclass and override what you need; every hook defaults to a no-op.
    Hooks run on the event loop thread and must not block.
    """

    def on_result(self, session: SearchSession, result: SearchResult) -> None:
        pass

    def on_provider_failed(self, session: SearchSession, engine_id: str, error: ProviderError) -> None:
        pass

    def on_status_changed(self, session: SearchSession, status: SessionStatus) -> None:
        pass


class SearchHandle:
    """
    Owned handle on one search session.

    Created by SearchOrchestrator.start_search. Events are delivered both to
    the optional listener and to an internal queue consumed via ``events()``.
    """

    def __init__(self, session: SearchSession, listener: SearchListener | None = None):
        self.session = session
        self.listener = listener
        self._events: asyncio.Queue[SessionEvent] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._provider_tasks: list[asyncio.Task] = []

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def _attach(self, task: asyncio.Task) -> None:
        self._task = task

    def request_cancel(self) -> bool:
        """Signal cancellation. Returns False if the session already finished."""
        if self.session.status.is_terminal or self.session.cancel_requested:
            return False
        self.session.cancel_event.set()
        for task in self._provider_tasks:
            task.cancel()
        return True

    async def cancel(self) -> SearchSession:
        self.request_cancel()
        return await self.wait()

    async def wait(self) -> SearchSession:
        if self._task is not None:
            await asyncio.shield(self._task)
        return self.session

    async def events(self) -> AsyncIterator[SessionEvent]:
        """Yield events until (and including) the terminal status event."""
        while True:
            event = await self._events.get()
            yield event
            if event.is_terminal:
                return

    # ------------------------------------------------------------------
    # Emission, called by the orchestrator only
    # ------------------------------------------------------------------

    def _call_listener(self, hook: str, *args) -> None:
        if self.listener is None:
            return
        try:
            getattr(self.listener, hook)(self.session, *args)
        except Exception as exc:
            logger.error(
                f"Search listener {hook} raised: {exc}",
                exc_info=True,
                extra={"extra_fields": {"session_id": self.session.id, "hook": hook}},
            )

    def emit_result(self, result: SearchResult) -> None:
        self._events.put_nowait(SessionEvent(EVENT_RESULT, self.session.id, {"result": result.to_dict()}))
        self._call_listener("on_result", result)

    def emit_provider_failed(self, engine_id: str, error: ProviderError) -> None:
        self._events.put_nowait(
            SessionEvent(
                EVENT_PROVIDER_FAILED,
                self.session.id,
                {"engine_id": engine_id, "error": error.to_dict()},
            )
        )
        self._call_listener("on_provider_failed", engine_id, error)

    def emit_status(self, status: SessionStatus) -> None:
        payload: dict[str, Any] = {"status": status.value}
        if status.is_terminal:
            payload["result_count"] = len(self.session.results)
            payload["failed_engines"] = sorted(self.session.failures)
        self._events.put_nowait(SessionEvent(EVENT_STATUS, self.session.id, payload))
        self._call_listener("on_status_changed", status)

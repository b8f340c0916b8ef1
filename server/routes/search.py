"""Search and analysis endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from orchestrator.search_orchestrator import SearchOrchestrator
from server.dependencies import get_api_key, get_orchestrator
from server.schemas.requests import AnalyzeRequest, SearchRequest
from server.schemas.responses import AnalysisReportDTO, SessionDTO
from server.utils import NDJSON_MEDIA_TYPE, STREAM_HEADERS, to_ndjson
from utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/v1", tags=["Search"])


def _require_session(orchestrator: SearchOrchestrator):
    session = orchestrator.current_session
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No search session")
    return session


@router.post("/search/stream")
async def search_stream(
    request: SearchRequest,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
    api_key: str = Depends(get_api_key),
):
    """Start a search and stream its events as NDJSON until it finishes."""
    try:
        handle = await orchestrator.start_search(request.keyword, request.max_pages)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    session = handle.session

    async def event_stream():
        finished = False
        try:
            yield to_ndjson({
                "type": "start",
                "session_id": session.id,
                "keyword": session.keyword,
                "max_pages": session.max_pages,
                "engines": [engine.id for engine in session.engine_snapshot],
            })
            async for event in handle.events():
                yield to_ndjson(event.to_dict())
            finished = True
            summary = SessionDTO.from_session(session, include_results=False)
            yield to_ndjson({"type": "done", "session": summary.model_dump()})
        except Exception as exc:
            logger.error(
                f"Search stream failed: {exc}",
                exc_info=True,
                extra={"extra_fields": {"session_id": session.id}},
            )
            yield to_ndjson({"type": "error", "message": str(exc)})
        finally:
            if not finished and handle.request_cancel():
                logger.info(
                    "Search stream closed early; search cancelled",
                    extra={"extra_fields": {"session_id": session.id}},
                )

    return StreamingResponse(
        event_stream(),
        media_type=NDJSON_MEDIA_TYPE,
        headers=STREAM_HEADERS,
    )


@router.post("/search/cancel", response_model=SessionDTO)
async def cancel_search(
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
    api_key: str = Depends(get_api_key),
):
    """Cancel the running search (no-op if it already finished)."""
    session = await orchestrator.cancel_search()
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No search session")
    return SessionDTO.from_session(session, include_results=False)


@router.get("/search/results", response_model=SessionDTO)
async def search_results(
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
    api_key: str = Depends(get_api_key),
):
    """Current session with every accepted result."""
    return SessionDTO.from_session(_require_session(orchestrator))


@router.post("/analyze", response_model=AnalysisReportDTO)
async def analyze(
    request: AnalyzeRequest,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
    api_key: str = Depends(get_api_key),
):
    """Run AI analysis over the current session's results."""
    _require_session(orchestrator)
    try:
        if request.retry_failed:
            report = await orchestrator.retry_failed()
        else:
            report = await orchestrator.analyze(request.ids)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return AnalysisReportDTO.from_report(report)

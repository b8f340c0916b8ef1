"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from models.errors import PersistenceError
from server.dependencies import get_state_gateway
from server.schemas.responses import HealthResponseDTO
from utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponseDTO)
def health_check(gateway=Depends(get_state_gateway)):
    """Liveness plus a state store read; no API key required."""
    try:
        engine_count = len(gateway.load_config().engines)
        state_store = "ok"
    except PersistenceError as exc:
        logger.warning(
            f"Health check: state store unavailable ({exc.kind.value})",
            extra={"extra_fields": {"error_kind": exc.kind.value}},
        )
        engine_count = None
        state_store = "unavailable"

    return HealthResponseDTO(
        status="healthy" if state_store == "ok" else "degraded",
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        version="1.0.0",
        state_store=state_store,
        engine_count=engine_count,
    )

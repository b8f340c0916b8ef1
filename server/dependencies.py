"""FastAPI dependencies for authentication, state gateway and orchestrator access."""

import os

from fastapi import Depends, Header, HTTPException, Request, status

from server.utils import redact_sensitive_headers
from utils.logger import get_logger

logger = get_logger(__name__)


async def get_api_key(request: Request, x_api_key: str | None = Header(None)):
    """Validate API key from X-API-Key header."""
    valid_keys_str = os.getenv("API_KEYS", "")
    redacted_headers = redact_sensitive_headers(dict(request.headers))

    if not valid_keys_str:
        logger.error(
            "API authentication not configured",
            extra={"extra_fields": {"path": request.url.path, "headers": redacted_headers}},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="API authentication not configured",
        )

    valid_keys = [k.strip() for k in valid_keys_str.split(",") if k.strip()]

    if not x_api_key or x_api_key not in valid_keys:
        logger.warning(
            "API authentication failed",
            extra={"extra_fields": {"path": request.url.path, "headers": redacted_headers}},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing API key"
        )

    return x_api_key


def get_state_gateway():
    """Dependency to get the state gateway (singleton pattern)."""
    from db.gateway import StateGateway

    if not hasattr(get_state_gateway, "_instance"):
        get_state_gateway._instance = StateGateway()
    return get_state_gateway._instance


def get_orchestrator(gateway=Depends(get_state_gateway)):
    """Dependency to get orchestrator instance (singleton pattern)."""
    from orchestrator.search_orchestrator import SearchOrchestrator

    if not hasattr(get_orchestrator, "_instance"):
        get_orchestrator._instance = SearchOrchestrator(gateway)
    return get_orchestrator._instance

"""Engine list and settings endpoints backed by the state gateway."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from db.gateway import StateGateway
from server.dependencies import get_api_key, get_state_gateway
from server.schemas.requests import EngineListRequest, EnginePatchRequest, SettingsRequest
from server.schemas.responses import EngineDTO, SettingsDTO

router = APIRouter(prefix="/v1", tags=["Configuration"])


def _engine_list(gateway: StateGateway) -> list[EngineDTO]:
    return [EngineDTO(**engine.to_dict()) for engine in gateway.load_config().engines]


@router.get("/engines", response_model=List[EngineDTO])
def list_engines(
    gateway: StateGateway = Depends(get_state_gateway),
    api_key: str = Depends(get_api_key),
):
    """Configured engines in display order."""
    return _engine_list(gateway)


@router.put("/engines", response_model=List[EngineDTO])
def replace_engines(
    request: EngineListRequest,
    gateway: StateGateway = Depends(get_state_gateway),
    api_key: str = Depends(get_api_key),
):
    """Replace the whole engine list."""
    try:
        gateway.save_config(engines=[engine.to_engine() for engine in request.engines])
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return _engine_list(gateway)


@router.patch("/engines/{engine_id}", response_model=List[EngineDTO])
def patch_engine(
    engine_id: str,
    request: EnginePatchRequest,
    gateway: StateGateway = Depends(get_state_gateway),
    api_key: str = Depends(get_api_key),
):
    """Enable or disable one engine. Takes effect from the next search."""
    if not gateway.set_engine_enabled(engine_id, request.enabled):
        raise HTTPException(status_code=404, detail="Engine not found")
    return _engine_list(gateway)


@router.delete("/engines/{engine_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_engine(
    engine_id: str,
    gateway: StateGateway = Depends(get_state_gateway),
    api_key: str = Depends(get_api_key),
):
    if not gateway.remove_engine(engine_id):
        raise HTTPException(status_code=404, detail="Engine not found")


@router.get("/settings", response_model=SettingsDTO)
def get_settings(
    gateway: StateGateway = Depends(get_state_gateway),
    api_key: str = Depends(get_api_key),
):
    stored = gateway.load_config()
    return SettingsDTO(ai=stored.ai.to_dict(), priority_keywords=list(stored.priority_keywords))


@router.put("/settings", response_model=SettingsDTO)
def put_settings(
    request: SettingsRequest,
    gateway: StateGateway = Depends(get_state_gateway),
    api_key: str = Depends(get_api_key),
):
    """Update AI settings and/or priority keywords; omitted parts are unchanged."""
    stored = gateway.load_config()
    try:
        ai = request.ai.apply_to(stored.ai) if request.ai is not None else None
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    gateway.save_config(ai=ai, priority_keywords=request.priority_keywords)

    stored = gateway.load_config()
    return SettingsDTO(ai=stored.ai.to_dict(), priority_keywords=list(stored.priority_keywords))

"""Saved dataclip routes: CRUD and execution."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, Field

from core.container import container
from core.logging import get_logger
from models.database import Dataclip
from services.dataclips import DataclipResult, DataclipService
from services.query_guard import QueryExecutionGuard

logger = get_logger(__name__)
router = APIRouter(prefix="/api/dataclips", tags=["dataclips"])


class DataclipCreateRequest(BaseModel):
    title: Optional[str] = None
    sql_query: Optional[str] = None
    description: Optional[str] = None
    created_by: Optional[str] = None
    addon_id: Optional[str] = None
    addon_name: Optional[str] = None


class DataclipUpdateRequest(DataclipCreateRequest):
    pass


class ExecuteRequest(BaseModel):
    use_cache: bool = True
    ttl: Optional[int] = Field(default=None, ge=1)
    parameters: Optional[Dict[str, Any]] = None


def serialize_dataclip(dataclip: Dataclip) -> Dict[str, Any]:
    return dataclip.model_dump(mode="json")


def _result_response(result: DataclipResult, status_code: int = 200) -> ORJSONResponse:
    if result.success:
        return ORJSONResponse(
            status_code=status_code,
            content={"success": True, "dataclip": serialize_dataclip(result.dataclip)},
        )
    not_found = "Dataclip not found" in result.errors
    return ORJSONResponse(
        status_code=404 if not_found else 400,
        content={"success": False, "errors": result.errors},
    )


@router.get("")
def list_dataclips(service: DataclipService = Depends(lambda: container.dataclip_service())):
    """All saved dataclips, oldest first."""
    dataclips = service.list_all()
    return {"success": True, "dataclips": [serialize_dataclip(d) for d in dataclips]}


@router.post("")
def create_dataclip(
    request: DataclipCreateRequest,
    service: DataclipService = Depends(lambda: container.dataclip_service())
):
    result = service.create(request.model_dump())
    return _result_response(result, status_code=201)


@router.get("/{slug}")
def get_dataclip(slug: str, service: DataclipService = Depends(lambda: container.dataclip_service())):
    dataclip = service.get(slug)
    if dataclip is None:
        raise HTTPException(status_code=404, detail="Dataclip not found")
    return {"success": True, "dataclip": serialize_dataclip(dataclip)}


@router.put("/{slug}")
def update_dataclip(
    slug: str,
    request: DataclipUpdateRequest,
    service: DataclipService = Depends(lambda: container.dataclip_service())
):
    """Partial update; fields left out of the body keep their value."""
    result = service.update(slug, request.model_dump(exclude_unset=True))
    return _result_response(result)


@router.delete("/{slug}")
def delete_dataclip(slug: str, service: DataclipService = Depends(lambda: container.dataclip_service())):
    result = service.delete(slug)
    return _result_response(result)


@router.post("/{slug}/execute")
def execute_dataclip(
    slug: str,
    request: Optional[ExecuteRequest] = None,
    guard: QueryExecutionGuard = Depends(lambda: container.query_guard())
):
    """Run a saved dataclip against the target database."""
    request = request or ExecuteRequest()
    options = guard.default_options()
    options.enabled = options.enabled and request.use_cache
    options.parameters = request.parameters
    if request.ttl:
        options.ttl_seconds = request.ttl

    result = guard.execute_named(slug, cache_options=options)
    if not result.success:
        logger.warning("Dataclip execution failed", slug=slug, errors=result.errors)
    return result.to_dict()

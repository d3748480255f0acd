"""Ad-hoc SQL and schema routes."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from core.container import container
from services.query_guard import QueryExecutionGuard
from services.schema_introspector import SchemaIntrospector

router = APIRouter(prefix="/api", tags=["sql"])


class SQLExecuteRequest(BaseModel):
    sql: str
    use_cache: bool = True
    ttl: Optional[int] = Field(default=None, ge=1)
    parameters: Optional[Dict[str, Any]] = None


@router.post("/sql/execute")
def execute_sql(
    request: SQLExecuteRequest,
    guard: QueryExecutionGuard = Depends(lambda: container.query_guard())
):
    """Run read-only SQL against the target database.

    Rejected statements raise ValidationError, which the app turns into
    a 400 response. Database failures come back as success=False.
    """
    options = guard.default_options()
    options.enabled = options.enabled and request.use_cache
    options.parameters = request.parameters
    if request.ttl:
        options.ttl_seconds = request.ttl

    return guard.execute(request.sql, cache_options=options).to_dict()


@router.get("/schema")
def get_schema(
    use_cache: bool = True,
    introspector: SchemaIntrospector = Depends(lambda: container.schema_introspector())
):
    """Tables and columns of the target database."""
    options = introspector.default_options()
    options.enabled = options.enabled and use_cache
    return introspector.fetch(cache_options=options).to_dict()

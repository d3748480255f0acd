"""Database add-on routes."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from core.container import container
from core.database import Database
from services.addon_sync import AddonSyncService

router = APIRouter(prefix="/api/addons", tags=["addons"])


class AddonSyncRequest(BaseModel):
    app_name: Optional[str] = None


@router.get("")
def list_addons(database: Database = Depends(lambda: container.database())):
    addons = database.list_addons()
    return {"success": True, "addons": [addon.model_dump(mode="json") for addon in addons]}


@router.post("/sync")
def sync_addons(
    request: Optional[AddonSyncRequest] = None,
    sync_service: AddonSyncService = Depends(lambda: container.addon_sync())
):
    """Pull the app's add-ons from the Heroku Platform API."""
    app_name = request.app_name if request else None
    return sync_service.sync(app_name).to_dict()

"""Sync Heroku add-ons into the local addons table."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from core.config import Settings
from core.database import Database
from core.logging import get_logger
from services.heroku import HerokuAPIError, HerokuClient, HerokuConfigurationError

logger = get_logger(__name__)


@dataclass
class AddonSyncResult:
    synced_count: int = 0
    skipped_count: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "synced_count": self.synced_count,
            "skipped_count": self.skipped_count,
            "errors": self.errors,
        }


class AddonSyncService:
    """Fetches an app's add-ons and upserts them. Never raises."""

    def __init__(self, database: Database, settings: Settings,
                 client_factory: Callable[[], HerokuClient]):
        self.database = database
        self.settings = settings
        self.client_factory = client_factory

    def sync(self, app_name: Optional[str] = None) -> AddonSyncResult:
        result = AddonSyncResult()
        app_name = app_name or self.settings.heroku_app_name

        try:
            if not app_name or not app_name.strip():
                raise HerokuConfigurationError("HEROKU_APP_NAME environment variable is required")

            with self.client_factory() as client:
                addons = client.fetch_addons(app_name)
        except HerokuConfigurationError as e:
            result.errors.append(f"Heroku API not configured: {e}")
            logger.warning("Heroku API not configured", error=str(e))
            return result
        except HerokuAPIError as e:
            result.errors.append(f"Failed to sync addons from Heroku: {e}")
            logger.error("Addon sync failed", app=app_name, error=str(e))
            return result

        logger.info("Fetched addons", app=app_name, count=len(addons or []))
        for addon in addons or []:
            self._sync_addon(addon, result)

        logger.info("Addon sync finished", app=app_name,
                    synced=result.synced_count, skipped=result.skipped_count)
        return result

    def _sync_addon(self, addon: Dict[str, Any], result: AddonSyncResult) -> None:
        addon_uuid = addon.get("id")
        addon_name = addon.get("name")
        if not addon_uuid or not addon_name:
            return

        try:
            self.database.upsert_addon(addon_uuid, addon_name)
            result.synced_count += 1
        except SQLAlchemyError as e:
            result.errors.append(f"Failed to sync addon '{addon_name}': {e}")
            result.skipped_count += 1
            logger.error("Failed to upsert addon", addon=addon_name, error=str(e))

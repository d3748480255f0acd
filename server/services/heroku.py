"""Heroku Platform API client.

Used to fetch the add-ons (databases) of an app so dataclips can be
associated with a specific database add-on.
"""

from typing import Any, Dict, List, Optional

import httpx

from core.config import Settings
from core.logging import get_logger

logger = get_logger(__name__)

ACCEPT_HEADER = "application/vnd.heroku+json; version=3"


class HerokuAPIError(Exception):
    """Platform API request failed."""


class HerokuConfigurationError(Exception):
    """API token missing."""


class HerokuClient:
    """Thin synchronous wrapper over the Platform API endpoints we use."""

    def __init__(self, settings: Settings, api_token: Optional[str] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        token = api_token or settings.heroku_api_token
        if not token or not token.strip():
            raise HerokuConfigurationError("HEROKU_API_TOKEN environment variable is required")

        self.client = httpx.Client(
            base_url=settings.heroku_api_url,
            headers={"Accept": ACCEPT_HEADER, "Authorization": f"Bearer {token}"},
            timeout=settings.heroku_timeout,
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "HerokuClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _get(self, path: str, not_found: str, failure: str) -> Any:
        try:
            response = self.client.get(path)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise HerokuAPIError(f"{not_found}: {e}") from e
            raise HerokuAPIError(f"{failure}: {e}") from e
        except httpx.HTTPError as e:
            raise HerokuAPIError(f"{failure}: {e}") from e
        except ValueError as e:
            raise HerokuAPIError(f"Unexpected response from Heroku API: {e}") from e

    def fetch_addons(self, app_name: str) -> List[Dict[str, Any]]:
        """All add-ons attached to an app."""
        _require(app_name, "app_name")
        return self._get(
            f"/apps/{app_name}/addons",
            not_found=f"App '{app_name}' not found",
            failure=f"Failed to fetch addons for app '{app_name}'",
        )

    def fetch_addon(self, app_name: str, addon_id_or_name: str) -> Dict[str, Any]:
        _require(app_name, "app_name")
        _require(addon_id_or_name, "addon identifier")
        return self._get(
            f"/apps/{app_name}/addons/{addon_id_or_name}",
            not_found=f"Addon '{addon_id_or_name}' not found for app '{app_name}'",
            failure=f"Failed to fetch addon '{addon_id_or_name}'",
        )

    def fetch_postgres_addons(self, app_name: str) -> List[Dict[str, Any]]:
        return [addon for addon in self.fetch_addons(app_name) if self.is_postgres_addon(addon)]

    @staticmethod
    def is_postgres_addon(addon: Dict[str, Any]) -> bool:
        service_name = (addon.get("addon_service") or {}).get("name")
        return bool(service_name) and "postgres" in service_name.lower()

    def fetch_addon_config(self, app_name: str, addon_id_or_name: str) -> Dict[str, str]:
        """Config vars of the app that belong to the add-on (e.g. its DATABASE_URL)."""
        addon = self.fetch_addon(app_name, addon_id_or_name)
        config_vars = self._get(
            f"/apps/{app_name}/config-vars",
            not_found=f"App '{app_name}' not found",
            failure="Failed to fetch addon config",
        )
        marker = addon["name"].upper().replace("-", "_")
        return {key: value for key, value in config_vars.items() if marker in key.upper()}

    def account_info(self) -> Dict[str, Any]:
        return self._get("/account", not_found="Account not found",
                         failure="Failed to fetch account info")

    def health_check(self) -> bool:
        """Raises HerokuAPIError when the API is unreachable or rejects the token."""
        self.account_info()
        return True


def _require(value: Optional[str], label: str) -> None:
    if value is None or not str(value).strip():
        raise ValueError(f"{label} cannot be empty")

"""Saved dataclip management: validation, slugs and cache invalidation."""

import secrets
import string
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from core.database import Database
from core.logging import get_logger
from models.database import Dataclip, SQL_QUERY_MAX_LENGTH, TITLE_MAX_LENGTH
from services.query_guard import QueryExecutionGuard

logger = get_logger(__name__)

SLUG_LENGTH = 16
SLUG_ALPHABET = string.ascii_lowercase + string.digits

EDITABLE_FIELDS = ("title", "description", "sql_query", "created_by", "addon_id", "addon_name")
REQUIRED_FIELDS = {"title": "Title is required", "sql_query": "SQL query is required"}


@dataclass
class DataclipResult:
    """Outcome of a create/update/delete operation."""
    dataclip: Optional[Dataclip] = None
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


def generate_slug() -> str:
    """16-character lowercase alphanumeric slug."""
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(SLUG_LENGTH))


def _clean(value: Any) -> Optional[str]:
    """Strip a submitted value; None stays None."""
    if value is None:
        return None
    return str(value).strip()


class DataclipService:
    """Create, update and delete saved dataclips."""

    def __init__(self, database: Database, query_guard: QueryExecutionGuard):
        self.database = database
        self.query_guard = query_guard

    def list_all(self) -> List[Dataclip]:
        return self.database.list_dataclips()

    def get(self, slug: str) -> Optional[Dataclip]:
        return self.database.get_dataclip(slug)

    def create(self, params: Mapping[str, Any]) -> DataclipResult:
        result = DataclipResult()
        values = {name: _clean(params.get(name)) for name in EDITABLE_FIELDS}

        for name, message in REQUIRED_FIELDS.items():
            if not values[name]:
                result.errors.append(message)
        self._validate_lengths(values, result)
        if not result.success:
            return result

        # Optional text left blank is stored as NULL
        for name in ("description", "created_by", "addon_id", "addon_name"):
            values[name] = values[name] or None

        try:
            result.dataclip = self.database.create_dataclip(slug=self._unique_slug(), **values)
        except SQLAlchemyError as e:
            result.errors.append(f"Database error: {e}")
            logger.error("Failed to create dataclip", error=str(e))
        except Exception as e:
            result.errors.append(f"Unexpected error: {e}")
            logger.error("Unexpected error creating dataclip", error=str(e))
        return result

    def update(self, slug: str, params: Mapping[str, Any]) -> DataclipResult:
        """Partial update. Only submitted fields change."""
        result = DataclipResult()
        submitted = {name: _clean(params[name]) for name in EDITABLE_FIELDS if name in params}
        submitted = {name: value for name, value in submitted.items() if value is not None}

        for name, message in REQUIRED_FIELDS.items():
            if name in submitted and not submitted[name]:
                result.errors.append(message)
        self._validate_lengths(submitted, result)

        try:
            if self.database.get_dataclip(slug) is None:
                result.errors.append("Dataclip not found")
            if not result.success:
                return result

            updates: Dict[str, Any] = {}
            for name, value in submitted.items():
                if name in REQUIRED_FIELDS:
                    updates[name] = value
                else:
                    updates[name] = value or None

            result.dataclip = self.database.update_dataclip(slug, updates)
        except SQLAlchemyError as e:
            result.errors.append(f"Database error: {e}")
            logger.error("Failed to update dataclip", slug=slug, error=str(e))
            return result
        except Exception as e:
            result.errors.append(f"Unexpected error: {e}")
            logger.error("Unexpected error updating dataclip", slug=slug, error=str(e))
            return result

        if "sql_query" in updates:
            self._invalidate_cache(slug)
        return result

    def delete(self, slug: Optional[str]) -> DataclipResult:
        result = DataclipResult()
        slug = _clean(slug)
        if not slug:
            result.errors.append("Slug is required")
            return result

        try:
            existing = self.database.get_dataclip(slug)
            if existing is None:
                result.errors.append("Dataclip not found")
                return result

            self.database.delete_dataclip(slug)
            result.dataclip = existing
        except SQLAlchemyError as e:
            result.errors.append(f"Database error: {e}")
            logger.error("Failed to delete dataclip", slug=slug, error=str(e))
            return result
        except Exception as e:
            result.errors.append(f"Unexpected error: {e}")
            logger.error("Unexpected error deleting dataclip", slug=slug, error=str(e))
            return result

        self._invalidate_cache(slug)
        return result

    def _validate_lengths(self, values: Mapping[str, Optional[str]], result: DataclipResult) -> None:
        title = values.get("title")
        if title and len(title) > TITLE_MAX_LENGTH:
            result.errors.append(f"Title must be {TITLE_MAX_LENGTH} characters or less")
        sql_query = values.get("sql_query")
        if sql_query and len(sql_query) > SQL_QUERY_MAX_LENGTH:
            result.errors.append(f"SQL query must be {SQL_QUERY_MAX_LENGTH:,} characters or less")

    def _unique_slug(self) -> str:
        slug = generate_slug()
        while self.database.slug_exists(slug):
            slug = generate_slug()
        return slug

    def _invalidate_cache(self, slug: str) -> None:
        # Cache trouble must not fail the record change
        try:
            cleared = self.query_guard.invalidate(slug)
            logger.info("Invalidated dataclip cache", slug=slug, cleared_count=cleared)
        except Exception as e:
            logger.warning("Failed to invalidate dataclip cache", slug=slug, error=str(e))

"""Application database service with SQLModel and SQLAlchemy 2.0.

Holds saved dataclips and synced add-ons. Dataclip queries never run on
this engine; see core.connections for target-database access.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlmodel import SQLModel, Session, select

from core.config import Settings
from core.logging import get_logger
from models.database import APP_TABLES, Addon, Dataclip

logger = get_logger(__name__)


class Database:
    """Synchronous database service for saved queries and add-ons.

    Read helpers return None or empty lists when a record is missing.
    Write helpers let SQLAlchemy errors propagate so callers can report
    them to the user.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None

    def startup(self) -> None:
        """Initialize database connection and create tables."""
        if self.engine is not None:
            return
        try:
            logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
            logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

            connect_args = {}
            if self.settings.database_url.startswith("sqlite"):
                connect_args["check_same_thread"] = False

            self.engine = create_engine(
                self.settings.database_url,
                echo=self.settings.database_echo,
                pool_pre_ping=True,
                connect_args=connect_args,
            )

            SQLModel.metadata.create_all(self.engine, tables=APP_TABLES)
            logger.info("Database initialized successfully")

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    def shutdown(self) -> None:
        """Close database connections."""
        if self.engine:
            self.engine.dispose()
            self.engine = None
            logger.info("Database connections closed")

    @contextmanager
    def get_session(self):
        """Get database session."""
        if self.engine is None:
            raise RuntimeError("Database not initialized")

        with Session(self.engine, expire_on_commit=False) as session:
            try:
                yield session
            except Exception:
                session.rollback()
                raise

    # ============================================================================
    # Dataclips
    # ============================================================================

    def create_dataclip(self, **fields: Any) -> Dataclip:
        """Insert a dataclip and return it."""
        dataclip = Dataclip(**fields)
        with self.get_session() as session:
            session.add(dataclip)
            session.commit()
            session.refresh(dataclip)
        logger.info("Created dataclip", slug=dataclip.slug)
        return dataclip

    def get_dataclip(self, slug: str) -> Optional[Dataclip]:
        with self.get_session() as session:
            return session.exec(select(Dataclip).where(Dataclip.slug == slug)).first()

    def list_dataclips(self) -> List[Dataclip]:
        with self.get_session() as session:
            return list(session.exec(select(Dataclip).order_by(Dataclip.created_at)).all())

    def slug_exists(self, slug: str) -> bool:
        return self.get_dataclip(slug) is not None

    def update_dataclip(self, slug: str, updates: Dict[str, Any]) -> Optional[Dataclip]:
        """Apply field updates to a dataclip. Returns None if it does not exist."""
        with self.get_session() as session:
            dataclip = session.exec(select(Dataclip).where(Dataclip.slug == slug)).first()
            if dataclip is None:
                return None

            for name, value in updates.items():
                setattr(dataclip, name, value)
            dataclip.updated_at = datetime.now(timezone.utc)

            session.add(dataclip)
            session.commit()
            session.refresh(dataclip)
            return dataclip

    def delete_dataclip(self, slug: str) -> bool:
        with self.get_session() as session:
            dataclip = session.exec(select(Dataclip).where(Dataclip.slug == slug)).first()
            if dataclip is None:
                return False
            session.delete(dataclip)
            session.commit()
            logger.info("Deleted dataclip", slug=slug)
            return True

    def delete_dataclips_by_creator(self, created_by: List[str]) -> int:
        with self.get_session() as session:
            dataclips = session.exec(select(Dataclip).where(Dataclip.created_by.in_(created_by))).all()
            for dataclip in dataclips:
                session.delete(dataclip)
            session.commit()
            return len(dataclips)

    def resolve_sql(self, identifier: str) -> Optional[str]:
        """SQL text of the dataclip with this slug, or None."""
        dataclip = self.get_dataclip(identifier)
        return dataclip.sql_query if dataclip else None

    # ============================================================================
    # Add-ons
    # ============================================================================

    def upsert_addon(self, uuid: str, name: str) -> Addon:
        """Insert an add-on or rename the existing one with the same UUID."""
        with self.get_session() as session:
            addon = session.exec(select(Addon).where(Addon.uuid == uuid)).first()
            if addon:
                addon.name = name
                addon.updated_at = datetime.now(timezone.utc)
            else:
                addon = Addon(uuid=uuid, name=name)
            session.add(addon)
            session.commit()
            session.refresh(addon)
            return addon

    def get_addon(self, uuid: str) -> Optional[Addon]:
        with self.get_session() as session:
            return session.exec(select(Addon).where(Addon.uuid == uuid)).first()

    def list_addons(self) -> List[Addon]:
        with self.get_session() as session:
            return list(session.exec(select(Addon).order_by(Addon.name)).all())

    def delete_addon(self, uuid: str) -> bool:
        with self.get_session() as session:
            addon = session.exec(select(Addon).where(Addon.uuid == uuid)).first()
            if addon is None:
                return False
            session.delete(addon)
            session.commit()
            return True

    def delete_addon_by_name(self, name: str) -> int:
        with self.get_session() as session:
            addons = session.exec(select(Addon).where(Addon.name == name)).all()
            for addon in addons:
                session.delete(addon)
            session.commit()
            return len(addons)

"""SQLModel database models and tables."""

import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field, Column, DateTime
from sqlalchemy import Text, func


TITLE_MAX_LENGTH = 255
SQL_QUERY_MAX_LENGTH = 10_000


class Dataclip(SQLModel, table=True):
    """A saved SQL query, addressed by its slug."""

    __tablename__ = "dataclips"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True, max_length=36)
    slug: str = Field(index=True, unique=True, max_length=64)
    title: str = Field(max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    sql_query: str = Field(sa_column=Column(Text, nullable=False))
    created_by: Optional[str] = Field(default=None, index=True, max_length=255)
    addon_id: Optional[str] = Field(default=None, index=True, max_length=64)
    addon_name: Optional[str] = Field(default=None, max_length=255)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )


class Addon(SQLModel, table=True):
    """A Heroku add-on (database) that dataclips can be associated with."""

    __tablename__ = "addons"

    id: Optional[int] = Field(default=None, primary_key=True)
    uuid: str = Field(index=True, unique=True, max_length=64)
    name: str = Field(index=True, max_length=255)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )


APP_TABLES = [Dataclip.__table__, Addon.__table__]

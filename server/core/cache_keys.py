"""Deterministic cache key derivation for query results and schemas.

Key formats:
    query:{content_hash}[:params:{parameters_hash}][:scope:{scope_label}]
    schema:{content_hash}

The content hash covers the normalized SQL text (trimmed, case-folded) or
the connection descriptor with its password removed, so rotating a
database password does not orphan cached schemas.
"""

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError


@dataclass(frozen=True)
class CacheKey:
    """A derived cache key plus the hashes it was built from."""
    value: str
    content_hash: str
    parameters_hash: Optional[str] = None
    scope_label: Optional[str] = None

    def __str__(self) -> str:
        return self.value


def normalize_sql(sql_text: str) -> str:
    """Trim and case-fold SQL text."""
    return (sql_text or "").strip().casefold()


def hash_content(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_parameters(parameters: Mapping[str, Any]) -> str:
    """Hash query parameters independent of key order."""
    # Canonical JSON (sorted keys, no extra whitespace)
    canonical = json.dumps(parameters, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def query_content_hash(sql_text: str) -> str:
    return hash_content(normalize_sql(sql_text))


def derive_query_key(
    sql_text: str,
    parameters: Optional[Mapping[str, Any]] = None,
    scope_label: Optional[str] = None,
) -> CacheKey:
    """Derive the query-result cache key for SQL text, parameters and scope."""
    content_hash = query_content_hash(sql_text)
    parts = [f"query:{content_hash}"]

    parameters_hash = None
    if parameters:
        parameters_hash = hash_parameters(parameters)
        parts.append(f"params:{parameters_hash}")

    if scope_label:
        parts.append(f"scope:{scope_label}")

    return CacheKey(
        value=":".join(parts),
        content_hash=content_hash,
        parameters_hash=parameters_hash,
        scope_label=scope_label or None,
    )


def strip_credentials(connection_descriptor: str) -> str:
    """Render a connection descriptor without its password."""
    descriptor = (connection_descriptor or "").strip()
    try:
        url = make_url(descriptor)
    except ArgumentError:
        return descriptor
    bare = URL.create(url.drivername, url.username, None, url.host, url.port, url.database, url.query)
    return bare.render_as_string(hide_password=False)


def connection_content_hash(connection_descriptor: str) -> str:
    return hash_content(strip_credentials(connection_descriptor))


def derive_connection_key(connection_descriptor: str) -> CacheKey:
    """Derive the schema cache key for a connection descriptor."""
    content_hash = connection_content_hash(connection_descriptor)
    return CacheKey(value=f"schema:{content_hash}", content_hash=content_hash)


def sanitize_descriptor(connection_descriptor: Optional[str]) -> str:
    """Mask the password of a connection descriptor for log output."""
    try:
        url = make_url((connection_descriptor or "").strip())
    except ArgumentError:
        return "database"
    if not url.drivername:
        return "database"
    return url.render_as_string(hide_password=True)

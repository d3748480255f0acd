"""Error taxonomy for dataclip execution and caching.

Only ValidationError is raised to callers. ExecutionError and CacheError
describe failures that are captured into structured results or logged.
"""


class DataclipsError(Exception):
    """Base class for application errors."""


class ValidationError(DataclipsError):
    """Malformed, empty or disallowed input, raised before any I/O."""


class ExecutionError(DataclipsError):
    """Database failure while running a query or introspecting a schema."""


class CacheError(DataclipsError):
    """Failure inside the cache store. Never surfaced to callers."""

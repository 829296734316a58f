"""Exceptions raised while loading documents."""
from typing import Optional


class Bulk2EsError(Exception):
    """Base class for every bulk2es failure."""


class ConfigError(Bulk2EsError):
    """Config file missing, unreadable or invalid."""


class SchemaError(Bulk2EsError):
    """Schema file missing or not JSON."""


class SinkError(Bulk2EsError):
    """An HTTP exchange with Elasticsearch failed. status is None for transport errors."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class BulkError(SinkError):
    """Bulk request answered with a non-2xx status."""


class InitError(Bulk2EsError):
    """Index existence probe or creation failed."""


class FileError(Bulk2EsError):
    """Input file cannot be opened."""


class DocumentError(Bulk2EsError):
    """Document line has no usable id."""


class RunError(Bulk2EsError):
    """Input directory is missing."""

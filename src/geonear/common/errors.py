"""Exception taxonomy shared by the indexer, ingestion and query layers."""

from __future__ import annotations


class GeoNearError(Exception):
    """Base class for every error raised by geonear."""


class IndexerError(GeoNearError, ValueError):
    """The cell indexer was handed input it cannot map."""


class InvalidCoordinate(IndexerError):
    pass


class InvalidResolution(IndexerError):
    pass


class InvalidRadius(IndexerError):
    pass


class InvalidCell(IndexerError):
    pass


class BadRequest(GeoNearError):
    """Malformed query input; maps to HTTP 400."""


class StorageError(GeoNearError):
    """The storage collaborator is unavailable or failing."""


class StorageTimeout(StorageError):
    pass


class StorageFault(StorageError):
    pass


class InternalError(GeoNearError):
    """Unexpected failure while serving a request; maps to HTTP 500."""

"""Stateless proximity lookups over the H3-indexed users table."""

from __future__ import annotations

import logging

from geonear.common.errors import BadRequest, IndexerError, InternalError, StorageError
from geonear.common.geo import CellIndexer, validate_coordinate
from geonear.common.models import NearbyResult
from geonear.storage.sink import StorageSink

logger = logging.getLogger(__name__)


class ProximityQueryService:
    """Returns every stored user inside the k-ring around a point.

    The result is the whole approximate disk, unordered and unranked.
    """

    def __init__(self, indexer: CellIndexer, sink: StorageSink, timeout: float = 10.0) -> None:
        self.indexer = indexer
        self.sink = sink
        self.timeout = timeout

    def find_nearby(self, latitude: object, longitude: object) -> NearbyResult:
        try:
            validate_coordinate(latitude, longitude)
            cells = self.indexer.search_cells(latitude, longitude)
        except IndexerError as exc:
            raise BadRequest(f"Invalid coordinates: {exc}") from exc

        try:
            users = self.sink.find_in_cells(cells, timeout=self.timeout)
        except StorageError as exc:
            logger.error("Nearby lookup failed for (%s, %s): %s", latitude, longitude, exc)
            raise InternalError("Database error") from exc

        logger.debug("Found %d users in %d cells around (%s, %s)", len(users), len(cells), latitude, longitude)
        return NearbyResult(users=tuple(users))

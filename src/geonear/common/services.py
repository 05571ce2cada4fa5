"""Wire config, indexer and storage together once per process."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from geonear.common.config import AppConfig
from geonear.common.errors import StorageError, StorageFault
from geonear.common.geo import CellIndexer
from geonear.storage.persistence import DuckDBPersistence
from geonear.storage.sink import StorageSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Services:
    """Handles shared read-only by the pipeline and every request."""

    config: AppConfig
    indexer: CellIndexer
    sink: StorageSink

    def close(self) -> None:
        self.sink.close()


def build_services(config: AppConfig) -> Services:
    """Open storage and confirm it answers.

    Raises StorageFault when the database cannot be reached; callers decide
    whether to retry or exit.
    """

    indexer = CellIndexer(config.index.resolution, config.index.neighborhood_k)
    sink = DuckDBPersistence.open(config.storage)
    try:
        sink.ping(timeout=config.storage.query_timeout_seconds)
    except StorageError as exc:
        sink.close()
        raise StorageFault(f"Storage did not answer ping: {exc}") from exc
    logger.info(
        "Services ready (resolution=%d, k=%d, ~%.1f km search reach)",
        indexer.resolution,
        indexer.k,
        indexer.approximate_radius_km,
    )
    return Services(config=config, indexer=indexer, sink=sink)

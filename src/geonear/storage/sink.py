"""Contract the ingestion pipeline and query service expect from storage."""

from __future__ import annotations

from typing import Iterable, List, Protocol, Sequence

from geonear.common.models import UserRecord


class StorageSink(Protocol):
    """Narrow insert/find surface over the users table.

    Every call is bounded by ``timeout`` seconds and raises ``StorageTimeout``
    when it expires; any other failure raises ``StorageFault``.
    """

    def insert_many(self, records: Sequence[UserRecord], timeout: float) -> None:
        """Bulk insert; any error means the whole batch is treated as failed."""

    def find_in_cells(self, cell_ids: Iterable[str], timeout: float) -> List[UserRecord]:
        """Every record whose cell id is in ``cell_ids``, unordered."""

    def create_index(self, timeout: float) -> None:
        """Create the secondary index on the cell id; safe to call repeatedly."""

    def ping(self, timeout: float) -> None:
        ...

    def close(self) -> None:
        ...

"""Persist user records in DuckDB and look them up by H3 cell."""

from __future__ import annotations

import logging
import re
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Sequence, TypeVar

import duckdb
import pandas as pd

from geonear.common.config import StorageConfig
from geonear.common.errors import StorageFault, StorageTimeout
from geonear.common.models import UserRecord

logger = logging.getLogger(__name__)

COLUMNS = ("id", "name", "email", "latitude", "longitude", "h3_id")
MEMORY_PATH = ":memory:"
_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

T = TypeVar("T")


class DuckDBPersistence:
    """StorageSink over a single DuckDB database shared by all threads.

    Apart from table creation every statement runs on its own cursor, so
    concurrent workers and requests never share statement state.
    """

    def __init__(self, connection: duckdb.DuckDBPyConnection, table: str = "users") -> None:
        if not _TABLE_NAME.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self.connection = connection
        self.table = table
        self.index_name = f"idx_{table}_h3_id"
        self._cursor_lock = threading.Lock()

    @classmethod
    def open(cls, config: StorageConfig) -> "DuckDBPersistence":
        """Connect and make sure the users table exists."""

        path = config.database_path
        if path != MEMORY_PATH:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        try:
            connection = duckdb.connect(path)
        except duckdb.Error as exc:
            raise StorageFault(f"Could not open DuckDB database at {path}: {exc}") from exc
        sink = cls(connection, table=config.table)
        try:
            sink._create_table()
        except duckdb.Error as exc:
            connection.close()
            raise StorageFault(f"Could not prepare table {config.table}: {exc}") from exc
        logger.info("Opened DuckDB storage at %s (table=%s)", path, config.table)
        return sink

    def _create_table(self) -> None:
        self.connection.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                id VARCHAR,
                name VARCHAR,
                email VARCHAR,
                latitude DOUBLE,
                longitude DOUBLE,
                h3_id VARCHAR
            )
            """
        )

    def insert_many(self, records: Sequence[UserRecord], timeout: float) -> None:
        if not records:
            return
        frame = pd.DataFrame.from_records([record.as_row() for record in records], columns=list(COLUMNS))
        columns = ", ".join(COLUMNS)

        def _insert(cursor: duckdb.DuckDBPyConnection) -> None:
            cursor.register("batch_frame", frame)
            try:
                cursor.execute(f"INSERT INTO {self.table} ({columns}) SELECT {columns} FROM batch_frame")
            finally:
                cursor.unregister("batch_frame")

        self._run_bounded(_insert, timeout, "insert")

    def find_in_cells(self, cell_ids: Iterable[str], timeout: float) -> List[UserRecord]:
        cells = sorted(set(cell_ids))
        if not cells:
            return []
        placeholders = ", ".join("?" for _ in cells)
        sql = f"SELECT {', '.join(COLUMNS)} FROM {self.table} WHERE h3_id IN ({placeholders})"

        def _find(cursor: duckdb.DuckDBPyConnection) -> List[tuple]:
            return cursor.execute(sql, cells).fetchall()

        rows = self._run_bounded(_find, timeout, "find")
        return [UserRecord.from_row(row) for row in rows]

    def create_index(self, timeout: float) -> None:
        def _index(cursor: duckdb.DuckDBPyConnection) -> None:
            cursor.execute(f"CREATE INDEX IF NOT EXISTS {self.index_name} ON {self.table} (h3_id)")

        self._run_bounded(_index, timeout, "create_index")

    def ping(self, timeout: float) -> None:
        self._run_bounded(lambda cursor: cursor.execute("SELECT 1").fetchone(), timeout, "ping")

    def count(self, timeout: float = 30.0) -> int:
        row = self._run_bounded(
            lambda cursor: cursor.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone(),
            timeout,
            "count",
        )
        return int(row[0])

    def close(self) -> None:
        self.connection.close()

    def _run_bounded(
        self,
        operation: Callable[[duckdb.DuckDBPyConnection], T],
        timeout: float,
        label: str,
    ) -> T:
        """Run ``operation`` on a fresh cursor, giving up after ``timeout`` seconds.

        On expiry the cursor is interrupted and StorageTimeout is raised; the
        helper thread closes the cursor once DuckDB returns control.
        """

        try:
            with self._cursor_lock:
                cursor = self.connection.cursor()
        except duckdb.Error as exc:
            raise StorageFault(f"{label}: could not open cursor: {exc}") from exc

        outcome: Dict[str, Any] = {}

        def _target() -> None:
            try:
                outcome["value"] = operation(cursor)
            except Exception as exc:
                outcome["error"] = exc
            finally:
                cursor.close()

        worker = threading.Thread(target=_target, name=f"duckdb-{label}", daemon=True)
        worker.start()
        worker.join(timeout)
        if worker.is_alive():
            try:
                cursor.interrupt()
            except duckdb.Error:
                logger.debug("Cursor for %s closed before it could be interrupted", label)
            raise StorageTimeout(f"{label} did not finish within {timeout:g}s")

        error = outcome.get("error")
        if isinstance(error, duckdb.Error):
            raise StorageFault(f"{label} failed: {error}") from error
        if error is not None:
            raise error
        return outcome.get("value")

import pytest

from geonear.common.config import StorageConfig
from geonear.common.errors import StorageFault, StorageTimeout
from geonear.common.geo import locate, neighborhood
from geonear.common.models import UserProfile, UserRecord
from geonear.common.services import build_services
from geonear.storage.persistence import DuckDBPersistence


def _record(identifier: str, lat: float, lng: float) -> UserRecord:
    profile = UserProfile(name=f"user-{identifier}", email=f"{identifier}@example.com", latitude=lat, longitude=lng)
    return UserRecord.from_profile(profile, 8, identifier)


def test_insert_and_find_by_cells(sink):
    records = [_record("1", 23.0, 90.0), _record("2", 23.0, 90.0001), _record("3", 50.0, 10.0)]
    sink.insert_many(records, timeout=5)

    found = sink.find_in_cells(neighborhood(locate(23.0, 90.0, 8), 1), timeout=5)

    assert {record.identifier for record in found} == {"1", "2"}
    assert sink.count() == 3
    assert found[0] in records


def test_find_with_no_cells_returns_empty(sink):
    sink.insert_many([_record("1", 10.0, 10.0)], timeout=5)
    assert sink.find_in_cells([], timeout=5) == []
    assert sink.find_in_cells(["8828308281fffff"], timeout=5) == []


def test_empty_insert_is_a_noop(sink):
    sink.insert_many([], timeout=5)
    assert sink.count() == 0


def test_create_index_is_idempotent(sink):
    sink.insert_many([_record("1", 10.0, 10.0)], timeout=5)
    sink.create_index(timeout=5)
    sink.create_index(timeout=5)
    assert len(sink.find_in_cells([locate(10.0, 10.0, 8)], timeout=5)) == 1


def test_file_backed_storage_persists_between_opens(tmp_path):
    config = StorageConfig(database_path=str(tmp_path / "nested" / "geo.duckdb"))
    sink = DuckDBPersistence.open(config)
    sink.insert_many([_record("1", 1.0, 1.0)], timeout=5)
    sink.close()

    reopened = DuckDBPersistence.open(config)
    try:
        assert reopened.count() == 1
    finally:
        reopened.close()


def test_statement_errors_become_storage_faults(sink):
    with pytest.raises(StorageFault):
        sink._run_bounded(lambda cursor: cursor.execute("SELECT * FROM missing_table"), 5, "broken")


def test_slow_statement_times_out(sink):
    slow = "SELECT SUM(t1.range * 2) FROM range(10000000000) t1"
    with pytest.raises(StorageTimeout):
        sink._run_bounded(lambda cursor: cursor.execute(slow).fetchone(), 0.05, "slow")


def test_rejects_unsafe_table_names():
    with pytest.raises(ValueError):
        DuckDBPersistence(connection=None, table="users; DROP TABLE users")


def test_build_services_opens_and_pings(config):
    services = build_services(config)
    try:
        assert services.indexer.resolution == config.index.resolution
        services.sink.ping(timeout=5)
    finally:
        services.close()


def test_rows_read_back_keep_derived_cell_ids(sink):
    sink.insert_many([_record("1", -33.8688, 151.2093), _record("2", 64.1466, -21.9426)], timeout=5)

    cells = [locate(-33.8688, 151.2093, 8), locate(64.1466, -21.9426, 8)]
    for record in sink.find_in_cells(cells, timeout=5):
        assert record.cell_id == locate(record.latitude, record.longitude, 8)

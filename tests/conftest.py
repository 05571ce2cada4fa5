import sys
from pathlib import Path

import pytest

# Ensure the `geonear` package under src/ is importable in tests.
SRC_ROOT = Path(__file__).resolve().parent.parent / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from geonear.common.config import AppConfig, IngestConfig, StorageConfig
from geonear.common.geo import CellIndexer
from geonear.common.services import Services
from geonear.storage.persistence import DuckDBPersistence


@pytest.fixture
def config():
    return AppConfig(
        storage=StorageConfig(database_path=":memory:"),
        ingest=IngestConfig(
            total_records=1_000,
            workers=4,
            batch_size=50,
            progress_interval=100,
            max_retries=2,
            retry_backoff_seconds=0.0,
            dead_letter_limit=5,
            sample_pool_size=100,
        ),
    )


@pytest.fixture
def sink(config):
    sink = DuckDBPersistence.open(config.storage)
    yield sink
    sink.close()


@pytest.fixture
def services(config, sink):
    return Services(
        config=config,
        indexer=CellIndexer(config.index.resolution, config.index.neighborhood_k),
        sink=sink,
    )

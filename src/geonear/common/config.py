"""Configuration helpers for the geonear loader and API."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional, Tuple

import yaml

from .geo import MAX_RESOLUTION, MIN_RESOLUTION


@dataclass(frozen=True)
class StorageConfig:
    """DuckDB file backing the users table."""

    database_path: str = "./data/geonear.duckdb"
    table: str = "users"
    insert_timeout_seconds: float = 30.0
    index_timeout_seconds: float = 600.0
    query_timeout_seconds: float = 10.0


@dataclass(frozen=True)
class IndexConfig:
    """H3 resolution and search ring radius; tune them together."""

    resolution: int = 8
    neighborhood_k: int = 5


@dataclass(frozen=True)
class BoundsConfig:
    """Bounding box synthetic points are sampled from."""

    min_lat: float = -90.0
    max_lat: float = 90.0
    min_lng: float = -180.0
    max_lng: float = 180.0


@dataclass(frozen=True)
class IngestConfig:
    """Bulk-load sizing, batching and failure policy."""

    total_records: int = 200_000_000
    workers: Optional[int] = None
    worker_multiplier: int = 4
    batch_size: int = 10_000
    progress_interval: int = 1_000_000
    max_retries: int = 2
    retry_backoff_seconds: float = 0.5
    dead_letter_limit: int = 10
    sample_pool_size: int = 10_000


@dataclass(frozen=True)
class ApiConfig:
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: Tuple[str, ...] = ("*",)


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class AppConfig:
    """Aggregated configuration model."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    index: IndexConfig = field(default_factory=IndexConfig)
    bounds: BoundsConfig = field(default_factory=BoundsConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: str | Path | None = None) -> AppConfig:
    """Parse a YAML config file into an AppConfig dataclass.

    With no path, defaults are used. Environment overrides are applied last.
    """

    raw = _load_yaml(path) if path is not None else {}
    storage_cfg = raw.get("storage", {})
    index_cfg = raw.get("index", {})
    bounds_cfg = raw.get("bounds", {})
    ingest_cfg = raw.get("ingest", {})
    api_cfg = raw.get("api", {})
    logging_cfg = raw.get("logging", {})

    storage = StorageConfig(
        database_path=str(storage_cfg.get("database_path", "./data/geonear.duckdb")),
        table=str(storage_cfg.get("table", "users")),
        insert_timeout_seconds=float(storage_cfg.get("insert_timeout_seconds", 30.0)),
        index_timeout_seconds=float(storage_cfg.get("index_timeout_seconds", 600.0)),
        query_timeout_seconds=float(storage_cfg.get("query_timeout_seconds", 10.0)),
    )
    index = IndexConfig(
        resolution=int(index_cfg.get("resolution", 8)),
        neighborhood_k=int(index_cfg.get("neighborhood_k", 5)),
    )
    bounds = BoundsConfig(
        min_lat=float(bounds_cfg.get("min_lat", -90.0)),
        max_lat=float(bounds_cfg.get("max_lat", 90.0)),
        min_lng=float(bounds_cfg.get("min_lng", -180.0)),
        max_lng=float(bounds_cfg.get("max_lng", 180.0)),
    )
    workers = ingest_cfg.get("workers")
    ingest = IngestConfig(
        total_records=int(ingest_cfg.get("total_records", 200_000_000)),
        workers=int(workers) if workers is not None else None,
        worker_multiplier=int(ingest_cfg.get("worker_multiplier", 4)),
        batch_size=int(ingest_cfg.get("batch_size", 10_000)),
        progress_interval=int(ingest_cfg.get("progress_interval", 1_000_000)),
        max_retries=int(ingest_cfg.get("max_retries", 2)),
        retry_backoff_seconds=float(ingest_cfg.get("retry_backoff_seconds", 0.5)),
        dead_letter_limit=int(ingest_cfg.get("dead_letter_limit", 10)),
        sample_pool_size=int(ingest_cfg.get("sample_pool_size", 10_000)),
    )
    api = ApiConfig(
        host=str(api_cfg.get("host", "0.0.0.0")),
        port=int(api_cfg.get("port", 8080)),
        cors_origins=tuple(str(origin) for origin in api_cfg.get("cors_origins", ["*"])),
    )
    logging_settings = LoggingConfig(level=str(logging_cfg.get("level", "INFO")))

    config = _apply_env_overrides(
        AppConfig(
            storage=storage,
            index=index,
            bounds=bounds,
            ingest=ingest,
            api=api,
            logging=logging_settings,
        )
    )
    validate_config(config)
    return config


def validate_config(config: AppConfig) -> None:
    index = config.index
    if not MIN_RESOLUTION <= index.resolution <= MAX_RESOLUTION:
        raise ValueError(f"index.resolution must be in [{MIN_RESOLUTION}, {MAX_RESOLUTION}].")
    if index.neighborhood_k < 0:
        raise ValueError("index.neighborhood_k must be >= 0.")

    bounds = config.bounds
    if not -90.0 <= bounds.min_lat <= bounds.max_lat <= 90.0:
        raise ValueError("bounds latitude range must satisfy -90 <= min_lat <= max_lat <= 90.")
    if not -180.0 <= bounds.min_lng <= bounds.max_lng <= 180.0:
        raise ValueError("bounds longitude range must satisfy -180 <= min_lng <= max_lng <= 180.")

    ingest = config.ingest
    if ingest.total_records < 0:
        raise ValueError("ingest.total_records must be >= 0.")
    if ingest.workers is not None and ingest.workers < 1:
        raise ValueError("ingest.workers must be >= 1 when set.")
    if ingest.worker_multiplier < 1:
        raise ValueError("ingest.worker_multiplier must be >= 1.")
    if ingest.batch_size < 1:
        raise ValueError("ingest.batch_size must be >= 1.")
    if ingest.progress_interval < 1:
        raise ValueError("ingest.progress_interval must be >= 1.")
    if ingest.max_retries < 0 or ingest.dead_letter_limit < 0:
        raise ValueError("ingest.max_retries and ingest.dead_letter_limit must be >= 0.")
    if ingest.sample_pool_size < 1:
        raise ValueError("ingest.sample_pool_size must be >= 1.")


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    db_path = os.getenv("GEONEAR_DB_PATH")
    if db_path:
        config = replace(config, storage=replace(config.storage, database_path=db_path))
    log_level = os.getenv("GEONEAR_LOG_LEVEL")
    if log_level:
        config = replace(config, logging=LoggingConfig(level=log_level.strip()))
    raw_cors = os.getenv("GEONEAR_CORS_ORIGINS")
    if raw_cors:
        origins = tuple(origin.strip() for origin in raw_cors.split(",") if origin.strip())
        if origins:
            config = replace(config, api=replace(config.api, cors_origins=origins))
    return config


def _load_yaml(path: str | Path) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a top-level mapping.")
    return data

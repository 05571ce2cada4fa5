"""Entry point for the synthetic bulk-load job."""

from __future__ import annotations

import argparse
import logging
from dataclasses import replace

from geonear.common.config import load_config
from geonear.common.errors import StorageError
from geonear.common.logging import setup_logging
from geonear.common.services import build_services
from geonear.ingest.pipeline import IngestionPipeline, fixed_seed, wall_clock_seed

logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate synthetic users and bulk-load them into storage.")
    parser.add_argument("--config", default="config/local.yaml", help="Path to YAML config.")
    parser.add_argument("--total", type=int, help="Override ingest.total_records.")
    parser.add_argument("--workers", type=int, help="Override the worker count.")
    parser.add_argument("--seed", type=int, help="Base seed for reproducible runs.")
    args = parser.parse_args()

    config = load_config(args.config)
    if args.workers is not None:
        if args.workers < 1:
            parser.error("--workers must be >= 1")
        config = replace(config, ingest=replace(config.ingest, workers=args.workers))
    setup_logging(config.logging.level)

    try:
        services = build_services(config)
    except StorageError as exc:
        logger.error("Cannot start bulk load: %s", exc)
        raise SystemExit(1) from exc

    try:
        pipeline = IngestionPipeline(
            services.sink,
            config,
            seed_for=fixed_seed(args.seed) if args.seed is not None else wall_clock_seed,
        )
        report = pipeline.run(args.total)
        logger.info(
            "Inserted %d/%d records (%d dropped, %d skipped) at %.0f records/second",
            report.inserted,
            report.requested,
            report.dropped,
            report.skipped,
            report.rate,
        )
        if not report.index_created:
            raise SystemExit(2)
    finally:
        services.close()


if __name__ == "__main__":
    main()

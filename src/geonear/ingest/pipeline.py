"""Concurrent bulk loader that writes located user records to storage."""

from __future__ import annotations

import logging
import os
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from geonear.common.config import AppConfig, IngestConfig
from geonear.common.errors import IndexerError, StorageError
from geonear.common.models import IngestionReport, ProgressEvent, UserProfile, UserRecord
from geonear.ingest.sources import (
    SamplePools,
    StaticProfileSource,
    SyntheticProfileSource,
    random_identifier,
)
from geonear.storage.sink import StorageSink

logger = logging.getLogger(__name__)

SeedStrategy = Callable[[int], int]
ProgressCallback = Callable[[ProgressEvent], None]


class ProfileSource(Protocol):
    def stream(self, rng: random.Random, count: int): ...


def wall_clock_seed(worker_id: int) -> int:
    return time.time_ns() + worker_id


def fixed_seed(base: int) -> SeedStrategy:
    """Reproducible per-worker seeds: ``base + worker_id``."""

    return lambda worker_id: base + worker_id


def resolve_worker_count(ingest: IngestConfig) -> int:
    if ingest.workers is not None:
        return ingest.workers
    return (os.cpu_count() or 1) * ingest.worker_multiplier


def partition(total: int, workers: int) -> List[int]:
    """Split ``total`` into ``workers`` shares that differ by at most one."""

    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")
    if total < 0:
        raise ValueError(f"total must be >= 0, got {total}")
    base, remainder = divmod(total, workers)
    return [base + 1 if idx < remainder else base for idx in range(workers)]


class AtomicCounter:
    """Monotonic integer shared between worker threads."""

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def add(self, amount: int) -> int:
        """Add ``amount`` and return the post-increment value."""

        if amount < 0:
            raise ValueError("AtomicCounter only moves forward.")
        with self._lock:
            self._value += amount
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


class IngestionPipeline:
    """Partition a record count across a thread pool and flush batches to a sink.

    Each worker owns its random generator, its batch and nothing else; the
    only shared mutable state is a handful of counters and the dead-letter
    buffer, all guarded by locks. The insert counter only advances for
    batches the sink confirmed.
    """

    def __init__(
        self,
        sink: StorageSink,
        config: AppConfig,
        *,
        pools: Optional[SamplePools] = None,
        seed_for: SeedStrategy = wall_clock_seed,
        on_progress: Optional[ProgressCallback] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.sink = sink
        self.config = config
        self.ingest = config.ingest
        self.resolution = config.index.resolution
        self.workers = resolve_worker_count(config.ingest)
        self.pools = pools
        self.seed_for = seed_for
        self.on_progress = on_progress
        self._sleep = sleep

        self._inserted = AtomicCounter()
        self._dropped = AtomicCounter()
        self._skipped = AtomicCounter()
        self._dead_letters: List[Tuple[UserRecord, ...]] = []
        self._dead_letter_lock = threading.Lock()
        self._requested = 0

    @property
    def inserted_count(self) -> int:
        return self._inserted.value

    @property
    def dropped_count(self) -> int:
        return self._dropped.value

    @property
    def skipped_count(self) -> int:
        return self._skipped.value

    @property
    def dead_letters(self) -> Tuple[Tuple[UserRecord, ...], ...]:
        with self._dead_letter_lock:
            return tuple(self._dead_letters)

    def run(self, total: Optional[int] = None) -> IngestionReport:
        """Generate ``total`` synthetic records (config default) and load them."""

        total = self.ingest.total_records if total is None else total
        if self.pools is None:
            self.pools = SamplePools.generate(self.ingest.sample_pool_size)
        source = SyntheticProfileSource(self.config.bounds, self.pools)
        shares = partition(total, self.workers)
        return self._execute([(source, count) for count in shares], total)

    def load_profiles(self, profiles: Sequence[UserProfile]) -> IngestionReport:
        """Load caller-supplied profiles, split into contiguous per-worker slices."""

        shares = partition(len(profiles), self.workers)
        assignments = []
        start = 0
        for count in shares:
            assignments.append((StaticProfileSource(profiles[start : start + count]), count))
            start += count
        return self._execute(assignments, len(profiles))

    def _execute(self, assignments: List[Tuple[ProfileSource, int]], requested: int) -> IngestionReport:
        self._reset(requested)
        logger.info(
            "Starting to insert %d records using %d workers (batch_size=%d)",
            requested,
            len(assignments),
            self.ingest.batch_size,
        )
        started = time.perf_counter()
        with ThreadPoolExecutor(max_workers=len(assignments), thread_name_prefix="ingest") as pool:
            futures = [
                pool.submit(self._run_worker, worker_id, source, count)
                for worker_id, (source, count) in enumerate(assignments)
            ]
            wait(futures)
        for future in futures:
            future.result()
        duration = time.perf_counter() - started

        inserted = self.inserted_count
        rate = inserted / duration if duration > 0 else 0.0
        logger.info("Completed inserting %d records in %.2fs (%.0f records/second)", inserted, duration, rate)
        if self.dropped_count:
            logger.warning("Dropped %d records after exhausting retries", self.dropped_count)
        if self.skipped_count:
            logger.warning("Skipped %d profiles that could not be located", self.skipped_count)

        index_created = self._create_index()
        return IngestionReport(
            requested=requested,
            inserted=inserted,
            dropped=self.dropped_count,
            skipped=self.skipped_count,
            workers=len(assignments),
            duration_seconds=duration,
            index_created=index_created,
        )

    def _reset(self, requested: int) -> None:
        """Counters, dead letters and progress milestones are scoped to one run."""

        self._requested = requested
        self._inserted = AtomicCounter()
        self._dropped = AtomicCounter()
        self._skipped = AtomicCounter()
        with self._dead_letter_lock:
            self._dead_letters = []

    def _run_worker(self, worker_id: int, source: ProfileSource, count: int) -> None:
        rng = random.Random(self.seed_for(worker_id))
        batch_size = self.ingest.batch_size
        batch: List[UserRecord] = []

        for profile in source.stream(rng, count):
            try:
                record = UserRecord.from_profile(profile, self.resolution, random_identifier(rng))
            except IndexerError as exc:
                self._skipped.add(1)
                logger.debug("Worker %d: skipping profile: %s", worker_id, exc)
                continue
            batch.append(record)
            if len(batch) >= batch_size:
                self._flush(worker_id, batch)
                batch = []

        if batch:
            self._flush(worker_id, batch)

    def _flush(self, worker_id: int, batch: List[UserRecord]) -> None:
        attempts = self.ingest.max_retries + 1
        timeout = self.config.storage.insert_timeout_seconds
        for attempt in range(attempts):
            try:
                self.sink.insert_many(batch, timeout=timeout)
            except StorageError as exc:
                if attempt + 1 < attempts:
                    delay = self.ingest.retry_backoff_seconds * (2 ** attempt)
                    logger.warning(
                        "Worker %d: insert error (%s), retry %d/%d in %.2fs",
                        worker_id,
                        exc,
                        attempt + 1,
                        attempts - 1,
                        delay,
                    )
                    self._sleep(delay)
                    continue
                logger.error(
                    "Worker %d: dropping batch of %d records after %d attempts: %s",
                    worker_id,
                    len(batch),
                    attempts,
                    exc,
                )
                self._dead_letter(batch)
                return
            self._record_progress(len(batch))
            return

    def _dead_letter(self, batch: List[UserRecord]) -> None:
        self._dropped.add(len(batch))
        with self._dead_letter_lock:
            if len(self._dead_letters) < self.ingest.dead_letter_limit:
                self._dead_letters.append(tuple(batch))

    def _record_progress(self, amount: int) -> None:
        current = self._inserted.add(amount)
        previous = current - amount
        interval = self.ingest.progress_interval
        for step in range(previous // interval + 1, current // interval + 1):
            event = ProgressEvent(milestone=step * interval, inserted=current, total=self._requested)
            logger.info("Inserted %d records (%.2f%% complete)", event.milestone, event.percent)
            if self.on_progress is not None:
                self.on_progress(event)

    def _create_index(self) -> bool:
        logger.info("Creating index on h3_id...")
        try:
            self.sink.create_index(timeout=self.config.storage.index_timeout_seconds)
        except StorageError as exc:
            logger.error("Failed to create index on h3_id: %s", exc)
            return False
        logger.info("Successfully created index on h3_id.")
        return True

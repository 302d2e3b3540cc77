"""Budgeted pruning run over all eligible tables.

The scheduler picks tables in random order, so repeated runs that hit their
time budget do not keep favouring the same tables. For each table it:

1. skips the table if it was pruned less than ``reaggregate_interval`` ago
   or no rule applies to it,
2. makes sure the (dtime, id) index exists,
3. applies the table's rules oldest first and records the prune time, all
   inside one transaction: drop rules delete everything older than their age,
   reduce rules downsample the window between the previous rule's cutoff and
   their own,
4. optimizes the table; a failure here does not undo the committed writes.

The budget is only checked between tables; a table that has been started is
always finished.

Example:
    >>> from tsprune import PruneConfig, PruneScheduler
    >>> scheduler = PruneScheduler(store, config)
    >>> result = scheduler.run()
    >>> print(f"Deleted {result.tally.deletes} rows")
"""

from __future__ import annotations

import logging
import random
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Sequence

from tsprune.base import (
    ConfigurationError,
    IndexCreationConflict,
    OperationKind,
    PlannedOperation,
    Reduction,
    RunResult,
    StorageOperationError,
    TableResult,
    Tally,
)
from tsprune.backends import create_store
from tsprune.backends.base import SampleStore
from tsprune.config import PruneConfig
from tsprune.durations import ago, format_duration, to_epoch
from tsprune.reduction import Reducer
from tsprune.rules import Drop, Reduce, Rule, matches_any
from tsprune.tracker import PruneTracker

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_Applied = tuple[Tally, list[PlannedOperation]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _RemainingTables:
    """Tables not yet claimed by a worker."""

    def __init__(self, tables: Sequence[str], rng: random.Random) -> None:
        self._tables = list(tables)
        self._rng = rng
        self._lock = threading.Lock()

    def claim(self) -> str | None:
        """Remove and return a random table, or None when exhausted."""
        with self._lock:
            if not self._tables:
                return None
            return self._tables.pop(self._rng.randrange(len(self._tables)))

    def drain(self) -> list[str]:
        with self._lock:
            tables, self._tables = sorted(self._tables), []
            return tables


class PruneScheduler:
    """Runs retention rules over every eligible table within a time budget."""

    def __init__(
        self,
        store: SampleStore | None,
        config: PruneConfig,
        rng: random.Random | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Storage backend holding the sample tables.
            config: Run configuration.
            rng: Source of randomness for table order and classification;
                seeded from ``config.seed`` when omitted.
            clock: Returns the current time as an aware datetime.

        Raises:
            ConfigurationError: If no store is given.
        """
        if store is None:
            raise ConfigurationError("No storage target configured")
        self.store = store
        self.config = config
        self._rng = rng or random.Random(config.seed)
        self._clock = clock or utcnow
        self.tracker = PruneTracker(store, config.reaggregate_interval)
        self.reducer = Reducer(always_gauge=config.always_gauge, rng=self._rng)

    # -------------------------------------------------------------------------
    # Table Selection
    # -------------------------------------------------------------------------

    def is_excluded(self, table: str) -> bool:
        return matches_any(self.config.excludes, table)

    def eligible_tables(self) -> list[str]:
        """All tables in the store minus the excluded ones."""
        return [t for t in self.store.list_tables() if not self.is_excluded(t)]

    def needs_pruning(self, table: str, now: datetime | None = None) -> bool:
        """Check if ``table`` is stale and has at least one applicable rule."""
        now = now or self._clock()
        if self.tracker.is_fresh(table, now):
            return False
        return bool(self.config.rules.resolve(table))

    # -------------------------------------------------------------------------
    # Run Loop
    # -------------------------------------------------------------------------

    def run(self) -> RunResult:
        """Prune tables until all are done or the run limit is reached.

        Returns:
            Summary of processed, skipped and unvisited tables.

        Raises:
            StorageConnectionError: If the store becomes unreachable.
        """
        self.store.initialize()
        started = self._clock()
        result = RunResult(start_time=started, dry_run=self.config.dry_run)

        tables = self.eligible_tables()
        logger.info(f"{len(tables)} tables eligible for pruning")
        remaining = _RemainingTables(tables, self._rng)
        stop = threading.Event()

        if self.config.workers == 1:
            self._work(remaining, started, result, stop)
        else:
            with ThreadPoolExecutor(
                max_workers=self.config.workers, thread_name_prefix="tsprune"
            ) as pool:
                futures = [
                    pool.submit(self._work, remaining, started, result, stop)
                    for _ in range(self.config.workers)
                ]
                for future in futures:
                    future.result()

        result.remaining = remaining.drain()
        result.budget_exhausted = bool(result.remaining)
        result.end_time = self._clock()

        if result.budget_exhausted:
            logger.info(
                f"Run limit reached, {len(result.remaining)} tables left for next run"
            )
        return result

    def _budget_spent(self, started: datetime) -> bool:
        limit = self.config.run_limit
        return limit is not None and self._clock() - started >= limit

    def _work(
        self,
        remaining: _RemainingTables,
        started: datetime,
        result: RunResult,
        stop: threading.Event,
    ) -> None:
        while not stop.is_set() and not self._budget_spent(started):
            table = remaining.claim()
            if table is None:
                return
            try:
                table_result = self._process(table)
            except BaseException:
                stop.set()
                raise
            if table_result is None:
                result.skipped.append(table)
            else:
                result.processed.append(table_result)

    # -------------------------------------------------------------------------
    # Per-table Processing
    # -------------------------------------------------------------------------

    def _process(self, table: str) -> TableResult | None:
        """Prune one table; None if it was skipped.

        Writes and the prune time commit together. A failure before the
        commit rolls the table back and is recorded in ``error``; a failed
        optimize after the commit only sets ``optimize_error``.
        """
        now = self._clock()
        try:
            fresh = self.tracker.is_fresh(table, now)
        except StorageOperationError as e:
            logger.error(f"Cannot read prune time of {table}, skipping it: {e}")
            return TableResult(table, error=str(e))
        if fresh:
            logger.debug(f"Skipping {table}: pruned recently")
            return None

        rules = self.config.rules.resolve(table)
        if not rules:
            logger.debug(f"Skipping {table}: no rules apply")
            return None

        logger.info(f"Looking at {table}")
        for conflict in self.config.rules.conflicts(table):
            logger.warning(f"Conflicting retention rules for {conflict}")

        table_result = TableResult(table)
        try:
            self._create_indexes(table)
            if self.config.dry_run:
                tally, operations = self._apply_rules(table, rules, now)
            else:
                with self.store.transaction(table):
                    tally, operations = self._apply_rules(table, rules, now)
                    self.tracker.mark_pruned(table, now)
        except StorageOperationError as e:
            logger.error(f"Pruning {table} failed and was rolled back: {e}")
            table_result.error = str(e)
            return table_result

        table_result.tally = tally
        table_result.operations = operations
        table_result.rules_applied = len(rules)
        self._log_tally(tally)

        try:
            self._optimize(table)
        except StorageOperationError as e:
            logger.warning(f"Pruned {table}, but optimizing it failed: {e}")
            table_result.optimize_error = str(e)
        return table_result

    def _apply_rules(
        self, table: str, rules: Sequence[Rule], now: datetime
    ) -> _Applied:
        tally = Tally()
        operations: list[PlannedOperation] = []
        previous_end = 0
        for rule in rules:
            end_time = to_epoch(ago(rule.age, now))
            if isinstance(rule.action, Drop):
                applied = self._drop_older(table, end_time)
            else:
                applied = self._reduce(table, previous_end, end_time, rule.action)
            tally += applied[0]
            operations.extend(applied[1])
            previous_end = end_time
        return tally, operations

    def _drop_older(self, table: str, end_time: int) -> _Applied:
        if self.config.dry_run:
            operation = PlannedOperation(
                OperationKind.DELETE_RANGE, table, end_time=end_time
            )
            logger.info(operation.describe())
            return Tally(), [operation]
        deleted = self.store.delete_range(table, end_time)
        return Tally(deletes=deleted, delete_queries=1), []

    def _reduce(
        self, table: str, start_time: int, end_time: int, action: Reduce
    ) -> _Applied:
        logger.debug(
            f"  Reducing {table} between {start_time} and {end_time} "
            f"to {format_duration(action.interval)}"
        )
        tally = Tally()
        operations: list[PlannedOperation] = []
        for series_id in self.store.list_series_ids(table):
            samples = self.store.read_samples(table, series_id, start_time, end_time)
            reductions = self.reducer.reduce(samples, action.interval, table)
            applied = self._apply_reductions(table, series_id, reductions)
            tally += applied[0]
            operations.extend(applied[1])
        return tally, operations

    def _apply_reductions(
        self, table: str, series_id: int, reductions: Sequence[Reduction]
    ) -> _Applied:
        tally = Tally()
        operations: list[PlannedOperation] = []
        for reduction in reductions:
            if self.config.dry_run:
                planned = [
                    PlannedOperation(
                        OperationKind.DELETE,
                        table,
                        series_id=series_id,
                        timestamps=reduction.delete_set,
                    ),
                    PlannedOperation(
                        OperationKind.INSERT,
                        table,
                        series_id=series_id,
                        summary=reduction.summary,
                    ),
                ]
                for operation in planned:
                    logger.info(operation.describe())
                operations.extend(planned)
                continue

            deleted = self.store.delete_samples(table, series_id, reduction.delete_set)
            inserted = self.store.insert_summary(table, series_id, reduction.summary)
            tally += Tally(
                inserts=inserted,
                deletes=deleted,
                insert_queries=1,
                delete_queries=1,
            )
        return tally, operations

    def _create_indexes(self, table: str) -> None:
        if not self.config.index or self.config.dry_run:
            return
        try:
            self.store.ensure_indexes(table)
        except IndexCreationConflict as e:
            logger.debug(f"  {e}")

    def _optimize(self, table: str) -> None:
        if not self.config.optimize or self.config.dry_run:
            return
        self.store.optimize(table)
        logger.info("  Optimized table.")

    def _log_tally(self, tally: Tally) -> None:
        if tally.inserts > 0:
            logger.info(f"  Inserted {tally.inserts} rows (individually).")
        if tally.deletes > 0:
            logger.info(
                f"  Deleted {tally.deletes} rows in {tally.delete_queries} queries "
                f"(about {tally.rows_per_delete} rows/q)"
            )


def prune(config: PruneConfig, store: SampleStore | None = None) -> RunResult:
    """Run a complete pruning pass.

    Args:
        config: Run configuration.
        store: Storage backend; built from ``config.database_url`` if omitted.

    Returns:
        Result of the run.

    Raises:
        ConfigurationError: If neither a store nor a database is configured.
        StorageConnectionError: If the store is unreachable.
    """
    if store is not None:
        return PruneScheduler(store, config).run()
    with create_store(config) as owned:
        return PruneScheduler(owned, config).run()

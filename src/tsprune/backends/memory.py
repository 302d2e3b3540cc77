"""In-memory sample store.

Keeps every table in dictionaries. Useful for testing and for trying rule
sets without a database. Data is not persisted between sessions.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from copy import deepcopy
from datetime import datetime
from typing import Iterable, Iterator

from tsprune.base import (
    IndexCreationConflict,
    PruneRecord,
    Sample,
    StorageOperationError,
    SummaryRow,
)
from tsprune.backends.base import SampleStore

# table -> series id -> timestamp -> (counter, rate)
TableData = dict[int, dict[int, tuple[int, int]]]


class InMemorySampleStore(SampleStore):
    """In-memory sample store.

    Example:
        >>> store = InMemorySampleStore()
        >>> store.add_samples("ifInOctets_252", 42, samples)
        >>> store.read_samples("ifInOctets_252", 42, 0, 2_000_000_000)
    """

    def __init__(self, pruned_table: str = "pruned") -> None:
        """Initialize the memory store.

        Args:
            pruned_table: Name reported for the bookkeeping table.
        """
        super().__init__()
        self.pruned_table = pruned_table
        self._tables: dict[str, TableData] = {}
        self._pruned: dict[str, datetime] = {}
        self._indexes: set[str] = set()
        self._optimized: list[str] = []
        self._lock = threading.RLock()

    def _do_initialize(self) -> None:
        """Initialize the store (no-op for memory store)."""
        pass

    # -------------------------------------------------------------------------
    # Setup Helpers
    # -------------------------------------------------------------------------

    def create_table(self, table: str) -> None:
        with self._lock:
            self._tables.setdefault(table, {})

    def add_samples(self, table: str, series_id: int, samples: Iterable[Sample]) -> None:
        """Load samples into a table, creating it if needed."""
        with self._lock:
            series = self._tables.setdefault(table, {}).setdefault(series_id, {})
            for sample in samples:
                series[sample.timestamp] = (sample.counter, sample.rate)

    def all_samples(self, table: str, series_id: int) -> list[Sample]:
        """Every stored sample of a series, ordered by timestamp."""
        return self.read_samples(table, series_id, -(2**63), 2**63 - 1)

    @property
    def optimized_tables(self) -> list[str]:
        return list(self._optimized)

    # -------------------------------------------------------------------------
    # SampleStore Interface
    # -------------------------------------------------------------------------

    def list_tables(self) -> list[str]:
        self.initialize()
        with self._lock:
            return sorted(self._tables) + [self.pruned_table]

    def list_series_ids(self, table: str) -> list[int]:
        with self._lock:
            return sorted(self._table(table, "SELECT"))

    def read_samples(
        self, table: str, series_id: int, start_time: int, end_time: int
    ) -> list[Sample]:
        with self._lock:
            series = self._table(table, "SELECT").get(series_id, {})
            return [
                Sample(ts, counter, rate)
                for ts, (counter, rate) in sorted(series.items())
                if start_time <= ts <= end_time
            ]

    def delete_samples(
        self, table: str, series_id: int, timestamps: Iterable[int]
    ) -> int:
        with self._lock:
            series = self._table(table, "DELETE").get(series_id, {})
            deleted = 0
            for ts in set(timestamps):
                if series.pop(ts, None) is not None:
                    deleted += 1
            return deleted

    def insert_summary(self, table: str, series_id: int, row: SummaryRow) -> int:
        with self._lock:
            series = self._table(table, "INSERT").setdefault(series_id, {})
            if row.timestamp in series:
                raise StorageOperationError(
                    table, "INSERT", f"duplicate row at {row.timestamp}"
                )
            series[row.timestamp] = (row.counter, row.rate)
            return 1

    def delete_range(self, table: str, end_time: int) -> int:
        with self._lock:
            deleted = 0
            for series in self._table(table, "DELETE").values():
                expired = [ts for ts in series if ts <= end_time]
                for ts in expired:
                    del series[ts]
                deleted += len(expired)
            return deleted

    def get_prune_record(self, table: str) -> PruneRecord | None:
        with self._lock:
            pruned_at = self._pruned.get(table)
        if pruned_at is None:
            return None
        return PruneRecord(table, pruned_at)

    def upsert_prune_record(self, table: str, now: datetime) -> None:
        with self._lock:
            self._pruned[table] = now

    def ensure_indexes(self, table: str) -> None:
        with self._lock:
            if table in self._indexes:
                raise IndexCreationConflict(table, f"ix_{table}_dtime_id")
            self._indexes.add(table)

    def optimize(self, table: str) -> None:
        with self._lock:
            self._optimized.append(table)

    @contextmanager
    def transaction(self, table: str) -> Iterator[None]:
        with self._lock:
            snapshot = deepcopy(self._tables.get(table))
            try:
                yield
            except BaseException:
                if snapshot is None:
                    self._tables.pop(table, None)
                else:
                    self._tables[table] = snapshot
                raise

    def _table(self, table: str, operation: str) -> TableData:
        try:
            return self._tables[table]
        except KeyError:
            raise StorageOperationError(
                table, operation, "no such table"
            ) from None

"""Storage contract consumed by the pruning engine.

A ``SampleStore`` exposes a set of tables that share the four-column sample
shape ``(id, dtime, counter, rate)`` plus a small bookkeeping table that
remembers when each table was last pruned. Timestamps crossing this interface
are unix epoch seconds; prune times are timezone-aware datetimes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Iterable

from tsprune.base import PruneRecord, Sample, SummaryRow


class SampleStore(ABC):
    """Abstract base class for sample storage backends.

    Write operations issued inside ``transaction(table)`` are committed
    together when the block exits normally and rolled back when it raises.
    """

    def __init__(self) -> None:
        self._initialized = False

    # -------------------------------------------------------------------------
    # Lifecycle Methods
    # -------------------------------------------------------------------------

    def initialize(self) -> None:
        """Connect and prepare bookkeeping tables.

        Called automatically on first use.

        Raises:
            StorageConnectionError: If the backend is unreachable.
        """
        if not self._initialized:
            self._do_initialize()
            self._initialized = True

    @abstractmethod
    def _do_initialize(self) -> None:
        """Perform actual initialization. Override in subclasses."""
        pass

    def close(self) -> None:
        """Release connections. Override in subclasses that hold any."""
        pass

    def __enter__(self) -> "SampleStore":
        self.initialize()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Enumeration
    # -------------------------------------------------------------------------

    @abstractmethod
    def list_tables(self) -> list[str]:
        """Names of all tables in the store, bookkeeping table included."""
        pass

    @abstractmethod
    def list_series_ids(self, table: str) -> list[int]:
        """Distinct series identifiers present in ``table``."""
        pass

    # -------------------------------------------------------------------------
    # Sample Operations
    # -------------------------------------------------------------------------

    @abstractmethod
    def read_samples(
        self, table: str, series_id: int, start_time: int, end_time: int
    ) -> list[Sample]:
        """Samples of one series with ``start_time <= dtime <= end_time``.

        Returns:
            Samples ordered by timestamp.

        Raises:
            StorageOperationError: If the read fails.
        """
        pass

    @abstractmethod
    def delete_samples(
        self, table: str, series_id: int, timestamps: Iterable[int]
    ) -> int:
        """Delete rows of one series at the given timestamps.

        Returns:
            Number of rows deleted.

        Raises:
            StorageOperationError: If the delete fails.
        """
        pass

    @abstractmethod
    def insert_summary(self, table: str, series_id: int, row: SummaryRow) -> int:
        """Insert a summary row for one series.

        Returns:
            Number of rows inserted.

        Raises:
            StorageOperationError: If the insert fails.
        """
        pass

    @abstractmethod
    def delete_range(self, table: str, end_time: int) -> int:
        """Delete every row of ``table`` with ``dtime <= end_time``.

        Returns:
            Number of rows deleted.

        Raises:
            StorageOperationError: If the delete fails.
        """
        pass

    # -------------------------------------------------------------------------
    # Prune Bookkeeping
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_prune_record(self, table: str) -> PruneRecord | None:
        """Last prune time of ``table``, or None if never pruned."""
        pass

    @abstractmethod
    def upsert_prune_record(self, table: str, now: datetime) -> None:
        """Record that ``table`` was pruned at ``now``."""
        pass

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def ensure_indexes(self, table: str) -> None:
        """Create the (dtime, id) index if the backend supports it.

        Raises:
            IndexCreationConflict: If the index already exists.
        """
        pass

    def optimize(self, table: str) -> None:
        """Reclaim space / refresh statistics after pruning, if supported."""
        pass

    @abstractmethod
    def transaction(self, table: str) -> AbstractContextManager[None]:
        """Scope in which all writes to ``table`` commit or roll back together."""
        pass

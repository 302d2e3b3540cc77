"""Base types shared by the pruning engine.

This module defines the exceptions, enums and data classes that the rule
resolver, reduction engine, tracker and scheduler exchange. Nothing here
talks to storage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


# =============================================================================
# Exceptions
# =============================================================================


class PruneError(Exception):
    """Base exception for all pruning errors."""

    pass


class ConfigurationError(PruneError):
    """Raised when the configuration is unusable (e.g. no storage target)."""

    pass


class StorageConnectionError(PruneError):
    """Raised when the storage backend cannot be reached."""

    def __init__(self, backend: str, message: str) -> None:
        self.backend = backend
        super().__init__(f"Failed to connect to {backend}: {message}")


class StorageOperationError(PruneError):
    """Raised when a single read, delete or insert fails."""

    def __init__(self, table: str, operation: str, message: str) -> None:
        self.table = table
        self.operation = operation
        super().__init__(f"{operation} on {table} failed: {message}")


class IndexCreationConflict(PruneError):
    """Raised when an index that already exists is created again."""

    def __init__(self, table: str, index_name: str) -> None:
        self.table = table
        self.index_name = index_name
        super().__init__(f"Index {index_name} already exists on {table}")


# =============================================================================
# Enums
# =============================================================================


class SeriesKind(Enum):
    """How the two value columns of a series relate."""

    COUNTER = "counter"  # counter holds a delta, rate a derived average
    GAUGE = "gauge"  # counter and rate carry the same reading


class OperationKind(Enum):
    """Write operations the scheduler issues against a table."""

    DELETE = "delete"
    INSERT = "insert"
    DELETE_RANGE = "delete_range"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class Sample:
    """One stored row of a (table, id) series.

    Attributes:
        timestamp: Unix epoch seconds.
        counter: Counter column (delta for counters, reading for gauges).
        rate: Rate column.
    """

    timestamp: int
    counter: int
    rate: int


@dataclass(frozen=True)
class SummaryRow:
    """The single row that replaces a reduced bucket."""

    timestamp: int
    counter: int
    rate: int


@dataclass(frozen=True)
class Reduction:
    """A bucket's superseded timestamps and the row that replaces them."""

    delete_set: frozenset[int]
    summary: SummaryRow


@dataclass(frozen=True)
class PruneRecord:
    """Last time a table was pruned."""

    table_name: str
    last_pruned_at: datetime


@dataclass(frozen=True)
class Tally:
    """Row and statement counts accumulated while pruning a table.

    Tallies are values: combine them with ``+`` instead of mutating.
    """

    inserts: int = 0
    deletes: int = 0
    insert_queries: int = 0
    delete_queries: int = 0

    def __add__(self, other: Tally) -> Tally:
        if not isinstance(other, Tally):
            return NotImplemented
        return Tally(
            inserts=self.inserts + other.inserts,
            deletes=self.deletes + other.deletes,
            insert_queries=self.insert_queries + other.insert_queries,
            delete_queries=self.delete_queries + other.delete_queries,
        )

    @property
    def rows_per_delete(self) -> int:
        """Average rows removed per delete statement."""
        if self.delete_queries == 0:
            return 0
        return self.deletes // self.delete_queries


@dataclass(frozen=True)
class PlannedOperation:
    """A write the scheduler would issue, surfaced in dry-run mode.

    Attributes:
        kind: Type of write.
        table: Target table.
        series_id: Series identifier (None for range deletes).
        timestamps: Timestamps removed by a DELETE.
        summary: Row written by an INSERT.
        end_time: Upper bound of a DELETE_RANGE.
    """

    kind: OperationKind
    table: str
    series_id: int | None = None
    timestamps: frozenset[int] = frozenset()
    summary: SummaryRow | None = None
    end_time: int | None = None

    def describe(self) -> str:
        """Human-readable one-line description."""
        if self.kind == OperationKind.DELETE_RANGE:
            return f"DELETE FROM {self.table} WHERE dtime <= {self.end_time}"
        if self.kind == OperationKind.DELETE:
            stamps = ", ".join(str(ts) for ts in sorted(self.timestamps))
            return (
                f"DELETE FROM {self.table} WHERE id = {self.series_id} "
                f"AND dtime IN ({stamps})"
            )
        assert self.summary is not None
        return (
            f"INSERT INTO {self.table} (id, dtime, counter, rate) VALUES "
            f"({self.series_id}, {self.summary.timestamp}, "
            f"{self.summary.counter}, {self.summary.rate})"
        )


@dataclass
class TableResult:
    """Outcome of processing a single table.

    Attributes:
        table: Table name.
        rules_applied: Number of resolved rules executed.
        tally: Accumulated row and statement counts.
        operations: Operations surfaced during a dry run.
        error: Error message if the table was rolled back or could not be
            checked.
        optimize_error: Error message if optimizing failed after the writes
            were committed.
    """

    table: str
    rules_applied: int = 0
    tally: Tally = field(default_factory=Tally)
    operations: list[PlannedOperation] = field(default_factory=list)
    error: str | None = None
    optimize_error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class RunResult:
    """Result of one scheduler run.

    Attributes:
        start_time: When the run started.
        end_time: When the run finished.
        processed: Tables that were pruned (or failed while pruning).
        skipped: Tables that were fresh or had no applicable rules.
        remaining: Tables left unvisited when the budget ran out.
        budget_exhausted: Whether the run stopped on ``run_limit``.
        dry_run: Whether this was a dry run.
    """

    start_time: datetime
    end_time: datetime | None = None
    processed: list[TableResult] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    remaining: list[str] = field(default_factory=list)
    budget_exhausted: bool = False
    dry_run: bool = False

    @property
    def duration_seconds(self) -> float:
        """Get run duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def failed(self) -> list[TableResult]:
        """Tables whose processing was rolled back."""
        return [r for r in self.processed if not r.succeeded]

    @property
    def tally(self) -> Tally:
        """Tally summed across all successfully processed tables."""
        total = Tally()
        for table_result in self.processed:
            if table_result.succeeded:
                total = total + table_result.tally
        return total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        tally = self.tally
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_seconds": self.duration_seconds,
            "tables_processed": len(self.processed),
            "tables_skipped": len(self.skipped),
            "tables_remaining": len(self.remaining),
            "tables_failed": [r.table for r in self.failed],
            "rows_inserted": tally.inserts,
            "rows_deleted": tally.deletes,
            "budget_exhausted": self.budget_exhausted,
            "dry_run": self.dry_run,
        }

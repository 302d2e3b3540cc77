"""Per-table record of the last successful prune."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from tsprune.backends.base import SampleStore

logger = logging.getLogger(__name__)


class PruneTracker:
    """Reads and writes prune times through the store.

    A table is fresh while less than ``reaggregate_interval`` has passed
    since it was last pruned.
    """

    def __init__(self, store: SampleStore, reaggregate_interval: timedelta) -> None:
        self._store = store
        self.reaggregate_interval = reaggregate_interval

    def last_pruned(self, table: str) -> datetime | None:
        record = self._store.get_prune_record(table)
        return record.last_pruned_at if record else None

    def is_fresh(self, table: str, now: datetime) -> bool:
        last = self.last_pruned(table)
        return last is not None and now - last < self.reaggregate_interval

    def mark_pruned(self, table: str, now: datetime) -> None:
        self._store.upsert_prune_record(table, now)
        logger.info("  Updated prune_time.")

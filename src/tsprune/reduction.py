"""Bucketing and reduction of sample series.

Samples are grouped into consecutive windows of a fixed width and every window
holding two or more samples is replaced by a single summary row stamped with
the window's last timestamp.

Window ends are multiples of the interval, starting at the first multiple at
or after the first sample, so a bucket covers ``(end - interval, end]``.

Example:
    >>> reducer = Reducer()
    >>> reductions = reducer.reduce(samples, HOUR, "ifInOctets_252")
    >>> for reduction in reductions:
    ...     store.delete_samples(table, series_id, reduction.delete_set)
    ...     store.insert_summary(table, series_id, reduction.summary)
"""

from __future__ import annotations

import random
from datetime import timedelta
from typing import Iterable, Sequence

from tsprune.base import Reduction, Sample, SeriesKind, SummaryRow
from tsprune.classifier import Classifier
from tsprune.rules import TableSelector


def _interval_seconds(interval: timedelta | int) -> int:
    if isinstance(interval, timedelta):
        seconds = int(interval.total_seconds())
    else:
        seconds = int(interval)
    if seconds <= 0:
        raise ValueError(f"interval must be positive, got {interval!r}")
    return seconds


def _truncating_mean(values: Sequence[int]) -> int:
    """Integer mean rounded toward zero."""
    total = sum(values)
    quotient = abs(total) // len(values)
    return quotient if total >= 0 else -quotient


def cluster_samples(
    samples: Sequence[Sample],
    interval: timedelta | int,
) -> list[list[Sample]]:
    """Split time-ordered samples into non-empty buckets.

    Args:
        samples: Samples ordered by timestamp.
        interval: Bucket width (timedelta or seconds).

    Returns:
        Buckets in chronological order.
    """
    if not samples:
        return []

    width = _interval_seconds(interval)
    window_end = -(-samples[0].timestamp // width) * width

    buckets: list[list[Sample]] = []
    current: list[Sample] = []
    for sample in samples:
        if sample.timestamp > window_end:
            if current:
                buckets.append(current)
                current = []
            # Skip over empty windows in gaps
            steps = -(-(sample.timestamp - window_end) // width)
            window_end += steps * width
        current.append(sample)

    if current:
        buckets.append(current)
    return buckets


def summarize(bucket: Sequence[Sample], kind: SeriesKind) -> SummaryRow:
    """Collapse a bucket into one row.

    Gauges keep the mean reading in both columns. Counters keep the summed
    deltas in ``counter`` and the mean rate in ``rate``.
    """
    if not bucket:
        raise ValueError("cannot summarize an empty bucket")

    last = bucket[-1]
    average = _truncating_mean([s.rate for s in bucket])
    if kind == SeriesKind.GAUGE:
        return SummaryRow(last.timestamp, average, average)
    return SummaryRow(last.timestamp, sum(s.counter for s in bucket), average)


class Reducer:
    """Reduces a series to one row per interval."""

    def __init__(
        self,
        classifier: Classifier | None = None,
        always_gauge: Iterable[TableSelector] = (),
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the reducer.

        Args:
            classifier: Classifier to use; built from ``always_gauge`` and
                ``rng`` when omitted.
            always_gauge: Tables that are always treated as gauges.
            rng: Source of randomness for classification.
        """
        self.classifier = classifier or Classifier(always_gauge, rng)

    def reduce(
        self,
        samples: Sequence[Sample],
        interval: timedelta | int,
        table_name: str | None = None,
    ) -> list[Reduction]:
        """Plan the reduction of ``samples`` to ``interval`` resolution.

        Args:
            samples: One series, ordered by timestamp.
            interval: Target resolution.
            table_name: Table the series belongs to (for gauge overrides).

        Returns:
            One ``Reduction`` per bucket with at least two samples, in
            chronological order. Empty for fewer than two samples.
        """
        if len(samples) < 2:
            return []

        reductions: list[Reduction] = []
        for bucket in cluster_samples(samples, interval):
            if len(bucket) < 2:
                continue
            kind = self.classifier.classify(bucket, table_name)
            reductions.append(
                Reduction(
                    delete_set=frozenset(s.timestamp for s in bucket),
                    summary=summarize(bucket, kind),
                )
            )
        return reductions

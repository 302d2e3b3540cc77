"""Counter vs. gauge detection for sample series.

Counter exports store a per-interval delta in ``counter`` and a derived
average in ``rate``; the two rarely coincide. Gauge exports write the same
reading to both columns. Finding two samples whose columns are equal is
therefore taken as evidence of a gauge.

The check is a heuristic: samples are drawn in random order without
replacement and drawing stops as soon as two matches are seen, so large gauge
series are recognised without a full scan.
"""

from __future__ import annotations

import random
from typing import Iterable, Iterator, Sequence

from tsprune.base import Sample, SeriesKind
from tsprune.rules import TableSelector, matches_any

REQUIRED_GAUGE_CONFIDENCE = 2


def _draw_order(count: int, rng: random.Random) -> Iterator[int]:
    """Yield ``range(count)`` in random order, lazily (partial Fisher-Yates)."""
    pool = list(range(count))
    for drawn in range(count):
        pick = rng.randrange(drawn, count)
        pool[drawn], pool[pick] = pool[pick], pool[drawn]
        yield pool[drawn]


def classify(
    samples: Sequence[Sample],
    rng: random.Random | None = None,
) -> SeriesKind:
    """Guess whether ``samples`` come from a gauge or a counter.

    Args:
        samples: Non-empty series.
        rng: Source of randomness for the draw order.

    Returns:
        ``SeriesKind.GAUGE`` once two samples with ``counter == rate`` are
        found, otherwise ``SeriesKind.COUNTER``.
    """
    rng = rng or random.Random()
    matches = 0
    for index in _draw_order(len(samples), rng):
        sample = samples[index]
        if sample.counter == sample.rate:
            matches += 1
            if matches >= REQUIRED_GAUGE_CONFIDENCE:
                return SeriesKind.GAUGE
    return SeriesKind.COUNTER


class Classifier:
    """Series classifier with an always-gauge override list.

    Example:
        >>> classifier = Classifier([TableSelector.pattern("CpuPercent")])
        >>> classifier.classify(samples, "dlinkCpuPercent_12")
        <SeriesKind.GAUGE: 'gauge'>
    """

    def __init__(
        self,
        always_gauge: Iterable[TableSelector] = (),
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the classifier.

        Args:
            always_gauge: Tables that are gauges regardless of their data.
            rng: Source of randomness for sampling.
        """
        self.always_gauge = tuple(always_gauge)
        self._rng = rng or random.Random()

    def configured_as_gauge(self, table_name: str | None) -> bool:
        """Check the override list for ``table_name``."""
        return table_name is not None and matches_any(self.always_gauge, table_name)

    def classify(
        self,
        samples: Sequence[Sample],
        table_name: str | None = None,
    ) -> SeriesKind:
        if self.configured_as_gauge(table_name):
            return SeriesKind.GAUGE
        return classify(samples, self._rng)

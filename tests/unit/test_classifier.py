"""Unit tests for counter/gauge classification."""

from __future__ import annotations

import random

from tsprune.base import Sample, SeriesKind
from tsprune.classifier import Classifier, classify
from tsprune.rules import TableSelector


def _rows(*values: tuple[int, int, int]) -> list[Sample]:
    return [Sample(*v) for v in values]


class TestClassify:
    """Tests for the sampling heuristic."""

    def test_recognizes_constant_counter(self, rng: random.Random) -> None:
        samples = _rows(
            (0, 300 * 1_000_000, 1_000_000),
            (300, 300 * 1_000_000, 1_000_000),
            (600, 300 * 1_000_000, 1_000_000),
        )
        assert classify(samples, rng) == SeriesKind.COUNTER

    def test_recognizes_varying_counter(self, rng: random.Random) -> None:
        samples = _rows(
            (0, 300 * 1_000_000, 1_000_000),
            (300, 300 * 2_000_000, 2_000_000),
            (600, 300 * 1_500_000, 1_500_000),
        )
        assert classify(samples, rng) == SeriesKind.COUNTER

    def test_recognizes_gauge(self, rng: random.Random) -> None:
        samples = _rows((0, 100, 100), (300, 100, 100), (600, 100, 100))
        assert classify(samples, rng) == SeriesKind.GAUGE

    def test_all_equal_columns_always_gauge(self) -> None:
        """Independent of draw order."""
        samples = [Sample(i * 300, i, i) for i in range(50)]
        for seed in range(20):
            assert classify(samples, random.Random(seed)) == SeriesKind.GAUGE

    def test_single_match_is_counter(self) -> None:
        """One coincidence never reaches confidence."""
        samples = _rows((0, 5, 5), (300, 10, 1), (600, 20, 2))
        for seed in range(20):
            assert classify(samples, random.Random(seed)) == SeriesKind.COUNTER

    def test_two_matches_anywhere_is_gauge(self) -> None:
        samples = [Sample(i * 300, 1000 + i, i) for i in range(100)]
        samples[3] = Sample(900, 7, 7)
        samples[97] = Sample(97 * 300, 8, 8)
        for seed in range(10):
            assert classify(samples, random.Random(seed)) == SeriesKind.GAUGE

    def test_single_sample(self) -> None:
        assert classify([Sample(0, 1, 1)]) == SeriesKind.COUNTER

    def test_stops_drawing_at_confidence(self) -> None:
        """A gauge series is recognised after exactly two draws."""

        class CountingRandom(random.Random):
            draws = 0

            def randrange(self, *args, **kwargs):  # type: ignore[override]
                CountingRandom.draws += 1
                return super().randrange(*args, **kwargs)

        samples = [Sample(i, 1, 1) for i in range(1000)]
        assert classify(samples, CountingRandom(0)) == SeriesKind.GAUGE
        assert CountingRandom.draws == 2


class TestClassifier:
    """Tests for the override-aware classifier."""

    def test_override_forces_gauge(self, rng: random.Random) -> None:
        classifier = Classifier([TableSelector.pattern("CpuPercent")], rng)
        counters = _rows((0, 300, 1), (300, 600, 2))

        assert classifier.classify(counters, "dlinkCpuPercent_12") == SeriesKind.GAUGE
        assert classifier.classify(counters, "ifInOctets_12") == SeriesKind.COUNTER

    def test_exact_override(self, rng: random.Random) -> None:
        classifier = Classifier([TableSelector.exact("temperature")], rng)
        assert classifier.configured_as_gauge("temperature")
        assert not classifier.configured_as_gauge("temperature_2")
        assert not classifier.configured_as_gauge(None)

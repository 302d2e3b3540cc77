"""Shared pytest fixtures for tsprune tests."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from tsprune.base import Sample


class FakeClock:
    """Clock that only moves when told to (or by ``step`` per call)."""

    def __init__(self, now: datetime, step: timedelta = timedelta(0)) -> None:
        self.now = now
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


CounterRows = Callable[..., tuple[list[Sample], int, int]]
GaugeRows = Callable[..., tuple[list[Sample], int]]


@pytest.fixture
def counter_rows() -> CounterRows:
    """Factory for counter series with a rate growing 10% per sample.

    Returns ``(samples, counter_sum, rate_avg)``.
    """

    def make(num: int, base: int, rate: int, interval: int) -> tuple[list[Sample], int, int]:
        samples = []
        counter_sum = 0
        rate_sum = 0
        for _ in range(num):
            rate_sum += rate
            counter_sum += rate * interval
            samples.append(Sample(base, rate * interval, rate))
            rate = rate * 11 // 10
            base += interval
        return samples, counter_sum, rate_sum // num

    return make


@pytest.fixture
def gauge_rows() -> GaugeRows:
    """Factory for gauge series; returns ``(samples, rate_avg)``."""

    def make(num: int, base: int, rate: int, interval: int) -> tuple[list[Sample], int]:
        samples = []
        rate_sum = 0
        for _ in range(num):
            rate_sum += rate
            samples.append(Sample(base, rate, rate))
            rate = rate * 11 // 10
            base += interval
        return samples, rate_sum // num

    return make


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(now: datetime) -> FakeClock:
    return FakeClock(now)

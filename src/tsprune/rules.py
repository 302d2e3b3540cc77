"""Retention rules and their resolution per table.

A rule says: for tables matched by ``selector``, data at least ``age`` old is
either reduced to ``interval`` averages or dropped. When several rules target
the same age for one table, the most specific selector wins: an exact table
name beats a pattern, and a pattern beats the all-tables wildcard.

Example:
    >>> from tsprune.durations import DAY, HOUR, MONTH, YEAR
    >>> rules = RuleSet([
    ...     Rule(TableSelector.all(), DAY * 14, Reduce(HOUR)),
    ...     Rule(TableSelector.all(), MONTH, Reduce(HOUR * 2)),
    ...     Rule(TableSelector.pattern("^adsl"), YEAR * 2, Drop()),
    ... ])
    >>> [rule.age for rule in rules.resolve("adslInOctets_12")]
    [datetime.timedelta(days=730), datetime.timedelta(days=30), datetime.timedelta(days=14)]
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Iterable, Iterator, Union

from tsprune.base import ConfigurationError
from tsprune.durations import format_duration


# =============================================================================
# Selectors
# =============================================================================


class SelectorKind(Enum):
    """Selector kinds, most specific first."""

    EXACT = "exact"
    PATTERN = "pattern"
    ALL = "all"


@dataclass(frozen=True)
class TableSelector:
    """Which tables a rule (or an exclude/override entry) applies to.

    Attributes:
        kind: Selector kind.
        value: Table name for EXACT, regular expression for PATTERN.
    """

    kind: SelectorKind
    value: str | None = None
    _regex: re.Pattern[str] | None = field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.kind == SelectorKind.ALL:
            return
        if not self.value:
            raise ConfigurationError(f"{self.kind.value} selector needs a value")
        if self.kind == SelectorKind.PATTERN:
            try:
                object.__setattr__(self, "_regex", re.compile(self.value))
            except re.error as e:
                raise ConfigurationError(
                    f"Invalid table pattern {self.value!r}: {e}"
                ) from e

    @classmethod
    def exact(cls, name: str) -> TableSelector:
        return cls(SelectorKind.EXACT, name)

    @classmethod
    def pattern(cls, regex: str) -> TableSelector:
        return cls(SelectorKind.PATTERN, regex)

    @classmethod
    def all(cls) -> TableSelector:
        return cls(SelectorKind.ALL)

    @classmethod
    def parse(cls, text: str) -> TableSelector:
        """Parse ``"all"``/``"*"``, ``"/regex/"`` or a plain table name."""
        text = text.strip()
        if text in ("all", "*"):
            return cls.all()
        if len(text) >= 2 and text.startswith("/") and text.endswith("/"):
            return cls.pattern(text[1:-1])
        return cls.exact(text)

    def matches(self, table_name: str) -> bool:
        """Check whether this selector applies to ``table_name``."""
        if self.kind == SelectorKind.EXACT:
            return table_name == self.value
        if self.kind == SelectorKind.PATTERN:
            assert self._regex is not None
            return self._regex.search(table_name) is not None
        return True

    def __str__(self) -> str:
        if self.kind == SelectorKind.PATTERN:
            return f"/{self.value}/"
        if self.kind == SelectorKind.ALL:
            return "all"
        return str(self.value)


def matches_any(selectors: Iterable[TableSelector], table_name: str) -> bool:
    """Check whether any selector in ``selectors`` matches the table."""
    return any(selector.matches(table_name) for selector in selectors)


# =============================================================================
# Actions and Rules
# =============================================================================


@dataclass(frozen=True)
class Reduce:
    """Reduce data to one row per ``interval``."""

    interval: timedelta

    def __str__(self) -> str:
        return f"reduce to {format_duration(self.interval)}"


@dataclass(frozen=True)
class Drop:
    """Delete data outright."""

    def __str__(self) -> str:
        return "drop"


RuleAction = Union[Reduce, Drop]


@dataclass(frozen=True)
class Rule:
    """A retention rule.

    Attributes:
        selector: Tables the rule applies to.
        age: The rule applies to data at least this old.
        action: What to do with such data.
    """

    selector: TableSelector
    age: timedelta
    action: RuleAction

    def __post_init__(self) -> None:
        if self.age.total_seconds() <= 0:
            raise ConfigurationError(f"Rule age must be positive, got {self.age}")
        if isinstance(self.action, Reduce):
            if self.action.interval.total_seconds() < 1:
                raise ConfigurationError(
                    f"Reduce interval must be at least one second, "
                    f"got {self.action.interval}"
                )
        elif not isinstance(self.action, Drop):
            raise ConfigurationError(f"Unknown rule action: {self.action!r}")

    @property
    def is_drop(self) -> bool:
        return isinstance(self.action, Drop)

    @property
    def description(self) -> str:
        """Human-readable description."""
        return (
            f"{self.selector}: older than {format_duration(self.age)}, "
            f"{self.action}"
        )


@dataclass(frozen=True)
class RuleConflict:
    """Two actions defined for one table at the same age."""

    table: str
    age: timedelta
    winner: Rule
    loser: Rule

    def __str__(self) -> str:
        return (
            f"{self.table}: rules at {format_duration(self.age)} disagree; "
            f"using '{self.winner.description}', "
            f"ignoring '{self.loser.description}'"
        )


# =============================================================================
# Rule Store
# =============================================================================


class RuleSet:
    """Immutable, ordered collection of retention rules.

    ``rules`` is always sorted oldest age first; declaration order is kept
    among rules of equal age.
    """

    _PRECEDENCE = (SelectorKind.EXACT, SelectorKind.PATTERN, SelectorKind.ALL)

    def __init__(self, rules: Iterable[Rule] = ()) -> None:
        rules = tuple(rules)
        for rule in rules:
            if not isinstance(rule, Rule):
                raise ConfigurationError(f"Not a rule: {rule!r}")
        self._rules = tuple(sorted(rules, key=lambda r: r.age, reverse=True))

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __bool__(self) -> bool:
        return bool(self._rules)

    def __repr__(self) -> str:
        return f"RuleSet({list(self._rules)!r})"

    def resolve(self, table_name: str) -> tuple[Rule, ...]:
        """Rules that apply to ``table_name``, oldest age first.

        Exact-name rules claim their ages first, then pattern rules claim any
        age still free, then wildcard rules. At most one rule per age
        survives. Rules that lose to a different action at the same age are
        reported by ``conflicts``.
        """
        live, _ = self._resolve(table_name)
        return live

    def conflicts(self, table_name: str) -> list[RuleConflict]:
        """Rules discarded for ``table_name`` whose action differs from the winner."""
        return self._resolve(table_name)[1]

    def _resolve(
        self, table_name: str
    ) -> tuple[tuple[Rule, ...], list[RuleConflict]]:
        claimed: dict[timedelta, Rule] = {}
        conflicts: list[RuleConflict] = []

        for kind in self._PRECEDENCE:
            for rule in self._rules:
                if rule.selector.kind != kind or not rule.selector.matches(table_name):
                    continue
                winner = claimed.get(rule.age)
                if winner is None:
                    claimed[rule.age] = rule
                elif winner.action != rule.action:
                    conflicts.append(RuleConflict(table_name, rule.age, winner, rule))

        live = sorted(claimed.values(), key=lambda r: r.age, reverse=True)
        return tuple(live), conflicts

"""Composable filter expressions over (subsystem, category) pairs.

Two building blocks:
    CategoryFilter — predicate over a category string
    LogFilter      — predicate over (subsystem, category)

Every filter carries a canonical identifier. Equality and hashing use the
identifier only, so filters can be de-duplicated in sets and lists without
comparing the wrapped callables:

    >>> LogFilter.subsystem("App.Net") == LogFilter.subsystem("app.net")
    True
    >>> CategoryFilter.not_("ui").identifier
    'not(category:matches(ui))'

Comparisons are case-insensitive: the stored value is lower-cased when the
filter is built, the incoming field when it is evaluated.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from logrelay.models import LogEntry

NO_FILTERS_ID = "<no-filters>"


@dataclass(frozen=True, eq=False)
class CategoryFilter:
    """A named predicate over a (lower-cased) category."""

    identifier: str
    _evaluator: Callable[[str], bool] = field(repr=False)

    def evaluate(self, category: str) -> bool:
        return self._evaluator(category.lower())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CategoryFilter):
            return NotImplemented
        return self.identifier == other.identifier

    def __hash__(self) -> int:
        return hash(self.identifier)

    # -- Conditions --

    @classmethod
    def matches(cls, value: str) -> CategoryFilter:
        value = value.lower()
        return cls(f"category:matches({value})", lambda category: category == value)

    @classmethod
    def starts_with(cls, prefix: str) -> CategoryFilter:
        prefix = prefix.lower()
        return cls(f"category:startsWith({prefix})", lambda category: category.startswith(prefix))

    @classmethod
    def contains(cls, value: str) -> CategoryFilter:
        value = value.lower()
        return cls(f"category:contains({value})", lambda category: value in category)

    @classmethod
    def not_(cls, inner: CategoryFilter | str) -> CategoryFilter:
        inner = coerce_category(inner)
        return cls(f"not({inner.identifier})", lambda category: not inner.evaluate(category))


CategoryLike = Union[CategoryFilter, str]


def coerce_category(value: CategoryLike) -> CategoryFilter:
    """A bare string means an exact (case-insensitive) category match."""
    if isinstance(value, CategoryFilter):
        return value
    return CategoryFilter.matches(value)


def category_list_identifier(filters: Sequence[CategoryFilter]) -> str:
    if not filters:
        return NO_FILTERS_ID
    return ",".join(f.identifier for f in filters)


@dataclass(frozen=True, eq=False)
class LogFilter:
    """A named predicate over (subsystem, category)."""

    identifier: str
    _evaluator: Callable[[str, str], bool] = field(repr=False)

    def evaluate(self, subsystem: str, category: str) -> bool:
        return self._evaluator(subsystem.lower(), category.lower())

    def matches(self, entry: LogEntry) -> bool:
        return self.evaluate(entry.subsystem, entry.category)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LogFilter):
            return NotImplemented
        return self.identifier == other.identifier

    def __hash__(self) -> int:
        return hash(self.identifier)

    # -- Exact match --

    @classmethod
    def subsystem(
        cls, value: str, categories: Iterable[CategoryLike] | None = None
    ) -> LogFilter:
        value = value.lower()
        base = cls(f"subsystem:matches({value})", lambda subsystem, _: subsystem == value)
        return base if categories is None else cls._combine(base, categories)

    # -- Starts with --

    @classmethod
    def subsystem_starts_with(
        cls, prefix: str, categories: Iterable[CategoryLike] | None = None
    ) -> LogFilter:
        prefix = prefix.lower()
        base = cls(
            f"subsystem:startsWith({prefix})",
            lambda subsystem, _: subsystem.startswith(prefix),
        )
        return base if categories is None else cls._combine(base, categories)

    # -- Contains --

    @classmethod
    def subsystem_contains(
        cls, value: str, categories: Iterable[CategoryLike] | None = None
    ) -> LogFilter:
        value = value.lower()
        base = cls(f"subsystem:contains({value})", lambda subsystem, _: value in subsystem)
        return base if categories is None else cls._combine(base, categories)

    # -- Category only / negation --

    @classmethod
    def category(cls, category_filter: CategoryLike) -> LogFilter:
        inner = coerce_category(category_filter)
        return cls(inner.identifier, lambda _, category: inner.evaluate(category))

    @classmethod
    def not_(cls, inner: LogFilter) -> LogFilter:
        return cls(
            f"not({inner.identifier})",
            lambda subsystem, category: not inner.evaluate(subsystem, category),
        )

    @classmethod
    def _combine(cls, subsystem_filter: LogFilter, categories: Iterable[CategoryLike]) -> LogFilter:
        category_filters = tuple(coerce_category(c) for c in categories)

        def _evaluate(subsystem: str, category: str) -> bool:
            # Categories are only consulted once the subsystem matched;
            # any() stops at the first matching category.
            return subsystem_filter.evaluate(subsystem, category) and any(
                f.evaluate(category) for f in category_filters
            )

        identifier = f"{subsystem_filter.identifier}&[{category_list_identifier(category_filters)}]"
        return cls(identifier, _evaluate)


def accepts(filters: Sequence[LogFilter], subsystem: str, category: str) -> bool:
    """Driver-level policy: no filters accepts all, otherwise any filter may match."""
    if not filters:
        return True
    return any(f.evaluate(subsystem, category) for f in filters)

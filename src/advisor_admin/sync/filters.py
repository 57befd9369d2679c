"""Filter, search and sort engine for collection views.

``apply_filters`` is a pure function of (records, FilterState, ViewConfig):
it never mutates its inputs and returns a new ordered list referencing the
snapshot's records.

Predicate composition: a record passes iff every active filter matches AND
the free-text search matches. A filter whose value is WILDCARD ("all") is
inactive. Missing or malformed fields never raise; the record simply does
not match that filter.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.advisor_admin.sync.fields import parse_amount
from src.advisor_admin.sync.schemas import Record

WILDCARD = "all"

# Field values that cannot be compared are treated as non-matching
_RECOVERABLE = (TypeError, ValueError, AttributeError)


class UnknownFilterError(KeyError):
    """Raised when a filter or sort name is not defined for a collection view."""

    def __init__(self, view: str, name: str) -> None:
        self.view = view
        self.name = name
        super().__init__(f"{view!r} has no filter or sort named {name!r}")


# ── Filter State ────────────────────────────────────────────────────────────


class FilterState(BaseModel):
    """Current filter selections, search text and sort key for one view.

    Immutable: the ``with_*`` helpers return a new state.
    """

    model_config = ConfigDict(frozen=True)

    filters: dict[str, str] = Field(default_factory=dict)
    search: str = ""
    sort: str | None = None

    def value(self, name: str) -> str:
        return self.filters.get(name, WILDCARD)

    def with_filter(self, name: str, value: str) -> FilterState:
        return self.model_copy(update={"filters": {**self.filters, name: value}})

    def with_search(self, search: str) -> FilterState:
        return self.model_copy(update={"search": search})

    def with_sort(self, sort: str | None) -> FilterState:
        return self.model_copy(update={"sort": sort})

    def cleared(self) -> FilterState:
        return FilterState(sort=self.sort)


# ── Filter Definitions ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class ExactFilter:
    """``record[field] == value``; a missing field never matches."""

    name: str
    field: str
    choices: tuple[str, ...] = ()

    def matches(self, record: Record, value: str) -> bool:
        if self.field not in record:
            return False
        return record[self.field] == value


@dataclass(frozen=True)
class DerivedFilter:
    """Compare ``extract(record[field])`` to the filter value.

    The extractor must be the same rule used when the field was built, or
    the filter silently matches nothing.
    """

    name: str
    field: str
    extract: Callable[[Any], Any]
    choices: tuple[str, ...] = ()

    def matches(self, record: Record, value: str) -> bool:
        derived = self.extract(record.get(self.field))
        return derived is not None and derived == value


@dataclass(frozen=True)
class GroupFilter:
    """Match when the derived value belongs to the named group.

    Used for regions: the filter value names a group of state codes.
    Unknown group names match nothing.
    """

    name: str
    field: str
    extract: Callable[[Any], Any]
    groups: Mapping[str, frozenset[str]]

    @property
    def choices(self) -> tuple[str, ...]:
        return tuple(self.groups)

    def matches(self, record: Record, value: str) -> bool:
        members = self.groups.get(value)
        if members is None:
            return False
        derived = self.extract(record.get(self.field))
        return derived is not None and derived in members


@dataclass(frozen=True)
class AmountRange:
    """Numeric bounds in millions; None means unbounded on that side."""

    low: float | None = None
    high: float | None = None
    low_inclusive: bool = True
    high_inclusive: bool = True

    def contains(self, amount: float) -> bool:
        if self.low is not None:
            if amount < self.low or (amount == self.low and not self.low_inclusive):
                return False
        if self.high is not None:
            if amount > self.high or (amount == self.high and not self.high_inclusive):
                return False
        return True


@dataclass(frozen=True)
class RangeFilter:
    """Parse a formatted amount and test it against a named bucket.

    Records whose value does not parse are excluded from every bucket.
    """

    name: str
    field: str
    buckets: Mapping[str, AmountRange]
    parse: Callable[[Any], float | None] = parse_amount

    @property
    def choices(self) -> tuple[str, ...]:
        return tuple(self.buckets)

    def matches(self, record: Record, value: str) -> bool:
        bucket = self.buckets.get(value)
        if bucket is None:
            return False
        amount = self.parse(record.get(self.field))
        return amount is not None and bucket.contains(amount)


@dataclass(frozen=True)
class ChoiceFilter:
    """Named record predicates, e.g. published / drafts / featured tabs."""

    name: str
    predicates: Mapping[str, Callable[[Record], bool]]

    @property
    def choices(self) -> tuple[str, ...]:
        return tuple(self.predicates)

    def matches(self, record: Record, value: str) -> bool:
        predicate = self.predicates.get(value)
        if predicate is None:
            return False
        return bool(predicate(record))


FilterDefinition = ExactFilter | DerivedFilter | GroupFilter | RangeFilter | ChoiceFilter


@dataclass(frozen=True)
class SortOption:
    """A sort key: ``key(record[field])`` ordered ascending or descending."""

    name: str
    field: str
    key: Callable[[Any], Any]
    descending: bool = False


@dataclass(frozen=True)
class ViewConfig:
    """Filters, searchable fields and sort options of one collection view."""

    name: str
    filters: tuple[FilterDefinition, ...] = ()
    search_fields: tuple[str, ...] = ()
    sort_options: tuple[SortOption, ...] = ()
    _filter_index: dict[str, FilterDefinition] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )
    _sort_index: dict[str, SortOption] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        self._filter_index.update({f.name: f for f in self.filters})
        self._sort_index.update({s.name: s for s in self.sort_options})

    def filter_named(self, name: str) -> FilterDefinition:
        try:
            return self._filter_index[name]
        except KeyError:
            raise UnknownFilterError(self.name, name) from None

    def sort_named(self, name: str) -> SortOption:
        try:
            return self._sort_index[name]
        except KeyError:
            raise UnknownFilterError(self.name, name) from None

    def validate(self, state: FilterState) -> None:
        """Raise UnknownFilterError for names this view does not define."""
        for name in state.filters:
            self.filter_named(name)
        if state.sort is not None:
            self.sort_named(state.sort)


# ── Engine ──────────────────────────────────────────────────────────────────


def matches_search(record: Record, search: str, search_fields: Iterable[str]) -> bool:
    """Case-insensitive substring match against any configured field.

    An empty (or whitespace-only) search matches everything. Missing and
    None fields never match.
    """
    needle = search.strip().lower()
    if not needle:
        return True

    for field_name in search_fields:
        value = record.get(field_name)
        if value is None or isinstance(value, (dict, list)):
            continue
        if needle in str(value).lower():
            return True
    return False


def _passes(record: Record, active: Sequence[tuple[FilterDefinition, str]]) -> bool:
    for definition, value in active:
        try:
            if not definition.matches(record, value):
                return False
        except _RECOVERABLE:
            return False
    return True


def sort_records(records: Sequence[Record], option: SortOption) -> list[Record]:
    """Stable sort; records with a missing or unparsable key go last, keeping their relative order."""
    keyed: list[tuple[Any, Record]] = []
    unsortable: list[Record] = []

    for record in records:
        try:
            key = option.key(record.get(option.field))
        except _RECOVERABLE:
            key = None
        if key is None:
            unsortable.append(record)
        else:
            keyed.append((key, record))

    # list.sort is stable for reverse=True too: equal keys keep input order
    try:
        keyed.sort(key=lambda pair: pair[0], reverse=option.descending)
    except TypeError:
        # Mixed, incomparable key types: leave the collection order alone
        return list(records)

    return [record for _, record in keyed] + unsortable


def apply_filters(
    records: Sequence[Record],
    state: FilterState,
    view: ViewConfig,
) -> list[Record]:
    """Return the ordered visible subset of ``records`` for ``state``.

    Args:
        records: Snapshot records in collection order.
        state: Filter selections, search text and sort key.
        view: The collection's filter/search/sort configuration.

    Returns:
        New list of the matching records (the record objects themselves are
        shared with the snapshot, never copied or modified).

    Raises:
        UnknownFilterError: If ``state`` names a filter or sort the view
            does not define.
    """
    view.validate(state)

    active = [
        (view.filter_named(name), value)
        for name, value in state.filters.items()
        if value != WILDCARD
    ]

    visible = [
        record
        for record in records
        if _passes(record, active) and matches_search(record, state.search, view.search_fields)
    ]

    if state.sort is None:
        return visible
    return sort_records(visible, view.sort_named(state.sort))


# ── Aggregates ──────────────────────────────────────────────────────────────


def distinct_values(records: Iterable[Record], field_name: str) -> list[Any]:
    """Sorted unique non-empty values of a field, for populating filter choices."""
    seen = {
        record[field_name]
        for record in records
        if record.get(field_name) not in (None, "")
        and not isinstance(record.get(field_name), (dict, list))
    }
    try:
        return sorted(seen)
    except TypeError:
        return sorted(seen, key=str)


def facet_counts(
    records: Sequence[Record],
    facets: Mapping[str, Callable[[Record], bool]],
) -> dict[str, int]:
    """Count records per named facet, plus a ``total``."""
    counts = {"total": len(records)}
    for name, predicate in facets.items():
        total = 0
        for record in records:
            try:
                if predicate(record):
                    total += 1
            except _RECOVERABLE:
                continue
        counts[name] = total
    return counts

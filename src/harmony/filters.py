"""Record predicates used for region and dataset filtering.

Filters form a small algebra: leaf ``PropertyFilter`` comparisons combined with
``UnionFilter`` and ``IntersectionFilter``. They are evaluated against
``AlignmentRecord`` objects and never mutate anything.
"""

from __future__ import annotations

import operator
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from .errors import ConfigurationError
from .models import AlignmentRecord

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "=": operator.eq,
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

# PacBio dataset property name -> (record attribute, value type)
DATASET_PROPERTIES: Dict[str, Tuple[str, type]] = {
    "rname": ("reference_name", str),
    "tstart": ("reference_start", int),
    "tend": ("reference_end", int),
    "qname": ("name", str),
    "rq": ("read_accuracy", float),
    "mapqv": ("mapping_quality", int),
    "np": ("num_passes", int),
}


class RecordFilter:
    def admits(self, record: AlignmentRecord) -> bool:
        raise NotImplementedError

    def __call__(self, record: AlignmentRecord) -> bool:
        return self.admits(record)


@dataclass(frozen=True)
class PropertyFilter(RecordFilter):
    attribute: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPERATORS:
            raise ConfigurationError(f"Unsupported filter operator: {self.op!r}")

    def admits(self, record: AlignmentRecord) -> bool:
        actual = getattr(record, self.attribute)
        if actual is None:
            return False
        return _OPERATORS[self.op](actual, self.value)


@dataclass(frozen=True)
class UnionFilter(RecordFilter):
    filters: Tuple[RecordFilter, ...]

    def admits(self, record: AlignmentRecord) -> bool:
        return any(f.admits(record) for f in self.filters)


@dataclass(frozen=True)
class IntersectionFilter(RecordFilter):
    filters: Tuple[RecordFilter, ...]

    def admits(self, record: AlignmentRecord) -> bool:
        return all(f.admits(record) for f in self.filters)


def reference_name_filter(name: str) -> PropertyFilter:
    return PropertyFilter("reference_name", "==", name)


def reference_start_filter(pos: int, op: str) -> PropertyFilter:
    return PropertyFilter("reference_start", op, int(pos))


def reference_end_filter(pos: int, op: str) -> PropertyFilter:
    return PropertyFilter("reference_end", op, int(pos))


def union(filters: Iterable[RecordFilter]) -> Optional[RecordFilter]:
    fs = tuple(filters)
    if not fs:
        return None
    if len(fs) == 1:
        return fs[0]
    return UnionFilter(fs)


def intersection(filters: Iterable[Optional[RecordFilter]]) -> Optional[RecordFilter]:
    fs = tuple(f for f in filters if f is not None)
    if not fs:
        return None
    if len(fs) == 1:
        return fs[0]
    return IntersectionFilter(fs)


def dataset_property_filter(name: str, op: str, value: str) -> PropertyFilter:
    """Translate one dataset XML ``<Property Name= Operator= Value=/>`` into a filter."""
    key = name.strip()
    if key not in DATASET_PROPERTIES:
        raise ConfigurationError(
            f"Unsupported dataset filter property {name!r}; "
            f"supported: {', '.join(sorted(DATASET_PROPERTIES))}"
        )
    attribute, kind = DATASET_PROPERTIES[key]
    try:
        typed = kind(value) if kind is not int else int(float(value))
    except ValueError as e:
        raise ConfigurationError(f"Invalid value {value!r} for dataset filter {name!r}") from e
    return PropertyFilter(attribute, op.strip(), typed)

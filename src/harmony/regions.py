"""Turn a user region expression into a query plan for the merge reader.

A region expression is a ``;``-separated list of clauses, each of the form
``name``, ``name:pos`` or ``name:start-end``. Commas inside numbers are
ignored (``chr1:1,000-2,000``).

The indexing strategy is chosen from the indexes available for the input
BAMs:

- every BAM has a ``.pbi``: all clauses are combined into one filter
  (union over clauses, intersected with any dataset-level filter);
- otherwise every BAM has a ``.bai``/``.csi``: a single clause becomes one
  genomic interval handed to the indexed readers;
- anything else is an index mismatch.

Both strategies admit the records on the named reference with
``reference_end >= start`` and ``reference_start <= end``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .dataset import DataSet
from .errors import ConfigurationError
from .filters import (
    IntersectionFilter,
    RecordFilter,
    intersection,
    reference_end_filter,
    reference_name_filter,
    reference_start_filter,
    union,
)

logger = logging.getLogger(__name__)

PLAN_NONE = "none"
PLAN_PBI = "pbi"
PLAN_BAI = "bai"


@dataclass(frozen=True)
class RegionClause:
    name: str
    start: Optional[int] = None
    end: Optional[int] = None

    @property
    def has_range(self) -> bool:
        return self.start is not None


@dataclass(frozen=True)
class Interval:
    """A single genomic interval for index-based fetching (inclusive bounds)."""

    contig: str
    start: Optional[int] = None
    end: Optional[int] = None

    def admits(self, reference_name: str, reference_start: int, reference_end: int) -> bool:
        if reference_name != self.contig:
            return False
        if self.start is None or self.end is None:
            return True
        return reference_end >= self.start and reference_start <= self.end


@dataclass(frozen=True)
class QueryPlan:
    """How the merge reader should open the input; only consumed by ``harmony.readers``."""

    kind: str
    dataset: DataSet
    filter: Optional[RecordFilter] = None
    interval: Optional[Interval] = None


def _parse_position(text: str, clause: str) -> int:
    cleaned = text.replace(",", "").strip()
    if not cleaned:
        raise ConfigurationError(f"Malformed region {clause!r}: empty position")
    try:
        return int(cleaned)
    except ValueError as e:
        raise ConfigurationError(f"Malformed region {clause!r}: {text!r} is not a number") from e


def parse_clause(clause: str) -> RegionClause:
    """Parse ``name``, ``name:pos`` or ``name:start-end``."""
    parts = clause.strip().split(":")
    name = parts[0].strip()
    if not name:
        raise ConfigurationError(f"Malformed region {clause!r}: missing reference name")
    if len(parts) == 1:
        return RegionClause(name=name)
    if len(parts) > 2:
        raise ConfigurationError(f"Malformed region {clause!r}: only one ':' per region allowed.")

    span = parts[1].strip()
    # a minus sign would otherwise be taken for the range separator
    if span.startswith("-") or "--" in span:
        raise ConfigurationError(f"Malformed region {clause!r}: reference position has to be non-negative.")
    positions = span.split("-")
    if len(positions) == 1:
        pos = _parse_position(positions[0], clause)
        return RegionClause(name=name, start=pos, end=pos)
    if len(positions) == 2:
        start = _parse_position(positions[0], clause)
        end = _parse_position(positions[1], clause)
        if start > end:
            raise ConfigurationError(f"Malformed region {clause!r}: start {start} > end {end}")
        return RegionClause(name=name, start=start, end=end)
    raise ConfigurationError(f"Malformed region {clause!r}: only two positions per region allowed.")


def parse_region(region: str) -> List[RegionClause]:
    """Split a region expression on ';' and parse each non-empty clause."""
    return [parse_clause(c) for c in region.split(";") if c.strip()]


def clause_filter(clause: RegionClause) -> RecordFilter:
    name = reference_name_filter(clause.name)
    if not clause.has_range:
        return name
    assert clause.start is not None and clause.end is not None
    return IntersectionFilter(
        (
            name,
            reference_end_filter(clause.start, ">="),
            reference_start_filter(clause.end, "<="),
        )
    )


def _index_counts(dataset: DataSet) -> Tuple[int, int, int]:
    n = len(dataset.resources)
    return n, sum(r.has_pbi for r in dataset.resources), sum(r.has_bai for r in dataset.resources)


def build_query_plan(dataset: DataSet, region: str = "") -> QueryPlan:
    """Choose the indexing strategy and build the filter for ``region``."""
    n_bam, n_pbi, n_bai = _index_counts(dataset)
    if n_bam == 0:
        raise ConfigurationError("No input BAM files")

    if not region.strip():
        return QueryPlan(kind=PLAN_NONE, dataset=dataset, filter=dataset.filter)

    if n_pbi > 0 and n_bai > 0:
        logger.warning("Both index files, pbi and bai are present.")

    if n_pbi == n_bam:
        logger.info("Using PBI files for filtering")
        clauses = parse_region(region)
        if not clauses:
            raise ConfigurationError(f"Malformed region {region!r}: no region given")
        combined = intersection([union(clause_filter(c) for c in clauses), dataset.filter])
        return QueryPlan(kind=PLAN_PBI, dataset=dataset, filter=combined)

    if n_bai == n_bam:
        logger.info("Using BAI files for filtering")
        clauses = parse_region(region)
        if len(clauses) != 1:
            raise ConfigurationError(
                "BAI-indexed input supports exactly one region; "
                "create .pbi indexes to query several regions at once."
            )
        c = clauses[0]
        return QueryPlan(
            kind=PLAN_BAI,
            dataset=dataset,
            interval=Interval(contig=c.name, start=c.start, end=c.end),
        )

    raise ConfigurationError(
        f"Index mismatch: number of index files does not match number of BAM files "
        f"({n_bam} BAM, {n_pbi} pbi, {n_bai} bai/csi)."
    )

"""Merge readers presenting several sorted BAM files as one position-ordered stream.

Two variants share the :class:`ReaderBase` contract:

- :class:`AlignedCollator` (no region, or PBI-indexed input): one reader per
  file, each honoring the record filter, merged by
  ``(reference_id, reference_start)``;
- :class:`IntervalReader` (BAI-indexed input): one composite iterator over
  every file's indexed fetch of a single interval.

Use :func:`bam_query` to build the right one for an input and region.
"""

from __future__ import annotations

import heapq
import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import pysam

from .dataset import load_dataset
from .errors import ConfigurationError
from .filters import RecordFilter
from .models import AlignmentRecord
from .regions import PLAN_BAI, Interval, QueryPlan, build_query_plan

logger = logging.getLogger(__name__)

SortKey = Tuple[int, int]


def _optional_tag(seg: pysam.AlignedSegment, tag: str):
    return seg.get_tag(tag) if seg.has_tag(tag) else None


def record_from_segment(seg: pysam.AlignedSegment, reference_id: int) -> AlignmentRecord:
    """Copy the fields the profiler needs out of a pysam segment."""
    quals = seg.query_qualities
    np_tag = _optional_tag(seg, "np")
    ec_tag = _optional_tag(seg, "ec")
    rq_tag = _optional_tag(seg, "rq")
    return AlignmentRecord(
        name=str(seg.query_name),
        reference_name=str(seg.reference_name),
        reference_id=reference_id,
        reference_start=int(seg.reference_start),
        reference_end=int(seg.reference_end if seg.reference_end is not None else seg.reference_start),
        aligned_start=int(seg.query_alignment_start),
        aligned_end=int(seg.query_alignment_end),
        cigar=tuple((int(op), int(n)) for op, n in (seg.cigartuples or ())),
        sequence=seg.query_sequence or "",
        qualities=tuple(int(q) for q in quals) if quals is not None else None,
        num_passes=int(np_tag) if np_tag is not None else None,
        expected_errors=float(ec_tag) if ec_tag is not None else None,
        read_accuracy=float(rq_tag) if rq_tag is not None else None,
        mapping_quality=int(seg.mapping_quality),
    )


class ReferenceIds:
    """Reference name -> id, unified over the headers of all input files.

    Ids follow first appearance across headers in file order, so files sharing
    one header keep their native ordering.
    """

    def __init__(self, bam_paths: Sequence[str]) -> None:
        self._ids: Dict[str, int] = {}
        for path in bam_paths:
            with pysam.AlignmentFile(path, "rb", check_sq=False) as bam:
                for name in bam.references:
                    self._ids.setdefault(name, len(self._ids))

    def __getitem__(self, name: str) -> int:
        if name not in self._ids:
            self._ids[name] = len(self._ids)
        return self._ids[name]


def _iter_file(
    path: str,
    ref_ids: ReferenceIds,
    record_filter: Optional[RecordFilter],
) -> Iterator[AlignmentRecord]:
    with pysam.AlignmentFile(path, "rb", check_sq=False) as bam:
        for seg in bam.fetch(until_eof=True):
            if seg.is_unmapped:
                continue
            rec = record_from_segment(seg, ref_ids[seg.reference_name])
            if record_filter is None or record_filter.admits(rec):
                yield rec


def _iter_interval(path: str, ref_ids: ReferenceIds, interval: Interval) -> Iterator[AlignmentRecord]:
    with pysam.AlignmentFile(path, "rb") as bam:
        if interval.contig not in bam.references:
            logger.warning("Reference %s not present in %s", interval.contig, path)
            return
        if interval.start is None or interval.end is None:
            it = bam.fetch(interval.contig)
        else:
            # fetch() is half-open; widen by one on each side so that reads
            # touching either inclusive bound are returned, then re-check.
            it = bam.fetch(interval.contig, max(0, interval.start - 1), interval.end + 1)
        for seg in it:
            if seg.is_unmapped:
                continue
            rec = record_from_segment(seg, ref_ids[seg.reference_name])
            if interval.admits(rec.reference_name, rec.reference_start, rec.reference_end):
                yield rec


def sort_key(record: AlignmentRecord) -> SortKey:
    return (record.reference_id, record.reference_start)


class ReaderBase:
    """Common contract: ``get_next()`` returns a record, or None once exhausted."""

    def get_next(self) -> Optional[AlignmentRecord]:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __iter__(self) -> Iterator[AlignmentRecord]:
        while True:
            rec = self.get_next()
            if rec is None:
                return
            yield rec

    def __enter__(self) -> "ReaderBase":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class AlignedCollator(ReaderBase):
    """K-way merge of per-source iterators by ``(reference_id, reference_start)``.

    Each source must already be sorted. Ties resolve by source order, which
    keeps the merge stable; no record is dropped or duplicated.
    """

    def __init__(self, sources: Sequence[Iterator[AlignmentRecord]]) -> None:
        self._sources = list(sources)
        self._heap: List[Tuple[SortKey, int, AlignmentRecord, Iterator[AlignmentRecord]]] = []
        for order, it in enumerate(self._sources):
            first = next(it, None)
            if first is not None:
                self._heap.append((sort_key(first), order, first, it))
        heapq.heapify(self._heap)

    def get_next(self) -> Optional[AlignmentRecord]:
        if not self._heap:
            return None
        _, order, record, it = self._heap[0]
        following = next(it, None)
        if following is None:
            heapq.heappop(self._heap)
        else:
            heapq.heapreplace(self._heap, (sort_key(following), order, following, it))
        return record

    def close(self) -> None:
        for it in self._sources:
            close = getattr(it, "close", None)
            if close is not None:
                close()
        self._heap = []


class IntervalReader(ReaderBase):
    """Single composite iterator over one interval of several BAI-indexed files."""

    def __init__(self, bam_paths: Sequence[str], interval: Interval, ref_ids: ReferenceIds) -> None:
        self.interval = interval
        self._parts = [_iter_interval(p, ref_ids, interval) for p in bam_paths]
        self._query = heapq.merge(*self._parts, key=sort_key)

    def get_next(self) -> Optional[AlignmentRecord]:
        return next(self._query, None)

    def close(self) -> None:
        for it in self._parts:
            it.close()


def open_reader(plan: QueryPlan) -> ReaderBase:
    """Build the reader variant matching ``plan``."""
    paths = plan.dataset.bam_paths
    if not paths:
        raise ConfigurationError("No input BAM files")
    ref_ids = ReferenceIds(paths)
    if plan.kind == PLAN_BAI:
        assert plan.interval is not None
        return IntervalReader(paths, plan.interval, ref_ids)
    return AlignedCollator([_iter_file(p, ref_ids, plan.filter) for p in paths])


def bam_query(path: str | Path, region: str = "") -> ReaderBase:
    """Open ``path`` (BAM, fofn or dataset XML) restricted to ``region``."""
    dataset = load_dataset(path)
    plan = build_query_plan(dataset, region)
    logger.debug("Query plan: %s over %d file(s)", plan.kind, len(plan.dataset.resources))
    return open_reader(plan)

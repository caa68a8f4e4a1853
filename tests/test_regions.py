import logging
from pathlib import Path

import pytest

from harmony.dataset import BamResource, DataSet
from harmony.errors import ConfigurationError
from harmony.filters import PropertyFilter
from harmony.models import AlignmentRecord
from harmony.regions import (
    PLAN_BAI,
    PLAN_NONE,
    PLAN_PBI,
    Interval,
    RegionClause,
    build_query_plan,
    parse_clause,
    parse_region,
)


def make_dataset(*flags, dataset_filter=None) -> DataSet:
    resources = tuple(
        BamResource(path=Path(f"/data/movie{i}.bam"), has_pbi=pbi, has_bai=bai)
        for i, (pbi, bai) in enumerate(flags)
    )
    return DataSet(path=Path("/data/in.xml"), resources=resources, filter=dataset_filter)


def rec(ref_name: str, start: int, end: int, rq=None) -> AlignmentRecord:
    return AlignmentRecord(
        name=f"{ref_name}:{start}-{end}",
        reference_name=ref_name,
        reference_id=0,
        reference_start=start,
        reference_end=end,
        aligned_start=0,
        aligned_end=end - start,
        cigar=((7, end - start),),
        sequence="A" * (end - start),
        read_accuracy=rq,
    )


def test_parse_clause_forms():
    assert parse_clause("chr1") == RegionClause("chr1")
    assert parse_clause("chr1:150") == RegionClause("chr1", 150, 150)
    assert parse_clause("chr1:100-200") == RegionClause("chr1", 100, 200)
    assert parse_clause(" chr1:1,000-2,000 ") == RegionClause("chr1", 1000, 2000)


@pytest.mark.parametrize(
    "clause",
    ["chr1:1-2-3", "chr1:1:2", "chr1:-5", "chr1:", "chr1:abc", "chr1:200-100", ":100-200"],
)
def test_parse_clause_rejects_malformed(clause):
    with pytest.raises(ConfigurationError):
        parse_clause(clause)


@pytest.mark.parametrize("clause", ["chr1:-5", "chr1:-5-10", "chr1:5--3"])
def test_parse_clause_reports_negative_positions(clause):
    with pytest.raises(ConfigurationError, match="non-negative"):
        parse_clause(clause)


def test_parse_region_splits_on_semicolon_and_skips_empty():
    clauses = parse_region("chr1:100-200;chr2;")
    assert [c.name for c in clauses] == ["chr1", "chr2"]


def test_empty_region_needs_no_index():
    plan = build_query_plan(make_dataset((False, False), (False, False)), "")
    assert plan.kind == PLAN_NONE
    assert plan.filter is None


def test_pbi_plan_admits_overlapping_records_only():
    plan = build_query_plan(make_dataset((True, False), (True, False)), "chr1:100-200")
    assert plan.kind == PLAN_PBI
    f = plan.filter
    assert f.admits(rec("chr1", 150, 160))
    assert f.admits(rec("chr1", 50, 100))
    assert f.admits(rec("chr1", 200, 250))
    assert f.admits(rec("chr1", 0, 1000))
    assert not f.admits(rec("chr1", 40, 99))
    assert not f.admits(rec("chr1", 201, 300))
    assert not f.admits(rec("chr2", 150, 160))


def test_pbi_plan_unions_clauses():
    plan = build_query_plan(make_dataset((True, False)), "chr1:100-200;chr2")
    assert plan.filter.admits(rec("chr1", 150, 160))
    assert plan.filter.admits(rec("chr2", 5000, 5100))
    assert not plan.filter.admits(rec("chr1", 500, 600))
    assert not plan.filter.admits(rec("chr3", 150, 160))


def test_pbi_plan_intersects_with_dataset_filter():
    ds = make_dataset((True, False), dataset_filter=PropertyFilter("read_accuracy", ">=", 0.99))
    plan = build_query_plan(ds, "chr1")
    assert plan.filter.admits(rec("chr1", 1, 10, rq=0.995))
    assert not plan.filter.admits(rec("chr1", 1, 10, rq=0.9))
    assert not plan.filter.admits(rec("chr1", 1, 10))
    assert not plan.filter.admits(rec("chr2", 1, 10, rq=0.995))


def test_bai_plan_builds_single_interval():
    plan = build_query_plan(make_dataset((False, True), (False, True)), "chr1:1,000-2,000")
    assert plan.kind == PLAN_BAI
    assert plan.interval == Interval("chr1", 1000, 2000)
    assert plan.filter is None


def test_bai_interval_matches_pbi_semantics():
    interval = build_query_plan(make_dataset((False, True)), "chr1:100-200").interval
    pbi = build_query_plan(make_dataset((True, False)), "chr1:100-200").filter
    cases = [
        rec("chr1", 150, 160),
        rec("chr1", 50, 100),
        rec("chr1", 40, 99),
        rec("chr1", 200, 250),
        rec("chr1", 201, 300),
        rec("chr2", 150, 160),
    ]
    for r in cases:
        assert interval.admits(r.reference_name, r.reference_start, r.reference_end) == pbi.admits(r)


def test_bai_plan_rejects_several_regions():
    with pytest.raises(ConfigurationError):
        build_query_plan(make_dataset((False, True)), "chr1:1-10;chr2")


def test_partial_indexes_are_a_mismatch():
    with pytest.raises(ConfigurationError, match="Index mismatch"):
        build_query_plan(make_dataset((True, False), (False, False)), "chr1")
    with pytest.raises(ConfigurationError, match="Index mismatch"):
        build_query_plan(make_dataset((False, False)), "chr1")
    with pytest.raises(ConfigurationError, match="Index mismatch"):
        build_query_plan(make_dataset((True, False), (False, True)), "chr1")


def test_both_index_kinds_warn_but_complete_side_wins(caplog):
    ds = make_dataset((True, True), (True, False))
    with caplog.at_level(logging.WARNING, logger="harmony.regions"):
        plan = build_query_plan(ds, "chr1")
    assert plan.kind == PLAN_PBI
    assert "Both index files" in caplog.text


def test_no_files_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        build_query_plan(make_dataset(), "chr1")

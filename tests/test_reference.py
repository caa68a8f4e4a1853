from pathlib import Path

import pytest

from harmony.reference import is_reference_path, load_references


def test_duplicate_names_keep_the_last_record(tmp_path: Path):
    fa = tmp_path / "dup.fa"
    fa.write_text(">chr1\nAAAA\n>chr1\nCCCC\n", encoding="utf-8")
    assert load_references(fa) == {"chr1": "CCCC"}


def test_multiline_records_and_descriptions(tmp_path: Path):
    fa = tmp_path / "ref.fasta"
    fa.write_text(">chr1 first contig\nACGT\nAC\n>chr2\nTT\n", encoding="utf-8")
    assert load_references(fa) == {"chr1": "ACGTAC", "chr2": "TT"}


def test_missing_reference_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_references(tmp_path / "nope.fa")


@pytest.mark.parametrize(
    "path,expected",
    [("ref.fa", True), ("ref.FASTA", True), ("ref.fa.gz", True), ("out.txt", False), ("in.bam", False)],
)
def test_is_reference_path(path, expected):
    assert is_reference_path(path) is expected

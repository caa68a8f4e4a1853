from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

BASES: Tuple[str, ...] = ("A", "C", "G", "T")
BASE_INDEX = {b: i for i, b in enumerate(BASES)}

# pysam CIGAR operation codes
CIGAR_MATCH = 0  # M, ambiguous match/mismatch; not supported
CIGAR_INS = 1
CIGAR_DEL = 2
CIGAR_REF_SKIP = 3
CIGAR_SOFT_CLIP = 4
CIGAR_HARD_CLIP = 5
CIGAR_PAD = 6
CIGAR_EQUAL = 7
CIGAR_DIFF = 8
CIGAR_BACK = 9

MISSING = -1

Table4x4 = Tuple[Tuple[int, int, int, int], ...]
Table4 = Tuple[int, int, int, int]


@dataclass(frozen=True)
class AlignmentRecord:
    """One mapped alignment, decoded from BAM into plain Python values.

    Coordinates are 0-based half-open.

    Attributes
    ----------
    reference_id:
        Reference index unified across all input files of a run (ordering key).
    reference_start, reference_end:
        Reference span covered by the alignment.
    aligned_start, aligned_end:
        Query positions of the first and one-past-last aligned base
        (soft clips excluded).
    cigar:
        ``(op, length)`` pairs using pysam operation codes.
    sequence:
        Query bases in genomic orientation.
    qualities:
        Per-base Phred values in genomic orientation, if present.
    num_passes, expected_errors, read_accuracy:
        Values of the ``np``, ``ec`` and ``rq`` tags, if present.
    """

    name: str
    reference_name: str
    reference_id: int
    reference_start: int
    reference_end: int
    aligned_start: int
    aligned_end: int
    cigar: Tuple[Tuple[int, int], ...]
    sequence: str
    qualities: Optional[Tuple[int, ...]] = None
    num_passes: Optional[int] = None
    expected_errors: Optional[float] = None
    read_accuracy: Optional[float] = None
    mapping_quality: int = 255


@dataclass(frozen=True)
class ProfileRow:
    """Per-record error profile.

    Count tables are indexed by position in ``BASES``: ``sub[ref][query]``,
    ``ins_single[ref][query]``, ``ins_all[ref][query]``, ``del_single[ref]``
    and ``del_all[ref]``. They are ``None`` unless extended metrics were requested.
    """

    name: str
    passes: int
    ec: float
    rq: float
    seqlen: int
    alnlen: int
    concordance: float
    qv: int
    match: int
    mismatch: int
    deletions: int
    insertions: int
    del_events: int
    ins_events: int
    del_multi_events: int
    ins_multi_events: int
    reference_name: str = ""
    reference_found: bool = True
    sub: Optional[Table4x4] = None
    ins_single: Optional[Table4x4] = None
    del_single: Optional[Table4] = None
    ins_all: Optional[Table4x4] = None
    del_all: Optional[Table4] = None

    @property
    def extended(self) -> bool:
        return self.sub is not None

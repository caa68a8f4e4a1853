"""Single-pass CIGAR walk producing a per-record error profile.

Only explicit match/mismatch encodings are interpreted (``=``/``X``), together
with insertions, deletions and soft clips. Any other operation aborts with
:class:`~harmony.errors.UnsupportedCigarError`.
"""

from __future__ import annotations

import logging
import math
from typing import List, Mapping, Optional

from .errors import UnsupportedCigarError
from .models import (
    BASE_INDEX,
    BASES,
    CIGAR_DEL,
    CIGAR_DIFF,
    CIGAR_EQUAL,
    CIGAR_INS,
    CIGAR_SOFT_CLIP,
    MISSING,
    AlignmentRecord,
    ProfileRow,
)
from .utils import format_float

logger = logging.getLogger(__name__)

PERFECT_QV = 60

SCALAR_COLUMNS = (
    "name",
    "passes",
    "ec",
    "rq",
    "seqlen",
    "alnlen",
    "concordance",
    "qv",
    "match",
    "mismatch",
    "del",
    "ins",
    "del_events",
    "ins_events",
    "del_multi_events",
    "ins_multi_events",
)


def extended_columns() -> List[str]:
    pairs = [r + q for r in BASES for q in BASES]
    cols = [f"sub_{p}" for p in pairs]
    cols += [f"ins_single_{p}" for p in pairs]
    cols += [f"del_single_{r}" for r in BASES]
    cols += [f"ins_all_{p}" for p in pairs]
    cols += [f"del_all_{r}" for r in BASES]
    return cols


def format_header(extended: bool) -> str:
    cols = list(SCALAR_COLUMNS)
    if extended:
        cols += extended_columns()
    return " ".join(cols) + "\n"


def concordance_and_qv(errors: int, span: int) -> tuple[float, int]:
    """Return (concordance, QV) for ``errors`` over ``span`` aligned query bases.

    A zero span is reported as perfect concordance. The QV is not capped on the
    low side; it is exactly 60 iff concordance is 1.
    """
    if span <= 0:
        return 1.0, PERFECT_QV
    concordance = 1.0 - errors / span
    if concordance == 1.0:
        return concordance, PERFECT_QV
    error_rate = errors / span
    return concordance, int(round(-10.0 * math.log10(error_rate)))


def _idx(seq: str, pos: int) -> Optional[int]:
    if 0 <= pos < len(seq):
        return BASE_INDEX.get(seq[pos])
    return None


def _table4x4() -> List[List[int]]:
    return [[0, 0, 0, 0] for _ in range(4)]


def profile_record(
    record: AlignmentRecord,
    references: Optional[Mapping[str, str]] = None,
    extended: bool = False,
) -> ProfileRow:
    """Walk the CIGAR of ``record`` and compute its error profile.

    The reference cursor indexes into the reference slice
    ``[reference_start, reference_end)``. Insertions are keyed by the reference
    base that follows them, so an insertion closing the alignment uses the
    first base past ``reference_end``. When the reference is unknown, the
    extended tables stay zero while scalar counts are still computed.
    """
    ref = ""
    # one base of right context for trailing insertions
    ref_ext = ""
    found = True
    if references:
        seq = references.get(record.reference_name)
        if seq is None:
            found = False
        else:
            ref = seq[record.reference_start : record.reference_end]
            ref_ext = seq[record.reference_start : record.reference_end + 1]
    tally = extended and bool(ref)

    sub = _table4x4()
    ins_single = _table4x4()
    ins_all = _table4x4()
    del_single = [0, 0, 0, 0]
    del_all = [0, 0, 0, 0]

    ins = dels = ins_events = del_events = ins_multi = del_multi = 0
    match = mismatch = 0
    qry = record.sequence
    qry_pos = 0
    ref_pos = 0

    for op, length in record.cigar:
        if op == CIGAR_EQUAL or op == CIGAR_DIFF:
            if tally:
                for i in range(length):
                    r = _idx(ref, ref_pos + i)
                    q = _idx(qry, qry_pos + i)
                    if r is not None and q is not None:
                        sub[r][q] += 1
            if op == CIGAR_EQUAL:
                match += length
            else:
                mismatch += length
            ref_pos += length
            qry_pos += length
        elif op == CIGAR_INS:
            if tally:
                r = _idx(ref_ext, ref_pos)
                if r is not None:
                    q = _idx(qry, qry_pos)
                    if q is not None:
                        ins_single[r][q] += 1
                    for i in range(length):
                        q = _idx(qry, qry_pos + i)
                        if q is not None:
                            ins_all[r][q] += 1
            ins_events += 1
            if length > 1:
                ins_multi += 1
            ins += length
            qry_pos += length
        elif op == CIGAR_DEL:
            if tally:
                r = _idx(ref, ref_pos)
                if r is not None:
                    del_single[r] += 1
                for i in range(length):
                    r = _idx(ref, ref_pos + i)
                    if r is not None:
                        del_all[r] += 1
            del_events += 1
            if length > 1:
                del_multi += 1
            dels += length
            ref_pos += length
        elif op == CIGAR_SOFT_CLIP:
            qry_pos += length
        else:
            raise UnsupportedCigarError(op, record_name=record.name)

    span = record.aligned_end - record.aligned_start
    concordance, qv = concordance_and_qv(ins + dels + mismatch, span)

    tables = {}
    if extended:
        tables = dict(
            sub=tuple(tuple(row) for row in sub),
            ins_single=tuple(tuple(row) for row in ins_single),
            del_single=tuple(del_single),
            ins_all=tuple(tuple(row) for row in ins_all),
            del_all=tuple(del_all),
        )

    return ProfileRow(
        name=record.name,
        passes=record.num_passes if record.num_passes is not None else MISSING,
        ec=record.expected_errors if record.expected_errors is not None else MISSING,
        rq=record.read_accuracy if record.read_accuracy is not None else MISSING,
        seqlen=len(qry),
        alnlen=match + ins + mismatch,
        concordance=concordance,
        qv=qv,
        match=match,
        mismatch=mismatch,
        deletions=dels,
        insertions=ins,
        del_events=del_events,
        ins_events=ins_events,
        del_multi_events=del_multi,
        ins_multi_events=ins_multi,
        reference_name=record.reference_name,
        reference_found=found,
        **tables,
    )


def format_row(row: ProfileRow) -> str:
    """Render one output line (space separated, newline terminated)."""
    fields = [
        row.name,
        str(row.passes),
        format_float(row.ec),
        format_float(row.rq),
        str(row.seqlen),
        str(row.alnlen),
        format_float(row.concordance),
        str(row.qv),
        str(row.match),
        str(row.mismatch),
        str(row.deletions),
        str(row.insertions),
        str(row.del_events),
        str(row.ins_events),
        str(row.del_multi_events),
        str(row.ins_multi_events),
    ]
    if row.extended:
        assert row.sub is not None and row.ins_single is not None and row.ins_all is not None
        assert row.del_single is not None and row.del_all is not None
        fields += [str(v) for r in row.sub for v in r]
        fields += [str(v) for r in row.ins_single for v in r]
        fields += [str(v) for v in row.del_single]
        fields += [str(v) for r in row.ins_all for v in r]
        fields += [str(v) for v in row.del_all]
    return " ".join(fields) + "\n"

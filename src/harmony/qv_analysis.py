"""Empirical vs predicted quality values.

For every predicted QV (0..93) the tally counts bases aligned as matches
(hits) and bases aligned as mismatches or insertions (misses). The empirical
QV of a bin is ``round(-10 * log10(max(eps, miss / (hit + miss))))``.

A :class:`QVTally` is owned by whoever feeds it. The parallel pipeline gives
each worker its own tally and merges them once all batches are done.
"""

from __future__ import annotations

import logging
import math
import sys
from pathlib import Path
from typing import List, Tuple

import numpy as np

from .errors import UnsupportedCigarError
from .models import CIGAR_DEL, CIGAR_DIFF, CIGAR_EQUAL, CIGAR_INS, CIGAR_SOFT_CLIP, AlignmentRecord
from .plotting import plot_qv_curve
from .report import render_qv_report
from .utils import STDOUT

logger = logging.getLogger(__name__)

MAX_QV = 93
N_QV = MAX_QV + 1
CSV_HEADER = "#PredictedQV,EmpiricalQV,BaseCount"

_EPS = float(np.finfo(np.float64).eps)


def empirical_qv(hit: int, miss: int) -> int:
    total = hit + miss
    error_prob = miss / total if total > 0 else 0.0
    return int(round(-10.0 * math.log10(max(_EPS, error_prob))))


class QVTally:
    def __init__(self) -> None:
        # column 0: hits, column 1: misses
        self.counts = np.zeros((N_QV, 2), dtype=np.int64)
        self.records = 0

    def add_record(self, record: AlignmentRecord) -> None:
        if record.qualities is None:
            return
        quals = np.clip(np.asarray(record.qualities, dtype=np.int64), 0, MAX_QV)
        hit = np.zeros(len(quals), dtype=bool)
        miss = np.zeros(len(quals), dtype=bool)

        pos = 0
        for op, length in record.cigar:
            if op == CIGAR_EQUAL:
                hit[pos : pos + length] = True
                pos += length
            elif op == CIGAR_DIFF or op == CIGAR_INS:
                miss[pos : pos + length] = True
                pos += length
            elif op == CIGAR_SOFT_CLIP:
                pos += length
            elif op == CIGAR_DEL:
                continue
            else:
                raise UnsupportedCigarError(op, record_name=record.name)

        if pos != len(quals):
            raise ValueError(
                f"{record.name}: CIGAR consumes {pos} query bases but {len(quals)} qualities are present"
            )

        self.counts[:, 0] += np.bincount(quals[hit], minlength=N_QV)
        self.counts[:, 1] += np.bincount(quals[miss], minlength=N_QV)
        self.records += 1

    def merge(self, other: "QVTally") -> None:
        self.counts += other.counts
        self.records += other.records

    def rows(self) -> List[Tuple[int, int, int]]:
        """(predicted QV, empirical QV, base count) for every predicted QV."""
        out = []
        for qv in range(N_QV):
            hit, miss = int(self.counts[qv, 0]), int(self.counts[qv, 1])
            out.append((qv, empirical_qv(hit, miss), hit + miss))
        return out

    def to_csv(self) -> str:
        lines = [CSV_HEADER]
        lines += [f"{p},{e},{n}" for p, e, n in self.rows()]
        return "\n".join(lines) + "\n"

    def write(self, destination: str | Path) -> None:
        """Write to ``-`` (CSV on stdout), ``*.html``, ``*.png`` or a CSV file."""
        dest = str(destination)
        if dest == STDOUT:
            sys.stdout.write(self.to_csv())
            sys.stdout.flush()
            return

        path = Path(dest)
        path.parent.mkdir(parents=True, exist_ok=True)
        lower = dest.lower()
        if lower.endswith(".html"):
            render_qv_report(rows=self.rows(), csv_text=self.to_csv(), records=self.records, out_html=path)
        elif lower.endswith(".png"):
            plot_qv_curve(rows=self.rows(), out_png=path)
        else:
            path.write_text(self.to_csv(), encoding="utf-8")
        logger.info("QV analysis written: %s", path)

from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import pysam

from .models import CIGAR_DEL, CIGAR_DIFF, CIGAR_EQUAL, CIGAR_INS, CIGAR_SOFT_CLIP
from .utils import ensure_outdir, write_json

INDEX_CHOICES = ("bai", "pbi", "both", "none")

Cigar = List[Tuple[int, int]]


def _write_fasta(path: Path, contigs: Sequence[Tuple[str, str]]) -> None:
    lines: List[str] = []
    for name, seq in contigs:
        lines.append(f">{name}")
        for i in range(0, len(seq), 60):
            lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _mutate_base(base: str) -> str:
    for alt in ["A", "C", "G", "T"]:
        if alt != base:
            return alt
    return "A"


def make_read(
    name: str,
    reference_id: int,
    start0: int,
    seq: str,
    cigar: Cigar,
    *,
    qualities: Sequence[int] | None = None,
    tags: Sequence[Tuple[str, object]] = (),
    mapq: int = 60,
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = 0
    a.reference_id = reference_id
    a.reference_start = start0
    a.mapping_quality = mapq
    a.cigartuples = cigar
    if qualities is None:
        a.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
    else:
        a.query_qualities = pysam.qualitystring_to_array("".join(chr(q + 33) for q in qualities))
    for tag, value in tags:
        a.set_tag(tag, value)
    return a


def simulate_read(
    rng: random.Random, ref_seq: str, start0: int, length: int
) -> Tuple[str, Cigar]:
    """Copy ``ref_seq[start0:start0+length]`` with a few =/X/I/D/S events."""
    bases: List[str] = []
    cigar: Cigar = []

    def push(op: int, n: int) -> None:
        if cigar and cigar[-1][0] == op:
            cigar[-1] = (op, cigar[-1][1] + n)
        else:
            cigar.append((op, n))

    if rng.random() < 0.3:
        clip = "".join(rng.choice("ACGT") for _ in range(3))
        bases.append(clip)
        push(CIGAR_SOFT_CLIP, len(clip))

    pos = start0
    end = min(len(ref_seq), start0 + length)
    while pos < end:
        r = rng.random()
        if r < 0.03:
            bases.append(_mutate_base(ref_seq[pos]))
            push(CIGAR_DIFF, 1)
            pos += 1
        elif r < 0.05:
            n = rng.choice([1, 1, 2])
            bases.append("".join(rng.choice("ACGT") for _ in range(n)))
            push(CIGAR_INS, n)
        elif r < 0.07 and pos + 2 < end and cigar and cigar[-1][0] == CIGAR_EQUAL:
            n = rng.choice([1, 2])
            push(CIGAR_DEL, n)
            pos += n
        else:
            bases.append(ref_seq[pos])
            push(CIGAR_EQUAL, 1)
            pos += 1
    # alignments must not end on an insertion/deletion
    if cigar[-1][0] not in (CIGAR_EQUAL, CIGAR_DIFF):
        return simulate_read(rng, ref_seq, start0, length)
    return "".join(bases), cigar


def write_bam(
    path: Path,
    contigs: Sequence[Tuple[str, str]],
    reads: Sequence[pysam.AlignedSegment],
    *,
    index: str = "bai",
) -> Path:
    """Write reads sorted by position and create the requested index files.

    ``pbi`` only creates an empty marker file; PacBio indexes are not decoded
    by harmony, their presence selects the PBI query strategy.
    """
    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": name, "LN": len(seq)} for name, seq in contigs],
    }
    ordered = sorted(reads, key=lambda r: (r.reference_id, r.reference_start))
    with pysam.AlignmentFile(str(path), "wb", header=header) as bam:
        for r in ordered:
            bam.write(r)
    if index in ("bai", "both"):
        pysam.index(str(path))
    if index in ("pbi", "both"):
        path.with_suffix(path.suffix + ".pbi").write_bytes(b"")
    return path


def make_toy_data(*, outdir: str | Path, n_files: int = 3, index: str = "bai", seed: int = 7) -> Dict[str, object]:
    """Create a tiny reference, several sorted BAMs and a fofn for quick demos/tests.

    The outputs include:
    - toy_ref.fa
    - toy_<i>.bam (+ index files as requested)
    - toy.fofn listing the BAMs

    Returns
    -------
    dict
        Paths to the generated files.
    """
    if index not in INDEX_CHOICES:
        raise ValueError(f"index must be one of {INDEX_CHOICES}")
    outdir_p = ensure_outdir(outdir)
    rng = random.Random(seed)

    contigs = [
        ("chr1", "".join(rng.choice("ACGT") for _ in range(600))),
        ("chr2", "".join(rng.choice("ACGT") for _ in range(400))),
    ]
    ref_fa = outdir_p / "toy_ref.fa"
    _write_fasta(ref_fa, contigs)

    bams: List[str] = []
    for f in range(n_files):
        reads: List[pysam.AlignedSegment] = []
        for i in range(12):
            tid = 0 if i < 8 else 1
            ref_seq = contigs[tid][1]
            start0 = rng.randrange(0, len(ref_seq) - 120)
            seq, cigar = simulate_read(rng, ref_seq, start0, rng.randrange(40, 100))
            quals = [rng.randrange(5, 60) for _ in seq]
            reads.append(
                make_read(
                    f"toy/{f}/{i}",
                    tid,
                    start0,
                    seq,
                    cigar,
                    qualities=quals,
                    tags=[("np", rng.randrange(1, 20)), ("rq", 0.99), ("ec", 10.0)],
                )
            )
        bam_path = write_bam(outdir_p / f"toy_{f}.bam", contigs, reads, index=index)
        bams.append(str(bam_path))

    fofn = outdir_p / "toy.fofn"
    fofn.write_text("\n".join(bams) + "\n", encoding="utf-8")

    summary: Dict[str, object] = {
        "ref_fa": str(ref_fa),
        "bams": bams,
        "fofn": str(fofn),
        "index": index,
        "outdir": str(outdir_p),
    }
    write_json(outdir_p / "toy_summary.json", summary)
    return summary

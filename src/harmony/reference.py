from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict

import pysam

logger = logging.getLogger(__name__)

_FASTA_SUFFIXES = (".fa", ".fasta", ".fa.gz", ".fasta.gz")


def is_reference_path(path: str | Path) -> bool:
    """True if ``path`` looks like a FASTA file (.fa/.fasta, optionally gzipped)."""
    return str(path).lower().endswith(_FASTA_SUFFIXES)


def load_references(path: str | Path) -> Dict[str, str]:
    """Load every sequence of a FASTA file into a name -> sequence mapping.

    Later records with a duplicate name replace earlier ones. Sequences are
    stored as-is; alphabet and length are not validated.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Reference FASTA does not exist: {p}")

    refs: Dict[str, str] = {}
    with pysam.FastxFile(str(p)) as fh:
        for entry in fh:
            if entry.name in refs:
                logger.debug("Duplicate reference name %s; keeping the last record", entry.name)
            refs[entry.name] = entry.sequence or ""
    logger.info("Loaded %d reference sequence(s) from %s", len(refs), p)
    return refs

"""Harmony: per-read alignment error profiles for sequencing quality assessment.

Public API is intentionally small; most users should use the CLI:

    harmony profile aligned.bam ref.fasta out.harmony.txt

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.3.0"

from __future__ import annotations

from typing import Optional

from .models import CIGAR_BACK, CIGAR_HARD_CLIP, CIGAR_MATCH, CIGAR_PAD, CIGAR_REF_SKIP


class HarmonyError(Exception):
    """Base class for errors raised by harmony."""


class ConfigurationError(HarmonyError, ValueError):
    """Raised for unusable user input: region syntax, index layout, arguments."""


class UnsupportedCigarError(HarmonyError):
    """Raised when a record carries a CIGAR operation the profiler cannot interpret.

    Processing stops on this error; silently skipping such operations would
    produce wrong statistics.
    """

    def __init__(self, op: int, *, record_name: Optional[str] = None) -> None:
        label = _CIGAR_LABELS.get(op, "UNKNOWN OP")
        msg = f"Unsupported CIGAR operation: {label} (op={op})"
        if record_name is not None:
            msg = f"{record_name}: {msg}"
        super().__init__(msg)
        self.op = int(op)
        self.record_name = record_name


_CIGAR_LABELS = {
    CIGAR_MATCH: "ALIGNMENT MATCH",
    CIGAR_REF_SKIP: "REFERENCE SKIP",
    CIGAR_HARD_CLIP: "HARD CLIP",
    CIGAR_PAD: "PADDING",
    CIGAR_BACK: "BACK",
}

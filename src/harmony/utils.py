from __future__ import annotations

import gzip
import json
import logging
import sys
from pathlib import Path
from typing import Any, Iterable, Iterator, TextIO, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

STDOUT = "-"


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def open_output(path: str | Path) -> TextIO:
    """Open a text output destination; ``-`` means standard output."""
    p = str(path)
    if p == STDOUT:
        return sys.stdout
    if p.endswith(".gz"):
        return gzip.open(p, "wt")  # type: ignore[return-value]
    Path(p).parent.mkdir(parents=True, exist_ok=True)
    return open(p, "wt", encoding="utf-8")


def close_output(fh: TextIO) -> None:
    if fh is sys.stdout:
        fh.flush()
        return
    fh.close()


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)


def chunked(iterable: Iterable[T], n: int) -> Iterator[list[T]]:
    chunk: list[T] = []
    for item in iterable:
        chunk.append(item)
        if len(chunk) >= n:
            yield chunk
            chunk = []
    if chunk:
        yield chunk


def format_float(x: float) -> str:
    """Format like a default C++ ostream (6 significant digits)."""
    return f"{x:g}"

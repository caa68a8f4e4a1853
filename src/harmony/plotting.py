from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import BinaryIO, Sequence, Tuple

import matplotlib.pyplot as plt

logger = logging.getLogger(__name__)

QVRow = Tuple[int, int, int]


def _draw_qv_curve(rows: Sequence[QVRow], out: str | Path | BinaryIO, title: str) -> None:
    used = [r for r in rows if r[2] > 0]
    predicted = [r[0] for r in used]
    empirical = [r[1] for r in used]
    counts = [r[2] for r in used]
    top = max([60] + predicted + empirical)

    fig, (ax_qv, ax_n) = plt.subplots(
        2, 1, figsize=(6.4, 6.4), sharex=True, gridspec_kw={"height_ratios": [3, 1]}
    )
    ax_qv.plot([0, top], [0, top], linestyle="--", color="#999999", linewidth=1, label="y = x")
    ax_qv.plot(predicted, empirical, marker="o", markersize=3, label="empirical")
    ax_qv.set_ylabel("Empirical QV")
    ax_qv.set_title(title)
    ax_qv.legend(loc="upper left")

    ax_n.bar(predicted, counts, width=0.8)
    ax_n.set_xlabel("Predicted QV")
    ax_n.set_ylabel("Bases")
    if counts:
        ax_n.set_yscale("log")

    fig.tight_layout()
    fig.savefig(out, dpi=160, format="png")
    plt.close(fig)


def plot_qv_curve(
    *,
    rows: Sequence[QVRow],
    out_png: str | Path,
    title: str = "Predicted vs empirical QV",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)
    _draw_qv_curve(rows, out_png, title)


def qv_curve_png(rows: Sequence[QVRow], *, title: str = "Predicted vs empirical QV") -> bytes:
    """Render the QV curve into PNG bytes (for embedding in the HTML report)."""
    buf = io.BytesIO()
    _draw_qv_curve(rows, buf, title)
    return buf.getvalue()

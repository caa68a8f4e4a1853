from __future__ import annotations

import base64
import datetime as _dt
import logging
from pathlib import Path
from typing import Sequence, Tuple

from jinja2 import Template

from . import __version__
from .plotting import qv_curve_png

logger = logging.getLogger(__name__)


_QV_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Harmony QV Analysis</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    pre { padding: 12px; overflow-x: auto; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 4px 8px; text-align: right; }
    th { background: #f2f2f2; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>Predicted vs empirical QV</h1>
<p class="small">Generated: {{ generated_at }} &middot; {{ records }} record(s) &middot; {{ total_bases }} base(s)</p>

<img src="data:image/png;base64,{{ plot_b64 }}" alt="predicted vs empirical QV">

<h2>Per predicted QV</h2>
<table>
  <tr><th>Predicted QV</th><th>Empirical QV</th><th>Bases</th></tr>
  {% for predicted, empirical, count in rows if count > 0 %}
  <tr><td>{{ predicted }}</td><td>{{ empirical }}</td><td>{{ count }}</td></tr>
  {% endfor %}
</table>

<h2>Data</h2>
<pre id="qv-data">{{ csv_text }}</pre>
<script>
const DATA = document.getElementById("qv-data").textContent;
</script>

<hr>
<p class="small">Harmony {{ version }}</p>
</body>
</html>"""
)


def render_qv_report(
    *,
    rows: Sequence[Tuple[int, int, int]],
    csv_text: str,
    records: int,
    out_html: str | Path,
) -> Path:
    """Write a self-contained HTML report (table, raw CSV and embedded PNG)."""
    out_html = Path(out_html)
    out_html.parent.mkdir(parents=True, exist_ok=True)

    html = _QV_REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=__version__,
        records=records,
        total_bases=sum(r[2] for r in rows),
        rows=rows,
        csv_text=csv_text,
        plot_b64=base64.b64encode(qv_curve_png(rows)).decode("ascii"),
    )
    out_html.write_text(html, encoding="utf-8")
    return out_html

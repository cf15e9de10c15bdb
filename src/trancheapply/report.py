from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>TrancheApply Report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    .warn { color: #a15c00; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>TrancheApply Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>Input VCF</th><td><code>{{ run.input_vcf }}</code></td></tr>
      <tr><th>Recal VCF</th><td><code>{{ run.recal_vcf }}</code></td></tr>
      <tr><th>Tranches</th><td><code>{{ run.tranches_file }}</code></td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Settings</h3>
    <table>
      <tr><th>Truth sensitivity filter level</th><td>{{ run.ts_filter_level }}</td></tr>
      <tr><th>Mode</th><td>{{ run.mode }}</td></tr>
      <tr><th>Ignored input filters</th><td>{{ run.ignore_filters|join(", ") or "none" }}</td></tr>
      <tr><th>Shards</th><td>{{ run.shards }}</td></tr>
    </table>
  </div>
</div>
{% if run.stopped_early %}
<p class="warn">The traversal stopped early at the maximum record cutoff ({{ run.max_records }}); the output is partial.</p>
{% endif %}

<h2>Tranches in use</h2>
<table>
  <tr><th>#</th><th>Name</th><th>Truth sensitivity</th><th>min VQSLOD</th><th>Model</th></tr>
  {% for t in run.tranches %}
  <tr><td>{{ loop.index0 }}</td><td><code>{{ t.name }}</code></td><td>{{ t.truth_sensitivity }}</td><td>{{ t.threshold }}</td><td>{{ t.model }}</td></tr>
  {% endfor %}
</table>

<h2>Records</h2>
<table>
  <tr><th>Sites visited</th><td>{{ counts.sites }}</td></tr>
  <tr><th>Records seen</th><td>{{ counts.records_seen }}</td></tr>
  <tr><th>Recalibrated</th><td>{{ counts.records_recalibrated }}</td></tr>
  <tr><th>Passed through untouched</th><td>{{ counts.records_passthrough }}</td></tr>
  <tr><th>PASS</th><td>{{ counts.records_pass }}</td></tr>
  <tr><th>Tagged with a tranche</th><td>{{ counts.records_tagged }}</td></tr>
  <tr><th>Below lowest tranche</th><td>{{ counts.records_below_lowest }}</td></tr>
  {% if run.downsample_to is not none %}<tr><th>Dropped by downsampling</th><td>{{ counts.records_downsampled }}</td></tr>{% endif %}
</table>

<h3>Per filter</h3>
<table>
  {% for name, n in tranche_counts.items() %}
  <tr><th><code>{{ name }}</code></th><td>{{ n }}</td></tr>
  {% endfor %}
</table>

<h2>Plots</h2>
<div class="grid">
  <div class="card">
    <h3>Records per filter</h3>
    <img src="{{ plots.tranche_counts }}" alt="tranche counts">
  </div>
  <div class="card">
    <h3>VQSLOD distribution</h3>
    <img src="{{ plots.vqslod_hist }}" alt="VQSLOD histogram">
  </div>
</div>

<h2>Outputs</h2>
<ul>
  <li><code>{{ run.out_vcf }}</code> (recalibrated VCF)</li>
  <li><code>summary.json</code> (machine-readable summary)</li>
</ul>

<h2>Interpretation notes</h2>
<ul>
  <li>Records in the most permissive retained tranche are marked PASS.</li>
  <li>Records below every retained threshold carry the lowest tranche name with a trailing <code>+</code>.</li>
  <li>Records of another variant type than the mode, or already filtered upstream, are written unchanged.</li>
</ul>

<hr>
<p class="small">TrancheApply {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: Dict[str, Any],
    plots: Dict[str, str],
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        run=run,
        counts=run.get("counts", {}),
        tranche_counts=run.get("tranche_counts", {}),
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    return out_path

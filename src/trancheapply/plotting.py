from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Sequence

import matplotlib.pyplot as plt

logger = logging.getLogger(__name__)


def plot_vqslod_hist(
    *,
    bin_edges: List[float],
    counts: List[int],
    thresholds: Sequence[float],
    out_png: str | Path,
    title: str = "VQSLOD distribution",
) -> None:
    """Histogram of recalibrated scores with a dashed line per tranche threshold.

    Scores outside the bin range were clipped into the outer bins.
    """
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    widths = [bin_edges[i + 1] - bin_edges[i] for i in range(len(counts))]
    centers = [bin_edges[i] + widths[i] / 2.0 for i in range(len(counts))]

    plt.figure()
    plt.bar(centers, counts, width=widths, align="center")
    lo, hi = bin_edges[0], bin_edges[-1]
    for t in thresholds:
        if lo <= t <= hi:
            plt.axvline(t, color="red", linestyle="--", linewidth=1)
    plt.xlabel("VQSLOD")
    plt.ylabel("Record count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_tranche_counts(
    *,
    tranche_counts: Dict[str, int],
    order: Sequence[str],
    out_png: str | Path,
    title: str = "Records per filter",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    # Known filter strings first (PASS, tranches, lowest+), then anything else seen.
    labels = [x for x in order if x in tranche_counts]
    labels += sorted(x for x in tranche_counts if x not in labels)
    values = [int(tranche_counts[x]) for x in labels]

    plt.figure()
    plt.bar(range(len(labels)), values)
    plt.ylabel("Record count")
    plt.title(title)
    plt.xticks(range(len(labels)), labels, rotation=30, ha="right", fontsize=7)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()

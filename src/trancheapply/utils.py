from __future__ import annotations

import gzip
import json
import logging
import math
from pathlib import Path
from typing import Any, Optional, TextIO

logger = logging.getLogger(__name__)


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def open_textmaybe_gzip(path: str | Path, mode: str = "rt") -> TextIO:
    p = str(path)
    if p.endswith(".gz"):
        return gzip.open(p, mode)  # type: ignore[return-value]
    return open(p, mode)


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)


def parse_float(text: Any) -> Optional[float]:
    """Parse a number from VCF/TSV text; None if it is not a valid numeral."""
    if text is None:
        return None
    if isinstance(text, (tuple, list)):
        if len(text) != 1:
            return None
        text = text[0]
    try:
        return float(text)
    except (TypeError, ValueError):
        return None


def format_float(x: float) -> str:
    # Keep infinities readable in logs and JSON.
    if math.isinf(x):
        return "inf" if x > 0 else "-inf"
    return f"{x:.4f}"

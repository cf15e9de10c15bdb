"""Tranche files and the threshold table built from them.

A tranches file is the CSV written by the recalibration step::

    # Variant quality score tranches file
    # Version number 5
    targetTruthSensitivity,numKnown,numNovel,knownTiTv,novelTiTv,minVQSLod,filterName,model,...
    90.00,47940,4242,2.1489,1.9497,4.4727,VQSRTrancheSNP0.00to90.00,SNP,...

Only ``targetTruthSensitivity``, ``minVQSLod`` and ``filterName`` are required;
``model`` defaults to SNP when the column is absent (older files).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Tuple, Union

from .errors import ConfigurationError
from .models import MODE_SNP, MODES, Tranche
from .utils import format_float, open_textmaybe_gzip, parse_float

logger = logging.getLogger(__name__)

_COL_TS = "targetTruthSensitivity"
_COL_LOD = "minVQSLod"
_COL_NAME = "filterName"
_COL_MODEL = "model"
_REQUIRED_COLUMNS = (_COL_TS, _COL_LOD, _COL_NAME)

TrancheSource = Union[str, Path, Iterable[Tranche]]


def read_tranches(path: str | Path) -> List[Tranche]:
    """Parse a tranches file (optionally gzipped) into Tranche objects, in file order."""
    tranches: List[Tranche] = []
    header: List[str] = []

    with open_textmaybe_gzip(path, "rt") as fh:
        for lineno, line in enumerate(fh, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            fields = [x.strip() for x in line.split(",")]
            if not header:
                header = fields
                missing = [c for c in _REQUIRED_COLUMNS if c not in header]
                if missing:
                    raise ConfigurationError(
                        f"Tranches file {path} is missing required column(s): {', '.join(missing)}"
                    )
                continue
            if len(fields) != len(header):
                raise ConfigurationError(
                    f"Malformed tranches file {path}, line {lineno}: expected {len(header)} "
                    f"fields, found {len(fields)}"
                )
            row = dict(zip(header, fields))
            ts = parse_float(row[_COL_TS])
            lod = parse_float(row[_COL_LOD])
            if ts is None or lod is None:
                raise ConfigurationError(
                    f"Malformed tranches file {path}, line {lineno}: "
                    f"non-numeric {_COL_TS} or {_COL_LOD}"
                )
            model = row.get(_COL_MODEL) or MODE_SNP
            tranches.append(
                Tranche(name=row[_COL_NAME], threshold=lod, truth_sensitivity=ts, model=model)
            )
    return tranches


@dataclass(frozen=True)
class ThresholdTable:
    """Tranches retained at a truth-sensitivity cutoff, in classification order.

    Index 0 is the retained tranche nearest the cutoff; the last index is the
    most permissive (highest truth sensitivity) tranche. Records scoring into
    the last tranche pass; build with :meth:`from_tranches` to get this order.
    """

    tranches: Tuple[Tranche, ...]
    ts_filter_level: float

    def __post_init__(self) -> None:
        if len(self.tranches) == 0:
            raise ConfigurationError(
                "No tranches were found in the file or were above the truth sensitivity "
                f"filter level {self.ts_filter_level}"
            )
        ts = [t.truth_sensitivity for t in self.tranches]
        if any(a > b for a, b in zip(ts, ts[1:])):
            raise ConfigurationError(
                "Threshold table must be ordered by increasing truth sensitivity"
            )

    @classmethod
    def from_tranches(cls, tranches: Iterable[Tranche], ts_filter_level: float) -> "ThresholdTable":
        # Most inclusive first, as the recalibrator reports them, then keep and flip.
        ordered = sorted(tranches, key=lambda t: t.truth_sensitivity, reverse=True)
        retained: List[Tranche] = []
        for t in ordered:
            if t.truth_sensitivity >= ts_filter_level:
                retained.append(t)
            logger.info("Read tranche %s", t)
        retained.reverse()
        return cls(tranches=tuple(retained), ts_filter_level=float(ts_filter_level))

    def __len__(self) -> int:
        return len(self.tranches)

    def __getitem__(self, i: int) -> Tranche:
        return self.tranches[i]

    def __iter__(self) -> Iterator[Tranche]:
        return iter(self.tranches)

    @property
    def lowest(self) -> Tranche:
        return self.tranches[0]

    @property
    def most_inclusive(self) -> Tranche:
        return self.tranches[-1]

    @property
    def names(self) -> List[str]:
        return [t.name for t in self.tranches]


def load_threshold_table(source: TrancheSource, ts_filter_level: float) -> ThresholdTable:
    """Build the threshold table from a tranches file path or an iterable of tranches.

    Raises ConfigurationError if no tranche meets ``ts_filter_level``.
    """
    if isinstance(source, (str, Path)):
        tranches = read_tranches(source)
    else:
        tranches = list(source)

    for t in tranches:
        if t.model not in MODES:
            logger.warning("Tranche %s has unrecognised model %r", t.name, t.model)

    table = ThresholdTable.from_tranches(tranches, ts_filter_level)
    logger.info("Keeping all variants in tranche %s", table.most_inclusive)
    return table


def tagging_range(table: ThresholdTable, i: int) -> Tuple[float, float]:
    """Scores ``[lower, upper)`` that classification tags with tranche ``i``.

    Only meaningful below the last index (which passes). The range is empty
    (``lower >= upper``) when a tranche scanned before ``i`` already claims
    every score reaching ``i``'s threshold, as in tables whose thresholds fall
    with rising truth sensitivity.
    """
    if not 0 <= i < len(table) - 1:
        raise IndexError(f"Tranche index {i} has no tagging range in a table of {len(table)}")
    upper = min(x.threshold for x in table.tranches[i + 1 :])
    return table[i].threshold, upper


def is_reachable(table: ThresholdTable, i: int) -> bool:
    """Whether any score is tagged with tranche ``i`` (the last index always passes)."""
    if i == len(table) - 1:
        return True
    lower, upper = tagging_range(table, i)
    return lower < upper


def filter_descriptions(table: ThresholdTable) -> Dict[str, str]:
    """FILTER header descriptions for every filter string classification can emit.

    The ranges follow classification: tranche ``i`` is tagged when the score
    reaches its threshold but none of the tranches scanned before it.
    """
    out: Dict[str, str] = {}
    for i in range(len(table) - 1):
        t = table[i]
        lower, upper = tagging_range(table, i)
        out[t.name] = (
            f"Truth sensitivity tranche level for {t.model} model at VQS Lod: "
            f"{format_float(lower)} <= x < {format_float(upper)}"
        )
    lowest = table.lowest
    floor = min(x.threshold for x in table.tranches)
    out[lowest.name + "+"] = (
        f"Truth sensitivity tranche level for {lowest.model} model at VQS Lod < "
        f"{format_float(floor)}"
    )
    return out

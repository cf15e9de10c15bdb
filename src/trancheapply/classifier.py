from __future__ import annotations

from .errors import ConfigurationError
from .models import (
    KIND_INDEL,
    KIND_MIXED,
    KIND_MNP,
    KIND_SNP,
    KIND_SYMBOLIC,
    MODE_BOTH,
    MODE_INDEL,
    MODE_SNP,
    MODES,
    TrancheDecision,
)
from .tranches import ThresholdTable

_MODE_KINDS = {
    MODE_SNP: frozenset([KIND_SNP, KIND_MNP]),
    MODE_INDEL: frozenset([KIND_INDEL, KIND_MIXED, KIND_SYMBOLIC]),
}


def classify(score: float, table: ThresholdTable) -> TrancheDecision:
    """Map a VQSLOD score to a tranche decision.

    Tranches are scanned from the most inclusive (last) to index 0 and the
    first one whose threshold the score reaches wins. Reaching the last
    tranche passes the record; reaching another tranche tags it with that
    tranche's name; reaching none tags it ``<table[0].name>+``.
    """
    last = len(table) - 1
    for i in range(last, -1, -1):
        if score >= table[i].threshold:
            if i == last:
                return TrancheDecision.unfiltered()
            return TrancheDecision.tagged(table[i].name)
    return TrancheDecision.below_lowest(table[0].name)


def check_mode(mode: str) -> str:
    m = str(mode).upper()
    if m not in MODES:
        raise ConfigurationError(f"Unknown recalibration mode {mode!r}; expected one of {list(MODES)}")
    return m


def mode_accepts(mode: str, kind: str) -> bool:
    """Whether a variant of ``kind`` is recalibrated under ``mode``."""
    m = check_mode(mode)
    if m == MODE_BOTH:
        return True
    return kind in _MODE_KINDS[m]

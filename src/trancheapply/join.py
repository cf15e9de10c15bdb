from __future__ import annotations

from typing import Iterable, Optional, Tuple

from .errors import JoinMismatchError
from .models import ScoredAnnotation, VariantRecord
from .utils import parse_float


def match_score(
    record: VariantRecord, candidates: Iterable[ScoredAnnotation]
) -> Optional[ScoredAnnotation]:
    """Return the first candidate sharing the record's end coordinate, or None."""
    loc = record.coordinate
    for cand in candidates:
        if cand.coordinate.rank == loc.rank and cand.coordinate.end == loc.end:
            return cand
    return None


def resolve_score(
    record: VariantRecord, candidates: Iterable[ScoredAnnotation]
) -> Tuple[ScoredAnnotation, float]:
    """Find the record's scored annotation and parse its score.

    Raises JoinMismatchError when there is no match, the match carries no
    score, or the score is not a number.
    """
    annotation = match_score(record, candidates)
    if annotation is None:
        raise JoinMismatchError(
            "Encountered input variant which isn't found in the input recal file. "
            "Please make sure the recalibration and apply steps were run on the same set "
            f"of input variants. First seen at: {record}",
            coordinate=record.coordinate,
        )
    if annotation.raw_score is None:
        raise JoinMismatchError(
            f"Encountered a malformed record in the input recal file. There is no lod for the record at: {record}",
            coordinate=record.coordinate,
        )
    score = parse_float(annotation.raw_score)
    if score is None:
        raise JoinMismatchError(
            "Encountered a malformed record in the input recal file. "
            f"The lod is unreadable ({annotation.raw_score!r}) for the record at: {record}",
            coordinate=record.coordinate,
        )
    return annotation, score

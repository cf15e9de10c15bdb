from typing import Optional

from trancheapply.models import Coordinate, ScoredAnnotation, VariantRecord

CONTIGS = ["chr1", "chr2"]


def loc(start: int, end: Optional[int] = None, contig: str = "chr1") -> Coordinate:
    return Coordinate(
        contig=contig,
        rank=CONTIGS.index(contig),
        start=start,
        end=start if end is None else end,
    )


def snp(start: int, contig: str = "chr1", filters=None) -> VariantRecord:
    return VariantRecord(
        coordinate=loc(start, contig=contig),
        ref="A",
        alts=("G",),
        kind="SNP",
        filters=filters,
    )


def deletion(start: int, length: int, contig: str = "chr1") -> VariantRecord:
    ref = "A" * (length + 1)
    return VariantRecord(
        coordinate=loc(start, start + length, contig=contig),
        ref=ref,
        alts=("A",),
        kind="INDEL",
    )


def recal(coord: Coordinate, score: Optional[str], culprit: str = "QD") -> ScoredAnnotation:
    return ScoredAnnotation(coordinate=coord, raw_score=score, culprit=culprit)

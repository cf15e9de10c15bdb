from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, FrozenSet, Mapping, Optional, Tuple

PASS = "PASS"

# Variant kinds as derived from REF/ALT alleles.
KIND_SNP = "SNP"
KIND_MNP = "MNP"
KIND_INDEL = "INDEL"
KIND_MIXED = "MIXED"
KIND_SYMBOLIC = "SYMBOLIC"
KIND_NO_VARIATION = "NO_VARIATION"

# Recalibration modes (also the model tag carried by each tranche).
MODE_SNP = "SNP"
MODE_INDEL = "INDEL"
MODE_BOTH = "BOTH"
MODES = (MODE_SNP, MODE_INDEL, MODE_BOTH)


@dataclass(frozen=True, order=True)
class Coordinate:
    """A closed, 1-based interval on one contig.

    Ordering is by ``(rank, start, end)``; ``rank`` is the contig's position in
    the reference dictionary, so the contig name does not take part in
    comparisons.

    Attributes
    ----------
    contig:
        Contig name as present in the VCF header.
    rank:
        0-based index of the contig in the header's contig list.
    start, end:
        1-based inclusive bounds (``end >= start``).
    """

    contig: str = field(compare=False)
    rank: int
    start: int
    end: int

    def overlaps(self, other: "Coordinate") -> bool:
        return self.rank == other.rank and self.start <= other.end and other.start <= self.end

    def precedes(self, other: "Coordinate") -> bool:
        """True if this interval lies wholly before ``other``."""
        if self.rank != other.rank:
            return self.rank < other.rank
        return self.end < other.start

    def point(self) -> "Coordinate":
        """The single-base coordinate at this interval's start."""
        return Coordinate(contig=self.contig, rank=self.rank, start=self.start, end=self.start)

    def __str__(self) -> str:
        if self.start == self.end:
            return f"{self.contig}:{self.start}"
        return f"{self.contig}:{self.start}-{self.end}"


@dataclass(frozen=True)
class VariantRecord:
    """A variant call from the input VCF.

    ``filters`` is ``None`` for an unfiltered record (``.`` in the FILTER
    column), an empty frozenset for ``PASS``, and the applied filter names
    otherwise. ``raw`` is the backing pysam record (if any); only the output
    writer looks at it.
    """

    coordinate: Coordinate
    ref: str
    alts: Tuple[str, ...]
    kind: str
    filters: Optional[FrozenSet[str]] = None
    attributes: Mapping[str, Any] = field(default_factory=dict)
    record_id: Optional[str] = None
    raw: Any = field(default=None, compare=False, repr=False)

    @property
    def is_filtered(self) -> bool:
        return bool(self.filters)

    def __str__(self) -> str:
        alts = ",".join(self.alts) if self.alts else "."
        return f"{self.coordinate} {self.ref}>{alts}"


@dataclass(frozen=True)
class ScoredAnnotation:
    """A record from the recalibration file: score text and culprit annotation."""

    coordinate: Coordinate
    raw_score: Optional[str]
    culprit: Optional[str] = None


@dataclass(frozen=True)
class Tranche:
    """One line of a tranches file.

    Attributes
    ----------
    name:
        Filter name written to records that fall into this tranche.
    threshold:
        Minimum VQSLOD for inclusion (``minVQSLod``).
    truth_sensitivity:
        Target truth sensitivity in percent; higher is more permissive.
    model:
        Recalibration model the tranche was built for (SNP/INDEL/BOTH).
    """

    name: str
    threshold: float
    truth_sensitivity: float
    model: str = MODE_SNP

    def __str__(self) -> str:
        return (
            f"Tranche ts={self.truth_sensitivity:.2f} minVQSLod={self.threshold:.4f} "
            f"name={self.name} model={self.model}"
        )


DECISION_PASS = "PASS"
DECISION_TAGGED = "TAGGED"
DECISION_BELOW_LOWEST = "BELOW_LOWEST"


@dataclass(frozen=True)
class TrancheDecision:
    """Outcome of classifying one score against a threshold table."""

    kind: str  # 'PASS', 'TAGGED' or 'BELOW_LOWEST'
    filter_name: Optional[str] = None

    @classmethod
    def unfiltered(cls) -> "TrancheDecision":
        return cls(kind=DECISION_PASS)

    @classmethod
    def tagged(cls, name: str) -> "TrancheDecision":
        return cls(kind=DECISION_TAGGED, filter_name=name)

    @classmethod
    def below_lowest(cls, lowest_name: str) -> "TrancheDecision":
        return cls(kind=DECISION_BELOW_LOWEST, filter_name=lowest_name + "+")

    @property
    def is_pass(self) -> bool:
        return self.kind == DECISION_PASS

    @property
    def filters(self) -> FrozenSet[str]:
        if self.filter_name is None:
            return frozenset()
        return frozenset([self.filter_name])

    @property
    def label(self) -> str:
        return PASS if self.filter_name is None else self.filter_name

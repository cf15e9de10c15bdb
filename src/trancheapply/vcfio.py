"""pysam adapters: VCF records in, recalibrated VCF out.

Coordinates are converted to 1-based closed intervals (``start = POS``,
``end = POS + len(REF) - 1`` or the END tag), with contig ranks taken from the
input VCF header so both inputs share one ordering.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np
import pysam

from .errors import ConfigurationError, SequenceOrderViolation
from .models import (
    KIND_INDEL,
    KIND_MIXED,
    KIND_MNP,
    KIND_NO_VARIATION,
    KIND_SNP,
    KIND_SYMBOLIC,
    PASS,
    Coordinate,
    ScoredAnnotation,
    VariantRecord,
)
from .tranches import ThresholdTable, filter_descriptions

logger = logging.getLogger(__name__)

VQSLOD_KEY = "VQSLOD"
CULPRIT_KEY = "culprit"


def contig_ranks(header: pysam.VariantHeader) -> Dict[str, int]:
    """Map contig name -> rank in header order; the header must declare contigs."""
    names = list(header.contigs)
    if not names:
        raise ConfigurationError(
            "Input VCF header declares no ##contig lines; contig order cannot be determined"
        )
    return {name: i for i, name in enumerate(names)}


def _is_symbolic(allele: str) -> bool:
    return allele.startswith("<") or "[" in allele or "]" in allele or allele == "*"


def variant_kind(ref: str, alts: Iterable[str]) -> str:
    """Classify REF/ALT alleles as SNP, MNP, INDEL, SYMBOLIC, MIXED or NO_VARIATION."""
    kinds = set()
    for alt in alts:
        if _is_symbolic(alt):
            kinds.add(KIND_SYMBOLIC)
        elif len(alt) == len(ref):
            kinds.add(KIND_SNP if len(ref) == 1 else KIND_MNP)
        else:
            kinds.add(KIND_INDEL)
    if not kinds:
        return KIND_NO_VARIATION
    if len(kinds) == 1:
        return kinds.pop()
    return KIND_MIXED


def _coordinate(rec: pysam.VariantRecord, ranks: Dict[str, int]) -> Coordinate:
    contig = str(rec.contig)
    rank = ranks.get(contig)
    if rank is None:
        raise ConfigurationError(
            f"Contig '{contig}' (record at {contig}:{rec.pos}) is not declared in the input VCF header"
        )
    start = int(rec.pos)
    end = max(start, int(rec.stop))  # 0-based exclusive stop == 1-based inclusive end
    return Coordinate(contig=contig, rank=rank, start=start, end=end)


def _filters(rec: pysam.VariantRecord) -> Optional[frozenset]:
    keys = list(rec.filter.keys())
    if not keys:
        return None
    return frozenset(k for k in keys if k != PASS)


def _fetch(vf: pysam.VariantFile, contig: Optional[str]) -> Iterable[pysam.VariantRecord]:
    if contig is None:
        return vf
    if contig not in vf.header.contigs:
        return iter(())
    return vf.fetch(contig)


def to_variant_record(rec: pysam.VariantRecord, ranks: Dict[str, int]) -> VariantRecord:
    ref = str(rec.ref)
    alts: Tuple[str, ...] = tuple(rec.alts or ())
    return VariantRecord(
        coordinate=_coordinate(rec, ranks),
        ref=ref,
        alts=alts,
        kind=variant_kind(ref, alts),
        filters=_filters(rec),
        attributes=dict(rec.info.items()),
        record_id=rec.id,
        raw=rec,
    )


def iter_variant_records(
    vf: pysam.VariantFile, ranks: Dict[str, int], *, contig: Optional[str] = None
) -> Iterator[VariantRecord]:
    """Stream input records (whole file, or one contig from an indexed file)."""
    for rec in _fetch(vf, contig):
        yield to_variant_record(rec, ranks)


def _value_text(value: Any) -> str:
    # htslib hands Float INFO values back as 32-bit floats; the shortest text
    # that round-trips to the same float32 is the number as written in the file.
    if isinstance(value, float):
        return np.format_float_positional(np.float32(value), trim="-")
    return str(value)


def _score_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (tuple, list)):
        if len(value) == 0 or value[0] is None:
            return None
        if len(value) > 1:
            return ",".join(_value_text(v) for v in value)
        value = value[0]
    return _value_text(value)


def iter_recal_annotations(
    vf: pysam.VariantFile,
    ranks: Dict[str, int],
    *,
    contig: Optional[str] = None,
    score_key: str = VQSLOD_KEY,
    culprit_key: str = CULPRIT_KEY,
) -> Iterator[ScoredAnnotation]:
    """Stream scored annotations from a recalibration VCF."""
    has_score = score_key in vf.header.info
    has_culprit = culprit_key in vf.header.info
    if not has_score:
        logger.warning("Recal VCF header does not declare INFO/%s", score_key)
    for rec in _fetch(vf, contig):
        raw_score = _score_text(rec.info.get(score_key)) if has_score else None
        culprit = _score_text(rec.info.get(culprit_key)) if has_culprit else None
        yield ScoredAnnotation(coordinate=_coordinate(rec, ranks), raw_score=raw_score, culprit=culprit)


def iter_sites(records: Iterable[VariantRecord]) -> Iterator[Coordinate]:
    """Distinct record start positions as single-base coordinates, in order."""
    last: Optional[Coordinate] = None
    for r in records:
        site = r.coordinate.point()
        if last is not None and site < last:
            raise SequenceOrderViolation(
                f"Input VCF is not coordinate-sorted: {site} follows {last}",
                previous=last,
                current=site,
            )
        if site != last:
            yield site
            last = site


def build_output_header(header: pysam.VariantHeader, table: ThresholdTable) -> pysam.VariantHeader:
    """Copy the input header and declare the INFO and FILTER lines we write."""
    out = header.copy()
    if VQSLOD_KEY not in out.info:
        out.info.add(
            VQSLOD_KEY,
            1,
            "Float",
            "Log odds ratio of being a true variant versus being false under the trained "
            "gaussian mixture model",
        )
    if CULPRIT_KEY not in out.info:
        out.info.add(
            CULPRIT_KEY,
            1,
            "String",
            "The annotation which was the worst performing in the Gaussian mixture model, "
            "likely the reason why the variant was filtered out",
        )
    for name, desc in filter_descriptions(table).items():
        if name not in out.filters:
            out.filters.add(name, None, None, desc)
    return out


class RecalibratedVcfWriter:
    """Record sink writing annotated records to a VCF (bgzip + tabix for ``.gz``)."""

    def __init__(self, path: str | Path, header: pysam.VariantHeader, *, index: bool = True) -> None:
        self.path = Path(path)
        self.compressed = str(self.path).endswith(".gz")
        self.index = index
        mode = "wz" if self.compressed else "w"
        self._vf: Optional[pysam.VariantFile] = pysam.VariantFile(str(self.path), mode, header=header)
        self.n_written = 0

    def __enter__(self) -> "RecalibratedVcfWriter":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        # A failed pass leaves a truncated file; do not index it.
        self.close(index=exc_type is None)

    def write(self, record: VariantRecord) -> None:
        if record.raw is None:
            raise ValueError(f"Record {record} has no backing VCF record to write")
        if self._vf is None:
            raise ValueError(f"Writer for {self.path} is closed")
        out = record.raw.copy()
        out.translate(self._vf.header)
        score = record.attributes.get(VQSLOD_KEY)
        if score is not None:
            # Kept as the recal file's text; the Float field stores it as float32.
            out.info[VQSLOD_KEY] = float(score)
        culprit = record.attributes.get(CULPRIT_KEY)
        if culprit is not None:
            out.info[CULPRIT_KEY] = culprit
        out.filter.clear()
        if record.filters is not None:
            if record.filters:
                for name in sorted(record.filters):
                    out.filter.add(name)
            else:
                out.filter.add(PASS)
        self._vf.write(out)
        self.n_written += 1

    def write_raw(self, rec: pysam.VariantRecord) -> None:
        if self._vf is None:
            raise ValueError(f"Writer for {self.path} is closed")
        out = rec.copy()
        out.translate(self._vf.header)
        self._vf.write(out)
        self.n_written += 1

    def close(self, *, index: bool = True) -> None:
        if self._vf is None:
            return
        self._vf.close()
        self._vf = None
        if self.compressed and self.index and index:
            pysam.tabix_index(str(self.path), preset="vcf", force=True)


def indexed_contigs(vcf_path: str | Path, ranks: Dict[str, int]) -> List[str]:
    """Contigs with records in a tabix-indexed VCF, in reference order."""
    with pysam.TabixFile(str(vcf_path)) as tbx:
        names = list(tbx.contigs)
    unknown = [c for c in names if c not in ranks]
    if unknown:
        raise ConfigurationError(
            f"Contig(s) {unknown[:5]} in {vcf_path} are not declared in the input VCF header"
        )
    return sorted(names, key=lambda c: ranks[c])

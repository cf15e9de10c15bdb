from __future__ import annotations

import logging
import tempfile
import time
from dataclasses import dataclass, replace
from functools import partial
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pysam

from .classifier import check_mode, classify, mode_accepts
from .join import resolve_score
from .models import (
    DECISION_BELOW_LOWEST,
    DECISION_PASS,
    DECISION_TAGGED,
    ScoredAnnotation,
    TrancheDecision,
    VariantRecord,
)
from .tranches import ThresholdTable, load_threshold_table
from .traversal import (
    CoordinateTraversalEngine,
    SiteContext,
    downsample_to_coverage,
    traverse_shards,
)
from .utils import ensure_outdir, write_json
from .validation import check_contig_compatibility, check_vcf_index
from .vcfio import (
    CULPRIT_KEY,
    VQSLOD_KEY,
    RecalibratedVcfWriter,
    build_output_header,
    contig_ranks,
    indexed_contigs,
    iter_recal_annotations,
    iter_sites,
    iter_variant_records,
)

logger = logging.getLogger(__name__)

INPUT_SOURCE = "input"
RECAL_SOURCE = "recal"

DEFAULT_BIN_EDGES: Tuple[float, ...] = tuple(float(x) for x in np.linspace(-20.0, 20.0, 81))

COUNT_KEYS = (
    "sites",
    "records_seen",
    "records_recalibrated",
    "records_passthrough",
    "records_pass",
    "records_tagged",
    "records_below_lowest",
    "records_downsampled",
)

_DECISION_COUNT = {
    DECISION_PASS: "records_pass",
    DECISION_TAGGED: "records_tagged",
    DECISION_BELOW_LOWEST: "records_below_lowest",
}

RecordSink = Callable[[VariantRecord], None]


@dataclass(frozen=True)
class ApplyStats:
    """Accumulator for a recalibration pass.

    ``merge`` adds counters key-wise and histograms bin-wise, so it is
    associative (and commutative), which is what shard merging needs.
    """

    counts: Mapping[str, int]
    tranche_counts: Mapping[str, int]
    bin_edges: Tuple[float, ...]
    hist: Tuple[int, ...]

    @classmethod
    def zero(cls, bin_edges: Sequence[float] = DEFAULT_BIN_EDGES) -> "ApplyStats":
        edges = tuple(float(x) for x in bin_edges)
        return cls(
            counts={k: 0 for k in COUNT_KEYS},
            tranche_counts={},
            bin_edges=edges,
            hist=tuple([0] * (len(edges) - 1)),
        )

    @classmethod
    def from_site(
        cls,
        *,
        counts: Mapping[str, int],
        tranche_counts: Mapping[str, int],
        lods: Sequence[float],
        bin_edges: Sequence[float] = DEFAULT_BIN_EDGES,
    ) -> "ApplyStats":
        edges = np.asarray(bin_edges, dtype=float)
        values = np.asarray(lods, dtype=float)
        values = values[~np.isnan(values)]
        # Out-of-range scores land in the outer bins.
        values = np.clip(values, edges[0], edges[-1])
        hist = np.histogram(values, bins=edges)[0]
        full = {k: 0 for k in COUNT_KEYS}
        full.update(counts)
        return cls(
            counts=full,
            tranche_counts=dict(tranche_counts),
            bin_edges=tuple(float(x) for x in edges),
            hist=tuple(int(x) for x in hist),
        )

    def merge(self, other: "ApplyStats") -> "ApplyStats":
        if self.bin_edges != other.bin_edges:
            raise ValueError("Cannot merge ApplyStats built on different histogram bins")
        counts = dict(self.counts)
        for k, v in other.counts.items():
            counts[k] = counts.get(k, 0) + int(v)
        tranche_counts = dict(self.tranche_counts)
        for k, v in other.tranche_counts.items():
            tranche_counts[k] = tranche_counts.get(k, 0) + int(v)
        hist = tuple(a + b for a, b in zip(self.hist, other.hist))
        return ApplyStats(
            counts=counts, tranche_counts=tranche_counts, bin_edges=self.bin_edges, hist=hist
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "counts": dict(self.counts),
            "tranche_counts": dict(sorted(self.tranche_counts.items())),
            "vqslod_hist": {"bin_edges": list(self.bin_edges), "counts": list(self.hist)},
        }


class RecalibrationApplier:
    """Site callbacks that tag input records with their tranche.

    Records whose kind does not match ``mode`` or that already carry filters
    (other than ones listed in ``ignore_filters``) are emitted untouched.
    With ``downsample_to`` at most that many of the records starting at a site
    are kept; the rest are dropped from the output.
    """

    def __init__(
        self,
        table: ThresholdTable,
        *,
        sink: RecordSink,
        mode: str = "SNP",
        ignore_filters: Iterable[str] = (),
        input_name: str = INPUT_SOURCE,
        recal_name: str = RECAL_SOURCE,
        bin_edges: Sequence[float] = DEFAULT_BIN_EDGES,
        downsample_to: Optional[int] = None,
        seed: Optional[int] = None,
    ) -> None:
        if downsample_to is not None and downsample_to < 0:
            raise ValueError("downsample_to must be >= 0")
        self.table = table
        self.sink = sink
        self.mode = check_mode(mode)
        self.ignore_filters = frozenset(ignore_filters)
        self.input_name = input_name
        self.recal_name = recal_name
        self.bin_edges = tuple(float(x) for x in bin_edges)
        self.downsample_to = downsample_to
        self._rng = np.random.default_rng(seed)

    def zero(self) -> ApplyStats:
        return ApplyStats.zero(self.bin_edges)

    @staticmethod
    def combine(acc: ApplyStats, value: ApplyStats) -> ApplyStats:
        return acc.merge(value)

    def filter(self, ctx: SiteContext) -> bool:
        return len(ctx.get(self.input_name)) > 0

    def wants(self, record: VariantRecord) -> bool:
        if not mode_accepts(self.mode, record.kind):
            return False
        return not record.is_filtered or record.filters <= self.ignore_filters

    def recalibrate(
        self, record: VariantRecord, recals: Sequence[ScoredAnnotation]
    ) -> Tuple[VariantRecord, TrancheDecision, float]:
        annotation, lod = resolve_score(record, recals)
        decision = classify(lod, self.table)
        attributes = dict(record.attributes)
        attributes[VQSLOD_KEY] = annotation.raw_score
        attributes[CULPRIT_KEY] = annotation.culprit
        return replace(record, attributes=attributes, filters=decision.filters), decision, lod

    def map(self, ctx: SiteContext) -> ApplyStats:
        site = ctx.coordinate
        recals = ctx.get(self.recal_name)
        starting = [r for r in ctx.get(self.input_name) if r.coordinate.start == site.start]
        # The cap counts only records starting here; spanning ones were emitted earlier.
        records: Sequence[VariantRecord] = starting
        if self.downsample_to is not None:
            records = downsample_to_coverage(starting, self.downsample_to, self._rng)

        counts: Dict[str, int] = {
            "sites": 1,
            "records_seen": len(records),
            "records_downsampled": len(starting) - len(records),
        }
        tranche_counts: Dict[str, int] = {}
        lods: List[float] = []
        outputs: List[VariantRecord] = []

        for vc in records:
            if not self.wants(vc):
                outputs.append(vc)
                counts["records_passthrough"] = counts.get("records_passthrough", 0) + 1
                continue
            out, decision, lod = self.recalibrate(vc, recals)
            outputs.append(out)
            lods.append(lod)
            counts["records_recalibrated"] = counts.get("records_recalibrated", 0) + 1
            key = _DECISION_COUNT[decision.kind]
            counts[key] = counts.get(key, 0) + 1
            tranche_counts[decision.label] = tranche_counts.get(decision.label, 0) + 1

        # Nothing reaches the sink until every record at the site resolved.
        for out in outputs:
            self.sink(out)

        return ApplyStats.from_site(
            counts=counts, tranche_counts=tranche_counts, lods=lods, bin_edges=self.bin_edges
        )


def _traversal_stats(engine: CoordinateTraversalEngine, bin_edges: Sequence[float]) -> ApplyStats:
    return ApplyStats.from_site(
        counts={
            "sites": 0,
            "sites_traversed": engine.n_records,
            "shards_stopped_early": int(engine.stopped_early),
        },
        tranche_counts={},
        lods=[],
        bin_edges=bin_edges,
    )


def _apply_region(
    *,
    input_vcf: str,
    recal_vcf: str,
    table: ThresholdTable,
    out_header: pysam.VariantHeader,
    ranks: Dict[str, int],
    out_path: Path,
    contig: Optional[str],
    mode: str,
    ignore_filters: Sequence[str],
    max_records: Optional[int],
    downsample_to: Optional[int],
    seed: Optional[int],
    progress: bool,
    index: bool,
) -> ApplyStats:
    """Traverse one region (a contig, or the whole file) and write its records."""
    name = contig if contig is not None else "genome"
    with pysam.VariantFile(input_vcf) as site_vf, pysam.VariantFile(
        input_vcf
    ) as input_vf, pysam.VariantFile(recal_vcf) as recal_vf, RecalibratedVcfWriter(
        out_path, out_header, index=index
    ) as writer:
        applier = RecalibrationApplier(
            table,
            sink=writer.write,
            mode=mode,
            ignore_filters=ignore_filters,
            downsample_to=downsample_to,
            seed=seed,
        )
        engine = CoordinateTraversalEngine(
            iter_sites(iter_variant_records(site_vf, ranks, contig=contig)),
            sources={
                INPUT_SOURCE: iter_variant_records(input_vf, ranks, contig=contig),
                RECAL_SOURCE: iter_recal_annotations(recal_vf, ranks, contig=contig),
            },
            filter_fn=applier.filter,
            map_fn=applier.map,
            combine_fn=applier.combine,
            zero=applier.zero(),
            max_records=max_records,
            progress=progress,
            name=name,
        )
        stats = engine.traverse()
        logger.info("%s: wrote %d records to %s", name, writer.n_written, out_path)
    return stats.merge(_traversal_stats(engine, applier.bin_edges))


def apply_vcf(
    *,
    input_vcf: str,
    recal_vcf: str,
    tranches_file: str,
    out_vcf: str | Path,
    outdir: Optional[str | Path] = None,
    ts_filter_level: float = 99.0,
    mode: str = "SNP",
    ignore_filters: Sequence[str] = (),
    max_records: Optional[int] = None,
    downsample_to: Optional[int] = None,
    seed: Optional[int] = None,
    threads: int = 1,
    progress: bool = True,
) -> Dict[str, object]:
    """Main workhorse: tag every input record with its tranche and write the output VCF.

    With ``threads > 1`` each contig is traversed independently (inputs must
    be bgzipped and tabix-indexed), written to a part file, and the parts are
    concatenated in reference order. ``max_records`` then applies per contig.

    Returns the run summary (also written to ``<outdir>/summary.json`` when
    ``outdir`` is given).
    """
    t0 = time.time()
    mode = check_mode(mode)
    table = load_threshold_table(tranches_file, ts_filter_level)
    out_path = Path(out_vcf)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    with pysam.VariantFile(input_vcf) as vf:
        in_header = vf.header.copy()
    with pysam.VariantFile(recal_vcf) as vf:
        recal_contigs = list(vf.header.contigs)

    ranks = contig_ranks(in_header)
    check_contig_compatibility(list(ranks), recal_contigs)
    out_header = build_output_header(in_header, table)

    if downsample_to is not None:
        logger.warning(
            "Downsampling input records to %d per start site; records over the cap are dropped from the output",
            downsample_to,
        )

    region = partial(
        _apply_region,
        input_vcf=str(input_vcf),
        recal_vcf=str(recal_vcf),
        table=table,
        out_header=out_header,
        ranks=ranks,
        mode=mode,
        ignore_filters=list(ignore_filters),
        max_records=max_records,
        downsample_to=downsample_to,
        seed=seed,
    )

    shards_used = 1
    if threads > 1:
        check_vcf_index(input_vcf, required=True)
        check_vcf_index(recal_vcf, required=True)
        contigs = indexed_contigs(input_vcf, ranks)
        shards_used = len(contigs)
        logger.info("Traversing %d contig shard(s) with %d worker(s)", len(contigs), threads)

        with tempfile.TemporaryDirectory(prefix=".trancheapply_parts_", dir=out_path.parent) as tmp:
            parts = [Path(tmp) / f"part_{i:05d}.vcf" for i in range(len(contigs))]
            shards = [
                partial(region, out_path=part, contig=contig, progress=False, index=False)
                for contig, part in zip(contigs, parts)
            ]
            stats = traverse_shards(
                shards,
                combine_fn=ApplyStats.merge,
                zero=ApplyStats.zero(),
                workers=threads,
            )
            with RecalibratedVcfWriter(out_path, out_header) as writer:
                for part in parts:
                    with pysam.VariantFile(str(part)) as pvf:
                        for rec in pvf:
                            writer.write_raw(rec)
    else:
        stats = region(out_path=out_path, contig=None, progress=progress, index=True)

    dt = time.time() - t0
    result = stats.to_dict()
    counts = result["counts"]
    stopped_early = bool(counts.get("shards_stopped_early", 0))

    summary: Dict[str, object] = {
        "input_vcf": str(input_vcf),
        "recal_vcf": str(recal_vcf),
        "tranches_file": str(tranches_file),
        "out_vcf": str(out_path),
        "ts_filter_level": float(ts_filter_level),
        "mode": mode,
        "ignore_filters": sorted(ignore_filters),
        "max_records": max_records,
        "downsample_to": downsample_to,
        "threads": int(threads),
        "shards": shards_used,
        "stopped_early": stopped_early,
        "tranches": [
            {
                "name": t.name,
                "threshold": float(t.threshold),
                "truth_sensitivity": float(t.truth_sensitivity),
                "model": t.model,
            }
            for t in table
        ],
        "runtime_seconds": float(dt),
    }
    summary.update(result)

    if outdir is not None:
        write_json(ensure_outdir(outdir) / "summary.json", summary)
    return summary

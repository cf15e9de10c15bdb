from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pysam

from .utils import ensure_outdir, write_json

# contig, pos (1-based), ref, alt, input FILTER, VQSLOD, culprit
_ToyVariant = Tuple[str, int, str, str, Optional[str], float, str]

_CONTIGS = [("chr1", 1000), ("chr2", 500)]

_VARIANTS: List[_ToyVariant] = [
    ("chr1", 100, "A", "G", None, 5.0, "QD"),
    ("chr1", 150, "C", "T", None, 1.0, "MQ"),
    ("chr1", 200, "G", "A", None, -2.0, "FS"),
    ("chr1", 250, "T", "C", None, -8.0, "FS"),
    ("chr1", 300, "AC", "A", None, 2.0, "QD"),
    ("chr1", 350, "G", "T", "LowQual", 3.0, "MQRankSum"),
    ("chr2", 50, "A", "C", None, 0.5, "ReadPosRankSum"),
    ("chr2", 120, "T", "G", None, -4.5, "QD"),
]

# truth sensitivity, minVQSLod, filter name
_TRANCHES = [
    (90.0, 4.0, "VQSRTrancheSNP0.00to90.00"),
    (99.0, 0.0, "VQSRTrancheSNP90.00to99.00"),
    (99.9, -3.0, "VQSRTrancheSNP99.00to99.90"),
    (100.0, -6.0, "VQSRTrancheSNP99.90to100.00"),
]


def _base_header() -> pysam.VariantHeader:
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    for contig, length in _CONTIGS:
        header.contigs.add(contig, length=length)
    return header


def _compress_and_index(vcf_path: Path) -> Path:
    vcf_gz = vcf_path.with_suffix(".vcf.gz")
    pysam.tabix_compress(str(vcf_path), str(vcf_gz), force=True)
    pysam.tabix_index(str(vcf_gz), preset="vcf", force=True)
    return vcf_gz


def write_tranches_file(path: str | Path, tranches=_TRANCHES, *, model: str = "SNP") -> Path:
    """Write a tranches file in the recalibrator's CSV layout."""
    path = Path(path)
    lines = [
        "# Variant quality score tranches file",
        "# Version number 5",
        "targetTruthSensitivity,numKnown,numNovel,knownTiTv,novelTiTv,minVQSLod,filterName,"
        "model,accessibleTruthSites,callsAtTruthSites,truthSensitivity",
    ]
    for ts, lod, name in tranches:
        lines.append(
            f"{ts:.2f},0,0,0.0000,0.0000,{lod:.4f},{name},{model},0,0,{ts / 100.0:.4f}"
        )
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def make_toy_data(*, outdir: str | Path) -> Dict[str, object]:
    """Create a tiny input VCF, recal VCF and tranches file for quick demos/tests.

    The outputs include:
    - input.vcf.gz (+ .tbi): 8 calls on chr1/chr2, one INDEL, one LowQual-filtered SNP
    - recal.vcf.gz (+ .tbi): VQSLOD and culprit for every call
    - toy.tranches: SNP tranches at 90 / 99 / 99.9 / 100 truth sensitivity

    Returns
    -------
    dict
        Paths to the generated files and the number of input records.
    """
    outdir_p = ensure_outdir(outdir)

    # Input calls
    header = _base_header()
    header.filters.add("LowQual", None, None, "Low quality")
    header.info.add("DP", 1, "Integer", "Approximate read depth")

    input_vcf = outdir_p / "input.vcf"
    with pysam.VariantFile(str(input_vcf), "w", header=header) as vcf:
        for contig, pos, ref, alt, filt, _lod, _culprit in _VARIANTS:
            rec = vcf.new_record(
                contig=contig,
                start=pos - 1,
                stop=pos - 1 + len(ref),
                alleles=(ref, alt),
                id=f"{contig}:{pos}:{ref}:{alt}",
                qual=50,
            )
            if filt is not None:
                rec.filter.add(filt)
            rec.info["DP"] = 30
            vcf.write(rec)
    input_gz = _compress_and_index(input_vcf)

    # Recalibration scores
    header = _base_header()
    header.info.add(
        "VQSLOD",
        1,
        "Float",
        "Log odds ratio of being a true variant versus being false under the trained gaussian mixture model",
    )
    header.info.add("culprit", 1, "String", "The annotation which was the worst performing")

    recal_vcf = outdir_p / "recal.vcf"
    with pysam.VariantFile(str(recal_vcf), "w", header=header) as vcf:
        for contig, pos, ref, alt, _filt, lod, culprit in _VARIANTS:
            rec = vcf.new_record(
                contig=contig,
                start=pos - 1,
                stop=pos - 1 + len(ref),
                alleles=(ref, alt),
            )
            rec.info["VQSLOD"] = lod
            rec.info["culprit"] = culprit
            vcf.write(rec)
    recal_gz = _compress_and_index(recal_vcf)

    tranches = write_tranches_file(outdir_p / "toy.tranches")

    summary: Dict[str, object] = {
        "input_vcf": str(input_gz),
        "recal_vcf": str(recal_gz),
        "tranches_file": str(tranches),
        "n_records": len(_VARIANTS),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary

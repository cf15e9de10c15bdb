from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List

logger = logging.getLogger(__name__)


_UCSC_PREFIX = "chr"


def check_vcf_index(vcf_path: str | Path, *, required: bool = False) -> None:
    """Ensure a bgzipped VCF has a tabix index; raise ValueError with fix instructions.

    With ``required=True`` (contig-sharded runs) an uncompressed VCF is an error too.
    """
    vcf = Path(vcf_path)
    if vcf.suffixes[-2:] == [".vcf", ".gz"]:
        tbi = vcf.with_suffix(vcf.suffix + ".tbi")
        csi = vcf.with_suffix(vcf.suffix + ".csi")
        if not tbi.exists() and not csi.exists():
            raise ValueError(
                "VCF is not bgzip/tabix indexed. Run: bgzip -c "
                + str(vcf.with_suffix(""))
                + " > "
                + str(vcf)
                + "; tabix -p vcf "
                + str(vcf)
            )
    elif vcf.suffix == ".vcf":
        if required:
            raise ValueError(
                "Multi-threaded runs need bgzipped, tabix-indexed VCFs. Run: bgzip "
                + str(vcf)
                + "; tabix -p vcf "
                + str(vcf)
                + ".gz"
            )
        logger.info(
            "VCF is uncompressed (.vcf). This is supported but slower; "
            "consider bgzip+tabix for large files."
        )


def detect_contig_style(contigs: Iterable[str]) -> str:
    """Infer contig style: 'ucsc' if most contigs start with 'chr', else 'ensembl'."""
    names = [c for c in contigs if c]
    if not names:
        return "unknown"
    chr_like = [c for c in names if c.startswith(_UCSC_PREFIX)]
    if len(chr_like) >= max(1, int(0.5 * len(names))):
        return "ucsc"
    return "ensembl"


def check_contig_compatibility(input_contigs: List[str], recal_contigs: List[str]) -> None:
    """Fail early when the recal file cannot share the input's contig naming."""
    if not recal_contigs:
        return
    known = set(input_contigs)
    missing = [c for c in recal_contigs if c not in known]
    if len(missing) == len(recal_contigs):
        raise ValueError(
            "Contig mismatch between input VCF (%s style) and recal VCF (%s style), "
            "e.g. %s vs %s. Both files must come from the same call set."
            % (
                detect_contig_style(input_contigs),
                detect_contig_style(recal_contigs),
                input_contigs[0] if input_contigs else "?",
                recal_contigs[0],
            )
        )
    if missing:
        logger.warning(
            "%d recal VCF contig(s) are not declared in the input VCF header (e.g. %s)",
            len(missing),
            missing[0],
        )

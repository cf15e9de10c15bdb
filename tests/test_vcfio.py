from pathlib import Path

import pysam
import pytest

from helpers import snp
from trancheapply.errors import ConfigurationError, SequenceOrderViolation
from trancheapply.toy_data import make_toy_data
from trancheapply.vcfio import (
    RecalibratedVcfWriter,
    contig_ranks,
    indexed_contigs,
    iter_recal_annotations,
    iter_sites,
    iter_variant_records,
    variant_kind,
)


@pytest.mark.parametrize(
    "ref,alts,kind",
    [
        ("A", ["G"], "SNP"),
        ("AC", ["GT"], "MNP"),
        ("AC", ["A"], "INDEL"),
        ("A", ["AT", "G"], "MIXED"),
        ("A", ["<DEL>"], "SYMBOLIC"),
        ("A", [], "NO_VARIATION"),
    ],
)
def test_variant_kind(ref, alts, kind):
    assert variant_kind(ref, alts) == kind


def test_sites_are_distinct_starts():
    records = [snp(10), snp(10), snp(12), snp(3, contig="chr2")]
    assert [str(s) for s in iter_sites(records)] == ["chr1:10", "chr1:12", "chr2:3"]


def test_unsorted_input_is_reported():
    with pytest.raises(SequenceOrderViolation):
        list(iter_sites([snp(12), snp(10)]))


def test_reads_toy_vcfs(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    with pysam.VariantFile(toy["input_vcf"]) as vf:
        ranks = contig_ranks(vf.header)
        records = list(iter_variant_records(vf, ranks))
    assert ranks == {"chr1": 0, "chr2": 1}
    assert len(records) == toy["n_records"]

    indel = records[4]
    assert indel.kind == "INDEL"
    assert str(indel.coordinate) == "chr1:300-301"
    assert records[0].filters is None
    assert records[5].filters == frozenset(["LowQual"])

    with pysam.VariantFile(toy["recal_vcf"]) as vf:
        chr2 = list(iter_recal_annotations(vf, ranks, contig="chr2"))
    assert [a.raw_score for a in chr2] == ["0.5", "-4.5"]
    assert chr2[0].culprit == "ReadPosRankSum"

    assert indexed_contigs(toy["input_vcf"], ranks) == ["chr1", "chr2"]


def test_header_without_contigs_is_rejected():
    with pytest.raises(ConfigurationError):
        contig_ranks(pysam.VariantHeader())


def test_recal_scores_keep_their_written_text(tmp_path: Path) -> None:
    recal_vcf = tmp_path / "recal.vcf"
    recal_vcf.write_text(
        "##fileformat=VCFv4.2\n"
        "##contig=<ID=chr1,length=1000>\n"
        '##INFO=<ID=VQSLOD,Number=1,Type=Float,Description="Log odds ratio">\n'
        "#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\n"
        "chr1\t100\t.\tA\tG\t.\t.\tVQSLOD=0.7000\n"
        "chr1\t200\t.\tC\tT\t.\t.\tVQSLOD=-1.2345\n",
        encoding="utf-8",
    )
    with pysam.VariantFile(str(recal_vcf)) as vf:
        annotations = list(iter_recal_annotations(vf, contig_ranks(vf.header)))
    assert [a.raw_score for a in annotations] == ["0.7", "-1.2345"]
    assert annotations[0].culprit is None


def test_closed_writer_refuses_records(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    with pysam.VariantFile(toy["input_vcf"]) as vf:
        header = vf.header.copy()
        rec = next(iter(vf))
        writer = RecalibratedVcfWriter(tmp_path / "out.vcf", header)
        writer.write_raw(rec)
        writer.close()
        with pytest.raises(ValueError, match="closed"):
            writer.write_raw(rec)
    assert writer.n_written == 1

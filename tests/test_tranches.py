from pathlib import Path

import pytest

from trancheapply.errors import ConfigurationError
from trancheapply.models import Tranche
from trancheapply.toy_data import write_tranches_file
from trancheapply.tranches import (
    ThresholdTable,
    filter_descriptions,
    is_reachable,
    load_threshold_table,
    read_tranches,
    tagging_range,
)

TOY = [
    (90.0, 4.0, "SNP0to90"),
    (99.0, 0.0, "SNP90to99"),
    (99.9, -3.0, "SNP99to99.9"),
    (100.0, -6.0, "SNP99.9to100"),
]


def test_read_tranches_file(tmp_path: Path) -> None:
    path = write_tranches_file(tmp_path / "x.tranches", TOY)
    tranches = read_tranches(path)
    assert [t.name for t in tranches] == [name for _, _, name in TOY]
    assert tranches[0].threshold == 4.0
    assert tranches[-1].truth_sensitivity == 100.0
    assert all(t.model == "SNP" for t in tranches)


def test_model_column_is_optional(tmp_path: Path) -> None:
    path = tmp_path / "old.tranches"
    path.write_text(
        "# old style\ntargetTruthSensitivity,minVQSLod,filterName\n99.00,1.5,T99\n",
        encoding="utf-8",
    )
    (t,) = read_tranches(path)
    assert t == Tranche(name="T99", threshold=1.5, truth_sensitivity=99.0, model="SNP")


def test_missing_column_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bad.tranches"
    path.write_text("targetTruthSensitivity,filterName\n99.00,T99\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="minVQSLod"):
        read_tranches(path)


def test_malformed_row_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bad.tranches"
    path.write_text(
        "targetTruthSensitivity,minVQSLod,filterName\n99.00,abc,T99\n", encoding="utf-8"
    )
    with pytest.raises(ConfigurationError, match="line 2"):
        read_tranches(path)


def test_cutoff_keeps_tranches_at_or_above_level(tmp_path: Path) -> None:
    path = write_tranches_file(tmp_path / "x.tranches", TOY)
    table = load_threshold_table(path, 99.0)
    assert table.names == ["SNP90to99", "SNP99to99.9", "SNP99.9to100"]
    assert table.lowest.name == "SNP90to99"
    assert table.most_inclusive.name == "SNP99.9to100"

    assert len(load_threshold_table(path, 0.0)) == 4
    assert load_threshold_table(path, 100.0).names == ["SNP99.9to100"]


def test_file_order_does_not_matter():
    shuffled = [Tranche(name=n, threshold=lod, truth_sensitivity=ts) for ts, lod, n in reversed(TOY)]
    table = ThresholdTable.from_tranches(shuffled[2:] + shuffled[:2], 95.0)
    assert table.names == ["SNP90to99", "SNP99to99.9", "SNP99.9to100"]


def test_no_tranche_above_level():
    tranches = [Tranche(name=n, threshold=lod, truth_sensitivity=ts) for ts, lod, n in TOY]
    with pytest.raises(ConfigurationError, match="above the truth sensitivity filter level"):
        load_threshold_table(tranches, 100.5)


def test_empty_source():
    with pytest.raises(ConfigurationError, match="No tranches were found"):
        load_threshold_table([], 99.0)


def test_direct_table_must_be_ascending():
    a = Tranche(name="a", threshold=0.0, truth_sensitivity=99.0)
    b = Tranche(name="b", threshold=-1.0, truth_sensitivity=100.0)
    ThresholdTable(tranches=(a, b), ts_filter_level=99.0)
    with pytest.raises(ConfigurationError):
        ThresholdTable(tranches=(b, a), ts_filter_level=99.0)


def test_filter_descriptions_cover_every_emitted_filter():
    tranches = [Tranche(name=n, threshold=lod, truth_sensitivity=ts) for ts, lod, n in TOY]
    table = load_threshold_table(tranches, 99.0)
    desc = filter_descriptions(table)
    assert set(desc) == {"SNP90to99", "SNP99to99.9", "SNP90to99+"}
    # Tagged ranges follow the scan order, so they can be empty.
    assert desc["SNP90to99"].endswith("0.0000 <= x < -6.0000")
    assert "< -6.0000" in desc["SNP90to99+"]


def test_tagging_ranges():
    tranches = [Tranche(name=n, threshold=lod, truth_sensitivity=ts) for ts, lod, n in TOY]
    table = load_threshold_table(tranches, 99.0)
    assert tagging_range(table, 0) == (0.0, -6.0)
    assert not is_reachable(table, 0)
    assert not is_reachable(table, 1)
    assert is_reachable(table, 2)
    with pytest.raises(IndexError):
        tagging_range(table, 2)

    stricter_last = ThresholdTable.from_tranches(
        [
            Tranche(name="A", threshold=1.0, truth_sensitivity=99.0),
            Tranche(name="B", threshold=3.0, truth_sensitivity=100.0),
        ],
        99.0,
    )
    assert tagging_range(stricter_last, 0) == (1.0, 3.0)
    assert is_reachable(stricter_last, 0)

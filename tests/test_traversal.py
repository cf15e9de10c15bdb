import logging

import numpy as np
import pytest

from helpers import loc, snp
from trancheapply.traversal import (
    CoordinateTraversalEngine,
    downsample_to_coverage,
    traverse_shards,
    tree_reduce,
)


def _sites(n, contig="chr1"):
    return [loc(i, contig=contig) for i in range(1, n + 1)]


def test_map_and_combine_fold_every_site():
    engine = CoordinateTraversalEngine(
        _sites(5),
        map_fn=lambda ctx: ctx.coordinate.start,
        combine_fn=lambda acc, x: acc + x,
        zero=0,
    )
    assert engine.traverse() == 15
    assert engine.n_records == 5
    assert engine.n_mapped == 5
    assert not engine.stopped_early
    assert engine.last_coordinate == loc(5)


def test_contexts_carry_overlapping_source_entries():
    records = [snp(2), snp(4), snp(4)]
    engine = CoordinateTraversalEngine(
        _sites(5),
        sources={"input": records, "empty": []},
        map_fn=lambda ctx: [(ctx.coordinate.start, len(ctx.get("input")), ctx.get("empty"))],
        combine_fn=lambda acc, x: acc + x,
        zero=[],
    )
    out = engine.traverse()
    assert [(s, n) for s, n, _ in out] == [(1, 0), (2, 1), (3, 0), (4, 2), (5, 0)]
    assert all(e == () for _, _, e in out)


def test_filter_skips_map_but_counts_site():
    engine = CoordinateTraversalEngine(
        _sites(6),
        map_fn=lambda ctx: 1,
        combine_fn=lambda acc, x: acc + x,
        zero=0,
        filter_fn=lambda ctx: ctx.coordinate.start % 2 == 0,
    )
    assert engine.traverse() == 3
    assert engine.n_records == 6
    assert engine.n_mapped == 3


def test_max_records_stops_with_warning(caplog):
    engine = CoordinateTraversalEngine(
        _sites(10),
        map_fn=lambda ctx: [ctx.coordinate.start],
        combine_fn=lambda acc, x: acc + x,
        zero=[],
        max_records=3,
    )
    with caplog.at_level(logging.WARNING, logger="trancheapply.traversal"):
        out = engine.traverse()
    assert out == [1, 2, 3]
    assert engine.n_records == 3
    assert engine.stopped_early
    assert "Maximum number of records encountered" in caplog.text


def test_max_records_equal_to_site_count_is_not_early():
    engine = CoordinateTraversalEngine(
        _sites(3),
        map_fn=lambda ctx: 1,
        combine_fn=lambda acc, x: acc + x,
        zero=0,
        max_records=3,
    )
    assert engine.traverse() == 3
    assert not engine.stopped_early


def test_empty_site_source_returns_zero():
    engine = CoordinateTraversalEngine(
        [], map_fn=lambda ctx: 1, combine_fn=lambda acc, x: acc + x, zero=0
    )
    assert engine.traverse() == 0
    assert engine.last_coordinate is None


def test_traverse_runs_once():
    engine = CoordinateTraversalEngine(
        _sites(2), map_fn=lambda ctx: 1, combine_fn=lambda acc, x: acc + x, zero=0
    )
    engine.traverse()
    with pytest.raises(RuntimeError):
        engine.traverse()


def test_downsample_keeps_order_and_cap():
    rng = np.random.default_rng(7)
    entries = list(range(20))
    kept = downsample_to_coverage(entries, 5, rng)
    assert len(kept) == 5
    assert list(kept) == sorted(kept)
    assert set(kept) <= set(entries)
    assert downsample_to_coverage(entries[:3], 5, rng) == (0, 1, 2)


def test_downsample_is_reproducible_with_seed():
    records = [snp(1) for _ in range(30)]

    def run():
        engine = CoordinateTraversalEngine(
            [loc(1)],
            sources={"input": records, "other": list(records)},
            map_fn=lambda ctx: [(ctx.get("input"), len(ctx.get("other")))],
            combine_fn=lambda acc, x: acc + x,
            zero=[],
            downsample_to=4,
            downsample_sources=["input"],
            seed=11,
        )
        return engine.traverse()

    first, second = run(), run()
    assert len(first[0][0]) == 4
    assert first[0][1] == 30
    assert [id(r) for r in first[0][0]] == [id(r) for r in second[0][0]]


def test_tree_reduce_keeps_order():
    assert tree_reduce(["a", "b", "c", "d", "e"], lambda x, y: x + y, "") == "abcde"
    assert tree_reduce([], lambda x, y: x + y, "") == ""
    assert tree_reduce(["only"], lambda x, y: x + y, "") == "only"


def test_shards_merge_in_shard_order():
    def shard(contig, n):
        def run():
            engine = CoordinateTraversalEngine(
                _sites(n, contig=contig),
                map_fn=lambda ctx: [str(ctx.coordinate)],
                combine_fn=lambda acc, x: acc + x,
                zero=[],
            )
            return engine.traverse()

        return run

    shards = [shard("chr1", 3), shard("chr2", 2), shard("chr1", 1)]
    serial = traverse_shards(shards, combine_fn=lambda a, b: a + b, zero=[], workers=1)
    parallel = traverse_shards(shards, combine_fn=lambda a, b: a + b, zero=[], workers=3)
    assert serial == parallel
    assert serial == ["chr1:1", "chr1:2", "chr1:3", "chr2:1", "chr2:2", "chr1:1"]

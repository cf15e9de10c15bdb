import pytest

from helpers import deletion, loc, snp
from trancheapply.errors import SequenceOrderViolation
from trancheapply.lookahead import LookaheadCoordinateQueue


def starts(entries):
    return [e.coordinate.start for e in entries]


def test_peek_before_seek_is_empty():
    q = LookaheadCoordinateQueue([snp(10)])
    assert q.peek() == ()


def test_spanning_entry_seen_at_every_covered_site():
    records = [deletion(100, 5), snp(102), snp(200)]
    q = LookaheadCoordinateQueue(records)

    assert starts(q.seek(loc(100)).peek()) == [100]
    assert starts(q.seek(loc(102)).peek()) == [100, 102]
    assert starts(q.seek(loc(105)).peek()) == [100]
    assert q.seek(loc(106)).peek() == ()
    assert starts(q.seek(loc(200)).peek()) == [200]


def test_union_of_views_covers_overlapping_entries():
    records = [snp(5), deletion(10, 3), snp(12), snp(40), snp(41)]
    sites = [loc(10), loc(12), loc(41)]
    q = LookaheadCoordinateQueue(records)

    seen = set()
    for site in sites:
        for e in q.seek(site).peek():
            seen.add(e.coordinate)

    expected = {r.coordinate for r in records if any(r.coordinate.overlaps(s) for s in sites)}
    assert seen == expected


def test_buffer_stays_bounded():
    records = [snp(i) for i in range(1, 1001)]
    q = LookaheadCoordinateQueue(records)
    for i in range(1, 1001, 7):
        q.seek(loc(i))
        assert q.buffered <= 1


def test_crosses_contigs():
    records = [snp(100), snp(5, contig="chr2")]
    q = LookaheadCoordinateQueue(records)
    assert starts(q.seek(loc(100)).peek()) == [100]
    assert q.seek(loc(1, contig="chr2")).peek() == ()
    view = q.seek(loc(5, contig="chr2")).peek()
    assert [e.coordinate.contig for e in view] == ["chr2"]


def test_backward_seek_rejected():
    q = LookaheadCoordinateQueue([snp(10), snp(20)])
    q.seek(loc(20))
    with pytest.raises(SequenceOrderViolation) as excinfo:
        q.seek(loc(10))
    assert excinfo.value.previous == loc(20)
    assert excinfo.value.current == loc(10)


def test_repeated_seek_is_allowed():
    q = LookaheadCoordinateQueue([snp(10)])
    assert starts(q.seek(loc(10)).peek()) == [10]
    assert starts(q.seek(loc(10)).peek()) == [10]


def test_unsorted_source_rejected():
    q = LookaheadCoordinateQueue([snp(50), snp(20)], name="recal")
    with pytest.raises(SequenceOrderViolation, match="recal"):
        q.seek(loc(60))

import pytest

from helpers import loc, recal, snp
from trancheapply.errors import JoinMismatchError
from trancheapply.join import match_score, resolve_score


def test_match_on_end_coordinate():
    record = snp(100)
    candidates = [recal(loc(90, 99), "1.0"), recal(loc(100), "2.5"), recal(loc(100), "9.0")]
    match = match_score(record, candidates)
    assert match is candidates[1]
    # Same answer every time for the same candidates.
    assert match_score(record, candidates) is match


def test_match_ignores_other_contigs():
    record = snp(100)
    assert match_score(record, [recal(loc(100, contig="chr2"), "1.0")]) is None
    assert match_score(record, []) is None


def test_resolve_parses_score():
    annotation, score = resolve_score(snp(100), [recal(loc(100), "-2.25", culprit="MQ")])
    assert score == -2.25
    assert annotation.culprit == "MQ"


def test_missing_recal_record_names_the_site():
    with pytest.raises(JoinMismatchError) as excinfo:
        resolve_score(snp(100), [recal(loc(101), "1.0")])
    assert "chr1:100" in str(excinfo.value)
    assert "isn't found in the input recal file" in str(excinfo.value)
    assert excinfo.value.coordinate == loc(100)


def test_recal_record_without_score():
    with pytest.raises(JoinMismatchError, match="There is no lod"):
        resolve_score(snp(100), [recal(loc(100), None)])


def test_unreadable_score():
    with pytest.raises(JoinMismatchError, match="unreadable"):
        resolve_score(snp(100), [recal(loc(100), "abc")])

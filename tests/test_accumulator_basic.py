import pytest

from t2.candidate import Candidate
from t2.stages.accumulator import BatchAccumulator, BatchClosedError


def _cand(t: int) -> Candidate:
    return Candidate(10.0, 0, t, 60000.0, 1, 10, 50.0)


def test_sentinel_policy_closes_on_close():
    acc = BatchAccumulator("sentinel")
    acc.add(_cand(1))
    acc.add(_cand(2))
    assert not acc.is_closed()
    acc.close()
    assert acc.is_closed()
    with pytest.raises(BatchClosedError):
        acc.add(_cand(3))
    batch = acc.drain()
    assert [c.time_index for c in batch] == [1, 2]
    assert len(acc) == 0 and not acc.is_closed()


def test_sentinel_policy_empty_gulp():
    acc = BatchAccumulator("sentinel")
    acc.close()
    assert acc.is_closed()
    assert acc.drain() == []


def test_count_policy_closes_at_size():
    acc = BatchAccumulator("count", gulp_size=3)
    acc.add(_cand(1))
    acc.add(_cand(2))
    acc.close()  # sentinel ignored
    assert not acc.is_closed()
    acc.add(_cand(3))
    assert acc.is_closed()
    assert len(acc.drain()) == 3
    assert not acc.is_closed()


def test_accumulator_rejects_bad_policy():
    with pytest.raises(ValueError):
        BatchAccumulator("sometimes")
    with pytest.raises(ValueError):
        BatchAccumulator("count", gulp_size=0)

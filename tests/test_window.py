"""
Unit tests for the sliding sample window.
"""

from model import LOST, PENDING, RESOLVED, Sample, Window


def _sample(seq, session_id=1):
    return Sample(session_id, seq, sent_at=float(seq))


def test_append_evicts_oldest_first() -> None:
    window = Window(3)
    evicted = []
    for seq in range(5):
        evicted.extend(window.append(_sample(seq)))
        assert len(window) <= 3

    assert [s.sequence for s in evicted] == [0, 1]
    assert [s.sequence for s in window] == [2, 3, 4]
    assert window.is_full


def test_shrinking_truncates_from_head_and_growing_keeps_samples() -> None:
    window = Window(5)
    for seq in range(5):
        window.append(_sample(seq))

    evicted = window.resize(2)
    assert [s.sequence for s in evicted] == [0, 1, 2]
    assert [s.sequence for s in window] == [3, 4]

    assert window.resize(10) == []
    assert [s.sequence for s in window] == [3, 4]
    assert not window.is_full


def test_find_latest_prefers_newest_match() -> None:
    window = Window(10)
    old = _sample(5, session_id=1)
    other = _sample(5, session_id=2)
    new = _sample(5, session_id=1)
    for sample in (old, other, new):
        window.append(sample)

    assert window.find_latest(1, 5) is new
    assert window.find_latest(2, 5) is other
    assert window.find_latest(3, 5) is None


def test_sample_status() -> None:
    sample = _sample(1)
    assert sample.status == PENDING
    sample.lost = True
    assert sample.status == LOST
    sample.rtt = 0.2
    assert sample.status == RESOLVED

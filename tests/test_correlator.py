"""
Unit tests for reply-to-probe correlation.
"""

import pytest

from correlator import Correlator
from model import ArmWatchdog, ProbeReceived, ProbeSent, RESOLVED, Window
from stats import RunningStats
from watchdog import Watchdog


@pytest.fixture
def correlator():
    return Correlator(Window(10), RunningStats(), Watchdog(grace=20.0))


def test_send_appends_pending_sample_and_arms(correlator) -> None:
    commands = correlator.sent(ProbeSent(3, 0, sent_at=100.0))
    assert commands == [ArmWatchdog(3, 0, 1, 20.0)]
    (sample,) = list(correlator.window)
    assert (sample.session_id, sample.sequence, sample.rtt) == (3, 0, None)


def test_reply_resolves_and_feeds_stats(correlator) -> None:
    correlator.sent(ProbeSent(3, 0, sent_at=100.0))
    assert correlator.received(ProbeReceived(3, 0, rtt=0.012)) == []
    (sample,) = list(correlator.window)
    assert sample.status == RESOLVED
    assert correlator.stats.count == 1


def test_sequence_reuse_across_sessions(correlator) -> None:
    correlator.sent(ProbeSent(1, 5, sent_at=1.0))
    correlator.received(ProbeReceived(1, 5, rtt=0.010))
    correlator.sent(ProbeSent(2, 5, sent_at=2.0))

    assert correlator.received(ProbeReceived(2, 5, rtt=0.030)) == []
    first, second = list(correlator.window)
    assert first.rtt == 0.010
    assert second.rtt == 0.030


def test_reply_picks_newest_sample_within_session(correlator) -> None:
    correlator.sent(ProbeSent(1, 0, sent_at=1.0))
    correlator.sent(ProbeSent(1, 0, sent_at=2.0))
    correlator.received(ProbeReceived(1, 0, rtt=0.05))

    older, newer = list(correlator.window)
    assert older.rtt is None
    assert newer.rtt == 0.05


def test_unmatched_reply_is_diagnosed(correlator) -> None:
    diagnostics = correlator.received(ProbeReceived(4, 9, rtt=0.01))
    assert [d.kind for d in diagnostics] == ["correlation-miss"]
    assert correlator.stats.count == 0


def test_duplicate_reply_does_not_count_twice(correlator) -> None:
    correlator.sent(ProbeSent(1, 2, sent_at=1.0))
    correlator.received(ProbeReceived(1, 2, rtt=0.02))
    diagnostics = correlator.received(ProbeReceived(1, 2, rtt=0.04))

    assert [d.kind for d in diagnostics] == ["duplicate"]
    assert correlator.stats.count == 1
    assert list(correlator.window)[0].rtt == 0.02

"""
Tests for the session manager using a fake probe engine.
"""

import pytest

import config
from model import ProbeReceived, ProbeReceiveFailed, ProbeSendFailed, ProbeSent, SessionStarted
from pinger import EchoPacket, ProbeReadTimeout, ProbeSetupError
from session import SessionManager


class ScriptedRandom:
    """Hands out queued values from randrange."""

    def __init__(self, values):
        self._values = list(values)

    def randrange(self, stop):
        return self._values.pop(0)


def _manager(fake_engine, events, rng=None):
    return SessionManager("192.0.2.1", events.append, fake_engine, rng=rng)


def test_start_pushes_session_started_first(fake_engine) -> None:
    events = []
    handle = _manager(fake_engine, events).start_session(0.1)

    assert events == [SessionStarted(handle.session)]
    assert handle.session.interval == 0.1
    assert handle.engine.identifier == handle.session.id
    assert 0 <= handle.session.id < config.SESSION_ID_SPACE


def test_restart_stops_previous_engine_first(fake_engine) -> None:
    events = []
    manager = _manager(fake_engine, events)
    first = manager.start_session(0.1)
    second = manager.start_session(1.0)

    assert first.engine.stopped.is_set()
    assert not second.engine.stopped.is_set()
    assert manager.active is second
    assert len(fake_engine.instances) == 2


def test_session_id_redrawn_on_collision(fake_engine) -> None:
    manager = _manager(fake_engine, [], rng=ScriptedRandom([41, 41, 41, 42]))
    first = manager.start_session(0.1)
    second = manager.start_session(0.1)

    assert first.session.id == 41
    assert second.session.id == 42


def test_engine_callbacks_become_events(fake_engine) -> None:
    events = []
    handle = _manager(fake_engine, events).start_session(0.1)
    engine, sid = handle.engine, handle.session.id

    engine.send(3)
    engine.reply(3, 0.021)
    engine.on_send_error(EchoPacket(sid, 4), OSError("Operation not permitted"))
    engine.on_recv_error(OSError("interface went away"))

    sent, received, send_failed, recv_failed = events[1:]
    assert isinstance(sent, ProbeSent) and (sent.session_id, sent.sequence) == (sid, 3)
    assert received == ProbeReceived(sid, 3, 0.021)
    assert send_failed == ProbeSendFailed(sid, 4, "Operation not permitted")
    assert recv_failed == ProbeReceiveFailed(sid, "interface went away")


def test_read_timeouts_are_filtered(fake_engine) -> None:
    events = []
    handle = _manager(fake_engine, events).start_session(0.1)
    handle.engine.on_recv_error(ProbeReadTimeout("no reply within 0.5s"))
    assert len(events) == 1


def test_construction_fault_propagates(fake_engine) -> None:
    def broken_factory(target, identifier, interval=1.0):
        raise ProbeSetupError(f"cannot resolve target '{target}'")

    manager = SessionManager("no.such.host.invalid", [].append, broken_factory)
    with pytest.raises(ProbeSetupError):
        manager.start_session(0.1)
    assert manager.active is None


def test_stop_and_statistics(fake_engine) -> None:
    manager = _manager(fake_engine, [])
    assert manager.statistics() is None
    handle = manager.start_session(0.1)
    assert manager.statistics().sent == 3

    manager.stop()
    assert handle.engine.stopped.is_set()
    assert manager.active is None
    manager.stop()


def test_engine_is_built_for_the_resolved_address(fake_engine) -> None:
    manager = SessionManager("example.net", [].append, fake_engine, address="192.0.2.7")
    handle = manager.start_session(0.1)
    assert handle.engine.target == "192.0.2.7"
    assert manager.target == "example.net"


def test_failed_restart_keeps_the_running_session(fake_engine) -> None:
    calls = []

    def flaky_factory(target, identifier, interval=1.0):
        calls.append(target)
        if len(calls) == 2:
            raise ProbeSetupError("no route to host")
        return fake_engine(target, identifier, interval)

    events = []
    manager = SessionManager("192.0.2.1", events.append, flaky_factory)
    first = manager.start_session(0.1)
    with pytest.raises(ProbeSetupError):
        manager.start_session(0.25)

    assert manager.active is first
    assert not first.engine.stopped.is_set()
    assert events == [SessionStarted(first.session)]


def test_replaced_session_thread_is_joined(fake_engine) -> None:
    manager = _manager(fake_engine, [])
    first = manager.start_session(0.1)
    manager.start_session(0.25)
    assert not first.thread.is_alive()

    second = manager.active
    manager.stop()
    assert not second.thread.is_alive()


def test_session_started_goes_through_notify(fake_engine) -> None:
    pushed, notified = [], []
    manager = SessionManager("192.0.2.1", pushed.append, fake_engine, notify=notified.append)
    handle = manager.start_session(0.1)
    handle.engine.send(0)

    assert notified == [SessionStarted(handle.session)]
    assert [type(e) for e in pushed] == [ProbeSent]

"""
Shared test configuration.
Puts the flat top-level modules on sys.path and provides a fake probe engine
so nothing here touches the network.
"""

from __future__ import annotations

import sys
import threading
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from pinger import EchoPacket, PingStatistics  # noqa: E402


class FakeEngine:
    """Stands in for pinger.Pinger; tests drive its callbacks by hand."""

    instances: list = []

    def __init__(self, target, identifier, interval=1.0):
        self.target = target
        self.identifier = identifier
        self.interval = interval
        self.on_send = None
        self.on_send_error = None
        self.on_recv = None
        self.on_recv_error = None
        self.stopped = threading.Event()
        FakeEngine.instances.append(self)

    def set_interval(self, interval):
        self.interval = interval

    def run(self):
        self.stopped.wait(5.0)

    def stop(self):
        self.stopped.set()

    def statistics(self):
        return PingStatistics(sent=3, received=2, min_rtt=0.01, max_rtt=0.03, total_rtt=0.04)

    def send(self, seq):
        self.on_send(EchoPacket(self.identifier, seq))

    def reply(self, seq, rtt):
        self.on_recv(EchoPacket(self.identifier, seq, rtt))


@pytest.fixture
def fake_engine():
    FakeEngine.instances = []
    yield FakeEngine
    for engine in FakeEngine.instances:
        engine.stop()

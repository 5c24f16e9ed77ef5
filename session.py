"""
Owns the single active probe session and turns engine callbacks into events.
"""

import time
import random
import logging
import threading
from dataclasses import dataclass
from typing import Any

import config
from model import (
    ProbeReceived, ProbeReceiveFailed, ProbeSendFailed, ProbeSent, Session, SessionStarted,
)
from pinger import Pinger, ProbeReadTimeout


@dataclass
class SessionHandle:
    session: Session
    engine: Any
    thread: threading.Thread


class SessionManager:
    """
    Starts, replaces and stops probe sessions for one target.

    `push` is the loop's thread-safe enqueue function; engine callbacks only
    ever call it and never touch loop state. `notify` enqueues SessionStarted
    from the loop thread and must not block. The successor engine is built
    first, so a failed build leaves the running session alone. The old session
    is then stopped and its thread joined before the new one starts, and every
    session gets an identifier that differs from the one before it so late
    events from the old engine can't be mistaken for new ones.
    """

    def __init__(self, target, push, engine_factory=Pinger, address=None, notify=None, rng=None):
        self.target = target
        self.address = address or target
        self._push = push
        self._notify = notify or push
        self._engine_factory = engine_factory
        self._rng = rng or random.Random()
        self._active = None
        self._last_id = None

    @property
    def active(self):
        return self._active

    def start_session(self, interval):
        """
        Replaces the current session (if any) with a fresh one.

        Construction errors propagate and leave the current session running.
        """
        session_id = self._draw_id()
        engine = self._engine_factory(self.address, session_id)
        engine.set_interval(interval)
        self._register(engine, session_id)

        self.stop()
        session = Session(session_id, interval, time.time())
        self._notify(SessionStarted(session))
        thread = threading.Thread(target=engine.run, name=f"pinger-{session_id}", daemon=True)
        thread.start()
        self._active = SessionHandle(session, engine, thread)
        self._last_id = session_id
        logging.info(f"[{self.target}] Started session {session_id} at {interval}s")
        return self._active

    def stop(self):
        if self._active is None:
            return
        handle, self._active = self._active, None
        handle.engine.stop()
        handle.thread.join(timeout=config.SESSION_JOIN_TIMEOUT_S)
        if handle.thread.is_alive():
            logging.warning(f"[{self.target}] Session {handle.session.id} still running after {config.SESSION_JOIN_TIMEOUT_S}s")
        logging.info(f"[{self.target}] Stopped session {handle.session.id}")

    def statistics(self):
        """Statistics snapshot of the active engine, or None with no session running."""
        if self._active is None:
            return None
        return self._active.engine.statistics()

    def _draw_id(self):
        session_id = self._rng.randrange(config.SESSION_ID_SPACE)
        while session_id == self._last_id:
            session_id = self._rng.randrange(config.SESSION_ID_SPACE)
        return session_id

    def _register(self, engine, session_id):
        push = self._push

        def on_send(packet):
            push(ProbeSent(session_id, packet.seq, time.time()))

        def on_send_error(packet, err):
            push(ProbeSendFailed(session_id, packet.seq, str(err)))

        def on_recv(packet):
            push(ProbeReceived(session_id, packet.seq, packet.rtt))

        def on_recv_error(err):
            if isinstance(err, ProbeReadTimeout):
                return
            push(ProbeReceiveFailed(session_id, str(err)))

        engine.on_send = on_send
        engine.on_send_error = on_send_error
        engine.on_recv = on_recv
        engine.on_recv_error = on_recv_error

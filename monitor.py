"""
The monitor's state and its transition function.

`update(state, event)` is the only place state changes. It is called from the
single-threaded event loop in main.py and returns the state together with the
commands the loop must carry out (start/stop sessions, arm timers, halt).
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

import config
from correlator import Correlator
from model import (
    Diagnostic, Halt, ProbeReceived, ProbeReceiveFailed, ProbeSendFailed, ProbeSent,
    Quit, ResetStats, Resized, Session, SessionStartFailed, SessionStarted, SlowDown, SpeedUp,
    StartSession, StopSession, ToggleHelp, WatchdogFired, Window,
)
from rate import RateController
from stats import RunningStats
from watchdog import Watchdog

RUNNING = "running"
QUITTING = "quitting"


@dataclass
class MonitorState:
    target: str
    window: Window
    stats: RunningStats
    watchdog: Watchdog
    rate: RateController
    correlator: Correlator
    width: int
    height: int
    phase: str = RUNNING
    session: Optional[Session] = None
    show_help: bool = False
    diagnostics: deque = field(default_factory=lambda: deque(maxlen=config.DIAGNOSTIC_HISTORY))


def new_state(target, width=config.DEFAULT_WIDTH, height=config.DEFAULT_HEIGHT,
              ladder=config.INTERVAL_LADDER_S, relaxed_index=config.RELAXED_INDEX,
              grace=config.WATCHDOG_GRACE_S):
    window = Window(width)
    stats = RunningStats()
    watchdog = Watchdog(grace)
    return MonitorState(
        target=target,
        window=window,
        stats=stats,
        watchdog=watchdog,
        rate=RateController(ladder, relaxed_index),
        correlator=Correlator(window, stats, watchdog),
        width=width,
        height=height,
    )


def initial_commands(state):
    """Commands to run before the first event: start probing at the fastest rate."""
    return [StartSession(state.rate.interval)]


def update(state, event):
    """Applies one event. Returns (state, commands)."""
    if state.phase == QUITTING:
        return state, []

    handler = _HANDLERS.get(type(event))
    if handler is None:
        _report(state, Diagnostic("unhandled-event", f"unhandled event {type(event).__name__}", {"event": repr(event)}))
        return state, []
    return state, handler(state, event)


def _report(state, diagnostic):
    if diagnostic.kind == "numeric":
        logging.error(f"[{state.target}] {diagnostic.kind}: {diagnostic.message} {diagnostic.context}")
    else:
        logging.warning(f"[{state.target}] {diagnostic.kind}: {diagnostic.message}")
    state.diagnostics.append(diagnostic)


def _relax(state):
    interval = state.rate.maybe_relax(state.window.is_full)
    return [StartSession(interval)] if interval is not None else []


def _session_started(state, event):
    state.session = event.session
    logging.info(f"[{state.target}] Session {event.session.id} active, interval {event.session.interval}s")
    return []


def _session_start_failed(state, event):
    _report(state, Diagnostic("transport", f"cannot restart at {event.interval:g}s: {event.error}",
                              {"interval": event.interval}))
    if state.session is not None:
        state.rate.follow(state.session.interval)
    return []


def _probe_sent(state, event):
    commands = state.correlator.sent(event)
    return commands + _relax(state)


def _probe_send_failed(state, event):
    _report(state, Diagnostic("transport", f"send seq {event.sequence} failed: {event.error}",
                              {"session_id": event.session_id, "sequence": event.sequence}))
    return []


def _probe_received(state, event):
    for diagnostic in state.correlator.received(event):
        _report(state, diagnostic)
    return []


def _probe_receive_failed(state, event):
    _report(state, Diagnostic("transport", f"receive failed: {event.error}", {"session_id": event.session_id}))
    return []


def _watchdog_fired(state, event):
    commands, diagnostics = state.watchdog.fire(state.window, event)
    for diagnostic in diagnostics:
        _report(state, diagnostic)
    return commands


def _resized(state, event):
    state.width, state.height = event.width, event.height
    evicted = state.window.resize(event.width)
    state.watchdog.evicted(evicted)
    return _relax(state)


def _speed_up(state, event):
    interval = state.rate.speed_up()
    return [StartSession(interval)] if interval is not None else []


def _slow_down(state, event):
    interval = state.rate.slow_down()
    return [StartSession(interval)] if interval is not None else []


def _reset_stats(state, event):
    state.stats.reset()
    logging.info(f"[{state.target}] Statistics reset")
    return []


def _toggle_help(state, event):
    state.show_help = not state.show_help
    return []


def _quit(state, event):
    state.phase = QUITTING
    logging.info(f"[{state.target}] Quit requested")
    return [StopSession(), Halt()]


_HANDLERS = {
    SessionStarted: _session_started,
    SessionStartFailed: _session_start_failed,
    ProbeSent: _probe_sent,
    ProbeSendFailed: _probe_send_failed,
    ProbeReceived: _probe_received,
    ProbeReceiveFailed: _probe_receive_failed,
    WatchdogFired: _watchdog_fired,
    Resized: _resized,
    SpeedUp: _speed_up,
    SlowDown: _slow_down,
    ResetStats: _reset_stats,
    ToggleHelp: _toggle_help,
    Quit: _quit,
}

KNOWN_EVENTS = frozenset(_HANDLERS)

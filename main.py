#!/usr/bin/env python3

import os
import sys
import time
import heapq
import queue
import logging
import argparse
import threading

from rich.console import Console
from rich.live import Live

import config
from keys import KeyReader
from model import ArmWatchdog, Halt, Resized, SessionStartFailed, StartSession, StopSession, WatchdogFired
from monitor import initial_commands, new_state, update
from pinger import Pinger, ProbeSetupError, resolve_target
from session import SessionManager
from view import render, snapshot


class Scheduler:
    """Single timer thread that pushes events onto the loop queue once they are due."""

    def __init__(self, push):
        self._push = push
        self._heap = []
        self._counter = 0
        self._cond = threading.Condition()
        self._closed = False
        self._thread = threading.Thread(target=self._run, name="scheduler", daemon=True)
        self._thread.start()

    def call_later(self, delay, event):
        with self._cond:
            self._counter += 1
            heapq.heappush(self._heap, (time.monotonic() + delay, self._counter, event))
            self._cond.notify()

    def close(self):
        with self._cond:
            self._closed = True
            self._heap.clear()
            self._cond.notify()
        self._thread.join(timeout=1.0)

    def _run(self):
        while True:
            with self._cond:
                while not self._closed and (not self._heap or self._heap[0][0] > time.monotonic()):
                    timeout = self._heap[0][0] - time.monotonic() if self._heap else None
                    self._cond.wait(timeout)
                if self._closed:
                    return
                _, _, event = heapq.heappop(self._heap)
            self._push(event)


class EventLoop:
    """
    Single consumer of the event queue. Every event goes through
    monitor.update() on this thread; engine, timer and key threads only push.
    The loop thread itself only ever uses push_nowait(), so a full queue can
    never stall the consumer.
    """

    def __init__(self, state, engine_factory=Pinger, address=None, size=None, on_refresh=None):
        self.state = state
        self.events = queue.Queue(maxsize=config.EVENT_QUEUE_SIZE)
        self.manager = SessionManager(state.target, self.push, engine_factory,
                                      address=address, notify=self.push_nowait)
        self.scheduler = Scheduler(self.push)
        self.final_stats = None
        self._size = size
        self._on_refresh = on_refresh
        self._last_size = (state.width, state.height)
        self._running = False

    def push(self, event):
        try:
            self.events.put(event, timeout=config.EVENT_PUT_TIMEOUT_S)
        except queue.Full:
            logging.warning(f"Event queue full, dropped {event!r}")

    def push_nowait(self, event):
        try:
            self.events.put_nowait(event)
        except queue.Full:
            logging.warning(f"Event queue full, dropped {event!r} from the loop thread")

    def step(self, event):
        self.state, commands = update(self.state, event)
        self.execute(commands)

    def execute(self, commands):
        for command in commands:
            if isinstance(command, StartSession):
                self._start_session(command.interval)
            elif isinstance(command, ArmWatchdog):
                self.scheduler.call_later(command.delay, WatchdogFired(command.session_id, command.sequence, command.stage))
            elif isinstance(command, StopSession):
                self.final_stats = self.manager.statistics()
                self.manager.stop()
            elif isinstance(command, Halt):
                self._running = False
            else:
                logging.error(f"Unknown command {command!r}")

    def run(self):
        """Runs until a Quit event is processed. ProbeSetupError from the first session propagates."""
        self._running = True
        try:
            for command in initial_commands(self.state):
                if isinstance(command, StartSession):
                    self.manager.start_session(command.interval)
                else:
                    self.execute([command])
            while self._running:
                self._check_size()
                try:
                    event = self.events.get(timeout=config.REFRESH_S)
                except queue.Empty:
                    event = None
                if event is not None:
                    self.step(event)
                if self._on_refresh is not None:
                    self._on_refresh(snapshot(self.state))
        finally:
            if self.final_stats is None:
                self.final_stats = self.manager.statistics()
            self.manager.stop()
            self.scheduler.close()

    def _start_session(self, interval):
        try:
            self.manager.start_session(interval)
        except ProbeSetupError as e:
            logging.error(f"[{self.state.target}] Restart at {interval}s failed, keeping the current session: {e}")
            self.push_nowait(SessionStartFailed(interval, str(e)))

    def _check_size(self):
        if self._size is None:
            return
        width, height = self._size()
        if (width, height) != self._last_size:
            self._last_size = (width, height)
            self.push_nowait(Resized(width, height))


def summary_line(target, stats):
    if stats is None:
        return f"Bye-bye. No probes were sent to {target}."
    avg = "-" if stats.avg_rtt is None else f"{stats.avg_rtt * 1000.0:.2f}ms"
    return (f"Bye-bye. {target}: {stats.sent} sent, {stats.received} received, "
            f"{stats.loss_percent:.1f}% loss, avg {avg}")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="monet", description="Adaptive terminal latency monitor for one host.")
    parser.add_argument("target", nargs="?", default=config.DEFAULT_TARGET,
                        help=f"host or address to probe (default {config.DEFAULT_TARGET})")
    parser.add_argument("--log-file", default=config.LOG_FILE, help="where to write the log")
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="logging level name")
    return parser.parse_args(argv)


def _fail(error):
    logging.error(f"Cannot start probing: {error}")
    Console(stderr=True).print(f"[red]Error:[/red] {error}")
    return 1


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(filename=args.log_file, level=args.log_level.upper(),
                        format='%(asctime)s %(levelname)s: %(message)s')

    # NOTE: Root privileges are required for Scapy raw sockets and sniffing.
    if hasattr(os, "geteuid") and os.geteuid() != 0:
        logging.warning("Scapy requires root privileges for raw sockets; probes will likely fail.")

    try:
        address = resolve_target(args.target)
    except ProbeSetupError as e:
        return _fail(e)

    console = Console()
    state = new_state(args.target, width=console.width, height=console.height)
    loop = None
    try:
        with Live(render(snapshot(state)), console=console, screen=True, auto_refresh=False) as live:
            loop = EventLoop(
                state,
                address=address,
                size=lambda: (console.width, console.height),
                on_refresh=lambda view: live.update(render(view), refresh=True),
            )
            with KeyReader(loop.push):
                loop.run()
    except ProbeSetupError as e:
        return _fail(e)
    except KeyboardInterrupt:
        logging.info("Monitor stopped by user.")

    console.print(summary_line(args.target, loop.final_stats if loop else None))
    return 0


if __name__ == "__main__":
    sys.exit(main())

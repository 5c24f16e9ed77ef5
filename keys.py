"""
Keyboard input: puts the terminal in cbreak mode and turns key presses into events.
"""

import os
import sys
import select
import logging
import threading

from model import Quit, ResetStats, SlowDown, SpeedUp, ToggleHelp

try:
    import termios
except ImportError:
    termios = None

KEY_EVENTS = {
    "+": SpeedUp, "=": SpeedUp, "f": SpeedUp,
    "-": SlowDown, "_": SlowDown, "s": SlowDown,
    "r": ResetStats,
    "h": ToggleHelp, "?": ToggleHelp,
    "q": Quit,
}

ESC = b"\x1b"
ESCAPE_TIMEOUT_S = 0.05 # Bytes of one escape sequence arrive together

HELP_LINES = (
    ("+ / f", "probe faster"),
    ("- / s", "probe slower"),
    ("r", "reset statistics"),
    ("h / ?", "toggle help"),
    ("q", "quit"),
)


def event_for_key(key):
    """Event instance for a key press, or None for keys without a binding."""
    event_type = KEY_EVENTS.get(key.lower() if key.isalpha() else key)
    return event_type() if event_type else None


class KeyReader:
    """Context manager running a daemon thread that pushes key events."""

    def __init__(self, push, stream=None):
        self._push = push
        self._stream = stream or sys.stdin
        self._stop_event = threading.Event()
        self._thread = None
        self._fd = None
        self._old_term = None

    def __enter__(self):
        if termios is None or not self._stream.isatty():
            logging.warning("stdin is not a terminal, keyboard controls disabled")
            return self
        self._fd = self._stream.fileno()
        self._old_term = termios.tcgetattr(self._fd)
        new_term = list(self._old_term)
        new_term[3] = new_term[3] & ~(termios.ICANON | termios.ECHO)
        new_term[6] = list(self._old_term[6])
        new_term[6][termios.VMIN] = 1
        new_term[6][termios.VTIME] = 0
        termios.tcsetattr(self._fd, termios.TCSADRAIN, new_term)
        self._thread = threading.Thread(target=self._read_loop, name="keys", daemon=True)
        self._thread.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self._stop_event.set()
        if self._old_term is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._old_term)
        return False

    def _read_byte(self, timeout):
        """One byte from the terminal, None on timeout, b"" at end of input."""
        ready, _, _ = select.select([self._fd], [], [], timeout)
        if not ready:
            return None
        return os.read(self._fd, 1)

    def _skip_escape_sequence(self):
        """
        Consumes the rest of an escape sequence so arrow and function keys
        don't leak their trailing bytes as key presses. Returns b"" at end of
        input, otherwise None.
        CSI (ESC [) and SS3 (ESC O) run up to a final byte in 0x40-0x7e.
        """
        data = self._read_byte(ESCAPE_TIMEOUT_S)
        if not data:
            return data
        if data not in (b"[", b"O"):
            return None # Alt+key, dropped together with its prefix
        while True:
            data = self._read_byte(ESCAPE_TIMEOUT_S)
            if not data:
                return data
            if 0x40 <= data[0] <= 0x7e:
                return None

    def _read_loop(self):
        while not self._stop_event.is_set():
            data = self._read_byte(0.1)
            if data is None:
                continue
            if data == ESC:
                data = self._skip_escape_sequence()
                if data is None:
                    continue
            if not data:
                return
            event = event_for_key(data.decode(errors="ignore"))
            if event is not None:
                self._push(event)

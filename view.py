"""
Read-only snapshot of the monitor for display, and its Rich rendering.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from rich.console import Group
from rich.table import Table
from rich.text import Text

from keys import HELP_LINES
from model import LOST, PENDING

_SPARK_CHARS = "▁▂▃▄▅▆▇█"
_PENDING_CHAR = "·"
_LOST_CHAR = "×"


@dataclass(frozen=True)
class View:
    target: str
    session_id: Optional[int]
    interval: float
    samples: Tuple[Tuple[str, Optional[float]], ...]  # (status, rtt) oldest first
    count: int
    mean: Optional[float]
    stddev: Optional[float]
    alarm_active: bool
    alarm_count: int
    width: int
    height: int
    diagnostics: Tuple[str, ...]
    show_help: bool


def snapshot(state):
    stats = state.stats
    return View(
        target=state.target,
        session_id=state.session.id if state.session else None,
        interval=state.rate.interval,
        samples=tuple((s.status, s.rtt) for s in state.window),
        count=stats.count,
        mean=stats.mean if stats.count else None,
        stddev=stats.standard_deviation(),
        alarm_active=state.watchdog.alarm.active,
        alarm_count=state.watchdog.alarm.count,
        width=state.width,
        height=state.height,
        diagnostics=tuple(f"{d.kind}: {d.message}" for d in state.diagnostics),
        show_help=state.show_help,
    )


def _ms(seconds):
    return "-" if seconds is None else f"{seconds * 1000.0:.1f}ms"


def sparkline(samples):
    resolved = [rtt for status, rtt in samples if rtt is not None]
    low = min(resolved, default=0.0)
    span = max(resolved, default=0.0) - low
    line = Text()
    for status, rtt in samples:
        if status == PENDING:
            line.append(_PENDING_CHAR, style="dim")
        elif status == LOST:
            line.append(_LOST_CHAR, style="bold red")
        else:
            level = 0 if span <= 0 else round((rtt - low) / span * (len(_SPARK_CHARS) - 1))
            line.append(_SPARK_CHARS[level], style="green" if level < 5 else "yellow")
    return line


def render(view):
    header = Text()
    header.append(f" {view.target} ", style="bold reverse")
    header.append(f"  every {view.interval:g}s")
    if view.session_id is not None:
        header.append(f"  session {view.session_id}", style="dim")
    if view.alarm_active:
        header.append(f"  SLOW REPLY x{view.alarm_count}", style="bold white on red")

    summary = Text(
        f"n={view.count}  mean={_ms(view.mean)}  stddev={_ms(view.stddev)}  "
        f"window={len(view.samples)}/{view.width}"
    )

    parts = [header, sparkline(view.samples), summary]
    for line in view.diagnostics:
        parts.append(Text(line, style="yellow"))

    if view.show_help:
        table = Table(show_header=False, box=None)
        for key, action in HELP_LINES:
            table.add_row(Text(key, style="bold"), action)
        parts.append(table)
    else:
        parts.append(Text("h for help", style="dim"))
    return Group(*parts)

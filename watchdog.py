"""
Slow/missing reply detection. Each dispatched probe gets a deferred check;
the loop schedules the timers, this module only decides what a firing means.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field

import config
from model import ArmWatchdog, Diagnostic, PENDING, RESOLVED


@dataclass
class AlarmState:
    # (session_id, sequence) -> number of outstanding slow-reply alarms
    pending_checks: Counter = field(default_factory=Counter)

    @property
    def count(self):
        return sum(self.pending_checks.values())

    @property
    def active(self):
        return self.count > 0


class Watchdog:
    def __init__(self, grace=config.WATCHDOG_GRACE_S):
        self.grace = grace
        self.alarm = AlarmState()

    def arm(self, sample):
        return ArmWatchdog(sample.session_id, sample.sequence, 1, self.grace)

    def fire(self, window, event):
        """
        Handles a deferred check. Returns (commands, diagnostics).

        First stage: a still-pending sample raises the alarm and re-arms.
        Second stage: a still-pending sample is marked lost; the alarm stays
        raised until the sample resolves late or leaves the window.
        """
        sample = window.find_latest(event.session_id, event.sequence)
        if sample is None or sample.status != PENDING:
            return [], []

        if event.stage == 1:
            self.alarm.pending_checks[sample.key] += 1
            logging.warning(f"[session {sample.session_id}] No reply for seq {sample.sequence} after {self.grace}s, alarm raised ({self.alarm.count} active)")
            return [ArmWatchdog(sample.session_id, sample.sequence, 2, self.grace)], []

        sample.lost = True
        diagnostic = Diagnostic(
            "lost",
            f"seq {sample.sequence} unanswered after {2 * self.grace:g}s",
            {"session_id": sample.session_id, "sequence": sample.sequence},
        )
        return [], [diagnostic]

    def complete(self, sample):
        """Called when the correlator resolves a sample; clears its alarm if it had one."""
        self._release(sample.key)

    def evicted(self, samples):
        """Drops alarms held by unresolved samples that fell off the window."""
        for sample in samples:
            if sample.status != RESOLVED:
                self._release(sample.key)

    def _release(self, key):
        if self.alarm.pending_checks[key] <= 0:
            return
        self.alarm.pending_checks[key] -= 1
        if self.alarm.pending_checks[key] == 0:
            del self.alarm.pending_checks[key]
        logging.info(f"[session {key[0]}] Alarm for seq {key[1]} cleared ({self.alarm.count} active)")

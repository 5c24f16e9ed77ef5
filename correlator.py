"""
Matches echo replies to the probes that produced them.
"""

import logging

from model import Diagnostic, RESOLVED, Sample


class Correlator:
    """
    Appends a pending sample per sent probe and resolves it when the reply
    with the same (session_id, sequence) shows up.

    Sequence numbers are reused, both after wrap-around and across session
    restarts, so lookups always take the newest matching sample.
    """

    def __init__(self, window, stats, watchdog):
        self.window = window
        self.stats = stats
        self.watchdog = watchdog

    def sent(self, event):
        """Returns the commands to run for a newly sent probe."""
        sample = Sample(event.session_id, event.sequence, event.sent_at)
        evicted = self.window.append(sample)
        self.watchdog.evicted(evicted)
        logging.debug(f"[session {event.session_id}] Sent seq {event.sequence}")
        return [self.watchdog.arm(sample)]

    def received(self, event):
        """Resolves the matching sample. Returns a list of diagnostics."""
        sample = self.window.find_latest(event.session_id, event.sequence)
        if sample is None:
            return [Diagnostic(
                "correlation-miss",
                f"reply seq {event.sequence} matched nothing",
                {"session_id": event.session_id, "sequence": event.sequence, "rtt": event.rtt},
            )]
        if sample.status == RESOLVED:
            return [Diagnostic(
                "duplicate",
                f"duplicate reply seq {event.sequence}",
                {"session_id": event.session_id, "sequence": event.sequence, "rtt": event.rtt},
            )]

        sample.rtt = event.rtt
        logging.debug(f"[session {event.session_id}] Received seq {event.sequence}, RTT={event.rtt * 1000.0:.2f}ms")
        self.watchdog.complete(sample)
        anomaly = self.stats.observe(event.rtt)
        return [anomaly] if anomaly else []

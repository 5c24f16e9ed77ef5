"""
Sampling rate control over a fixed ladder of probe intervals.
"""

import logging

import config


class RateController:
    """
    Tracks the current position on the interval ladder (index 0 is fastest).

    Starts at the fastest interval so the display fills quickly, then relaxes
    once to `relaxed_index` the first time the window fills, unless the user
    already picked a rate by hand.
    """

    def __init__(self, ladder=config.INTERVAL_LADDER_S, relaxed_index=config.RELAXED_INDEX):
        if not ladder:
            raise ValueError("interval ladder must not be empty")
        self.ladder = tuple(ladder)
        self.relaxed_index = min(max(relaxed_index, 0), len(self.ladder) - 1)
        self.speed_index = 0
        self.auto_relaxed = False
        self.manually_adjusted = False

    @property
    def interval(self):
        return self.ladder[self.speed_index]

    def speed_up(self):
        """Returns the new interval, or None when already at the fastest rate."""
        return self._step(-1)

    def slow_down(self):
        """Returns the new interval, or None when already at the slowest rate."""
        return self._step(+1)

    def maybe_relax(self, window_full):
        """
        One-shot relaxation on the first full window.

        Returns the new interval when the rate changed, otherwise None.
        """
        if self.auto_relaxed or not window_full:
            return None
        self.auto_relaxed = True
        if self.manually_adjusted or self.speed_index >= self.relaxed_index:
            return None
        self.speed_index = self.relaxed_index
        logging.info(f"Window full, relaxing probe interval to {self.interval}s")
        return self.interval

    def _step(self, direction):
        self.manually_adjusted = True
        index = min(max(self.speed_index + direction, 0), len(self.ladder) - 1)
        if index == self.speed_index:
            return None
        self.speed_index = index
        logging.info(f"Probe interval set to {self.interval}s")
        return self.interval

    def follow(self, interval):
        """Moves back to the ladder position of `interval`, the rate actually in use."""
        if interval in self.ladder:
            self.speed_index = self.ladder.index(interval)

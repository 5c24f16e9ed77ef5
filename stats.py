"""
Online round-trip time statistics (Welford's running mean/variance).
"""

import math
from dataclasses import dataclass

from model import Diagnostic


@dataclass
class RunningStats:
    """Constant-memory mean and variance of every RTT observed since the last reset."""
    count: int = 0
    mean: float = 0.0
    sum_squared_delta: float = 0.0

    def observe(self, rtt):
        """
        Folds one RTT (seconds) into the running statistics.

        Returns a numeric Diagnostic if the variance accumulator went negative,
        otherwise None. The accumulator is left as computed so the anomaly stays
        visible in later reports.
        """
        prev_mean = self.mean
        self.count += 1
        delta = rtt - self.mean
        self.mean += delta / self.count
        delta2 = rtt - self.mean
        self.sum_squared_delta += delta * delta2

        if self.sum_squared_delta < 0:
            context = {
                "rtt": rtt,
                "mean_before": prev_mean,
                "mean_after": self.mean,
                "delta": delta,
                "delta2": delta2,
                "sum_squared_delta": self.sum_squared_delta,
                "count": self.count,
            }
            return Diagnostic("numeric", "negative variance estimate", context)
        return None

    def reset(self):
        self.count = 0
        self.mean = 0.0
        self.sum_squared_delta = 0.0

    def standard_deviation(self):
        """Population standard deviation; None until something was observed."""
        if self.count == 0:
            return None
        # A negative accumulator has already been reported by observe().
        return math.sqrt(max(self.sum_squared_delta, 0.0) / self.count)

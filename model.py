"""
Shared data model for the monitor: samples, the sliding window, sessions,
the event vocabulary consumed by the loop and the commands it emits.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

PENDING = "pending"
RESOLVED = "resolved"
LOST = "lost"


@dataclass
class Sample:
    """One probe round. `rtt` stays None until a matching reply resolves it."""
    session_id: int
    sequence: int
    sent_at: float
    rtt: Optional[float] = None
    lost: bool = False

    @property
    def key(self):
        return (self.session_id, self.sequence)

    @property
    def status(self):
        if self.rtt is not None:
            return RESOLVED
        if self.lost:
            return LOST
        return PENDING


@dataclass(frozen=True)
class Session:
    id: int
    interval: float
    started_at: float


class Window:
    """Most recent samples, oldest at the head. Never longer than `capacity`."""

    def __init__(self, capacity):
        self.capacity = max(1, capacity)
        self._samples = deque()

    def __len__(self):
        return len(self._samples)

    def __iter__(self):
        return iter(self._samples)

    @property
    def is_full(self):
        return len(self._samples) >= self.capacity

    def append(self, sample):
        """Appends at the tail and returns the samples evicted from the head."""
        self._samples.append(sample)
        return self._truncate()

    def resize(self, capacity):
        """Changes the capacity. Shrinking drops the oldest samples, which are returned."""
        self.capacity = max(1, capacity)
        return self._truncate()

    def find_latest(self, session_id, sequence):
        """Newest sample matching (session_id, sequence), searching tail to head."""
        for sample in reversed(self._samples):
            if sample.session_id == session_id and sample.sequence == sequence:
                return sample
        return None

    def _truncate(self):
        evicted = []
        while len(self._samples) > self.capacity:
            evicted.append(self._samples.popleft())
        return evicted


@dataclass(frozen=True)
class Diagnostic:
    kind: str # transport, correlation-miss, duplicate, numeric, unhandled-event, lost
    message: str
    context: Dict[str, Any] = field(default_factory=dict)


# --- Events ---

@dataclass(frozen=True)
class SessionStarted:
    session: Session

@dataclass(frozen=True)
class SessionStartFailed:
    interval: float
    error: str

@dataclass(frozen=True)
class ProbeSent:
    session_id: int
    sequence: int
    sent_at: float

@dataclass(frozen=True)
class ProbeSendFailed:
    session_id: int
    sequence: int
    error: str

@dataclass(frozen=True)
class ProbeReceived:
    session_id: int
    sequence: int
    rtt: float

@dataclass(frozen=True)
class ProbeReceiveFailed:
    session_id: int
    error: str

@dataclass(frozen=True)
class WatchdogFired:
    session_id: int
    sequence: int
    stage: int # 1 for the first grace period, 2 for the re-armed one

@dataclass(frozen=True)
class Resized:
    width: int
    height: int

@dataclass(frozen=True)
class SpeedUp:
    pass

@dataclass(frozen=True)
class SlowDown:
    pass

@dataclass(frozen=True)
class ResetStats:
    pass

@dataclass(frozen=True)
class ToggleHelp:
    pass

@dataclass(frozen=True)
class Quit:
    pass


# --- Commands ---

@dataclass(frozen=True)
class StartSession:
    interval: float

@dataclass(frozen=True)
class StopSession:
    pass

@dataclass(frozen=True)
class ArmWatchdog:
    session_id: int
    sequence: int
    stage: int
    delay: float

@dataclass(frozen=True)
class Halt:
    pass

"""Process-scoped pipeline state shared by the components.

Everything that would otherwise be a module-level global (single-flight
flags, the learned speed ratio, the session status) lives on a
``PipelineContext`` that is created once and injected, so tests can use a
fresh one each time.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum


class Status(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    TRANSCRIBING = "transcribing"


class SingleFlight:
    """Boolean guard with compare-and-swap acquisition."""

    def __init__(self) -> None:
        self._active = False
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        with self._lock:
            if self._active:
                return False
            self._active = True
            return True

    def release(self) -> None:
        with self._lock:
            self._active = False

    @property
    def active(self) -> bool:
        return self._active


def blend(old_ratio: float, new_ratio: float) -> float:
    """Recency-weighted average: 30% previous estimate, 70% new observation."""
    return old_ratio * 0.3 + new_ratio * 0.7


class SpeedRatio:
    """Seconds of processing per second of audio, learned across file jobs."""

    def __init__(self, initial: float = 1.0) -> None:
        self._value = initial
        self._observed = False
        self._lock = threading.Lock()

    @property
    def value(self) -> float:
        return self._value

    def estimate(self, duration_secs: float) -> float:
        """Expected processing time for *duration_secs* of audio (at least 1s)."""
        return max(duration_secs * self._value, 1.0)

    def observe(self, elapsed_secs: float, duration_secs: float) -> float:
        if duration_secs <= 0:
            return self._value
        new_ratio = elapsed_secs / duration_secs
        with self._lock:
            if self._observed:
                self._value = blend(self._value, new_ratio)
            else:
                self._value = new_ratio
                self._observed = True
            return self._value


@dataclass
class PipelineContext:
    download: SingleFlight = field(default_factory=SingleFlight)
    file_processing: SingleFlight = field(default_factory=SingleFlight)
    file_cancel: threading.Event = field(default_factory=threading.Event)
    speed_ratio: SpeedRatio = field(default_factory=SpeedRatio)
    status: Status = Status.IDLE

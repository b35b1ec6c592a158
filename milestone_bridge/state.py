"""
Authoritative in-memory milestone state.

Holds the highest payment percentage seen and the set of windows that have
been named by any event. Nothing is ever removed and the milestone never
goes down. State lives only for the lifetime of the process.
"""

import threading
from dataclasses import dataclass

from .errors import DecodeError

# Windows reported by the /api/visibility endpoint
KNOWN_WINDOWS = (
    "1stStoryWindows",
    "2ndStoryWindows",
    "3rdStoryWindows",
    "4thStoryWindows",
)


@dataclass(frozen=True)
class Event:
    """One decoded PaymentMilestoneReached log entry."""
    percentage: int
    window_name: str

    def __post_init__(self):
        if isinstance(self.percentage, bool) or not isinstance(self.percentage, int):
            raise DecodeError(f"percentage must be an int, got {self.percentage!r}")
        if not 0 <= self.percentage <= 100:
            raise DecodeError(f"percentage {self.percentage} outside 0..100")
        if not isinstance(self.window_name, str):
            raise DecodeError(f"window name must be a string, got {self.window_name!r}")


@dataclass(frozen=True)
class Snapshot:
    current_milestone: int
    windows_visible: tuple

    def to_message(self):
        return {
            "type": "snapshot",
            "currentMilestone": self.current_milestone,
            "windowsVisible": list(self.windows_visible),
        }


class StateStore:
    """Latest milestone plus the set of visible windows."""

    def __init__(self):
        self._lock = threading.Lock()
        self._milestone = 0
        self._windows = set()

    def apply(self, event: Event) -> None:
        """Fold an event into state. Both fields change under one lock."""
        with self._lock:
            self._milestone = max(self._milestone, event.percentage)
            self._windows.add(event.window_name)

    def snapshot(self) -> Snapshot:
        with self._lock:
            return Snapshot(self._milestone, tuple(sorted(self._windows)))

    def contains(self, window_name: str) -> bool:
        with self._lock:
            return window_name in self._windows

    def visibility(self, names=KNOWN_WINDOWS):
        """Map each window name to whether it has been seen."""
        with self._lock:
            return {name: name in self._windows for name in names}

    @property
    def latest_milestone(self) -> int:
        with self._lock:
            return self._milestone

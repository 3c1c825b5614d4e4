"""
TrackTracker - Decides whether an extracted track is a new "now playing"

Renderers re-broadcast their full state on every LastChange, so the same
track arrives many times. The tracker remembers the last non-empty track and
only reports a change when class, title or artist differ.

Each renderer session owns its own tracker instance.
"""
import threading
from typing import Callable, Optional, Tuple

from .track import Track, EMPTY_TRACK

ChangeCallback = Callable[[Track], None]


class TrackTracker:
    """
    Holds the previous track and performs the check-and-set atomically.

    observe() may be called from several threads or delivery contexts; the
    comparison, the store and the optional change callback run under one
    lock, so every accepted change is dispatched exactly once and in the
    order it was stored. The lock is reentrant: the callback may read the
    tracker (current, changes) from the same thread.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._current: Track = EMPTY_TRACK
        self._changes = 0

    @property
    def current(self) -> Track:
        """Last accepted track (EMPTY_TRACK before the first one)"""
        with self._lock:
            return self._current

    @property
    def changes(self) -> int:
        """Number of accepted track changes"""
        with self._lock:
            return self._changes

    def observe(
        self,
        candidate: Track,
        on_change: Optional[ChangeCallback] = None,
    ) -> Tuple[bool, Track]:
        """
        Compare a freshly extracted track against the previous one.

        Args:
            candidate: Track extracted from the latest event
            on_change: Called with the new track while the lock is held

        Returns:
            (should_notify, effective track). An empty candidate never
            notifies and never replaces the previous track.
        """
        with self._lock:
            if candidate.is_empty or candidate == self._current:
                return False, self._current

            self._current = candidate
            self._changes += 1
            if on_change is not None:
                on_change(candidate)
            return True, candidate

"""
WorkerClock - the time source object workers use to stamp new objects.

Object names are derived from the moment an object is opened, so tests need
a clock that can be pinned to a known instant.

Usage:
    from bucket_sink.clock import WorkerClock

    clock = WorkerClock()
    clock.freeze(datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc))
    assert clock.now().year == 2024
    clock.unfreeze()
"""

import threading
from datetime import datetime, timezone
from typing import Optional


class WorkerClock:
    """
    A UTC clock that can be frozen for deterministic object naming.

    All values returned are timezone-aware UTC datetimes. A naive frozen
    time is assumed to already be UTC.
    """

    def __init__(self, frozen_time: Optional[datetime] = None):
        """
        Initialize the WorkerClock.

        Args:
            frozen_time: If provided, the clock will always return this time
        """
        self._frozen_time: Optional[datetime] = None
        self._lock = threading.Lock()
        if frozen_time is not None:
            self.freeze(frozen_time)

    def now(self) -> datetime:
        """
        Get the current UTC time (frozen or real).
        """
        with self._lock:
            if self._frozen_time is not None:
                return self._frozen_time
        return datetime.now(timezone.utc)

    def timestamp(self) -> float:
        """Seconds since epoch for now()."""
        return self.now().timestamp()

    def freeze(self, dt: datetime) -> None:
        """
        Freeze the clock at a specific time.

        Args:
            dt: The time to freeze at
        """
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        with self._lock:
            self._frozen_time = dt.astimezone(timezone.utc)

    def unfreeze(self) -> None:
        """Unfreeze the clock to return real time."""
        with self._lock:
            self._frozen_time = None

    @property
    def is_frozen(self) -> bool:
        with self._lock:
            return self._frozen_time is not None


# Shared default used by workers that are not handed a clock explicitly
system_clock = WorkerClock()

"""Tests for bucket_sink.clock module."""

from datetime import datetime, timedelta, timezone

from bucket_sink.clock import WorkerClock


class TestWorkerClock:
    """Tests for WorkerClock class."""

    def test_unfrozen_returns_current_utc_time(self):
        clock = WorkerClock()
        before = datetime.now(timezone.utc)
        clock_time = clock.now()
        after = datetime.now(timezone.utc)

        assert before <= clock_time <= after
        assert clock_time.tzinfo is not None

    def test_freeze_and_unfreeze(self):
        clock = WorkerClock()
        assert not clock.is_frozen

        frozen_time = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        clock.freeze(frozen_time)

        assert clock.is_frozen
        assert clock.now() == frozen_time
        assert clock.timestamp() == 1704067200.0

        clock.unfreeze()
        assert not clock.is_frozen

    def test_naive_frozen_time_is_utc(self):
        clock = WorkerClock(frozen_time=datetime(2024, 1, 1, 0, 0, 0))

        assert clock.now() == datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)

    def test_frozen_time_converted_to_utc(self):
        minus_five = timezone(timedelta(hours=-5))
        clock = WorkerClock(frozen_time=datetime(2024, 1, 1, 20, 0, 0, tzinfo=minus_five))

        assert clock.now().tzinfo == timezone.utc
        assert clock.now().day == 2


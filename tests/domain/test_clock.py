"""Tests for the injectable clocks (``hypermedia_kernel.domain.clock``)."""

from datetime import datetime, timedelta, timezone

import pytest

from hypermedia_kernel.domain.clock import DEFAULT_EPOCH, DeterministicClock, SystemClock


class TestDeterministicClock:
    def test_frozen_until_moved(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now() == DEFAULT_EPOCH

    def test_advance(self):
        clock = DeterministicClock()
        moved = clock.advance(90)
        assert moved == DEFAULT_EPOCH + timedelta(seconds=90)
        assert clock.now() == moved

    def test_step_gives_ordered_instants(self):
        clock = DeterministicClock(step=timedelta(seconds=1))
        first, second, third = clock.now(), clock.now(), clock.now()
        assert first < second < third
        assert third - first == timedelta(seconds=2)

    def test_normalised_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        clock = DeterministicClock(datetime(2026, 1, 1, 12, 0, tzinfo=plus_two))
        assert clock.now() == datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)
        assert clock.now().tzinfo == timezone.utc

    def test_naive_rejected(self):
        with pytest.raises(ValueError):
            DeterministicClock(datetime(2026, 1, 1))
        with pytest.raises(ValueError):
            DeterministicClock().set_time(datetime(2026, 1, 1))

    def test_set_time(self):
        clock = DeterministicClock()
        target = datetime(2030, 5, 5, tzinfo=timezone.utc)
        clock.set_time(target)
        assert clock.now() == target


def test_system_clock_is_aware():
    assert SystemClock().now().tzinfo is not None

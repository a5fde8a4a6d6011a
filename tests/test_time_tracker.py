"""Tests for the start/pause/resume time accounting."""

from datetime import datetime, timedelta, timezone

import pytest

from production_tracker.domain import TimeTracker, round_minutes
from production_tracker.errors import InvalidStateError

START = datetime(2024, 3, 4, 8, 0, tzinfo=timezone.utc)


def at(minutes: float):
    return START + timedelta(minutes=minutes)


class TestRounding:
    def test_half_minutes_round_up(self):
        assert round_minutes(90) == 2
        assert round_minutes(89) == 1
        assert round_minutes(29) == 0

    def test_negative_halves_round_towards_positive(self):
        assert round_minutes(-30) == 0


class TestElapsed:
    def test_fresh_tracker_counts_wall_clock(self):
        tracker = TimeTracker.started(START)
        assert tracker.elapsed_minutes(at(0)) == 0
        assert tracker.elapsed_minutes(at(25)) == 25

    def test_never_negative(self):
        tracker = TimeTracker.started(at(10))
        assert tracker.elapsed_minutes(START) == 0

    def test_constant_while_paused(self):
        tracker = TimeTracker.started(START)
        tracker.pause(at(15))
        assert tracker.elapsed_minutes(at(15)) == 15
        assert tracker.elapsed_minutes(at(40)) == 15

    def test_resume_excludes_paused_minutes(self):
        tracker = TimeTracker.started(START)
        tracker.pause(at(20))
        paused = tracker.resume(at(30))
        assert paused == 10
        assert tracker.total_pause_minutes == 10
        assert tracker.pause_start_time is None
        assert not tracker.is_paused
        assert tracker.elapsed_minutes(at(30)) == 20

    def test_repeated_pauses_accumulate(self):
        tracker = TimeTracker.started(START)
        tracker.pause(at(10))
        tracker.resume(at(15))
        tracker.pause(at(15))
        tracker.resume(at(22))
        assert tracker.total_pause_minutes == 12
        assert tracker.elapsed_minutes(at(60)) == 48

    def test_stop_freezes_elapsed_time(self):
        tracker = TimeTracker.started(START)
        tracker.stop(at(45))
        tracker.stop(at(50))
        assert tracker.end_time == at(45)
        assert tracker.elapsed_minutes(at(300)) == 45

    def test_stopping_while_paused_excludes_open_pause(self):
        tracker = TimeTracker.started(START)
        tracker.pause(at(30))
        tracker.stop(at(40))
        assert tracker.elapsed_minutes(at(90)) == 30


class TestGuards:
    def test_resume_without_pause_fails(self):
        tracker = TimeTracker.started(START)
        with pytest.raises(InvalidStateError):
            tracker.resume(at(5))
        assert tracker.total_pause_minutes == 0

    def test_double_pause_keeps_first_pause_start(self):
        tracker = TimeTracker.started(START)
        tracker.pause(at(5))
        with pytest.raises(InvalidStateError):
            tracker.pause(at(9))
        assert tracker.pause_start_time == at(5)

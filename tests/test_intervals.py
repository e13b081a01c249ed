"""Tests for the minute-of-day interval utilities"""
from datetime import time

import pytest

from agenda.core.exceptions import ValidationError
from agenda.utils.intervals import (
    Interval,
    contains,
    format_minutes,
    intersect,
    make_interval,
    merge,
    overlaps,
    parse_hhmm,
    slice_starts,
    subtract,
    validate_sorted_disjoint,
)


class TestParse:

    def test_parses_24_hour_values(self):
        assert parse_hhmm("00:00") == 0
        assert parse_hhmm("09:30") == 570
        assert parse_hhmm("23:59") == 1439

    def test_accepts_time_objects(self):
        assert parse_hhmm(time(13, 15)) == 795

    @pytest.mark.parametrize("value", ["9:30", "24:00", "12:60", "noon", "", "12:00:00", None])
    def test_rejects_malformed_values(self, value):
        with pytest.raises(ValidationError):
            parse_hhmm(value)

    def test_format_pads_hours_and_minutes(self):
        assert format_minutes(545) == "09:05"

    def test_make_interval_requires_end_after_start(self):
        assert make_interval("09:00", "10:00") == Interval(540, 600)
        with pytest.raises(ValidationError):
            make_interval("10:00", "10:00")
        with pytest.raises(ValidationError):
            make_interval("11:00", "10:00")


class TestSetOperations:

    def test_touching_intervals_do_not_overlap(self):
        assert not overlaps(Interval(540, 600), Interval(600, 660))
        assert overlaps(Interval(540, 601), Interval(600, 660))

    def test_validate_sorted_disjoint_rejects_overlap(self):
        with pytest.raises(ValidationError):
            validate_sorted_disjoint([Interval(540, 720), Interval(700, 800)])
        with pytest.raises(ValidationError):
            validate_sorted_disjoint([Interval(780, 900), Interval(540, 600)])

    def test_merge_joins_overlapping_and_adjacent(self):
        merged = merge([Interval(600, 660), Interval(540, 600), Interval(650, 700), Interval(800, 900)])
        assert merged == [Interval(540, 700), Interval(800, 900)]

    def test_intersect_is_pairwise(self):
        unit = [Interval(540, 1020)]
        agent = [Interval(480, 720), Interval(780, 1080)]
        assert intersect(unit, agent) == [Interval(540, 720), Interval(780, 1020)]

    def test_intersect_discards_empty_results(self):
        assert intersect([Interval(540, 600)], [Interval(600, 700)]) == []

    def test_subtract_splits_windows(self):
        result = subtract([Interval(540, 720)], [Interval(600, 630)])
        assert result == [Interval(540, 600), Interval(630, 720)]

    def test_subtract_drops_zero_length_remainders(self):
        assert subtract([Interval(540, 600)], [Interval(540, 600)]) == []
        assert subtract([Interval(540, 600)], [Interval(500, 560), Interval(560, 620)]) == []

    def test_contains_requires_a_single_window(self):
        windows = [Interval(540, 600), Interval(600, 660)]
        assert contains(windows, Interval(540, 600))
        # Spans both windows: not contained in one
        assert not contains(windows, Interval(570, 630))


class TestSlicing:

    def test_starts_step_from_each_window_start(self):
        slots = slice_starts([Interval(540, 660), Interval(700, 760)], 30, 30)
        assert [s.start for s in slots] == [540, 570, 600, 630, 700, 730]

    def test_duration_longer_than_window_yields_nothing(self):
        assert slice_starts([Interval(540, 570)], 45, 15) == []

    def test_rejects_non_positive_duration_or_step(self):
        with pytest.raises(ValidationError):
            slice_starts([Interval(540, 600)], 0, 30)
        with pytest.raises(ValidationError):
            slice_starts([Interval(540, 600)], 30, 0)

"""Tests for assignment scheduling window checks."""

from datetime import date, time

import pytest

from tutor_payroll.calculators.scheduling import (
    AssignmentWindow,
    duration_minutes,
    is_within_assignment_window,
    parse_time_to_minutes,
)


class TestTimeParsing:
    def test_parse_time_to_minutes(self):
        assert parse_time_to_minutes("00:00") == 0
        assert parse_time_to_minutes("10:30") == 630
        assert parse_time_to_minutes("23:59:00") == 1439
        assert parse_time_to_minutes(time(9, 15)) == 555

    def test_duration(self):
        assert duration_minutes("10:00", "11:30") == 90
        assert duration_minutes(time(11, 0), time(10, 0)) == -60


class TestAssignmentWindow:
    """Session date and time span against the assignment window."""

    @pytest.fixture
    def window(self):
        # Monday and Wednesday, afternoons only
        return AssignmentWindow.from_raw(
            start_date="2024-06-01",
            end_date="2024-06-30",
            allowed_days=[0, 2],
            allowed_time_ranges=[{"start": "14:00", "end": "18:00"}],
        )

    def test_inside_window(self, window):
        assert is_within_assignment_window(date(2024, 6, 3), "14:00", "15:00", window) is True
        # Range bounds are inclusive
        assert is_within_assignment_window(date(2024, 6, 5), "17:00", "18:00", window) is True

    def test_outside_dates(self, window):
        assert is_within_assignment_window(date(2024, 5, 27), "14:00", "15:00", window) is False
        assert is_within_assignment_window(date(2024, 7, 1), "14:00", "15:00", window) is False

    def test_disallowed_weekday(self, window):
        # Tuesday
        assert is_within_assignment_window(date(2024, 6, 4), "14:00", "15:00", window) is False

    def test_outside_time_range(self, window):
        assert is_within_assignment_window(date(2024, 6, 3), "13:30", "14:30", window) is False
        assert is_within_assignment_window(date(2024, 6, 3), "17:30", "18:30", window) is False

    def test_end_before_start_is_never_valid(self, window):
        assert is_within_assignment_window(date(2024, 6, 3), "15:00", "14:00", window) is False
        assert is_within_assignment_window(date(2024, 6, 3), "15:00", "15:00", window) is False

    def test_empty_restrictions_mean_unrestricted(self):
        window = AssignmentWindow.from_raw(start_date=date(2024, 1, 1))
        assert is_within_assignment_window(date(2024, 6, 9), "06:00", "23:00", window) is True

    def test_any_of_several_ranges(self):
        window = AssignmentWindow.from_raw(
            start_date=date(2024, 1, 1),
            allowed_time_ranges=[
                {"start": "08:00", "end": "10:00"},
                {"start": "16:00", "end": "20:00"},
            ],
        )
        assert is_within_assignment_window("2024-06-03", time(16, 30), time(17, 30), window) is True
        assert is_within_assignment_window("2024-06-03", time(10, 30), time(11, 30), window) is False

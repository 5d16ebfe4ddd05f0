"""Tests for the slot grid, catalog and half-day policy table."""

import datetime as dt
from zoneinfo import ZoneInfo

import pytest

from testdrive.timegrid import (
    CarModel,
    Period,
    TimeGrid,
    branch_timezone,
    branch_today,
    format_hhmm,
    get_time_grid,
    parse_hhmm,
)


class TestTimeGrid:
    def setup_method(self):
        self.grid = TimeGrid()

    def test_default_slots_cover_business_day(self):
        slots = self.grid.all_slots()
        assert slots[0] == "08:00"
        assert slots[-1] == "16:30"
        assert len(slots) == 18
        assert "14:30" in slots

    def test_slots_are_sorted_and_stable(self):
        assert list(self.grid.all_slots()) == sorted(self.grid.all_slots())
        assert self.grid.all_slots() == self.grid.all_slots()

    def test_all_car_models_is_full_catalog(self):
        assert self.grid.all_car_models() == frozenset(CarModel)
        assert CarModel.DOLPHIN in self.grid.all_car_models()
        assert CarModel.ATTO3 in self.grid.all_car_models()

    def test_period_bounds_policy_table(self):
        assert self.grid.period_bounds(Period.MORNING) == ("08:00", "13:00")
        assert self.grid.period_bounds(Period.AFTERNOON) == ("13:00", "17:00")
        assert self.grid.period_bounds(Period.ALL_DAY) == ("08:00", "17:00")

    def test_period_bounds_accepts_raw_value(self):
        assert self.grid.period_bounds("all-day") == ("08:00", "17:00")

    def test_slots_in_periods_partition_the_day(self):
        morning = self.grid.slots_in(Period.MORNING)
        afternoon = self.grid.slots_in(Period.AFTERNOON)
        assert morning[0] == "08:00"
        assert morning[-1] == "12:30"
        assert afternoon[0] == "13:00"
        assert afternoon[-1] == "16:30"
        assert morning + afternoon == self.grid.slots_in(Period.ALL_DAY)

    def test_contains(self):
        assert self.grid.contains("09:30")
        assert not self.grid.contains("09:15")
        assert not self.grid.contains("17:00")
        assert not self.grid.contains("9:30")

    def test_hourly_grid(self):
        grid = TimeGrid(day_start="09:00", midday="12:00", day_end="18:00", slot_length_minutes=60)
        assert grid.all_slots() == ("09:00", "10:00", "11:00", "12:00", "13:00", "14:00", "15:00", "16:00", "17:00")
        assert grid.slots_in(Period.MORNING) == ("09:00", "10:00", "11:00")


class TestTimeGridValidation:
    def test_rejects_inverted_hours(self):
        with pytest.raises(ValueError, match="day_start < midday < day_end"):
            TimeGrid(day_start="17:00", midday="13:00", day_end="08:00")

    def test_rejects_misaligned_midday(self):
        with pytest.raises(ValueError, match="slot boundaries"):
            TimeGrid(midday="12:15")

    def test_rejects_unpadded_time(self):
        with pytest.raises(ValueError, match="HH:MM"):
            TimeGrid(day_start="8:00")

    def test_rejects_zero_slot_length(self):
        with pytest.raises(ValueError, match="positive"):
            TimeGrid(slot_length_minutes=0)


class TestHelpers:
    def test_parse_and_format(self):
        assert parse_hhmm("08:30") == 510
        assert format_hhmm(510) == "08:30"

    def test_parse_rejects_out_of_range(self):
        with pytest.raises(ValueError):
            parse_hhmm("25:00")

    def test_configured_grid_uses_defaults(self):
        assert get_time_grid() == TimeGrid()


class TestBranchToday:
    def test_default_zone_is_thailand(self):
        assert branch_timezone() == ZoneInfo("Asia/Bangkok")

    def test_today_follows_branch_zone(self):
        bangkok = ZoneInfo("Asia/Bangkok")
        before = dt.datetime.now(bangkok).date()
        today = branch_today()
        after = dt.datetime.now(bangkok).date()
        assert today in (before, after)

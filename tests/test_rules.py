"""Tests for request rule checks."""

from testdrive.rules import RuleEngine
from testdrive.timegrid import CarModel, TimeGrid


class TestRuleEngine:
    def setup_method(self):
        self.grid = TimeGrid()

    def test_car_model_accepts_enum_and_value(self):
        assert RuleEngine.check_car_model(CarModel.M6).allowed
        assert RuleEngine.check_car_model("BYD Sealion 7").allowed

    def test_unknown_car_model(self):
        result = RuleEngine.check_car_model("Tesla Model Y")
        assert not result.allowed
        assert "Tesla Model Y" in result.reason

    def test_time_slot_outside_grid(self):
        assert RuleEngine.check_time_slot("16:30", self.grid).allowed
        result = RuleEngine.check_time_slot("17:00", self.grid)
        assert not result.allowed
        assert "08:00 - 16:30" in result.reason

    def test_resolve_period(self):
        bounds, check = RuleEngine.resolve_period("afternoon", self.grid)
        assert check.allowed
        assert bounds == ("13:00", "17:00")

        bounds, check = RuleEngine.resolve_period("night", self.grid)
        assert bounds is None
        assert "morning, afternoon, all-day" in check.reason

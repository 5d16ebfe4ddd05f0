"""Rule evaluation for booking and unavailability requests."""

from __future__ import annotations

from dataclasses import dataclass

from testdrive.timegrid import CarModel, Period, TimeGrid


@dataclass
class RuleCheckResult:
    allowed: bool
    reason: str | None = None


class RuleEngine:
    @staticmethod
    def check_car_model(car_model) -> RuleCheckResult:
        try:
            CarModel(car_model)
        except ValueError:
            return RuleCheckResult(allowed=False, reason=f"Unknown car model: {car_model!r}.")
        return RuleCheckResult(allowed=True)

    @staticmethod
    def check_time_slot(time_slot: str, grid: TimeGrid) -> RuleCheckResult:
        if not grid.contains(time_slot):
            slots = grid.all_slots()
            return RuleCheckResult(
                allowed=False,
                reason=(
                    f"Time slot {time_slot!r} is not bookable "
                    f"({slots[0]} - {slots[-1]}, every {grid.slot_length_minutes} minutes)."
                ),
            )
        return RuleCheckResult(allowed=True)

    @staticmethod
    def resolve_period(period, grid: TimeGrid) -> tuple[tuple[str, str] | None, RuleCheckResult]:
        try:
            bounds = grid.period_bounds(Period(period))
        except ValueError:
            allowed = ", ".join(member.value for member in Period)
            return None, RuleCheckResult(allowed=False, reason=f"Period must be one of: {allowed}.")
        return bounds, RuleCheckResult(allowed=True)

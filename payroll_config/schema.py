"""
Contract Rules Configuration Schema.

Defines the structure and sensible defaults for the union-contract
settings the engines apply (overtime thresholds, work week, rounding and
the situational-pay rules).  Actual values are loaded from a contract
YAML file or a settings store at runtime and converted to the engines'
frozen rule objects with ``to_engine_rules()``.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Self

from payroll_kernel.domain.values import ReallocationOrder, ScheduleType
from payroll_kernel.logging_config import get_logger
from payroll_engines.composer import EngineRules
from payroll_engines.gross import (
    GrossPayRules,
    InstallationPremiumRule,
    MealPenaltyRule,
    MinimumPayRule,
    TravelBand,
    TravelRule,
)
from payroll_engines.hours import HoursRules

logger = get_logger("config.schema")

VALID_WORK_DAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
VALID_REALLOCATION_ORDERS = {o.value for o in ReallocationOrder}
VALID_SCHEDULES = {s.value for s in ScheduleType}
# Minutes that convert to a terminating decimal fraction of an hour
VALID_ROUNDING_MINUTES = (3, 6, 15, 30, 60)


@dataclass
class TravelBandSetting:
    """Flat daily travel/subsistence amount paid at or above ``min_miles``."""
    min_miles: Decimal
    amount: Decimal

    def __post_init__(self):
        for name in ("min_miles", "amount"):
            value = getattr(self, name)
            if isinstance(value, float):
                raise ValueError(f"{name} must be quoted, got float {value!r}")
            setattr(self, name, Decimal(str(value)))
        if self.min_miles < 0:
            raise ValueError("min_miles cannot be negative")
        if self.amount < 0:
            raise ValueError("amount cannot be negative")


@dataclass
class PayrollConfig:
    """
    Configuration schema for contract rules.

    Field defaults represent a common inside-agreement baseline.
    Override at instantiation with local-specific values:

        config = PayrollConfig(
            work_week_start="sunday",
            minimum_pay_flat_amount=Decimal("150.00"),
            **load_from_store("contract_settings"),
        )
    """

    # Daily thresholds
    standard_daily_regular_hours: Decimal = Decimal("8")
    compressed_daily_regular_hours: Decimal = Decimal("10")
    daily_overtime_band_hours: Decimal = Decimal("2")
    saturday_overtime_hours: Decimal = Decimal("8")

    # Work week
    weekly_regular_threshold: Decimal = Decimal("40")
    work_week_start: str = "monday"
    reallocation_order: str = ReallocationOrder.REVERSE_CHRONOLOGICAL.value
    default_schedule: str = ScheduleType.STANDARD.value

    # Time entry
    round_time_to_minutes: int = 15

    # Minimum-pay guarantee
    minimum_pay_enabled: bool = True
    minimum_pay_flat_amount: Decimal = Decimal("0")
    minimum_pay_lower_hours: Decimal = Decimal("2")
    minimum_pay_upper_hours: Decimal = Decimal("4")
    minimum_pay_escalation_hours: Decimal = Decimal("2")

    # Missed meal
    meal_penalty_enabled: bool = True
    meal_penalty_threshold_hours: Decimal = Decimal("5")

    # Travel / subsistence
    travel_pay_enabled: bool = True
    travel_bands: tuple[TravelBandSetting, ...] = field(default_factory=tuple)

    # Installation premium
    installation_premium_enabled: bool = False
    installation_premium_per_hour: Decimal = Decimal("0")

    def __post_init__(self):
        # Validate thresholds
        for name in (
            "standard_daily_regular_hours",
            "compressed_daily_regular_hours",
            "daily_overtime_band_hours",
            "saturday_overtime_hours",
            "weekly_regular_threshold",
            "meal_penalty_threshold_hours",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

        # Validate work week
        if self.work_week_start not in VALID_WORK_DAYS:
            raise ValueError(
                f"work_week_start must be one of {VALID_WORK_DAYS}, "
                f"got '{self.work_week_start}'"
            )
        if self.reallocation_order not in VALID_REALLOCATION_ORDERS:
            raise ValueError(
                f"reallocation_order must be one of {sorted(VALID_REALLOCATION_ORDERS)}, "
                f"got '{self.reallocation_order}'"
            )
        if self.default_schedule not in VALID_SCHEDULES:
            raise ValueError(
                f"default_schedule must be one of {sorted(VALID_SCHEDULES)}, "
                f"got '{self.default_schedule}'"
            )

        # Validate time rounding
        if self.round_time_to_minutes not in VALID_ROUNDING_MINUTES:
            raise ValueError(
                f"round_time_to_minutes must be one of {VALID_ROUNDING_MINUTES}, "
                f"got {self.round_time_to_minutes}"
            )

        # Validate minimum pay
        if self.minimum_pay_flat_amount < 0:
            raise ValueError("minimum_pay_flat_amount cannot be negative")
        if self.minimum_pay_lower_hours < 0:
            raise ValueError("minimum_pay_lower_hours cannot be negative")
        if self.minimum_pay_upper_hours < self.minimum_pay_lower_hours:
            raise ValueError("minimum_pay_upper_hours must be >= minimum_pay_lower_hours")

        # Validate installation premium
        if self.installation_premium_per_hour < 0:
            raise ValueError("installation_premium_per_hour cannot be negative")

        # Validate travel bands are increasing
        if self.travel_bands:
            miles = [band.min_miles for band in self.travel_bands]
            amounts = [band.amount for band in self.travel_bands]
            if miles != sorted(set(miles)):
                raise ValueError("travel_bands must be sorted by min_miles ascending")
            if amounts != sorted(set(amounts)):
                raise ValueError("travel_bands amounts must increase with distance")

        logger.info(
            "payroll_config_initialized",
            extra={
                "weekly_regular_threshold": str(self.weekly_regular_threshold),
                "work_week_start": self.work_week_start,
                "reallocation_order": self.reallocation_order,
                "default_schedule": self.default_schedule,
                "round_time_to_minutes": self.round_time_to_minutes,
                "minimum_pay_enabled": self.minimum_pay_enabled,
                "meal_penalty_enabled": self.meal_penalty_enabled,
                "travel_pay_enabled": self.travel_pay_enabled,
                "installation_premium_enabled": self.installation_premium_enabled,
                "travel_bands_count": len(self.travel_bands),
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the baseline contract defaults."""
        logger.info("payroll_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary (e.g., loaded from a file or store)."""
        logger.info(
            "payroll_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        for name, value in data.items():
            if name in _DECIMAL_FIELDS and not isinstance(value, Decimal):
                if isinstance(value, float):
                    raise ValueError(f"{name} must be quoted, got float {value!r}")
                data[name] = Decimal(str(value))
        if "travel_bands" in data:
            data["travel_bands"] = tuple(
                TravelBandSetting(**band) if isinstance(band, dict) else band
                for band in data["travel_bands"]
            )
        return cls(**data)

    @property
    def schedule(self) -> ScheduleType:
        return ScheduleType(self.default_schedule)

    def to_engine_rules(self) -> EngineRules:
        """Translate into the frozen rule objects the engines consume."""
        hours = HoursRules(
            standard_regular_limit=self.standard_daily_regular_hours,
            compressed_regular_limit=self.compressed_daily_regular_hours,
            weekday_overtime_band=self.daily_overtime_band_hours,
            saturday_overtime_limit=self.saturday_overtime_hours,
            weekly_regular_threshold=self.weekly_regular_threshold,
            work_week_start=VALID_WORK_DAYS.index(self.work_week_start),
            reallocation_order=ReallocationOrder(self.reallocation_order),
            rounding_increment=Decimal(self.round_time_to_minutes) / Decimal(60),
        )
        gross = GrossPayRules(
            minimum_pay=MinimumPayRule(
                enabled=self.minimum_pay_enabled,
                flat_minimum=self.minimum_pay_flat_amount,
                lower_guarantee_hours=self.minimum_pay_lower_hours,
                upper_guarantee_hours=self.minimum_pay_upper_hours,
                escalation_threshold_hours=self.minimum_pay_escalation_hours,
            ),
            meal_penalty=MealPenaltyRule(
                enabled=self.meal_penalty_enabled,
                threshold_hours=self.meal_penalty_threshold_hours,
            ),
            travel=TravelRule(
                enabled=self.travel_pay_enabled,
                bands=tuple(
                    TravelBand(min_miles=b.min_miles, amount=b.amount)
                    for b in self.travel_bands
                ),
            ),
            installation_premium=InstallationPremiumRule(
                enabled=self.installation_premium_enabled,
                per_hour=self.installation_premium_per_hour,
            ),
        )
        return EngineRules(hours=hours, gross=gross)


_DECIMAL_FIELDS = frozenset({
    "standard_daily_regular_hours",
    "compressed_daily_regular_hours",
    "daily_overtime_band_hours",
    "saturday_overtime_hours",
    "weekly_regular_threshold",
    "minimum_pay_flat_amount",
    "minimum_pay_lower_hours",
    "minimum_pay_upper_hours",
    "minimum_pay_escalation_hours",
    "meal_penalty_threshold_hours",
    "installation_premium_per_hour",
})

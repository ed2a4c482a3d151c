"""
Pure domain layer.

Immutable payroll inputs, reference tables, enumerations and numeric
utilities with NO dependencies on:
- Configuration files
- Time/clock
- I/O

All domain objects are immutable and deterministic.
"""

from payroll_kernel.domain.dtos import (
    BracketRow,
    BracketTable,
    BracketTableKey,
    DailyRecord,
    ExternalDeduction,
    FlatTaxCode,
    FlatTaxDefinition,
    FringeRates,
    HourBreakdown,
    JurisdictionRules,
    PayPeriod,
    PayrollTables,
    WageRate,
    WithholdingElection,
    YearToDateAccumulator,
)
from payroll_kernel.domain.values import (
    CalculationStatus,
    ElectionEra,
    FilingStatus,
    Jurisdiction,
    MonetaryQuantity,
    PayFrequency,
    ReallocationOrder,
    ScheduleType,
    round_hours,
    round_money,
)

__all__ = [
    "BracketRow",
    "BracketTable",
    "BracketTableKey",
    "CalculationStatus",
    "DailyRecord",
    "ElectionEra",
    "ExternalDeduction",
    "FilingStatus",
    "FlatTaxCode",
    "FlatTaxDefinition",
    "FringeRates",
    "HourBreakdown",
    "Jurisdiction",
    "JurisdictionRules",
    "MonetaryQuantity",
    "PayFrequency",
    "PayPeriod",
    "PayrollTables",
    "ReallocationOrder",
    "ScheduleType",
    "WageRate",
    "WithholdingElection",
    "YearToDateAccumulator",
    "round_hours",
    "round_money",
]

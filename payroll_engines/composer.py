"""
Result Composer (``payroll_engines.composer``).

Responsibility
--------------
Runs the pipeline for one worker and one period and merges the stage
results into one immutable ``PayrollCalculation``:

    classify_hours -> resolve_wage (per day) -> assemble_gross
        -> calculate_income_tax_withholding (federal, state)
        -> calculate_flat_taxes
        -> assemble_fringe
        -> compose_calculation

Net pay = gross - all withholding - external deductions.  Every named
intermediate is recorded, in pipeline order, in a ``CalculationTrace``
for audit replay and regression testing.

Architecture position
---------------------
**Engines layer** -- pure functional core.  The YTD snapshot is read and
never advanced here; the caller persists ``ytd.advance(...)`` only after
accepting the calculation.

Invariants enforced
-------------------
* Idempotence: the same bundle, tables and rules always produce an equal
  ``PayrollCalculation``, including ``calculation_id`` (a UUID5 of the
  canonical input digest).
* Immutability: corrections never mutate a calculation; ``void`` returns
  a voided copy that points at its replacement.

Failure modes
-------------
* ``MalformedInputError`` -- a record falls outside the pay period, or the
  YTD snapshot belongs to a different tax year than the tables.
* Anything raised by the stage engines propagates unchanged.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid5

from payroll_kernel.domain.dtos import (
    DailyRecord,
    ExternalDeduction,
    PayPeriod,
    PayrollTables,
    WithholdingElection,
    YearToDateAccumulator,
)
from payroll_kernel.domain.values import (
    ZERO,
    CalculationStatus,
    Jurisdiction,
    ScheduleType,
)
from payroll_kernel.exceptions import MalformedInputError, PayrollEngineError
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_engines.flat_tax import FlatTaxResult, calculate_flat_taxes
from payroll_engines.fringe import FringeContributions, assemble_fringe
from payroll_engines.gross import GrossPay, GrossPayRules, assemble_gross
from payroll_engines.hours import HoursClassification, HoursRules, classify_hours
from payroll_engines.tracer import canonical_digest, traced_engine
from payroll_engines.wages import ResolvedWage, WageRateTable, resolve_wage
from payroll_engines.withholding import (
    WithholdingComputation,
    calculate_income_tax_withholding,
)

logger = get_logger("engines.composer")

CALCULATION_NAMESPACE = UUID("6f1c8f0e-3d4b-5a7e-9c21-0b8d4e2f7a13")


# =============================================================================
# Inputs
# =============================================================================


@dataclass(frozen=True)
class PayrollInput:
    """Everything one worker's calculation for one period reads."""

    worker_id: str
    period: PayPeriod
    records: tuple[DailyRecord, ...]
    local: str
    classification: str
    federal_election: WithholdingElection
    state_election: WithholdingElection
    ytd: YearToDateAccumulator
    schedule: ScheduleType = ScheduleType.STANDARD
    apprentice_level: int | None = None
    deductions: tuple[ExternalDeduction, ...] = ()


@dataclass(frozen=True)
class EngineRules:
    """Contract rules applied by the hours classifier and gross assembler."""

    hours: HoursRules = field(default_factory=HoursRules)
    gross: GrossPayRules = field(default_factory=GrossPayRules)


# =============================================================================
# Trace
# =============================================================================


@dataclass(frozen=True)
class CalculationTrace:
    """
    Ordered record of every named intermediate, step name -> value.

    Values are JSON-native (Decimals recorded as strings) so a trace
    round-trips through ``to_json`` without loss.
    """

    steps: tuple[tuple[str, Any], ...] = ()

    def __len__(self) -> int:
        return len(self.steps)

    def __getitem__(self, name: str) -> Any:
        for step, value in self.steps:
            if step == name:
                return value
        raise KeyError(name)

    @property
    def step_names(self) -> tuple[str, ...]:
        return tuple(step for step, _ in self.steps)

    def as_dict(self) -> dict[str, Any]:
        return dict(self.steps)

    def to_json(self) -> str:
        return json.dumps(self.as_dict())


class _TraceBuilder:
    def __init__(self) -> None:
        self._steps: list[tuple[str, Any]] = []

    def record(self, name: str, value: Any) -> None:
        self._steps.append((name, _jsonable(value)))

    def build(self) -> CalculationTrace:
        return CalculationTrace(steps=tuple(self._steps))


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


# =============================================================================
# Result
# =============================================================================


@dataclass(frozen=True)
class PayrollCalculation:
    """
    Immutable output for one worker and one period.

    A correction produces a new calculation; the old one is voided with
    ``void(superseded_by=...)`` and kept.
    """

    calculation_id: UUID
    worker_id: str
    period: PayPeriod
    tax_year: int
    tables_checksum: str
    hours: HoursClassification
    gross: GrossPay
    federal: WithholdingComputation
    state: WithholdingComputation
    flat_taxes: FlatTaxResult
    fringe: FringeContributions
    deductions: tuple[ExternalDeduction, ...]
    net_pay: Decimal
    trace: CalculationTrace
    status: CalculationStatus = CalculationStatus.ACTIVE
    superseded_by: UUID | None = None

    @property
    def gross_pay(self) -> Decimal:
        return self.gross.total

    @property
    def federal_withholding(self) -> Decimal:
        return self.federal.withholding

    @property
    def state_withholding(self) -> Decimal:
        return self.state.withholding

    @property
    def oasdi(self) -> Decimal:
        return self.flat_taxes.oasdi

    @property
    def hospital(self) -> Decimal:
        return self.flat_taxes.hospital

    @property
    def disability(self) -> Decimal:
        return self.flat_taxes.disability

    @property
    def total_withholding(self) -> Decimal:
        return (
            self.federal_withholding
            + self.state_withholding
            + self.flat_taxes.total
        )

    @property
    def deductions_total(self) -> Decimal:
        return sum((d.amount for d in self.deductions), ZERO)

    @property
    def is_voided(self) -> bool:
        return self.status == CalculationStatus.VOIDED

    def void(self, superseded_by: UUID) -> PayrollCalculation:
        """Return a voided copy that points at the superseding calculation."""
        if self.is_voided:
            raise ValueError(
                f"Calculation {self.calculation_id} is already voided"
            )
        if superseded_by == self.calculation_id:
            raise ValueError("A calculation cannot supersede itself")
        logger.info("payroll_calculation_voided", extra={
            "calculation_id": str(self.calculation_id),
            "superseded_by": str(superseded_by),
        })
        return replace(
            self,
            status=CalculationStatus.VOIDED,
            superseded_by=superseded_by,
        )


# =============================================================================
# Composition
# =============================================================================


def calculation_id_for(
    bundle: PayrollInput, tables: PayrollTables, rules: EngineRules,
) -> UUID:
    """Deterministic id: UUID5 over the canonical digest of every input."""
    tables_identity = tables.checksum or canonical_digest(tables)
    return uuid5(
        CALCULATION_NAMESPACE,
        canonical_digest(bundle, tables_identity, rules),
    )


def validate_bundle(bundle: PayrollInput, tables: PayrollTables) -> None:
    for record in bundle.records:
        if not bundle.period.contains(record.work_date):
            raise MalformedInputError(
                "work_date",
                record.work_date,
                f"outside pay period {bundle.period.period_id}",
            )
    if bundle.ytd.tax_year != tables.tax_year:
        raise MalformedInputError(
            "ytd.tax_year",
            bundle.ytd.tax_year,
            f"tables are for tax year {tables.tax_year}",
        )


def _withholding_trace(computation: WithholdingComputation) -> dict[str, Any]:
    return {
        "era": computation.era.value,
        "exempt": computation.exempt,
        "exemption_threshold": computation.exemption_threshold,
        "steps": {step.value: value for step, value in computation.steps},
        "withholding": computation.withholding,
    }


def compose_calculation(
    *,
    calculation_id: UUID,
    bundle: PayrollInput,
    tables: PayrollTables,
    hours: HoursClassification,
    wages: dict[date, ResolvedWage],
    gross: GrossPay,
    federal: WithholdingComputation,
    state: WithholdingComputation,
    flat_taxes: FlatTaxResult,
    fringe: FringeContributions,
) -> PayrollCalculation:
    """Merge stage results, compute net pay and record the trace."""
    trace = _TraceBuilder()

    trace.record("hours.days", [
        {
            "work_date": day.work_date,
            "reported_hours": day.reported_hours,
            "regular": day.hours.regular,
            "overtime": day.hours.overtime,
            "double_time": day.hours.double_time,
            "reallocated_to_overtime": day.reallocated_to_overtime,
        }
        for day in hours.days
    ])
    trace.record("hours.weeks", [
        {
            "week_start": week.week_start,
            "regular_before": week.regular_before,
            "reallocated": week.reallocated,
        }
        for week in hours.weeks
    ])
    totals = hours.totals
    trace.record("hours.totals", {
        "regular": totals.regular,
        "overtime": totals.overtime,
        "double_time": totals.double_time,
    })

    trace.record("wages.days", [
        {
            "work_date": wage.work_date,
            "zone": wage.wage_rate.zone,
            "shift": wage.shift,
            "base_rate": wage.wage_rate.base_rate,
            "apprentice_percentage": wage.apprentice_percentage,
            "shift_differential": wage.shift_differential,
            "unrounded_rate": wage.unrounded_rate,
            "hourly_rate": wage.hourly_rate,
        }
        for _, wage in sorted(wages.items())
    ])

    trace.record("gross.days", [
        {
            "work_date": day.work_date,
            "straight_pay": day.straight_pay,
            "minimum_pay": day.minimum_pay,
            "meal_penalty": day.meal_penalty,
            "travel": day.travel,
            "installation_premium": day.installation_premium,
        }
        for day in gross.days
    ])
    trace.record("gross.total", gross.total)

    trace.record("withholding.federal", _withholding_trace(federal))
    trace.record("withholding.state", _withholding_trace(state))
    for line in flat_taxes.lines:
        trace.record(f"flat_tax.{line.code.value}", {
            "ytd_wages": line.ytd_wages,
            "taxable_wages": line.taxable_wages,
            "tax": line.tax,
            "surtax_wages": line.surtax_wages,
            "surtax": line.surtax,
        })

    trace.record("fringe", {**fringe.as_dict(), "total": fringe.total})
    trace.record("deductions", [
        {"code": d.code, "amount": d.amount} for d in bundle.deductions
    ])

    withholding_total = federal.withholding + state.withholding + flat_taxes.total
    deductions_total = sum((d.amount for d in bundle.deductions), ZERO)
    net_pay = gross.total - withholding_total - deductions_total
    trace.record("net_pay", net_pay)

    if net_pay < ZERO:
        logger.warning("net_pay_negative", extra={
            "gross": str(gross.total),
            "withholding": str(withholding_total),
            "deductions": str(deductions_total),
            "net_pay": str(net_pay),
        })

    return PayrollCalculation(
        calculation_id=calculation_id,
        worker_id=bundle.worker_id,
        period=bundle.period,
        tax_year=tables.tax_year,
        tables_checksum=tables.checksum,
        hours=hours,
        gross=gross,
        federal=federal,
        state=state,
        flat_taxes=flat_taxes,
        fringe=fringe,
        deductions=bundle.deductions,
        net_pay=net_pay,
        trace=trace.build(),
    )


@traced_engine("payroll", "1.0", fingerprint_fields=("bundle",))
def calculate_payroll(
    *,
    bundle: PayrollInput,
    tables: PayrollTables,
    rules: EngineRules | None = None,
    rate_table: WageRateTable | None = None,
) -> PayrollCalculation:
    """
    Calculate one worker's payroll for one period.

    ``rate_table`` lets a batch build the wage-rate index once; it must be
    built from ``tables.wage_rates``.

    Raises:
        MalformedInputError: bad records or mismatched YTD tax year.
        RateDataError: missing or ambiguous rate data.
        TaxTableCorruptError: a bracket table cannot serve a lookup.
    """
    rules = rules or EngineRules()
    calculation_id = calculation_id_for(bundle, tables, rules)

    with LogContext.bind(
        worker_id=bundle.worker_id,
        period_id=bundle.period.period_id,
        calculation_id=str(calculation_id),
    ):
        logger.info("payroll_calculation_started", extra={
            "record_count": len(bundle.records),
            "schedule": bundle.schedule.value,
            "tax_year": tables.tax_year,
        })
        try:
            validate_bundle(bundle, tables)
            if rate_table is None:
                rate_table = WageRateTable(tables.wage_rates)

            hours = classify_hours(
                records=bundle.records,
                schedule=bundle.schedule,
                rules=rules.hours,
            )

            records_by_date = {r.work_date: r for r in bundle.records}
            wages = {
                day.work_date: resolve_wage(
                    rate_table,
                    local=bundle.local,
                    classification=bundle.classification,
                    zone=records_by_date[day.work_date].zone,
                    shift=records_by_date[day.work_date].shift,
                    work_date=day.work_date,
                    apprentice_level=bundle.apprentice_level,
                )
                for day in hours.days
            }

            gross = assemble_gross(
                classification=hours,
                records=bundle.records,
                wages=wages,
                rules=rules.gross,
            )

            frequency = bundle.period.frequency
            federal = calculate_income_tax_withholding(
                jurisdiction=Jurisdiction.FEDERAL,
                period_wages=gross.total,
                election=bundle.federal_election,
                pay_frequency=frequency,
                tables=tables,
            )
            state = calculate_income_tax_withholding(
                jurisdiction=Jurisdiction.STATE,
                period_wages=gross.total,
                election=bundle.state_election,
                pay_frequency=frequency,
                tables=tables,
            )
            flat_taxes = calculate_flat_taxes(
                period_wages=gross.total,
                ytd=bundle.ytd,
                tables=tables,
            )
            fringe = assemble_fringe(classification=hours, wages=wages)
        except PayrollEngineError as exc:
            logger.error("payroll_calculation_failed", extra={
                "error_code": exc.code,
                "error": str(exc),
            })
            raise

        calculation = compose_calculation(
            calculation_id=calculation_id,
            bundle=bundle,
            tables=tables,
            hours=hours,
            wages=wages,
            gross=gross,
            federal=federal,
            state=state,
            flat_taxes=flat_taxes,
            fringe=fringe,
        )

        logger.info("payroll_calculation_completed", extra={
            "gross": str(calculation.gross_pay),
            "federal": str(calculation.federal_withholding),
            "state": str(calculation.state_withholding),
            "oasdi": str(calculation.oasdi),
            "hospital": str(calculation.hospital),
            "disability": str(calculation.disability),
            "fringe": str(calculation.fringe.total),
            "net_pay": str(calculation.net_pay),
        })
        return calculation

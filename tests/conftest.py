"""
Pytest fixtures for the payroll engine test suite.

Provides:
- Structured-logging setup and a JSON log capture fixture
- A small, hand-checkable set of reference tables (one wage rate, simple
  federal and state brackets, the three flat-rate taxes)
- Record, election and bundle builders
"""

import json
import logging
from collections.abc import Callable
from datetime import date, timedelta
from decimal import Decimal
from io import StringIO

import pytest

from payroll_kernel.domain.dtos import (
    BracketRow,
    BracketTable,
    BracketTableKey,
    DailyRecord,
    ExternalDeduction,
    FlatTaxCode,
    FlatTaxDefinition,
    FringeRates,
    JurisdictionRules,
    PayPeriod,
    PayrollTables,
    WageRate,
    WithholdingElection,
    YearToDateAccumulator,
)
from payroll_kernel.domain.values import (
    ElectionEra,
    FilingStatus,
    Jurisdiction,
    PayFrequency,
    ScheduleType,
)
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payroll_engines.composer import PayrollInput

# Monday of the first full week of 2023 (1 January 2023 was a Sunday)
MONDAY = date(2023, 1, 2)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture payroll_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            classify_hours(...)
            logs = captured_logs()
            assert any(r["message"] == "hours_classification_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payroll_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Reference tables
# =============================================================================


@pytest.fixture
def wage_rate() -> WageRate:
    return WageRate(
        local="46",
        classification="wireman",
        zone="A",
        base_rate=Decimal("40.00"),
        effective_from=date(2023, 1, 1),
        shift_differentials=((2, Decimal("0.10")), (3, Decimal("0.20"))),
        apprentice_percentages=((1, Decimal("0.50")), (2, Decimal("0.60"))),
        fringe=FringeRates(
            health_welfare=Decimal("8.00"),
            pension=Decimal("5.00"),
            vacation=Decimal("2.00"),
            training=Decimal("0.50"),
        ),
    )


def _federal_rows() -> tuple[BracketRow, ...]:
    return (
        BracketRow(Decimal("0"), Decimal("5000"), Decimal("0"), Decimal("0")),
        BracketRow(Decimal("5000"), Decimal("20000"), Decimal("0"), Decimal("0.10")),
        BracketRow(Decimal("20000"), None, Decimal("1500"), Decimal("0.20")),
    )


def _state_rows() -> tuple[BracketRow, ...]:
    return (
        BracketRow(Decimal("0"), Decimal("10000"), Decimal("0"), Decimal("0.01")),
        BracketRow(Decimal("10000"), None, Decimal("100"), Decimal("0.05")),
    )


def build_bracket_tables() -> tuple[BracketTable, ...]:
    """Single-filer weekly tables for both jurisdictions and both eras."""
    tables = []
    for era in ElectionEra:
        for jurisdiction, rows in (
            (Jurisdiction.FEDERAL, _federal_rows()),
            (Jurisdiction.STATE, _state_rows()),
        ):
            tables.append(BracketTable(
                key=BracketTableKey(
                    jurisdiction=jurisdiction,
                    filing_status=FilingStatus.SINGLE,
                    pay_frequency=PayFrequency.WEEKLY,
                    era=era,
                ),
                rows=rows,
            ))
    return tuple(tables)


def build_flat_taxes() -> tuple[FlatTaxDefinition, ...]:
    return (
        FlatTaxDefinition(
            code=FlatTaxCode.OASDI,
            rate=Decimal("0.062"),
            wage_base=Decimal("160200"),
        ),
        FlatTaxDefinition(
            code=FlatTaxCode.HOSPITAL,
            rate=Decimal("0.0145"),
            surtax_rate=Decimal("0.009"),
            surtax_threshold=Decimal("200000"),
        ),
        FlatTaxDefinition(
            code=FlatTaxCode.DISABILITY,
            rate=Decimal("0.009"),
            wage_base=Decimal("153164"),
        ),
    )


def build_jurisdictions() -> tuple[JurisdictionRules, ...]:
    return (
        JurisdictionRules(
            jurisdiction=Jurisdiction.FEDERAL,
            allowance_amount=Decimal("4300"),
            standard_amounts=(
                (FilingStatus.SINGLE, Decimal("8600")),
                (FilingStatus.MARRIED, Decimal("12900")),
            ),
        ),
        JurisdictionRules(
            jurisdiction=Jurisdiction.STATE,
            allowance_amount=Decimal("1000"),
            standard_amounts=((FilingStatus.SINGLE, Decimal("5000")),),
            low_income_exemptions=(
                (FilingStatus.SINGLE, PayFrequency.WEEKLY, Decimal("300")),
                (FilingStatus.SINGLE, PayFrequency.BIWEEKLY, Decimal("600")),
            ),
        ),
    )


@pytest.fixture
def tables(wage_rate) -> PayrollTables:
    return PayrollTables(
        tax_year=2023,
        wage_rates=(wage_rate,),
        bracket_tables=build_bracket_tables(),
        jurisdictions=build_jurisdictions(),
        flat_taxes=build_flat_taxes(),
        checksum="test-tables",
    )


# =============================================================================
# Inputs
# =============================================================================


def make_record(work_date: date, hours: str, **overrides) -> DailyRecord:
    fields = {
        "work_date": work_date,
        "project_ref": "P-100",
        "zone": "A",
        "hours": Decimal(hours),
    }
    fields.update(overrides)
    return DailyRecord(**fields)


def make_week(hours_per_day: list[str], start: date = MONDAY, **overrides) -> tuple[DailyRecord, ...]:
    """Consecutive records starting at ``start``; "0" entries are skipped."""
    return tuple(
        make_record(start + timedelta(days=offset), hours, **overrides)
        for offset, hours in enumerate(hours_per_day)
        if hours != "0"
    )


@pytest.fixture
def week_period() -> PayPeriod:
    return PayPeriod(
        period_id="2023-W01",
        start_date=MONDAY,
        end_date=MONDAY + timedelta(days=6),
        frequency=PayFrequency.WEEKLY,
    )


@pytest.fixture
def federal_election() -> WithholdingElection:
    return WithholdingElection(era=ElectionEra.ADJUSTMENT, filing_status=FilingStatus.SINGLE)


@pytest.fixture
def state_election() -> WithholdingElection:
    return WithholdingElection(era=ElectionEra.ADJUSTMENT, filing_status=FilingStatus.SINGLE)


@pytest.fixture
def ytd() -> YearToDateAccumulator:
    return YearToDateAccumulator(tax_year=2023)


@pytest.fixture
def make_bundle(week_period, federal_election, state_election, ytd) -> Callable[..., PayrollInput]:
    """Build a PayrollInput for a standard 5 x 8 week unless overridden."""

    def _make(**overrides) -> PayrollInput:
        fields = {
            "worker_id": "W-001",
            "period": week_period,
            "records": make_week(["8", "8", "8", "8", "8"]),
            "local": "46",
            "classification": "wireman",
            "federal_election": federal_election,
            "state_election": state_election,
            "ytd": ytd,
            "schedule": ScheduleType.STANDARD,
            "deductions": (ExternalDeduction(code="DUES", amount=Decimal("25.00")),),
        }
        fields.update(overrides)
        return PayrollInput(**fields)

    return _make

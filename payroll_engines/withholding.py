"""
Income-Tax Withholding Engine (``payroll_engines.withholding``).

Responsibility
--------------
Computes federal and state income-tax withholding with one 4-step state
machine shared by both jurisdictions:

    ANNUALIZE -> BRACKET_LOOKUP -> DEANNUALIZE -> ADDITIONAL

1. ANNUALIZE       period wages x periods per year, then the election
                   adjustment (by era), floored at zero.
2. BRACKET_LOOKUP  row whose [lower, upper) contains the annual amount;
                   tax = base tax + (amount - lower) x marginal rate.
3. DEANNUALIZE     annual tax / periods, minus the periodic credit
                   (ADJUSTMENT era only), floored at zero.
4. ADDITIONAL      plus the election's flat additional withholding.

State withholding short-circuits before step 1 (step EXEMPT) when period
wages are at or below the low-income exemption threshold for the filing
status and pay frequency.

Architecture position
---------------------
**Engines layer** -- pure functional core.  Tables and constants arrive in
``PayrollTables``; nothing is defaulted.

Invariants enforced
-------------------
* No transition is skipped: every non-exempt computation records all four
  steps, in order.
* Era handling is an exhaustive match on ``ElectionEra``.
* Rounding to the cent happens once, on the final withholding amount.

Failure modes
-------------
* ``TaxTableCorruptError`` -- no bracket row contains the annual amount.
* ``MissingRateDataError`` -- no bracket table, jurisdiction rules,
  standard amount or exemption threshold for the lookup key.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import assert_never

from payroll_kernel.domain.dtos import (
    BracketRow,
    BracketTableKey,
    JurisdictionRules,
    PayrollTables,
    WithholdingElection,
)
from payroll_kernel.domain.values import (
    ZERO,
    ElectionEra,
    Jurisdiction,
    MonetaryQuantity,
    PayFrequency,
    floor_zero,
    round_money,
)
from payroll_kernel.exceptions import MissingRateDataError, TaxTableCorruptError
from payroll_kernel.logging_config import get_logger
from payroll_engines.tracer import traced_engine

logger = get_logger("engines.withholding")


class WithholdingStep(str, Enum):
    """States of the withholding state machine."""

    EXEMPT = "exempt"
    ANNUALIZE = "annualize"
    BRACKET_LOOKUP = "bracket_lookup"
    DEANNUALIZE = "deannualize"
    ADDITIONAL = "additional"


_TRANSITIONS: dict[WithholdingStep, WithholdingStep | None] = {
    WithholdingStep.ANNUALIZE: WithholdingStep.BRACKET_LOOKUP,
    WithholdingStep.BRACKET_LOOKUP: WithholdingStep.DEANNUALIZE,
    WithholdingStep.DEANNUALIZE: WithholdingStep.ADDITIONAL,
    WithholdingStep.ADDITIONAL: None,
}


@dataclass(frozen=True)
class WithholdingComputation:
    """Every intermediate of one jurisdiction's withholding."""

    jurisdiction: Jurisdiction
    era: ElectionEra
    period_wages: Decimal
    periods_per_year: int
    steps: tuple[tuple[WithholdingStep, Decimal], ...]
    withholding: Decimal
    exempt: bool = False
    exemption_threshold: Decimal | None = None
    annualized_wages: Decimal = ZERO
    bracket_row: BracketRow | None = None
    annual_tax: Decimal = ZERO
    periodic_credit: Decimal = ZERO

    def step_value(self, step: WithholdingStep) -> Decimal:
        for name, value in self.steps:
            if name == step:
                return value
        raise KeyError(step)


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


def annualize(
    period_wages: Decimal,
    periods_per_year: int,
    election: WithholdingElection,
    rules: JurisdictionRules,
) -> Decimal:
    """Step 1: annual wages adjusted for the election, floored at zero."""
    annual = period_wages * periods_per_year
    match election.era:
        case ElectionEra.ALLOWANCE:
            adjusted = annual - election.allowances * rules.allowance_amount
        case ElectionEra.ADJUSTMENT:
            if election.extra_withholding_checkbox:
                standard = ZERO
            else:
                standard = rules.standard_amount(election.filing_status)
                if standard is None:
                    raise MissingRateDataError(
                        "standard amount",
                        f"{rules.jurisdiction.value}/{election.filing_status.value}",
                    )
            adjusted = (
                annual + election.other_income - election.deductions - standard
            )
        case _:
            assert_never(election.era)
    return floor_zero(adjusted)


def bracket_tax(annual_amount: Decimal, row: BracketRow) -> Decimal:
    """Step 2 arithmetic: base tax plus the marginal part of the row."""
    return row.base_tax + (annual_amount - row.lower) * row.rate


def periodic_credit(
    election: WithholdingElection, periods_per_year: int,
) -> Decimal:
    match election.era:
        case ElectionEra.ALLOWANCE:
            return ZERO
        case ElectionEra.ADJUSTMENT:
            return election.credits / periods_per_year
        case _:
            assert_never(election.era)


def deannualize(
    annual_tax: Decimal, credit: Decimal, periods_per_year: int,
) -> Decimal:
    """Step 3: per-period tax less the periodic credit, floored at zero."""
    return floor_zero(annual_tax / periods_per_year - credit)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


@traced_engine(
    "withholding", "1.0",
    fingerprint_fields=("jurisdiction", "period_wages", "election", "pay_frequency"),
)
def calculate_income_tax_withholding(
    *,
    jurisdiction: Jurisdiction,
    period_wages: Decimal,
    election: WithholdingElection,
    pay_frequency: PayFrequency,
    tables: PayrollTables,
) -> WithholdingComputation:
    """
    Run the withholding state machine for one jurisdiction.

    Preconditions:
        - ``period_wages`` is the period's gross (cents, non-negative).
    Postconditions:
        - ``withholding`` is rounded to the cent and non-negative.
        - Non-exempt results record ANNUALIZE, BRACKET_LOOKUP,
          DEANNUALIZE and ADDITIONAL in that order.
    Raises:
        TaxTableCorruptError: no bracket row contains the annual amount.
        MissingRateDataError: a required table or constant is missing.
    """
    rules = tables.jurisdiction_rules(jurisdiction)
    periods = pay_frequency.periods_per_year

    logger.info("withholding_calculation_started", extra={
        "jurisdiction": jurisdiction.value,
        "era": election.era.value,
        "filing_status": election.filing_status.value,
        "pay_frequency": pay_frequency.value,
        "period_wages": str(period_wages),
    })

    threshold: Decimal | None = None
    if jurisdiction == Jurisdiction.STATE:
        threshold = rules.low_income_exemption(election.filing_status, pay_frequency)
        if threshold is None:
            raise MissingRateDataError(
                "low-income exemption threshold",
                f"{election.filing_status.value}/{pay_frequency.value}",
            )
        if period_wages <= threshold:
            logger.info("withholding_low_income_exempt", extra={
                "jurisdiction": jurisdiction.value,
                "period_wages": str(period_wages),
                "threshold": str(threshold),
            })
            return WithholdingComputation(
                jurisdiction=jurisdiction,
                era=election.era,
                period_wages=period_wages,
                periods_per_year=periods,
                steps=((WithholdingStep.EXEMPT, ZERO),),
                withholding=ZERO,
                exempt=True,
                exemption_threshold=threshold,
            )

    table_key = BracketTableKey(
        jurisdiction=jurisdiction,
        filing_status=election.filing_status,
        pay_frequency=pay_frequency,
        era=election.era,
    )
    table = tables.bracket_table(table_key)

    steps: list[tuple[WithholdingStep, Decimal]] = []
    annual_amount = ZERO
    row: BracketRow | None = None
    annual_tax = ZERO
    credit = ZERO
    amount = ZERO

    state: WithholdingStep | None = WithholdingStep.ANNUALIZE
    while state is not None:
        match state:
            case WithholdingStep.ANNUALIZE:
                annual_amount = annualize(period_wages, periods, election, rules)
                amount = annual_amount
            case WithholdingStep.BRACKET_LOOKUP:
                try:
                    row = table.lookup(annual_amount)
                except TaxTableCorruptError:
                    logger.critical("withholding_bracket_not_found", extra={
                        "table_key": str(table_key),
                        "annual_amount": str(annual_amount),
                    })
                    raise
                annual_tax = bracket_tax(annual_amount, row)
                amount = annual_tax
            case WithholdingStep.DEANNUALIZE:
                credit = periodic_credit(election, periods)
                amount = deannualize(annual_tax, credit, periods)
            case WithholdingStep.ADDITIONAL:
                amount = amount + election.additional_withholding
            case _:
                raise AssertionError(f"unexpected withholding step {state}")
        steps.append((state, amount))
        state = _TRANSITIONS[state]

    withholding = round_money(amount, MonetaryQuantity.INCOME_TAX_WITHHOLDING)

    logger.info("withholding_calculation_completed", extra={
        "jurisdiction": jurisdiction.value,
        "annualized_wages": str(annual_amount),
        "bracket_lower": str(row.lower) if row else None,
        "annual_tax": str(annual_tax),
        "withholding": str(withholding),
    })

    return WithholdingComputation(
        jurisdiction=jurisdiction,
        era=election.era,
        period_wages=period_wages,
        periods_per_year=periods,
        steps=tuple(steps),
        withholding=withholding,
        exemption_threshold=threshold,
        annualized_wages=annual_amount,
        bracket_row=row,
        annual_tax=annual_tax,
        periodic_credit=credit,
    )

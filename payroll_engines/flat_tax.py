"""
Flat-Rate Payroll Taxes (``payroll_engines.flat_tax``).

Responsibility
--------------
Applies the three flat-rate payroll taxes to one period's wages:

* OASDI (old-age, survivors and disability) -- rate on wages up to the
  annual wage base.
* Hospital insurance -- uncapped base rate plus a surtax on wages above a
  threshold measured against YTD + period wages.
* State disability -- rate on wages up to the state wage base.

For a capped tax, taxable wages = min(period wages, wage base - YTD wages),
floored at zero.  The YTD snapshot is read and never written.

Failure modes
-------------
* ``MissingRateDataError`` -- a definition is absent from the tables.
  Flat taxes are never skipped.
* ``TaxTableCorruptError`` -- raised by ``FlatTaxDefinition`` itself for a
  negative wage base, before any calculation runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from payroll_kernel.domain.dtos import (
    FlatTaxCode,
    FlatTaxDefinition,
    PayrollTables,
    YearToDateAccumulator,
)
from payroll_kernel.domain.values import (
    ZERO,
    MonetaryQuantity,
    floor_zero,
    round_money,
)
from payroll_kernel.logging_config import get_logger
from payroll_engines.tracer import traced_engine

logger = get_logger("engines.flat_tax")


@dataclass(frozen=True)
class FlatTaxLine:
    """One flat-rate tax for the period."""

    code: FlatTaxCode
    ytd_wages: Decimal
    taxable_wages: Decimal
    tax: Decimal
    surtax_wages: Decimal = ZERO
    surtax: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.tax + self.surtax


@dataclass(frozen=True)
class FlatTaxResult:
    """OASDI, hospital and disability lines for one period."""

    lines: tuple[FlatTaxLine, ...]

    def line(self, code: FlatTaxCode) -> FlatTaxLine:
        for line in self.lines:
            if line.code == code:
                return line
        raise KeyError(code)

    @property
    def oasdi(self) -> Decimal:
        return self.line(FlatTaxCode.OASDI).total

    @property
    def hospital(self) -> Decimal:
        return self.line(FlatTaxCode.HOSPITAL).total

    @property
    def disability(self) -> Decimal:
        return self.line(FlatTaxCode.DISABILITY).total

    @property
    def total(self) -> Decimal:
        return sum((line.total for line in self.lines), ZERO)


def ytd_wages_for(code: FlatTaxCode, ytd: YearToDateAccumulator) -> Decimal:
    match code:
        case FlatTaxCode.OASDI:
            return ytd.oasdi_wages
        case FlatTaxCode.HOSPITAL:
            return ytd.hospital_wages
        case FlatTaxCode.DISABILITY:
            return ytd.disability_wages
        case _:
            raise AssertionError(f"unhandled flat tax {code}")


def taxable_wages(
    period_wages: Decimal, ytd_wages: Decimal, wage_base: Decimal | None,
) -> Decimal:
    """Wages still under the cap; everything when uncapped."""
    if wage_base is None:
        return period_wages
    return min(period_wages, floor_zero(wage_base - ytd_wages))


def surtax_wages(
    period_wages: Decimal, ytd_wages: Decimal, threshold: Decimal | None,
) -> Decimal:
    """Period wages above ``threshold`` once YTD wages are counted."""
    if threshold is None:
        return ZERO
    return floor_zero(min(period_wages, ytd_wages + period_wages - threshold))


def apply_flat_tax(
    definition: FlatTaxDefinition,
    period_wages: Decimal,
    ytd_wages: Decimal,
) -> FlatTaxLine:
    taxable = taxable_wages(period_wages, ytd_wages, definition.wage_base)
    tax = round_money(taxable * definition.rate, MonetaryQuantity.FLAT_TAX)

    over = ZERO
    surtax = ZERO
    if definition.surtax_rate > ZERO:
        over = surtax_wages(period_wages, ytd_wages, definition.surtax_threshold)
        surtax = round_money(over * definition.surtax_rate, MonetaryQuantity.FLAT_TAX)

    return FlatTaxLine(
        code=definition.code,
        ytd_wages=ytd_wages,
        taxable_wages=taxable,
        tax=tax,
        surtax_wages=over,
        surtax=surtax,
    )


@traced_engine("flat_tax", "1.0", fingerprint_fields=("period_wages", "ytd"))
def calculate_flat_taxes(
    *,
    period_wages: Decimal,
    ytd: YearToDateAccumulator,
    tables: PayrollTables,
) -> FlatTaxResult:
    """
    Compute OASDI, hospital insurance and state disability for one period.

    Raises:
        MissingRateDataError: a flat-tax definition is missing.
    """
    lines = []
    for code in FlatTaxCode:
        definition = tables.flat_tax(code)
        line = apply_flat_tax(definition, period_wages, ytd_wages_for(code, ytd))
        lines.append(line)
        if definition.wage_base is not None and line.taxable_wages < period_wages:
            logger.info("flat_tax_wage_base_reached", extra={
                "code": code.value,
                "wage_base": str(definition.wage_base),
                "ytd_wages": str(line.ytd_wages),
                "taxable_wages": str(line.taxable_wages),
            })

    result = FlatTaxResult(lines=tuple(lines))
    logger.info("flat_taxes_calculated", extra={
        "period_wages": str(period_wages),
        "oasdi": str(result.oasdi),
        "hospital": str(result.hospital),
        "disability": str(result.disability),
    })
    return result

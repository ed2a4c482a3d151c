"""
Wage Resolver (``payroll_engines.wages``).

Maps (local, classification, zone, shift, work date, apprentice level) to a
single hourly rate:

    base rate  ->  x apprentice percentage  ->  x (1 + shift differential)

The product is kept at full precision and rounded to the cent once, after
the last multiplication, so overtime and double-time tiers never compound
a rounding error.

Exactly one WageRate must be effective for the lookup key on the work
date.  Zero or several is a data-integrity violation (RateAmbiguityError)
raised by the lookup that hits it; the resolver never picks the latest or
the first.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from payroll_kernel.domain.dtos import WageRate
from payroll_kernel.domain.values import (
    MonetaryQuantity,
    round_money,
)
from payroll_kernel.exceptions import (
    MalformedInputError,
    MissingRateDataError,
    RateAmbiguityError,
)
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.wages")


def _format_key(local: str, classification: str, zone: str) -> str:
    return f"{local}/{classification}/{zone}"


class WageRateTable:
    """
    Read-only index of wage rates by (local, classification, zone).

    Overlapping effective ranges for one key are recorded when the table is
    built.  Any lookup on such a key raises ``RateAmbiguityError``, so only
    the workers paid under it fail; other keys resolve normally.
    """

    def __init__(self, rates: Iterable[WageRate]):
        by_key: dict[tuple[str, str, str], list[WageRate]] = defaultdict(list)
        for rate in rates:
            by_key[rate.lookup_key].append(rate)

        self._overlaps: dict[tuple[str, str, str], tuple[WageRate, WageRate]] = {}
        for key, candidates in by_key.items():
            candidates.sort(key=lambda r: r.effective_from)
            for earlier, later in zip(candidates, candidates[1:]):
                if earlier.overlaps(later):
                    logger.warning("wage_rate_overlap_detected", extra={
                        "lookup_key": _format_key(*key),
                        "first_from": earlier.effective_from.isoformat(),
                        "second_from": later.effective_from.isoformat(),
                    })
                    self._overlaps[key] = (earlier, later)
                    break

        self._by_key = {key: tuple(bucket) for key, bucket in by_key.items()}

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._by_key.values())

    @property
    def overlapping_keys(self) -> frozenset[str]:
        """Lookup keys whose effective ranges overlap."""
        return frozenset(_format_key(*key) for key in self._overlaps)

    def effective_on(
        self,
        local: str,
        classification: str,
        zone: str,
        on_date: date,
    ) -> WageRate:
        """Return the unique rate effective on ``on_date``."""
        key = (local, classification, zone)
        if key in self._overlaps:
            earlier, later = self._overlaps[key]
            raise RateAmbiguityError(
                _format_key(*key),
                2,
                f"effective ranges starting {earlier.effective_from} "
                f"and {later.effective_from} overlap",
            )
        candidates = self._by_key.get(key, ())
        matches = [r for r in candidates if r.is_effective(on_date)]
        if len(matches) != 1:
            raise RateAmbiguityError(
                _format_key(local, classification, zone),
                len(matches),
                f"on {on_date.isoformat()}",
            )
        return matches[0]


@dataclass(frozen=True)
class ResolvedWage:
    """The hourly rate applicable to one day of work."""

    wage_rate: WageRate
    work_date: date
    shift: int
    apprentice_level: int | None
    apprentice_percentage: Decimal | None
    shift_differential: Decimal
    unrounded_rate: Decimal
    hourly_rate: Decimal


def resolve_wage(
    table: WageRateTable,
    *,
    local: str,
    classification: str,
    zone: str,
    shift: int,
    work_date: date,
    apprentice_level: int | None = None,
) -> ResolvedWage:
    """
    Resolve the hourly rate for one day.

    Raises:
        RateAmbiguityError: zero or several rates effective on the date.
        MissingRateDataError: apprentice level has no configured percentage.
        MalformedInputError: shift outside 1-3.
    """
    if shift not in (1, 2, 3):
        raise MalformedInputError("shift", shift, "must be 1, 2 or 3")

    try:
        wage_rate = table.effective_on(local, classification, zone, work_date)
    except RateAmbiguityError as exc:
        logger.error("wage_rate_lookup_failed", extra={
            "lookup_key": exc.lookup_key,
            "match_count": exc.match_count,
            "work_date": work_date.isoformat(),
        })
        raise

    rate = wage_rate.base_rate

    percentage: Decimal | None = None
    if apprentice_level is not None:
        percentage = wage_rate.apprentice_percentage(apprentice_level)
        if percentage is None:
            raise MissingRateDataError(
                "apprentice percentage",
                f"{_format_key(*wage_rate.lookup_key)} level {apprentice_level}",
            )
        rate = rate * percentage

    differential = wage_rate.shift_differential(shift)
    rate = rate * (1 + differential)

    resolved = ResolvedWage(
        wage_rate=wage_rate,
        work_date=work_date,
        shift=shift,
        apprentice_level=apprentice_level,
        apprentice_percentage=percentage,
        shift_differential=differential,
        unrounded_rate=rate,
        hourly_rate=round_money(rate, MonetaryQuantity.RESOLVED_RATE),
    )

    logger.debug("wage_resolved", extra={
        "lookup_key": _format_key(local, classification, zone),
        "work_date": work_date.isoformat(),
        "shift": shift,
        "apprentice_level": apprentice_level,
        "hourly_rate": str(resolved.hourly_rate),
    })
    return resolved

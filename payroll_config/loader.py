"""
Configuration Loader (``payroll_config.loader``).

Responsibility
--------------
Loads YAML table-set and contract-rule files and parses them into the
frozen kernel DTOs (``PayrollTables`` and its members) and the mutable
``PayrollConfig``.  The runtime entry point for tables is
``payroll_config.get_active_tables()``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on the kernel DTOs
(and, through ``schema``, on the engines' rule types).  The engines never
import this module.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Monetary and rate values must be quoted in YAML.  Unquoted numbers
  with a fractional part load as floats and are rejected.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document, stored on ``PayrollTables.checksum``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Structurally invalid brackets or a negative wage base
  -> ``TaxTableCorruptError`` from the DTO constructors.

Audit relevance
---------------
The checksum travels with every ``PayrollCalculation`` so a calculation
can be tied to the exact table content it used.

File layout
-----------
A table set (``sets/<tax_year>.yaml``) has the top-level keys
``tax_year``, ``wage_rates``, ``jurisdictions``, ``bracket_tables`` and
``flat_taxes``.  A bracket-table entry may list several
``filing_statuses``, ``pay_frequencies`` and ``eras``; it expands to one
``BracketTable`` per combination, all sharing the same rows.
"""

from __future__ import annotations

import hashlib
import itertools
import json
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from payroll_kernel.domain.dtos import (
    BracketRow,
    BracketTable,
    BracketTableKey,
    FlatTaxCode,
    FlatTaxDefinition,
    FringeRates,
    JurisdictionRules,
    PayrollTables,
    WageRate,
)
from payroll_kernel.domain.values import (
    ElectionEra,
    FilingStatus,
    Jurisdiction,
    PayFrequency,
)
from payroll_kernel.logging_config import get_logger
from payroll_config.schema import PayrollConfig

logger = get_logger("config.loader")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """
    Parse a Decimal from a quoted string or an integer.

    Raises:
        ValueError: for floats (precision already lost) and non-numbers.
    """
    if isinstance(value, bool):
        raise ValueError(f"{field_name}: expected a number, got {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise ValueError(
            f"{field_name}: decimal values must be quoted in YAML, got {value!r}"
        )
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"{field_name}: invalid decimal {value!r}") from e


def parse_optional_decimal(value: Any, field_name: str) -> Decimal | None:
    if value is None:
        return None
    return parse_decimal(value, field_name)


def parse_fringe(data: dict[str, Any]) -> FringeRates:
    return FringeRates(**{
        name: parse_decimal(data.get(name, 0), f"fringe.{name}")
        for name in ("health_welfare", "pension", "vacation", "training")
    })


def parse_wage_rate(data: dict[str, Any]) -> WageRate:
    """
    Parse a ``WageRate`` from a dict.

    ``shift_differentials`` and ``apprentice_percentages`` are mappings of
    shift number / apprentice level to a quoted percentage.
    """
    differentials = tuple(sorted(
        (int(shift), parse_decimal(pct, f"shift_differentials.{shift}"))
        for shift, pct in (data.get("shift_differentials") or {}).items()
    ))
    apprentice = tuple(sorted(
        (int(level), parse_decimal(pct, f"apprentice_percentages.{level}"))
        for level, pct in (data.get("apprentice_percentages") or {}).items()
    ))
    return WageRate(
        local=str(data["local"]),
        classification=str(data["classification"]),
        zone=str(data["zone"]),
        base_rate=parse_decimal(data["base_rate"], "base_rate"),
        effective_from=parse_date(data["effective_from"]),
        effective_to=parse_date(data["effective_to"]) if data.get("effective_to") else None,
        shift_differentials=differentials,
        apprentice_percentages=apprentice,
        fringe=parse_fringe(data.get("fringe") or {}),
    )


def parse_jurisdiction_rules(name: str, data: dict[str, Any]) -> JurisdictionRules:
    """Parse annualization constants for one jurisdiction."""
    standard = tuple(
        (FilingStatus(status), parse_decimal(amount, f"{name}.standard_amounts.{status}"))
        for status, amount in (data.get("standard_amounts") or {}).items()
    )
    exemptions = tuple(
        (
            FilingStatus(status),
            PayFrequency(frequency),
            parse_decimal(amount, f"{name}.low_income_exemptions.{status}.{frequency}"),
        )
        for status, by_frequency in (data.get("low_income_exemptions") or {}).items()
        for frequency, amount in by_frequency.items()
    )
    return JurisdictionRules(
        jurisdiction=Jurisdiction(name),
        allowance_amount=parse_decimal(data.get("allowance_amount", 0), f"{name}.allowance_amount"),
        standard_amounts=standard,
        low_income_exemptions=exemptions,
    )


def parse_bracket_rows(rows: list[dict[str, Any]]) -> tuple[BracketRow, ...]:
    return tuple(
        BracketRow(
            lower=parse_decimal(row["lower"], "lower"),
            upper=parse_optional_decimal(row.get("upper"), "upper"),
            base_tax=parse_decimal(row.get("base_tax", 0), "base_tax"),
            rate=parse_decimal(row["rate"], "rate"),
        )
        for row in rows
    )


def _listed(data: dict[str, Any], plural: str, singular: str) -> list[str]:
    if plural in data:
        return list(data[plural])
    return [data[singular]]


def parse_bracket_tables(data: dict[str, Any]) -> tuple[BracketTable, ...]:
    """
    Parse one bracket-table entry, expanding listed statuses/frequencies/eras.

    Raises:
        TaxTableCorruptError: if the rows violate the table invariants.
    """
    rows = parse_bracket_rows(data["rows"])
    jurisdiction = Jurisdiction(data["jurisdiction"])
    combinations = itertools.product(
        _listed(data, "filing_statuses", "filing_status"),
        _listed(data, "pay_frequencies", "pay_frequency"),
        _listed(data, "eras", "era"),
    )
    return tuple(
        BracketTable(
            key=BracketTableKey(
                jurisdiction=jurisdiction,
                filing_status=FilingStatus(status),
                pay_frequency=PayFrequency(frequency),
                era=ElectionEra(era),
            ),
            rows=rows,
        )
        for status, frequency, era in combinations
    )


def parse_flat_tax(code: str, data: dict[str, Any]) -> FlatTaxDefinition:
    """
    Parse a flat-tax definition.

    Raises:
        TaxTableCorruptError: negative wage base or rate.
    """
    return FlatTaxDefinition(
        code=FlatTaxCode(code),
        rate=parse_decimal(data["rate"], f"{code}.rate"),
        wage_base=parse_optional_decimal(data.get("wage_base"), f"{code}.wage_base"),
        surtax_rate=parse_decimal(data.get("surtax_rate", 0), f"{code}.surtax_rate"),
        surtax_threshold=parse_optional_decimal(
            data.get("surtax_threshold"), f"{code}.surtax_threshold",
        ),
    )


def parse_payroll_tables(data: dict[str, Any]) -> PayrollTables:
    """Parse a whole table-set document into ``PayrollTables``."""
    bracket_tables = tuple(
        table
        for entry in data.get("bracket_tables", [])
        for table in parse_bracket_tables(entry)
    )
    return PayrollTables(
        tax_year=int(data["tax_year"]),
        wage_rates=tuple(parse_wage_rate(r) for r in data.get("wage_rates", [])),
        bracket_tables=bracket_tables,
        jurisdictions=tuple(
            parse_jurisdiction_rules(name, rules)
            for name, rules in (data.get("jurisdictions") or {}).items()
        ),
        flat_taxes=tuple(
            parse_flat_tax(code, definition)
            for code, definition in (data.get("flat_taxes") or {}).items()
        ),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_payroll_tables(path: Path) -> PayrollTables:
    """Load and parse one table-set YAML file."""
    data = load_yaml_file(Path(path))
    tables = parse_payroll_tables(data)
    logger.info("payroll_tables_loaded", extra={
        "path": str(path),
        "tax_year": tables.tax_year,
        "checksum": tables.checksum,
    })
    return tables


def load_payroll_config(path: Path) -> PayrollConfig:
    """
    Load contract rules from YAML.

    The document's ``contract_rules`` mapping (or the whole document when
    that key is absent) is passed to ``PayrollConfig.from_dict``.
    """
    data = load_yaml_file(Path(path))
    return PayrollConfig.from_dict(data.get("contract_rules", data))

"""
payroll_config -- single public entrypoint for payroll reference tables.

Responsibility:
    Provides the runtime way to obtain a tax year's tables through
    ``get_active_tables()``, and the contract-rules schema
    (``PayrollConfig``) that feeds the hours classifier and gross
    assembler.  YAML parsing lives in ``payroll_config.loader``.

Architecture position:
    Configuration -- sits above ``payroll_kernel`` and ``payroll_engines``
    and below ``payroll_batch``.  Neither the kernel nor the engines may
    import from ``payroll_config``.

Invariants enforced:
    - Deterministic loading: the same YAML always yields the same
      ``PayrollTables`` checksum.
    - The table set's declared ``tax_year`` must match the file requested.

Failure modes:
    - ``FileNotFoundError`` -- no table set for the requested tax year.
    - ``ValueError`` -- malformed values or a tax-year mismatch.
    - ``TaxTableCorruptError`` -- a bracket table or wage base is invalid.

Audit relevance:
    Every successful ``get_active_tables()`` call emits a
    ``PAYROLL_CONFIG_TRACE`` log entry with the tax year, checksum and
    table counts.
"""

from __future__ import annotations

import logging
from pathlib import Path

from payroll_kernel.domain.dtos import PayrollTables
from payroll_config.loader import load_payroll_config, load_payroll_tables
from payroll_config.schema import PayrollConfig, TravelBandSetting

_logger = logging.getLogger("payroll_kernel.config")

# Default table sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

__all__ = [
    "PayrollConfig",
    "TravelBandSetting",
    "get_active_tables",
    "load_payroll_config",
    "load_payroll_tables",
]


def get_active_tables(
    tax_year: int,
    config_dir: Path | None = None,
) -> PayrollTables:
    """The public reference-table entrypoint.

    Non-goals:
        - Tables are not cached across calls; callers hold the returned
          ``PayrollTables`` for the duration of a batch.

    Args:
        tax_year: Calendar year whose tables are requested.
        config_dir: Override path to the table sets directory.
            Defaults to payroll_config/sets/.

    Raises:
        FileNotFoundError: If no ``<tax_year>.yaml`` exists.
        ValueError: If the set declares a different tax year.
        TaxTableCorruptError: If any table fails its invariants.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    path = Path(sets_dir) / f"{tax_year}.yaml"
    if not path.exists():
        raise FileNotFoundError(
            f"No payroll table set for tax year {tax_year} in {sets_dir}"
        )

    tables = load_payroll_tables(path)
    if tables.tax_year != tax_year:
        raise ValueError(
            f"Table set {path.name} declares tax year {tables.tax_year}, "
            f"expected {tax_year}"
        )

    _logger.info(
        "PAYROLL_CONFIG_TRACE",
        extra={
            "trace_type": "PAYROLL_CONFIG_TRACE",
            "tax_year": tables.tax_year,
            "checksum": tables.checksum,
            "wage_rate_count": len(tables.wage_rates),
            "bracket_table_count": len(tables.bracket_tables),
            "jurisdiction_count": len(tables.jurisdictions),
            "flat_tax_count": len(tables.flat_taxes),
        },
    )
    return tables

"""
Typed Exception Hierarchy for the Payroll Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Payroll errors must be handled precisely. A batch driver decides whether to
skip one worker or halt the whole run based on the *type* of failure, never
on the wording of a message.

Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Example - handling one worker inside a batch:
    try:
        calc = calculate_payroll(bundle, tables, config)
    except TaxTableCorruptError:
        raise                                   # halt the batch
    except PayrollEngineError as e:
        errors.append((bundle.worker_id, e.code, str(e)))   # skip worker

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayrollEngineError (base)
    |
    +-- MalformedInputError
    |
    +-- RateDataError
    |   +-- MissingRateDataError
    |   +-- RateAmbiguityError
    |
    +-- TaxTableCorruptError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category    | Code               | When Raised                     | Batch effect
------------|--------------------|---------------------------------|-------------
Input       | MALFORMED_INPUT    | Negative/non-finite hours,      | skip worker
            |                    | shift out of range, dup dates   |
------------|--------------------|---------------------------------|-------------
Rate data   | MISSING_RATE_DATA  | Apprentice level, bracket table | skip worker
            |                    | or flat tax not configured      |
            | RATE_AMBIGUITY     | Zero or several effective wage  | skip worker
            |                    | rates, overlapping ranges       |
------------|--------------------|---------------------------------|-------------
Tax table   | TAX_TABLE_CORRUPT  | Gap/overlap in brackets, no     | HALT batch
            |                    | matching row, negative base     |

The batch runner reads ``halts_batch`` to choose between skipping the
worker and halting the run.  None of these are retryable: the engine is a
deterministic pure function, so the same input always fails the same way.
"""

from __future__ import annotations


class PayrollEngineError(Exception):
    """
    Base exception for all payroll engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PAYROLL_ENGINE_ERROR"
    halts_batch: bool = False


class MalformedInputError(PayrollEngineError):
    """Input hours, dates or shift numbers fail basic sanity checks."""

    code: str = "MALFORMED_INPUT"

    def __init__(self, field_name: str, value: object, reason: str):
        self.field_name = field_name
        self.value = value
        self.reason = reason
        super().__init__(f"Malformed {field_name}={value!r}: {reason}")


# Rate / configuration data exceptions


class RateDataError(PayrollEngineError):
    """Base exception for absent or non-unique configuration data."""

    code: str = "RATE_DATA_ERROR"


class MissingRateDataError(RateDataError):
    """Required configuration data is absent for the lookup key."""

    code: str = "MISSING_RATE_DATA"

    def __init__(self, data_kind: str, lookup_key: str):
        self.data_kind = data_kind
        self.lookup_key = lookup_key
        super().__init__(f"No {data_kind} configured for {lookup_key}")


class RateAmbiguityError(RateDataError):
    """
    Zero or more than one wage rate is effective for a lookup key.

    This is a data-integrity condition: the resolver never arbitrates by
    picking the latest or the first.
    """

    code: str = "RATE_AMBIGUITY"

    def __init__(self, lookup_key: str, match_count: int, detail: str = ""):
        self.lookup_key = lookup_key
        self.match_count = match_count
        self.detail = detail
        message = f"{match_count} effective wage rates for {lookup_key}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


# Tax table exceptions


class TaxTableCorruptError(PayrollEngineError):
    """
    A tax table fails its structural invariant.

    Raised for bracket gaps or overlaps, a lookup matching no row, or a
    negative wage base. Withholding must never silently default to zero,
    so a batch that hits this error halts.
    """

    code: str = "TAX_TABLE_CORRUPT"
    halts_batch: bool = True

    def __init__(self, table_key: str, reason: str):
        self.table_key = table_key
        self.reason = reason
        super().__init__(f"Tax table {table_key} is corrupt: {reason}")

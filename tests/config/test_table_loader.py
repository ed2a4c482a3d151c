"""
Tests for loading payroll reference tables from YAML.

Covers:
- The bundled 2023 table set through get_active_tables()
- Deterministic checksums
- Plural-key expansion of bracket-table entries
- Rejection of corrupt tables, float amounts and year mismatches
"""

from decimal import Decimal

import pytest
import yaml

from payroll_config import get_active_tables, load_payroll_tables
from payroll_config.loader import (
    compute_checksum,
    parse_bracket_tables,
    parse_decimal,
    parse_payroll_tables,
)
from payroll_kernel.domain.dtos import BracketTableKey, FlatTaxCode
from payroll_kernel.domain.values import (
    ElectionEra,
    FilingStatus,
    Jurisdiction,
    PayFrequency,
)
from payroll_kernel.exceptions import TaxTableCorruptError


def _minimal_document(**overrides) -> dict:
    document = {
        "tax_year": 2024,
        "bracket_tables": [{
            "jurisdiction": "federal",
            "filing_status": "single",
            "pay_frequency": "weekly",
            "era": "adjustment",
            "rows": [
                {"lower": "0", "upper": "5000", "base_tax": "0", "rate": "0"},
                {"lower": "5000", "base_tax": "0", "rate": "0.10"},
            ],
        }],
        "flat_taxes": {
            "oasdi": {"rate": "0.062", "wage_base": "168600"},
        },
    }
    document.update(overrides)
    return document


def _write(tmp_path, name: str, document: dict):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(document))
    return path


class TestBundledTableSet:
    @pytest.fixture(autouse=True)
    def _tables(self):
        self.tables = get_active_tables(2023)

    def test_counts(self):
        assert self.tables.tax_year == 2023
        assert len(self.tables.wage_rates) == 3
        assert len(self.tables.bracket_tables) == 48
        assert len(self.tables.jurisdictions) == 2
        assert len(self.tables.flat_taxes) == 3

    def test_every_combination_has_a_table(self):
        for jurisdiction in Jurisdiction:
            for status in FilingStatus:
                for frequency in PayFrequency:
                    for era in ElectionEra:
                        key = BracketTableKey(jurisdiction, status, frequency, era)
                        assert self.tables.bracket_table(key).key == key

    def test_amounts_load_as_exact_decimals(self):
        oasdi = self.tables.flat_tax(FlatTaxCode.OASDI)

        assert oasdi.rate == Decimal("0.062")
        assert oasdi.wage_base == Decimal("160200")
        assert self.tables.wage_rates[0].base_rate == Decimal("52.50")

    def test_state_exemption_thresholds(self):
        state = self.tables.jurisdiction_rules(Jurisdiction.STATE)

        assert state.low_income_exemption(FilingStatus.SINGLE, PayFrequency.WEEKLY) == Decimal("335")
        assert state.low_income_exemption(FilingStatus.MARRIED, PayFrequency.MONTHLY) == Decimal("2903")

    def test_checksum_is_deterministic(self):
        assert get_active_tables(2023).checksum == self.tables.checksum
        assert len(self.tables.checksum) == 64

    def test_config_trace_emitted(self, captured_logs):
        get_active_tables(2023)

        traces = [r for r in captured_logs() if r["message"] == "PAYROLL_CONFIG_TRACE"]
        assert traces[0]["tax_year"] == 2023
        assert traces[0]["bracket_table_count"] == 48


class TestTableSetSelection:
    def test_missing_year(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_tables(2031, config_dir=tmp_path)

    def test_year_mismatch(self, tmp_path):
        _write(tmp_path, "2025.yaml", _minimal_document(tax_year=2024))

        with pytest.raises(ValueError, match="declares tax year 2024"):
            get_active_tables(2025, config_dir=tmp_path)

    def test_custom_directory(self, tmp_path):
        _write(tmp_path, "2024.yaml", _minimal_document())

        tables = get_active_tables(2024, config_dir=tmp_path)

        assert tables.tax_year == 2024
        assert len(tables.bracket_tables) == 1


class TestCorruptTables:
    def test_bracket_gap(self, tmp_path):
        document = _minimal_document()
        document["bracket_tables"][0]["rows"][1]["lower"] = "5001"
        path = _write(tmp_path, "gap.yaml", document)

        with pytest.raises(TaxTableCorruptError, match="gap"):
            load_payroll_tables(path)

    def test_negative_wage_base(self):
        document = _minimal_document(flat_taxes={"oasdi": {"rate": "0.062", "wage_base": "-1"}})

        with pytest.raises(TaxTableCorruptError):
            parse_payroll_tables(document)

    def test_duplicate_bracket_keys(self):
        document = _minimal_document()
        document["bracket_tables"].append(document["bracket_tables"][0])

        with pytest.raises(TaxTableCorruptError, match="duplicate"):
            parse_payroll_tables(document)

    def test_float_amount_rejected(self, tmp_path):
        document = _minimal_document(flat_taxes={"oasdi": {"rate": 0.062}})
        path = _write(tmp_path, "float.yaml", document)

        with pytest.raises(ValueError, match="quoted"):
            load_payroll_tables(path)


class TestParsing:
    def test_plural_keys_expand_to_every_combination(self):
        entry = {
            "jurisdiction": "state",
            "filing_statuses": ["single", "head_of_household"],
            "pay_frequencies": ["weekly", "monthly"],
            "eras": ["allowance", "adjustment"],
            "rows": [{"lower": "0", "rate": "0.01"}],
        }

        tables = parse_bracket_tables(entry)

        assert len(tables) == 8
        assert {t.key.jurisdiction for t in tables} == {Jurisdiction.STATE}

    @pytest.mark.parametrize("value", [True, "abc"])
    def test_parse_decimal_rejects_non_numbers(self, value):
        with pytest.raises(ValueError):
            parse_decimal(value, "field")

    def test_parse_decimal_accepts_integers(self):
        assert parse_decimal(40, "field") == Decimal("40")

    def test_checksum_ignores_key_order(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

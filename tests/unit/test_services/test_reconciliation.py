"""
Unit tests for debit/credit normalization and year reconciliation.
"""

import pytest
from decimal import Decimal

from tbimport.core.models import AmountSet, ColumnMapping, ImportMode, SheetFrame
from tbimport.services.reconciliation import (
    apply_import_mode,
    build_incoming_rows,
    normalize_amounts,
    normalize_extracted_rows,
    normalize_pair,
)

D = Decimal


class TestNormalizePair:
    """Tests for normalize_pair."""

    @pytest.mark.parametrize("debit,credit,expected", [
        (D("-50"), D("0"), (D("0"), D("50"))),
        (D("0"), D("-50"), (D("50"), D("0"))),
        (D("50"), D("0"), (D("50"), D("0"))),
        (D("0"), D("50"), (D("0"), D("50"))),
        (D("-50"), D("-20"), (D("0"), D("50"))),
        (D("0.005"), D("0"), (D("0"), D("0"))),
        (D("0"), D("0"), (D("0"), D("0"))),
    ])
    def test_cases(self, debit, credit, expected):
        assert normalize_pair(debit, credit) == expected

    def test_never_both_sides_after_collapse(self):
        """Test single-sided inputs never produce two non-zero sides."""
        for debit, credit in [(D("-10"), D("0")), (D("0"), D("-10")), (D("10"), D("0"))]:
            result = normalize_pair(debit, credit)
            assert D("0") in result
            assert all(value >= 0 for value in result)

    def test_accepts_plain_numbers(self):
        assert normalize_pair(-12.5, 0) == (D("0"), D("12.5"))


class TestNormalizeAmounts:
    def test_both_scopes(self, amounts):
        result = normalize_amounts(amounts(-100, 0, 0, -30))
        assert result == amounts(0, 100, 30, 0)


class TestApplyImportMode:
    """Tests for the year import mode reconciler."""

    def test_auto_passthrough(self, amounts):
        value = amounts(10, 0, 20, 0)
        assert apply_import_mode(value, ImportMode.AUTO) == value

    def test_current_only_keeps_current(self, amounts):
        result = apply_import_mode(amounts(10, 0, 20, 0), ImportMode.CURRENT_ONLY)
        assert result == amounts(10, 0, 0, 0)

    def test_current_only_promotes_previous(self, amounts):
        result = apply_import_mode(amounts(0, 0, 0, 35), ImportMode.CURRENT_ONLY)
        assert result == amounts(0, 35, 0, 0)

    def test_previous_only_demotes_current(self, amounts):
        result = apply_import_mode(amounts(10, 0, 0, 0), ImportMode.PREVIOUS_ONLY)
        assert result == amounts(0, 0, 10, 0)

    def test_previous_only_keeps_previous(self, amounts):
        result = apply_import_mode(amounts(10, 0, 0, 7), ImportMode.PREVIOUS_ONLY)
        assert result == amounts(0, 0, 0, 7)

    def test_ignored_when_both_years_mapped(self, amounts):
        mapping = ColumnMapping(account=0, debit=1, credit=2, previous_debit=3, previous_credit=4)
        value = amounts(10, 0, 20, 0)
        assert apply_import_mode(value, ImportMode.CURRENT_ONLY, mapping) == value

    @pytest.mark.parametrize("mode", [ImportMode.CURRENT_ONLY, ImportMode.PREVIOUS_ONLY])
    def test_idempotent(self, amounts, mode):
        rows = [amounts(10, 0, 20, 0), amounts(0, 0, 0, 35), amounts(0, 5, 0, 0), amounts()]
        once = [apply_import_mode(row, mode) for row in rows]
        twice = [apply_import_mode(row, mode) for row in once]
        assert once == twice


class TestBuildIncomingRows:
    """Tests for build_incoming_rows."""

    def test_full_frame(self, simple_frame, full_mapping):
        result = build_incoming_rows(simple_frame, full_mapping)

        assert result.row_count == 2
        cash, sales = result.rows
        assert cash.account == "Cash on Hand"
        assert cash.category == "Assets"
        assert cash.amounts.debit == D("1000.00")
        assert cash.amounts.previous_debit == D("800")
        assert sales.category == "Income"
        assert sales.amounts.credit == D("1000.00")
        assert result.totals.debit == result.totals.credit

    def test_row_level_defects(self):
        frame = SheetFrame(
            sheet_names=("TB",),
            active_sheet="TB",
            headers=("Account", "Debit", "Credit"),
            rows=[
                ["Cash", "100", ""],
                ["", "50", ""],
                ["", "", ""],
                ["Payables", "abc", "100"],
                ["Total", "150", "100"],
            ],
        )
        mapping = ColumnMapping(account=0, debit=1, credit=2)

        result = build_incoming_rows(frame, mapping)

        assert [row.account for row in result.rows] == ["Cash", "Payables"]
        assert result.blank_account_rows == 1
        assert result.empty_rows == 1
        assert result.summary_rows == 1
        assert result.invalid_numbers == 1
        assert len(result.warnings) == 1

    def test_caption_named_line_with_amounts_kept(self):
        """Test an account named like a section caption is imported and reported."""
        frame = SheetFrame(
            ("TB",), "TB", ("Account", "Debit", "Credit"),
            [["Cash on Hand", "500", ""], ["Income", "", "500"]],
        )
        mapping = ColumnMapping(account=0, debit=1, credit=2)

        result = build_incoming_rows(frame, mapping)

        assert [row.account for row in result.rows] == ["Cash on Hand", "Income"]
        assert result.rows[1].amounts.credit == D("500")
        assert result.summary_rows == 0
        assert result.caption_accounts == ["Income"]
        assert result.totals.debit == result.totals.credit

    def test_caption_without_amounts_skipped(self):
        frame = SheetFrame(
            ("TB",), "TB", ("Account", "Debit", "Credit"),
            [["Equity", "", ""], ["Capital", "", "500"], ["Total Equity", "", "500"]],
        )
        mapping = ColumnMapping(account=0, debit=1, credit=2)

        result = build_incoming_rows(frame, mapping)

        assert [row.account for row in result.rows] == ["Capital"]
        assert result.summary_rows == 2
        assert result.caption_accounts == []

    def test_negative_signed_balance_moves_to_credit(self):
        frame = SheetFrame(("TB",), "TB", ("Account", "Balance"), [["Cash", "500"], ["Loan", "-500"]])
        mapping = ColumnMapping(account=0, debit=1)

        result = build_incoming_rows(frame, mapping)

        assert result.rows[0].amounts.debit == D("500")
        assert result.rows[1].amounts.credit == D("500")
        assert result.rows[1].amounts.debit == D("0")

    def test_import_mode_applied_for_single_year(self):
        frame = SheetFrame(("TB",), "TB", ("Account", "Debit", "Credit"), [["Cash", "100", ""]])
        mapping = ColumnMapping(account=0, debit=1, credit=2)

        result = build_incoming_rows(frame, mapping, mode=ImportMode.PREVIOUS_ONLY)

        assert result.rows[0].amounts.previous_debit == D("100")
        assert result.rows[0].amounts.debit == D("0")

    def test_aliases_and_category_inference(self):
        frame = SheetFrame(("TB",), "TB", ("Account", "Debit", "Credit"), [["ENBD Current A/c", "10", ""]])
        mapping = ColumnMapping(account=0, debit=1, credit=2)

        result = build_incoming_rows(frame, mapping, aliases={"enbd current a/c": "Bank Accounts"})

        assert result.rows[0].account == "Bank Accounts"
        assert result.rows[0].category == "Assets"
        assert result.rows[0].source_row == 1


class TestNormalizeExtractedRows:
    """Tests for the extraction record path."""

    def test_camel_and_snake_case(self):
        records = [
            {"account": "Cash", "debit": "1,000", "credit": 0, "previousDebit": 900},
            {"account": "Capital", "category": "Equity", "debit": 0, "credit": 1000, "previous_credit": "900"},
        ]

        result = normalize_extracted_rows(records)

        cash, capital = result.rows
        assert cash.amounts.debit == D("1000")
        assert cash.amounts.previous_debit == D("900")
        assert capital.category == "Equity"
        assert capital.amounts.previous_credit == D("900")

    def test_normalizer_and_mode_applied(self):
        records = [{"account": "Bank", "debit": -200, "credit": 0}]

        result = normalize_extracted_rows(records, mode=ImportMode.PREVIOUS_ONLY)

        amounts = result.rows[0].amounts
        assert amounts.previous_credit == D("200")
        assert amounts.credit == D("0")
        assert amounts.debit == D("0")

    def test_blank_and_summary_records_skipped(self):
        records = [
            {"account": "", "debit": 5},
            {"account": "Grand Total", "debit": 5, "credit": 5},
            {"account": "Rent", "debit": "bad"},
        ]

        result = normalize_extracted_rows(records)

        assert [row.account for row in result.rows] == ["Rent"]
        assert result.blank_account_rows == 1
        assert result.summary_rows == 1
        assert result.invalid_numbers == 1

    def test_caption_named_record_with_amounts_kept(self):
        records = [
            {"account": "Income", "debit": 0, "credit": 750},
            {"account": "Sub Total", "debit": 0, "credit": 750},
        ]

        result = normalize_extracted_rows(records)

        assert [row.account for row in result.rows] == ["Income"]
        assert result.caption_accounts == ["Income"]
        assert result.summary_rows == 1

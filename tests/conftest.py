"""
Shared pytest fixtures for tbimport tests.

Provides raw sheet rows, decoded frames, ledgers and spreadsheet writers.
"""

import pytest
import sys
from pathlib import Path
from decimal import Decimal

from openpyxl import Workbook

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tbimport.core.models import AmountSet, ColumnMapping, LedgerRow, SheetFrame
from tbimport.services.ledger_merge import Ledger


@pytest.fixture
def titled_sheet_rows():
    """Title rows above a single Account/Debit/Credit header at index 3."""
    return [
        ["ABC Trading LLC", None, None],
        [None, None, None],
        ["Trial Balance as at 31 December 2024", None, None],
        ["Account", "Debit", "Credit"],
        ["Cash on Hand", 1500, None],
        ["Bank Accounts", 6500, None],
        ["Rent Expense", 2000, None],
        ["Accounts Payable", None, 3000],
        ["Share Capital", None, 7000],
    ]


@pytest.fixture
def composite_sheet_rows():
    """Year row, label row and Debit/Credit row above the data."""
    return [
        ["Trial Balance", None, None, None],
        [None, None, None, None],
        [None, None, None, None],
        [None, None, None, None],
        [None, None, None, None],
        ["2024", None, "2023", None],
        ["Account", None, "Account", None],
        ["Debit", "Credit", "Debit", "Credit"],
        [1000, None, 900, None],
        [None, 1000, None, 900],
    ]


@pytest.fixture
def simple_frame():
    """Decoded frame with account, category and both year pairs."""
    return SheetFrame(
        sheet_names=("TB",),
        active_sheet="TB",
        headers=("Account", "Category", "2024 Debit", "2024 Credit", "2023 Debit", "2023 Credit"),
        rows=[
            ["Cash on Hand", "Assets", "1,000.00", "", "800", ""],
            ["Sales Revenue", "Income", "", "1,000.00", "", "800"],
        ],
        header_row_index=0,
        data_start_index=1,
    )


@pytest.fixture
def full_mapping():
    return ColumnMapping(account=0, category=1, debit=2, credit=3, previous_debit=4, previous_credit=5)


@pytest.fixture
def sample_ledger():
    """Ledger with three accounts and no notes."""
    return Ledger(rows=(
        LedgerRow(account="Bank Accounts", category="Assets", debit=Decimal("5000")),
        LedgerRow(account="Rent Expense", category="Expenses", debit=Decimal("1200.50")),
        LedgerRow(account="Share Capital", category="Equity", credit=Decimal("6200.50")),
    ))


@pytest.fixture
def amounts():
    """Factory for AmountSet values from plain numbers."""
    def _make(debit=0, credit=0, previous_debit=0, previous_credit=0):
        return AmountSet(
            Decimal(str(debit)),
            Decimal(str(credit)),
            Decimal(str(previous_debit)),
            Decimal(str(previous_credit)),
        )
    return _make


@pytest.fixture
def write_xlsx(tmp_path):
    """Write {sheet_name: rows} to an .xlsx file and return its path."""
    def _write(sheets, name="trial_balance.xlsx"):
        workbook = Workbook()
        workbook.remove(workbook.active)
        for sheet_name, rows in sheets.items():
            sheet = workbook.create_sheet(sheet_name)
            for row in rows:
                sheet.append(list(row))
        path = tmp_path / name
        workbook.save(path)
        return path
    return _write


@pytest.fixture
def write_csv(tmp_path):
    """Write text to a .csv file and return its path."""
    def _write(text, name="trial_balance.csv"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path
    return _write

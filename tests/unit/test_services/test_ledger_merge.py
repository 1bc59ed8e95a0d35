"""
Unit tests for the ledger value type and the merge/upsert engine.
"""

import pytest
from decimal import Decimal

from tbimport.core.exceptions import AccountNotFoundError, DuplicateAccountError, ProtectedRowError
from tbimport.core.models import AUTO_GROUP_PREFIX, AmountSet, IncomingRow, LedgerRow, WorkingNote
from tbimport.services.ledger_merge import Ledger, rebuild_totals, upsert_rows
from tbimport.services.working_notes import note_totals

D = Decimal


def assert_totals_consistent(ledger: Ledger):
    total = AmountSet()
    for row in ledger.accounts:
        total = total + row.amounts
    assert ledger.totals.account == "Totals"
    assert ledger.totals.amounts == total.rounded()


def incoming(account, debit=0, credit=0, previous_debit=0, previous_credit=0, line=None, category=None):
    return IncomingRow(
        account=account,
        category=category,
        amounts=AmountSet(D(str(debit)), D(str(credit)), D(str(previous_debit)), D(str(previous_credit))),
        source_row=line,
    )


class TestLedger:
    """Tests for the Ledger value type."""

    def test_totals_rebuilt(self, sample_ledger):
        assert sample_ledger.totals.debit == D("6200.50")
        assert sample_ledger.totals.credit == D("6200.50")
        assert len(sample_ledger) == 3
        assert_totals_consistent(sample_ledger)

    def test_totals_row_replaced_not_merged(self):
        rows = (LedgerRow("Cash", debit=D("10")), LedgerRow("Totals", debit=D("999")))
        ledger = Ledger(rows=rows)
        assert len(ledger) == 1
        assert ledger.totals.debit == D("10.00")

    def test_rounding(self):
        rows = rebuild_totals([LedgerRow("A", debit=D("0.005")), LedgerRow("B", debit=D("0.001"))])
        assert rows[-1].debit == D("0.01")

    def test_find_by_normalized_name(self, sample_ledger):
        assert sample_ledger.find("bank  accounts").account == "Bank Accounts"
        assert "RENT-EXPENSE" in sample_ledger
        assert sample_ledger.find("Unknown") is None

    def test_get_missing(self, sample_ledger):
        with pytest.raises(AccountNotFoundError):
            sample_ledger.get("Unknown")

    def test_immutability(self, sample_ledger):
        updated = sample_ledger.edit_cell("Bank Accounts", "debit", D("1"))
        assert sample_ledger.get("Bank Accounts").debit == D("5000")
        assert updated.get("Bank Accounts").debit == D("1")
        with pytest.raises(TypeError):
            sample_ledger.notes["x"] = ()

    def test_edit_cell_updates_totals(self, sample_ledger):
        ledger = sample_ledger.edit_cell("Rent Expense", "debit", "200")
        assert ledger.totals.debit == D("5200.00")
        assert_totals_consistent(ledger)

    def test_totals_protected(self, sample_ledger):
        with pytest.raises(ProtectedRowError):
            sample_ledger.edit_cell("Totals", "debit", 1)
        with pytest.raises(ProtectedRowError):
            sample_ledger.delete_account("Totals")
        with pytest.raises(ProtectedRowError):
            sample_ledger.rename_account("Bank Accounts", "totals")

    def test_save_notes(self, sample_ledger):
        notes = [WorkingNote("Accrued rent", debit=D("300"))]
        ledger = sample_ledger.save_notes("Rent Expense", notes)

        row = ledger.get("Rent Expense")
        assert row.debit == D("1500.50")
        assert row.base_debit == D("1200.50")
        assert ledger.notes_for("rent expense") == tuple(notes)
        assert_totals_consistent(ledger)

    def test_add_account(self, sample_ledger):
        ledger = sample_ledger.add_account("Office Supplies Expense", amounts=AmountSet(D("50")))
        row = ledger.get("Office Supplies Expense")
        assert row.category == "Expenses"
        assert ledger.totals.debit == D("6250.50")

        with pytest.raises(DuplicateAccountError):
            ledger.add_account("office supplies expense")
        with pytest.raises(ValueError):
            ledger.add_account("  ")

    def test_rename_moves_notes(self, sample_ledger):
        ledger = sample_ledger.save_notes("Rent Expense", [WorkingNote("adj", debit=D("1"))])
        ledger = ledger.rename_account("Rent Expense", "Office Rent")

        assert "Rent Expense" not in ledger
        assert ledger.get("Office Rent").debit == D("1201.50")
        assert len(ledger.notes_for("Office Rent")) == 1
        assert ledger.notes_for("Rent Expense") == ()

    def test_rename_onto_existing(self, sample_ledger):
        with pytest.raises(DuplicateAccountError):
            sample_ledger.rename_account("Rent Expense", "bank accounts")

    def test_rename_case_only(self, sample_ledger):
        ledger = sample_ledger.rename_account("Rent Expense", "RENT EXPENSE")
        assert ledger.get("rent expense").account == "RENT EXPENSE"

    def test_delete_drops_notes(self, sample_ledger):
        ledger = sample_ledger.save_notes("Rent Expense", [WorkingNote("adj", debit=D("1"))])
        ledger = ledger.delete_account("Rent Expense")

        assert len(ledger) == 2
        assert "rent expense" not in ledger.notes
        assert ledger.totals.debit == D("5000.00")

    def test_group_accounts(self):
        ledger = Ledger(rows=(
            LedgerRow("Petty Cash", debit=D("100")),
            LedgerRow("Cash Box", debit=D("50"), previous_debit=D("20")),
            LedgerRow("Capital", credit=D("150")),
        ))

        grouped = ledger.group_accounts(["Petty Cash", "Cash Box"], "Cash on Hand", category="Assets")

        assert "Petty Cash" not in grouped
        assert "Cash Box" not in grouped
        cash = grouped.get("Cash on Hand")
        assert cash.category == "Assets"
        assert cash.debit == D("150")
        assert cash.previous_debit == D("20")
        assert [n.description for n in grouped.notes_for("Cash on Hand")] == ["Petty Cash", "Cash Box", "Cash Box"]
        assert cash.amounts == cash.base + note_totals(grouped.notes_for("Cash on Hand"))
        assert_totals_consistent(grouped)

    def test_clear_auto_notes(self, sample_ledger):
        notes = [
            WorkingNote(f"{AUTO_GROUP_PREFIX} Rent Expense (line 2)", debit=D("10")),
            WorkingNote("Manual", debit=D("5")),
        ]
        ledger = sample_ledger.save_notes("Rent Expense", notes).clear_auto_notes()

        assert [n.description for n in ledger.notes_for("Rent Expense")] == ["Manual"]
        assert ledger.get("Rent Expense").debit == D("1205.50")

    def test_to_records_and_dataframe(self, sample_ledger):
        records = sample_ledger.to_records()
        assert records[-1]["account"] == "Totals"
        assert len(sample_ledger.to_records(include_totals=False)) == 3

        df = sample_ledger.to_dataframe()
        assert list(df["account"]) == ["Bank Accounts", "Rent Expense", "Share Capital", "Totals"]
        assert "base_debit" in df.columns

    def test_from_records(self, sample_ledger):
        rebuilt = Ledger.from_records(sample_ledger.to_records())
        assert rebuilt.rows == sample_ledger.rows


class TestUpsertRows:
    """Tests for upsert_rows."""

    def test_creates_and_updates(self, sample_ledger):
        result = upsert_rows(sample_ledger, [
            incoming("bank accounts", debit=7000),
            incoming("Sales Revenue", credit=800, category="Income"),
        ])
        ledger = result.ledger

        assert ledger.get("Bank Accounts").debit == D("7000")
        assert ledger.get("Bank Accounts").account == "Bank Accounts"
        assert ledger.get("Sales Revenue").category == "Income"
        assert result.created == ["Sales Revenue"]
        assert result.updated == ["Bank Accounts"]
        assert_totals_consistent(ledger)

    def test_new_rows_before_totals(self):
        result = upsert_rows(Ledger(), [incoming("Cash", debit=1), incoming("Capital", credit=1)])
        assert [row.account for row in result.ledger.rows] == ["Cash", "Capital", "Totals"]

    def test_last_duplicate_wins_without_grouping(self):
        result = upsert_rows(Ledger(), [incoming("Bank", debit=100), incoming("Bank", debit=40)])

        assert result.ledger.get("Bank").debit == D("40")
        assert result.duplicates == {"bank": 2}
        assert dict(result.ledger.notes) == {}

    def test_duplicates_grouped_to_notes(self):
        result = upsert_rows(
            Ledger(),
            [incoming("Bank", debit=100, line=1), incoming("Cash", debit=5, line=2), incoming("Bank", debit=40, line=3)],
            group_duplicates=True,
        )
        ledger = result.ledger
        notes = ledger.notes_for("Bank")
        row = ledger.get("Bank")

        assert [n.description for n in notes] == [
            f"{AUTO_GROUP_PREFIX} Bank (line 1)",
            f"{AUTO_GROUP_PREFIX} Bank (line 3)",
        ]
        assert all(n.is_auto_grouped for n in notes)
        assert row.debit == D("140")
        assert row.base_debit == D("0")
        assert result.grouped_lines == 2
        assert_totals_consistent(ledger)

    def test_reimport_replaces_auto_notes(self):
        batch = [incoming("Bank", debit=100, line=1), incoming("Bank", debit=40, line=2)]
        first = upsert_rows(Ledger(), batch, group_duplicates=True).ledger
        second = upsert_rows(first, batch, group_duplicates=True).ledger

        assert len(second.notes_for("Bank")) == 2
        assert second.get("Bank").debit == D("140")

    def test_manual_notes_kept_on_reimport(self, sample_ledger):
        ledger = sample_ledger.save_notes("Rent Expense", [WorkingNote("Accrual", debit=D("100"))])

        ledger = upsert_rows(ledger, [incoming("Rent Expense", debit=2000)]).ledger
        row = ledger.get("Rent Expense")

        assert row.base_debit == D("2000")
        assert row.debit == D("2100")
        assert len(ledger.notes_for("Rent Expense")) == 1

    def test_summary_rows_never_merged(self):
        result = upsert_rows(Ledger(), [incoming("Cash", debit=10), incoming("Totals", debit=99)])
        assert len(result.ledger) == 1
        assert result.ledger.totals.debit == D("10.00")

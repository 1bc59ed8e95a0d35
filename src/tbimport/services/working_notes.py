"""
Base amount / working note decomposition.

A ledger row's displayed amounts are its base amounts plus the totals of its
working notes, split by year scope. The base is derived once (displayed
minus note totals) and is authoritative from then on.
"""

import logging
from decimal import Decimal
from typing import Iterable, Sequence

from tbimport.core.exceptions import ProtectedRowError
from tbimport.core.models import AMOUNT_FIELDS, AmountSet, LedgerRow, WorkingNote, YearScope, to_decimal

logger = logging.getLogger(__name__)


def note_totals(notes: Iterable[WorkingNote]) -> AmountSet:
    """Sum notes into an AmountSet (current notes -> debit/credit, previous -> previous_*)."""
    debit = credit = previous_debit = previous_credit = Decimal("0")
    for note in notes:
        if note.year_scope == YearScope.CURRENT:
            debit += note.debit
            credit += note.credit
        else:
            previous_debit += note.debit
            previous_credit += note.credit
    return AmountSet(debit, credit, previous_debit, previous_credit)


def resolve_base(row: LedgerRow, notes: Sequence[WorkingNote]) -> AmountSet:
    """Existing base fields win; otherwise derive displayed - note totals."""
    if row.has_base:
        return row.base
    return row.amounts - note_totals(notes)


def apply_notes(row: LedgerRow, base: AmountSet, notes: Sequence[WorkingNote]) -> LedgerRow:
    """Return row with base fixed and displayed = base + note totals."""
    return row.with_base(base).with_amounts(base + note_totals(notes))


def save_notes(
    row: LedgerRow,
    current_notes: Sequence[WorkingNote],
    new_notes: Sequence[WorkingNote],
) -> LedgerRow:
    """
    Replace the notes of a row.

    The base is resolved against the notes the row currently carries, then
    every displayed field is recomputed from the new notes. The base itself
    never changes.
    """
    if row.is_totals:
        raise ProtectedRowError(row.account)
    base = resolve_base(row, current_notes)
    return apply_notes(row, base, new_notes)


def edit_cell(row: LedgerRow, field_name: str, value, notes: Sequence[WorkingNote]) -> LedgerRow:
    """
    Set one displayed amount and back-solve its base.

    base = new displayed - note total for that field; notes are untouched.
    A row that has never carried notes stays pure base.
    """
    if row.is_totals:
        raise ProtectedRowError(row.account)
    if field_name not in AMOUNT_FIELDS:
        raise ValueError(f"Not an amount field: {field_name}")

    value = to_decimal(value)
    if not notes and not row.has_base:
        return row.with_amounts(AmountSet(**{**row.amounts.as_dict(), field_name: value}))

    base = resolve_base(row, notes)
    totals = note_totals(notes)
    new_base = AmountSet(**{**base.as_dict(), field_name: value - getattr(totals, field_name)})
    return apply_notes(row, new_base, notes)

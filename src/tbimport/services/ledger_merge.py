"""
Ledger value type and merge/upsert engine.

The ledger is an immutable list of LedgerRow values plus a map of working
notes keyed by normalized account name. Every operation returns a new
Ledger with the Totals row recomputed from scratch.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from tbimport.core.accounts import infer_category, normalize_account_name
from tbimport.core.exceptions import AccountNotFoundError, DuplicateAccountError, ProtectedRowError
from tbimport.core.models import (
    AMOUNT_FIELDS,
    AUTO_GROUP_PREFIX,
    BASE_FIELDS,
    TOTALS_ACCOUNT,
    AmountSet,
    IncomingRow,
    LedgerRow,
    WorkingNote,
    YearScope,
)
from tbimport.services import working_notes

logger = logging.getLogger(__name__)

RECORD_COLUMNS = ("account", "category") + AMOUNT_FIELDS + BASE_FIELDS

_TOTALS_KEY = normalize_account_name(TOTALS_ACCOUNT)


def rebuild_totals(rows: Iterable[LedgerRow]) -> Tuple[LedgerRow, ...]:
    """Drop any Totals row and append a fresh one summing every other row."""
    body = tuple(row for row in rows if not row.is_totals)
    total = AmountSet()
    for row in body:
        total = total + row.amounts
    return body + (LedgerRow(account=TOTALS_ACCOUNT).with_amounts(total.rounded()),)


@dataclass(frozen=True)
class Ledger:
    """Ledger rows (Totals last) and working notes by account key."""

    rows: Tuple[LedgerRow, ...] = ()
    notes: Mapping[str, Tuple[WorkingNote, ...]] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "rows", rebuild_totals(self.rows))
        frozen = {key: tuple(values) for key, values in dict(self.notes).items() if values}
        object.__setattr__(self, "notes", MappingProxyType(frozen))

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "Ledger":
        """Build a ledger from dicts shaped like LedgerRow.to_record()."""
        rows = [LedgerRow(**{k: v for k, v in record.items() if k in RECORD_COLUMNS}) for record in records]
        return cls(rows=tuple(rows))

    @property
    def accounts(self) -> Tuple[LedgerRow, ...]:
        """Every row except Totals."""
        return self.rows[:-1]

    @property
    def totals(self) -> LedgerRow:
        return self.rows[-1]

    def __len__(self) -> int:
        return len(self.accounts)

    def __contains__(self, account: str) -> bool:
        return self.find(account) is not None

    def find(self, account: str) -> Optional[LedgerRow]:
        key = normalize_account_name(account)
        for row in self.accounts:
            if row.key == key:
                return row
        return None

    def get(self, account: str) -> LedgerRow:
        if normalize_account_name(account) == _TOTALS_KEY:
            return self.totals
        row = self.find(account)
        if row is None:
            raise AccountNotFoundError(account)
        return row

    def notes_for(self, account: str) -> Tuple[WorkingNote, ...]:
        return self.notes.get(normalize_account_name(account), ())

    def _replace_row(self, row: LedgerRow, notes: Optional[Sequence[WorkingNote]] = None) -> "Ledger":
        rows = tuple(row if r.key == row.key else r for r in self.accounts)
        all_notes = dict(self.notes)
        if notes is not None:
            all_notes[row.key] = tuple(notes)
        return Ledger(rows=rows, notes=all_notes)

    def _require(self, account: str) -> LedgerRow:
        if normalize_account_name(account) == _TOTALS_KEY:
            raise ProtectedRowError(TOTALS_ACCOUNT)
        return self.get(account)

    def edit_cell(self, account: str, field_name: str, value) -> "Ledger":
        """Set a displayed amount; the base is back-solved and notes are kept."""
        row = self._require(account)
        return self._replace_row(working_notes.edit_cell(row, field_name, value, self.notes_for(account)))

    def save_notes(self, account: str, notes: Sequence[WorkingNote]) -> "Ledger":
        """Replace an account's notes; displayed = base + new note totals."""
        row = self._require(account)
        updated = working_notes.save_notes(row, self.notes_for(account), notes)
        logger.debug(f"Saved {len(notes)} note(s) for {row.account}")
        return self._replace_row(updated, notes)

    def add_account(
        self,
        account: str,
        category: Optional[str] = None,
        amounts: Optional[AmountSet] = None,
    ) -> "Ledger":
        account = account.strip()
        if normalize_account_name(account) == _TOTALS_KEY:
            raise ProtectedRowError(TOTALS_ACCOUNT)
        if not normalize_account_name(account):
            raise ValueError("Account name cannot be blank")
        if account in self:
            raise DuplicateAccountError(account)
        row = LedgerRow(account=account, category=category or infer_category(account))
        if amounts is not None:
            row = row.with_amounts(amounts)
        return Ledger(rows=self.accounts + (row,), notes=self.notes)

    def rename_account(self, account: str, new_name: str) -> "Ledger":
        """Rename an account, carrying its notes along."""
        row = self._require(account)
        new_name = new_name.strip()
        new_key = normalize_account_name(new_name)
        if new_key == _TOTALS_KEY:
            raise ProtectedRowError(TOTALS_ACCOUNT)
        if not new_key:
            raise ValueError("Account name cannot be blank")
        if new_key != row.key and new_name in self:
            raise DuplicateAccountError(new_name)

        renamed = LedgerRow(**{**row.to_record(), "account": new_name})
        rows = tuple(renamed if r.key == row.key else r for r in self.accounts)
        notes = dict(self.notes)
        moved = notes.pop(row.key, ())
        if moved:
            notes[new_key] = moved
        logger.info(f"Renamed account {row.account} -> {new_name}")
        return Ledger(rows=rows, notes=notes)

    def delete_account(self, account: str) -> "Ledger":
        """Remove an account and its notes."""
        row = self._require(account)
        notes = {k: v for k, v in self.notes.items() if k != row.key}
        return Ledger(rows=tuple(r for r in self.accounts if r.key != row.key), notes=notes)

    def group_accounts(
        self,
        sources: Sequence[str],
        target: str,
        category: Optional[str] = None,
    ) -> "Ledger":
        """
        Fold several accounts into one.

        Each source's displayed amounts become working notes on the target
        (one per year with a value) and the source rows are removed. The
        target is created when it does not exist yet.
        """
        source_rows = [self._require(name) for name in sources]
        ledger = self
        if target not in ledger:
            ledger = ledger.add_account(target, category)
        target_row = ledger.get(target)

        new_notes = list(ledger.notes_for(target))
        for row in source_rows:
            if row.key == target_row.key:
                continue
            new_notes.extend(amounts_to_notes(row.account, row.amounts))
            ledger = ledger.delete_account(row.account)

        if category:
            target_row = LedgerRow(**{**target_row.to_record(), "category": category})
            ledger = ledger._replace_row(target_row)
        logger.info(f"Grouped {len(source_rows)} account(s) into {target_row.account}")
        return ledger.save_notes(target_row.account, new_notes)

    def clear_auto_notes(self, accounts: Optional[Iterable[str]] = None) -> "Ledger":
        """
        Remove auto-grouped notes (all accounts, or only the given ones) and
        recompute displayed amounts from the base.
        """
        keys = None if accounts is None else {normalize_account_name(a) for a in accounts}
        ledger = self
        for key, notes in self.notes.items():
            if keys is not None and key not in keys:
                continue
            kept = [note for note in notes if not note.is_auto_grouped]
            if len(kept) != len(notes):
                row = ledger.find(key)
                if row is not None:
                    ledger = ledger.save_notes(row.account, kept)
        return ledger

    def to_records(self, include_totals: bool = True) -> List[Dict[str, Any]]:
        rows = self.rows if include_totals else self.accounts
        return [row.to_record() for row in rows]

    def to_dataframe(self, include_totals: bool = True) -> pd.DataFrame:
        """Ledger rows as a DataFrame (amount columns hold Decimal values)."""
        return pd.DataFrame(self.to_records(include_totals), columns=list(RECORD_COLUMNS))

    def notes_records(self) -> List[Dict[str, Any]]:
        records = []
        for row in self.accounts:
            for note in self.notes.get(row.key, ()):
                records.append({"account": row.account, **note.to_record()})
        return records


def amounts_to_notes(description: str, amounts: AmountSet) -> List[WorkingNote]:
    """One note per year scope that carries a value."""
    notes = []
    for scope in (YearScope.CURRENT, YearScope.PREVIOUS):
        if amounts.has_scope(scope):
            debit, credit = amounts.pair(scope)
            notes.append(WorkingNote(description=description, debit=debit, credit=credit, year_scope=scope))
    return notes


def auto_group_description(row: IncomingRow) -> str:
    line = f" (line {row.source_row})" if row.source_row is not None else ""
    return f"{AUTO_GROUP_PREFIX} {row.account}{line}"


@dataclass
class MergeResult:
    """Outcome of merging one import batch."""

    ledger: Ledger
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    grouped_lines: int = 0
    duplicates: Dict[str, int] = field(default_factory=dict)

    @property
    def total_accounts(self) -> int:
        return len(self.created) + len(self.updated)


def upsert_rows(
    ledger: Ledger,
    incoming: Iterable[IncomingRow],
    group_duplicates: bool = False,
) -> MergeResult:
    """
    Merge an import batch into the ledger by normalized account name.

    Auto-grouped notes left by a previous import are cleared for every
    account in the batch. The first line of an account updates or creates
    its row. With group_duplicates, every further line of the same account
    turns all of that account's lines into auto-grouped notes (base zero)
    so each extracted line stays visible; without it the last line wins.
    Manual notes are kept and added on top of the new base.
    """
    incoming = list(incoming)
    batch_keys = {row.key for row in incoming}
    ledger = ledger.clear_auto_notes(
        [row.account for row in ledger.accounts if row.key in batch_keys]
    )

    rows: Dict[str, LedgerRow] = {row.key: row for row in ledger.accounts}
    notes: Dict[str, List[WorkingNote]] = {key: list(values) for key, values in ledger.notes.items()}
    first_seen: Dict[str, IncomingRow] = {}
    occurrences: Dict[str, int] = {}
    result = MergeResult(ledger=ledger)

    for item in incoming:
        key = item.key
        if key == _TOTALS_KEY:
            logger.warning(f"Skipping incoming '{item.account}' line; Totals is recomputed")
            continue
        occurrences[key] = occurrences.get(key, 0) + 1
        existing = rows.get(key)

        if occurrences[key] > 1 and group_duplicates:
            account_notes = notes.setdefault(key, [])
            if occurrences[key] == 2:
                first = first_seen[key]
                account_notes.extend(amounts_to_notes(auto_group_description(first), first.amounts))
            account_notes.extend(amounts_to_notes(auto_group_description(item), item.amounts))
            rows[key] = working_notes.apply_notes(existing, AmountSet(), account_notes)
            result.grouped_lines += 2 if occurrences[key] == 2 else 1
            continue

        first_seen[key] = item
        if existing is None:
            row = LedgerRow(account=item.account, category=item.category or infer_category(item.account))
            result.created.append(item.account)
        else:
            row = LedgerRow(**{**existing.to_record(), "category": item.category or existing.category})
            if existing.account not in result.updated and existing.account not in result.created:
                result.updated.append(existing.account)

        account_notes = notes.get(key, [])
        if account_notes or row.has_base:
            rows[key] = working_notes.apply_notes(row, item.amounts, account_notes)
        else:
            rows[key] = row.with_amounts(item.amounts)

    result.duplicates = {key: count for key, count in occurrences.items() if count > 1}
    result.ledger = Ledger(rows=tuple(rows.values()), notes=notes)
    logger.info(
        f"Merged {len(incoming)} line(s): {len(result.created)} created, "
        f"{len(result.updated)} updated, {len(result.duplicates)} duplicated account(s)"
    )
    return result

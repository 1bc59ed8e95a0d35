"""
Core data models for trial balance import.

Dataclasses shared by the parsers and the ledger services:
- ParsedNumber: result of locale-tolerant cell parsing
- AmountSet: the four year-scoped debit/credit amounts of a ledger line
- ColumnMapping: physical column index per logical field
- SheetFrame: decoded, header-stripped spreadsheet
- WorkingNote / LedgerRow: the long-lived ledger values
- IncomingRow: a parsed line waiting to be merged into the ledger

All models are frozen; ledger mutations return new values.
"""

from dataclasses import dataclass, field, fields, replace
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from tbimport.core.accounts import normalize_account_name


ZERO = Decimal("0")
CENT = Decimal("0.01")

# Extraction noise floor: anything at or below this magnitude is zero.
ZERO_THRESHOLD = Decimal("0.01")

TOTALS_ACCOUNT = "Totals"

# Reserved description prefix for notes created from duplicate import lines
AUTO_GROUP_PREFIX = "[Auto-grouped]"

AMOUNT_FIELDS = ("debit", "credit", "previous_debit", "previous_credit")
BASE_FIELDS = ("base_debit", "base_credit", "base_previous_debit", "base_previous_credit")


class ImportMode(Enum):
    """Policy for assigning single-year source data to a year scope."""

    AUTO = "auto"
    CURRENT_ONLY = "current_only"
    PREVIOUS_ONLY = "previous_only"


class YearScope(Enum):
    """Year a debit/credit pair belongs to."""

    CURRENT = "current"
    PREVIOUS = "previous"


class DualSidedPolicy(Enum):
    """How a resolved pair with both debit and credit populated is collapsed."""

    DOMINANT = "dominant"  # keep the larger side only
    NET = "net"            # debit - credit, re-signed by the normalizer


class ImportState(Enum):
    """States of one import session."""

    IDLE = "idle"
    SHEET_LOADED = "sheet_loaded"
    MAPPING_GUESSED = "mapping_guessed"
    MAPPING_CONFIRMED = "mapping_confirmed"
    MERGED = "merged"


def to_decimal(value: Any) -> Decimal:
    """Convert int/float/str/Decimal/None to Decimal (None -> 0)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def is_zero(value: Decimal, threshold: Decimal = ZERO_THRESHOLD) -> bool:
    """True when value is within the extraction noise floor."""
    return abs(value) <= threshold


def round_amount(value: Decimal) -> Decimal:
    """Round to 2 decimal places (half up)."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ParsedNumber:
    """Outcome of parsing one spreadsheet cell."""

    value: Decimal = ZERO
    is_valid: bool = True
    is_empty: bool = False


@dataclass(frozen=True)
class AmountSet:
    """Debit/credit amounts for the current and previous year."""

    debit: Decimal = ZERO
    credit: Decimal = ZERO
    previous_debit: Decimal = ZERO
    previous_credit: Decimal = ZERO

    def __post_init__(self):
        for name in AMOUNT_FIELDS:
            object.__setattr__(self, name, to_decimal(getattr(self, name)))

    def pair(self, scope: YearScope) -> Tuple[Decimal, Decimal]:
        """Return the (debit, credit) pair of a year scope."""
        if scope == YearScope.CURRENT:
            return self.debit, self.credit
        return self.previous_debit, self.previous_credit

    def with_pair(self, scope: YearScope, debit: Decimal, credit: Decimal) -> "AmountSet":
        """Return a copy with one year scope replaced."""
        if scope == YearScope.CURRENT:
            return replace(self, debit=debit, credit=credit)
        return replace(self, previous_debit=debit, previous_credit=credit)

    def has_scope(self, scope: YearScope, threshold: Decimal = ZERO_THRESHOLD) -> bool:
        """True if either side of the scope is non-zero."""
        return any(not is_zero(v, threshold) for v in self.pair(scope))

    @property
    def has_current(self) -> bool:
        return self.has_scope(YearScope.CURRENT)

    @property
    def has_previous(self) -> bool:
        return self.has_scope(YearScope.PREVIOUS)

    @property
    def is_empty(self) -> bool:
        return not (self.has_current or self.has_previous)

    def as_dict(self) -> Dict[str, Decimal]:
        return {name: getattr(self, name) for name in AMOUNT_FIELDS}

    def rounded(self) -> "AmountSet":
        return AmountSet(**{k: round_amount(v) for k, v in self.as_dict().items()})

    def __add__(self, other: "AmountSet") -> "AmountSet":
        return AmountSet(**{k: getattr(self, k) + getattr(other, k) for k in AMOUNT_FIELDS})

    def __sub__(self, other: "AmountSet") -> "AmountSet":
        return AmountSet(**{k: getattr(self, k) - getattr(other, k) for k in AMOUNT_FIELDS})


@dataclass(frozen=True)
class ColumnMapping:
    """Column index per logical field; None means unmapped."""

    account: Optional[int] = None
    category: Optional[int] = None
    debit: Optional[int] = None
    credit: Optional[int] = None
    previous_debit: Optional[int] = None
    previous_credit: Optional[int] = None

    def assigned(self) -> Dict[str, int]:
        """Return {field: column} for every mapped field."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def duplicate_columns(self) -> Dict[int, Tuple[str, ...]]:
        """Return {column: fields} for every column claimed by more than one field."""
        by_column: Dict[int, Tuple[str, ...]] = {}
        for name, column in self.assigned().items():
            by_column[column] = by_column.get(column, ()) + (name,)
        return {column: names for column, names in by_column.items() if len(names) > 1}

    def scope_columns(self, scope: YearScope) -> Tuple[Optional[int], Optional[int]]:
        if scope == YearScope.CURRENT:
            return self.debit, self.credit
        return self.previous_debit, self.previous_credit

    def has_scope(self, scope: YearScope) -> bool:
        """True if at least one side of the scope is explicitly mapped."""
        return any(column is not None for column in self.scope_columns(scope))

    @property
    def both_years_mapped(self) -> bool:
        return self.has_scope(YearScope.CURRENT) and self.has_scope(YearScope.PREVIOUS)

    def update(self, **changes) -> "ColumnMapping":
        return replace(self, **changes)


@dataclass(frozen=True)
class SheetFrame:
    """Decoded spreadsheet with the header rows stripped."""

    sheet_names: Tuple[str, ...]
    active_sheet: str
    headers: Tuple[str, ...]
    rows: Tuple[Tuple[Any, ...], ...]
    header_row_index: Optional[int] = None
    data_start_index: int = 0

    def __post_init__(self):
        object.__setattr__(self, "sheet_names", tuple(self.sheet_names))
        object.__setattr__(self, "headers", tuple(self.headers))
        object.__setattr__(self, "rows", tuple(tuple(row) for row in self.rows))

    @property
    def column_count(self) -> int:
        return len(self.headers)

    @property
    def has_detected_header(self) -> bool:
        return self.header_row_index is not None


@dataclass(frozen=True)
class WorkingNote:
    """User adjustment line attached to an account for one year scope."""

    description: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    year_scope: YearScope = YearScope.CURRENT

    def __post_init__(self):
        object.__setattr__(self, "debit", to_decimal(self.debit))
        object.__setattr__(self, "credit", to_decimal(self.credit))
        if not isinstance(self.year_scope, YearScope):
            object.__setattr__(self, "year_scope", YearScope(self.year_scope))

    @property
    def is_auto_grouped(self) -> bool:
        return self.description.startswith(AUTO_GROUP_PREFIX)

    def to_record(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "debit": self.debit,
            "credit": self.credit,
            "year_scope": self.year_scope.value,
        }


@dataclass(frozen=True)
class LedgerRow:
    """
    One trial balance line.

    debit/credit/previous_* are the displayed amounts. The base_* fields are
    None until working notes have been applied to the row; once set they are
    authoritative and displayed = base + note totals.
    """

    account: str
    category: Optional[str] = None
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    previous_debit: Decimal = ZERO
    previous_credit: Decimal = ZERO
    base_debit: Optional[Decimal] = None
    base_credit: Optional[Decimal] = None
    base_previous_debit: Optional[Decimal] = None
    base_previous_credit: Optional[Decimal] = None

    def __post_init__(self):
        for name in AMOUNT_FIELDS:
            object.__setattr__(self, name, to_decimal(getattr(self, name)))
        for name in BASE_FIELDS:
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, to_decimal(value))

    @property
    def key(self) -> str:
        return normalize_account_name(self.account)

    @property
    def is_totals(self) -> bool:
        return self.key == normalize_account_name(TOTALS_ACCOUNT)

    @property
    def amounts(self) -> AmountSet:
        return AmountSet(self.debit, self.credit, self.previous_debit, self.previous_credit)

    @property
    def has_base(self) -> bool:
        return any(getattr(self, name) is not None for name in BASE_FIELDS)

    @property
    def base(self) -> Optional[AmountSet]:
        if not self.has_base:
            return None
        return AmountSet(*(getattr(self, name) or ZERO for name in BASE_FIELDS))

    def with_amounts(self, amounts: AmountSet) -> "LedgerRow":
        return replace(self, **amounts.as_dict())

    def with_base(self, base: Optional[AmountSet]) -> "LedgerRow":
        if base is None:
            return replace(self, **{name: None for name in BASE_FIELDS})
        return replace(self, **dict(zip(BASE_FIELDS, (base.debit, base.credit,
                                                      base.previous_debit, base.previous_credit))))

    def to_record(self) -> Dict[str, Any]:
        record = {"account": self.account, "category": self.category}
        record.update(self.amounts.as_dict())
        for name in BASE_FIELDS:
            record[name] = getattr(self, name)
        return record


@dataclass(frozen=True)
class IncomingRow:
    """A normalized, year-reconciled line ready for the merge engine."""

    account: str
    category: Optional[str] = None
    amounts: AmountSet = field(default_factory=AmountSet)
    source_row: Optional[int] = None

    @property
    def key(self) -> str:
        return normalize_account_name(self.account)

"""
Debit/credit normalization and year-scope reconciliation.

Turns resolved sheet rows (or AI-extracted records) into IncomingRow values
ready for the ledger merge:
- normalize_pair: at most one non-negative side per year
- apply_import_mode: assign single-year data to the current or previous year
- build_incoming_rows: the full per-row pipeline for a SheetFrame
- normalize_extracted_rows: the same pipeline for extraction records
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from tbimport.core.accounts import (
    infer_category,
    is_summary_row,
    is_total_row,
    normalize_category,
    resolve_standard_account,
)
from tbimport.core.models import (
    ZERO,
    ZERO_THRESHOLD,
    AmountSet,
    ColumnMapping,
    DualSidedPolicy,
    ImportMode,
    IncomingRow,
    SheetFrame,
    YearScope,
    is_zero,
    to_decimal,
)
from tbimport.parsers.keywords import cell_text
from tbimport.parsers.numbers import parse_number
from tbimport.parsers.row_resolver import RowResolver, collapse_dual_sided

logger = logging.getLogger(__name__)

# Accepted spellings of the extraction record fields
_RECORD_KEYS = {
    "account": ("account", "accountName", "account_name", "name"),
    "category": ("category",),
    "debit": ("debit",),
    "credit": ("credit",),
    "previous_debit": ("previousDebit", "previous_debit"),
    "previous_credit": ("previousCredit", "previous_credit"),
}


def _floor(value: Decimal, threshold: Decimal) -> Decimal:
    return ZERO if is_zero(value, threshold) else value


def normalize_pair(debit, credit, threshold: Decimal = ZERO_THRESHOLD) -> Tuple[Decimal, Decimal]:
    """
    Move a negative "wrong side" amount to the other side.

    - debit < 0 and credit <= 0: abs(debit) becomes the credit
    - credit < 0 and debit <= 0: abs(credit) becomes the debit
    - otherwise both sides are made non-negative

    Values within the noise floor count as zero. Callers collapse pairs with
    both sides populated beforehand (see collapse_dual_sided).
    """
    debit = _floor(to_decimal(debit), threshold)
    credit = _floor(to_decimal(credit), threshold)

    if debit < 0 and credit <= 0:
        return ZERO, abs(debit)
    if credit < 0 and debit <= 0:
        return abs(credit), ZERO
    return abs(debit), abs(credit)


def normalize_amounts(amounts: AmountSet, threshold: Decimal = ZERO_THRESHOLD) -> AmountSet:
    """Normalize both year scopes of an AmountSet."""
    result = amounts
    for scope in (YearScope.CURRENT, YearScope.PREVIOUS):
        debit, credit = normalize_pair(*amounts.pair(scope), threshold=threshold)
        result = result.with_pair(scope, debit, credit)
    return result


def apply_import_mode(
    amounts: AmountSet,
    mode: ImportMode,
    mapping: Optional[ColumnMapping] = None,
    threshold: Decimal = ZERO_THRESHOLD,
) -> AmountSet:
    """
    Assign single-year data to a year scope.

    The mode is ignored when mapping explicitly maps both year pairs.
    CURRENT_ONLY keeps current-year values (promoting previous-year values
    when the row has none) and clears the previous year; PREVIOUS_ONLY is
    the mirror image. Applying a mode twice gives the same result.
    """
    if mode == ImportMode.AUTO:
        return amounts
    if mapping is not None and mapping.both_years_mapped:
        return amounts

    if mode == ImportMode.CURRENT_ONLY:
        keep, drop = YearScope.CURRENT, YearScope.PREVIOUS
    else:
        keep, drop = YearScope.PREVIOUS, YearScope.CURRENT

    if amounts.has_scope(keep, threshold):
        pair = amounts.pair(keep)
    elif amounts.has_scope(drop, threshold):
        pair = amounts.pair(drop)
    else:
        pair = (ZERO, ZERO)

    return amounts.with_pair(keep, *pair).with_pair(drop, ZERO, ZERO)


@dataclass
class BuildResult:
    """Incoming rows of one import batch with row-level defect counts."""

    rows: List[IncomingRow] = field(default_factory=list)
    blank_account_rows: int = 0
    summary_rows: int = 0
    empty_rows: int = 0
    invalid_numbers: int = 0
    caption_accounts: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_warning(self, warning: str) -> None:
        """Add warning message."""
        self.warnings.append(warning)

    @property
    def totals(self) -> AmountSet:
        total = AmountSet()
        for row in self.rows:
            total = total + row.amounts
        return total

    @property
    def row_count(self) -> int:
        return len(self.rows)


def _skip_summary(result: BuildResult, name: str, amounts: AmountSet, line: int) -> bool:
    """
    Skip totals lines, and section captions without amounts.

    A caption-named line that carries amounts ("Income", "Equity") is kept
    as an account and recorded in result.caption_accounts.
    """
    if not is_summary_row(name):
        return False
    if is_total_row(name) or amounts.is_empty:
        result.summary_rows += 1
        logger.debug(f"Skipping summary line {line}: {name}")
        return True
    result.caption_accounts.append(name)
    logger.warning(f"Line {line}: caption-like name '{name}' carries amounts, imported as an account")
    return False


def _make_incoming(
    name: str,
    category_text: Any,
    amounts: AmountSet,
    source_row: int,
    aliases: Optional[Mapping[str, str]],
) -> IncomingRow:
    account = resolve_standard_account(name, aliases)
    category = normalize_category(category_text) if category_text is not None else None
    if category is None:
        category = infer_category(account)
    return IncomingRow(account=account, category=category, amounts=amounts, source_row=source_row)


def build_incoming_rows(
    frame: SheetFrame,
    mapping: ColumnMapping,
    mode: ImportMode = ImportMode.AUTO,
    policy: DualSidedPolicy = DualSidedPolicy.DOMINANT,
    aliases: Optional[Mapping[str, str]] = None,
    threshold: Decimal = ZERO_THRESHOLD,
) -> BuildResult:
    """
    Run every data row of a sheet through resolution, normalization and
    year reconciliation.

    Rows with a blank account but non-zero amounts are skipped and counted;
    totals lines and empty section captions are skipped; a caption-named
    line with amounts is kept and listed in caption_accounts; unreadable
    amount cells are counted and read as zero.
    """
    result = BuildResult()
    resolver = RowResolver(frame.headers, mapping, policy)

    for line, row in enumerate(frame.rows, start=1):
        resolved = resolver.resolve(row)
        amounts = normalize_amounts(resolved.amounts, threshold)

        name = cell_text(row[mapping.account]) if mapping.account is not None and mapping.account < len(row) else ""
        if not name:
            if amounts.is_empty:
                result.empty_rows += 1
            else:
                result.blank_account_rows += 1
                logger.warning(f"Skipping line {line}: amounts without an account name")
            continue

        if _skip_summary(result, name, amounts, line):
            continue

        if resolved.has_invalid:
            result.invalid_numbers += len(resolved.invalid_fields)
            result.add_warning(
                f"Line {line} ({name}): unreadable {', '.join(resolved.invalid_fields)} treated as zero"
            )

        amounts = apply_import_mode(amounts, mode, mapping, threshold)
        category_text = (
            row[mapping.category]
            if mapping.category is not None and mapping.category < len(row)
            else None
        )
        result.rows.append(_make_incoming(name, category_text, amounts, line, aliases))

    logger.info(
        f"Built {result.row_count} incoming rows "
        f"({result.blank_account_rows} blank-account, {result.summary_rows} summary, "
        f"{result.invalid_numbers} invalid number(s))"
    )
    return result


def _record_value(record: Mapping[str, Any], name: str) -> Any:
    for key in _RECORD_KEYS[name]:
        if key in record:
            return record[key]
    return None


def normalize_extracted_rows(
    records: Iterable[Mapping[str, Any]],
    mode: ImportMode = ImportMode.AUTO,
    policy: DualSidedPolicy = DualSidedPolicy.DOMINANT,
    aliases: Optional[Mapping[str, str]] = None,
    threshold: Decimal = ZERO_THRESHOLD,
) -> BuildResult:
    """
    Bring extraction records into the incoming-row shape.

    Records carry account, optional category and debit/credit plus optional
    previousDebit/previousCredit (snake_case accepted). Their amounts pass
    through the same normalizer and import-mode reconciler as sheet rows;
    there is no column mapping, so the mode always applies.
    """
    result = BuildResult()

    for line, record in enumerate(records, start=1):
        values: Dict[str, Decimal] = {}
        invalid = []
        for name in ("debit", "credit", "previous_debit", "previous_credit"):
            parsed = parse_number(_record_value(record, name))
            values[name] = parsed.value if parsed.is_valid else ZERO
            if not parsed.is_valid:
                invalid.append(name)

        amounts = AmountSet(**values)
        for scope in (YearScope.CURRENT, YearScope.PREVIOUS):
            amounts = amounts.with_pair(scope, *collapse_dual_sided(*amounts.pair(scope), policy))
        amounts = normalize_amounts(amounts, threshold)

        name = cell_text(_record_value(record, "account"))
        if not name:
            if amounts.is_empty:
                result.empty_rows += 1
            else:
                result.blank_account_rows += 1
            continue
        if _skip_summary(result, name, amounts, line):
            continue

        if invalid:
            result.invalid_numbers += len(invalid)
            result.add_warning(f"Record {line} ({name}): unreadable {', '.join(invalid)} treated as zero")

        amounts = apply_import_mode(amounts, mode, None, threshold)
        result.rows.append(_make_incoming(name, _record_value(record, "category"), amounts, line, aliases))

    logger.info(f"Normalized {result.row_count} extracted rows")
    return result

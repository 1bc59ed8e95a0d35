"""
Import validation.

Checks a sheet, its column mapping and the parsed rows before they are
merged into the ledger:
- Structural errors (blocking): no data rows, Account unmapped, current
  year Debit and Credit both unmapped, one column mapped to two fields
- Row-level defects (warning): blank account with amounts, unparseable
  amount cells, caption-named lines imported as accounts
- Balance variances (warning): debit/credit totals that do not agree
- Policy conflicts (info): an import mode that cannot apply

Usage:
    from tbimport.parsers.validators import validate_import

    report = validate_import(frame, mapping, ImportMode.AUTO, build_result)
    if report.has_blocking:
        print(report.summary())
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Sequence

from tbimport.core.models import AmountSet, ColumnMapping, ImportMode, SheetFrame, YearScope, round_amount

logger = logging.getLogger(__name__)

DEFAULT_BALANCE_TOLERANCE = Decimal("0.1")
DEFAULT_IMBALANCE_THRESHOLD = Decimal("1")

# Issue codes
NO_DATA_ROWS = "NO_DATA_ROWS"
ACCOUNT_UNMAPPED = "ACCOUNT_UNMAPPED"
AMOUNT_UNMAPPED = "AMOUNT_UNMAPPED"
DUPLICATE_COLUMN = "DUPLICATE_COLUMN"
BLANK_ACCOUNT_ROWS = "BLANK_ACCOUNT_ROWS"
INVALID_NUMBER = "INVALID_NUMBER"
CAPTION_ACCOUNT = "CAPTION_ACCOUNT"
ROUNDING_VARIANCE = "ROUNDING_VARIANCE"
BALANCE_VARIANCE = "BALANCE_VARIANCE"
IMPORT_MODE_IGNORED = "IMPORT_MODE_IGNORED"


class Severity(Enum):
    """How an issue affects committing the import."""

    BLOCKING = "blocking"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class ValidationIssue:
    """One problem found while validating an import."""

    severity: Severity
    code: str
    message: str
    count: Optional[int] = None
    amount: Optional[Decimal] = None
    year_scope: Optional[YearScope] = None

    def __str__(self) -> str:
        return f"[{self.severity.value.upper()}] {self.message}"


@dataclass
class ImportValidation:
    """Collected validation issues of one import."""

    issues: List[ValidationIssue] = field(default_factory=list)

    def add_issue(self, severity: Severity, code: str, message: str, **details) -> None:
        self.issues.append(ValidationIssue(severity, code, message, **details))

    def add_blocking(self, code: str, message: str, **details) -> None:
        self.add_issue(Severity.BLOCKING, code, message, **details)

    def add_warning(self, code: str, message: str, **details) -> None:
        self.add_issue(Severity.WARNING, code, message, **details)

    def add_info(self, code: str, message: str, **details) -> None:
        self.add_issue(Severity.INFO, code, message, **details)

    def extend(self, other: "ImportValidation") -> None:
        self.issues.extend(other.issues)

    def by_severity(self, severity: Severity) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == severity]

    def codes(self) -> List[str]:
        return [issue.code for issue in self.issues]

    @property
    def blocking(self) -> List[ValidationIssue]:
        return self.by_severity(Severity.BLOCKING)

    @property
    def warnings(self) -> List[ValidationIssue]:
        return self.by_severity(Severity.WARNING)

    @property
    def infos(self) -> List[ValidationIssue]:
        return self.by_severity(Severity.INFO)

    @property
    def has_blocking(self) -> bool:
        return bool(self.blocking)

    @property
    def is_valid(self) -> bool:
        """True when nothing prevents committing the import."""
        return not self.has_blocking

    def summary(self) -> str:
        if not self.issues:
            return "No issues found"
        return "\n".join(str(issue) for issue in self.issues)


def validate_structure(data_row_count: int, mapping: ColumnMapping) -> ImportValidation:
    """Blocking checks on the sheet shape and the column mapping."""
    report = ImportValidation()

    if data_row_count == 0:
        report.add_blocking(NO_DATA_ROWS, "No data rows found below the header")

    if mapping.account is None:
        report.add_blocking(ACCOUNT_UNMAPPED, "Account column is not mapped")

    if mapping.debit is None and mapping.credit is None:
        report.add_blocking(AMOUNT_UNMAPPED, "Neither Debit nor Credit column is mapped for the current year")

    for column, names in sorted(mapping.duplicate_columns().items()):
        report.add_blocking(
            DUPLICATE_COLUMN,
            f"Column {column} is mapped to more than one field: {', '.join(names)}",
            count=len(names),
        )
    return report


def validate_rows(
    blank_account_rows: int,
    invalid_numbers: int,
    caption_accounts: Sequence[str] = (),
) -> ImportValidation:
    """Row-level defects; reported as counts, never blocking."""
    report = ImportValidation()
    if blank_account_rows:
        report.add_warning(
            BLANK_ACCOUNT_ROWS,
            f"{blank_account_rows} row(s) with amounts but no account name were skipped",
            count=blank_account_rows,
        )
    if invalid_numbers:
        report.add_warning(
            INVALID_NUMBER,
            f"{invalid_numbers} amount cell(s) could not be read as numbers and were treated as zero",
            count=invalid_numbers,
        )
    if caption_accounts:
        report.add_warning(
            CAPTION_ACCOUNT,
            f"{len(caption_accounts)} line(s) named like a section caption carry amounts and were "
            f"imported as accounts: {', '.join(caption_accounts)}",
            count=len(caption_accounts),
        )
    return report


def validate_balance(
    totals: AmountSet,
    tolerance: Decimal = DEFAULT_BALANCE_TOLERANCE,
    imbalance_threshold: Decimal = DEFAULT_IMBALANCE_THRESHOLD,
) -> ImportValidation:
    """
    Compare debit and credit totals for each year.

    A variance above tolerance is always reported. Up to imbalance_threshold
    it is flagged as a rounding difference, above it as a real imbalance.
    """
    report = ImportValidation()
    for scope in (YearScope.CURRENT, YearScope.PREVIOUS):
        debit, credit = totals.pair(scope)
        variance = round_amount(debit - credit)
        if abs(variance) <= tolerance:
            continue

        code = ROUNDING_VARIANCE if abs(variance) <= imbalance_threshold else BALANCE_VARIANCE
        kind = "Rounding difference" if code == ROUNDING_VARIANCE else "Trial balance does not balance"
        report.add_warning(
            code,
            f"{kind} for {scope.value} year: debit {round_amount(debit)} vs credit "
            f"{round_amount(credit)} (variance {variance})",
            amount=variance,
            year_scope=scope,
        )
        logger.warning(f"{scope.value} year variance {variance}")
    return report


def validate_import_mode(mapping: ColumnMapping, mode: ImportMode) -> ImportValidation:
    """Tell the user when the selected import mode has no effect."""
    report = ImportValidation()
    if mode != ImportMode.AUTO and mapping.both_years_mapped:
        report.add_info(
            IMPORT_MODE_IGNORED,
            f"Import mode '{mode.value}' is ignored because both current and previous "
            f"year columns are mapped",
        )
    return report


def validate_import(
    frame: SheetFrame,
    mapping: ColumnMapping,
    mode: ImportMode = ImportMode.AUTO,
    build_result=None,
    tolerance: Decimal = DEFAULT_BALANCE_TOLERANCE,
    imbalance_threshold: Decimal = DEFAULT_IMBALANCE_THRESHOLD,
) -> ImportValidation:
    """
    Run every check for one import.

    Args:
        frame: Decoded sheet
        mapping: Column mapping to validate
        mode: Selected year import mode
        build_result: Parsed rows (anything exposing blank_account_rows,
            invalid_numbers, caption_accounts and totals); row and
            balance checks are skipped when None
        tolerance: Largest variance accepted silently
        imbalance_threshold: Variance above which rounding becomes imbalance

    Returns:
        ImportValidation with every issue found
    """
    report = validate_structure(len(frame.rows), mapping)
    report.extend(validate_import_mode(mapping, mode))

    if build_result is not None:
        report.extend(validate_rows(
            build_result.blank_account_rows,
            build_result.invalid_numbers,
            build_result.caption_accounts,
        ))
        report.extend(validate_balance(build_result.totals, tolerance, imbalance_threshold))

    logger.debug(
        f"Validation: {len(report.blocking)} blocking, {len(report.warnings)} warning(s), "
        f"{len(report.infos)} info"
    )
    return report

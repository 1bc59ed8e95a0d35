"""
Core module - Models, accounts, preferences and exceptions.

Provides:
- Ledger value models: LedgerRow, WorkingNote, AmountSet, ColumnMapping, SheetFrame
- Import policies: ImportMode, YearScope, DualSidedPolicy, ImportState
- Account naming and category inference
- ImportPreferences: JSON configuration with defaults
- Exception hierarchy rooted at TBImportError
"""

from tbimport.core.accounts import (
    CATEGORIES,
    CHART_OF_ACCOUNTS,
    infer_category,
    is_summary_row,
    is_total_row,
    normalize_account_name,
    normalize_category,
    resolve_standard_account,
)
from tbimport.core.exceptions import (
    TBImportError,
    SheetLoadError,
    MappingValidationError,
    InvalidStateError,
    AccountNotFoundError,
    DuplicateAccountError,
    ProtectedRowError,
)
from tbimport.core.models import (
    AUTO_GROUP_PREFIX,
    TOTALS_ACCOUNT,
    AmountSet,
    ColumnMapping,
    DualSidedPolicy,
    ImportMode,
    ImportState,
    IncomingRow,
    LedgerRow,
    ParsedNumber,
    SheetFrame,
    WorkingNote,
    YearScope,
)
from tbimport.core.preferences import ImportPreferences, DEFAULT_PREFERENCES

__all__ = [
    "CATEGORIES",
    "CHART_OF_ACCOUNTS",
    "infer_category",
    "is_summary_row",
    "is_total_row",
    "normalize_account_name",
    "normalize_category",
    "resolve_standard_account",
    "TBImportError",
    "SheetLoadError",
    "MappingValidationError",
    "InvalidStateError",
    "AccountNotFoundError",
    "DuplicateAccountError",
    "ProtectedRowError",
    "AUTO_GROUP_PREFIX",
    "TOTALS_ACCOUNT",
    "AmountSet",
    "ColumnMapping",
    "DualSidedPolicy",
    "ImportMode",
    "ImportState",
    "IncomingRow",
    "LedgerRow",
    "ParsedNumber",
    "SheetFrame",
    "WorkingNote",
    "YearScope",
    "ImportPreferences",
    "DEFAULT_PREFERENCES",
]

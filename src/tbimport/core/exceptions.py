"""
Custom exceptions for the trial balance import engine.

All tbimport-specific exceptions inherit from TBImportError for easy catching.
Row-level defects and balance variances are not exceptions: they are
collected as validation issues and reported alongside the import.
"""


class TBImportError(Exception):
    """Base exception for all tbimport errors."""

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        self.code = code


class SheetLoadError(TBImportError):
    """Raised when a spreadsheet cannot be decoded."""

    def __init__(self, message: str, file_path: str = None, code: str = "SHEET_LOAD_ERROR"):
        super().__init__(message, code)
        self.file_path = file_path


class MappingValidationError(TBImportError):
    """
    Raised when a column mapping with structural errors is confirmed.

    The blocking issues are kept on the exception so the caller can show
    every problem at once instead of one at a time.
    """

    def __init__(self, issues: list = None, code: str = "MAPPING_INVALID"):
        issues = list(issues or [])
        summary = "; ".join(issue.message for issue in issues) or "Column mapping is invalid"
        super().__init__(summary, code)
        self.issues = issues


class InvalidStateError(TBImportError):
    """Raised when an import session step is called out of order."""

    def __init__(self, current: str, attempted: str, code: str = "INVALID_STATE"):
        super().__init__(f"Cannot {attempted} while session is {current}", code)
        self.current = current
        self.attempted = attempted


class AccountNotFoundError(TBImportError):
    """Raised when an account is not present in the ledger."""

    def __init__(self, account: str, code: str = "ACCOUNT_NOT_FOUND"):
        super().__init__(f"Account not found: {account}", code)
        self.account = account


class DuplicateAccountError(TBImportError):
    """Raised when adding or renaming onto an account name that already exists."""

    def __init__(self, account: str, code: str = "DUPLICATE_ACCOUNT"):
        super().__init__(f"Account already exists: {account}", code)
        self.account = account


class ProtectedRowError(TBImportError):
    """Raised when the Totals row is edited, renamed or deleted directly."""

    def __init__(self, account: str = "Totals", code: str = "PROTECTED_ROW"):
        super().__init__(f"'{account}' is recomputed automatically and cannot be changed", code)
        self.account = account

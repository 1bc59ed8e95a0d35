"""
Services - Reconciliation, working notes, ledger merge and import sessions.
"""

from tbimport.services.reconciliation import (
    BuildResult,
    apply_import_mode,
    build_incoming_rows,
    normalize_amounts,
    normalize_extracted_rows,
    normalize_pair,
)
from tbimport.services.ledger_merge import Ledger, MergeResult, rebuild_totals, upsert_rows
from tbimport.services.import_session import ImportSession

__all__ = [
    "BuildResult",
    "apply_import_mode",
    "build_incoming_rows",
    "normalize_amounts",
    "normalize_extracted_rows",
    "normalize_pair",
    "Ledger",
    "MergeResult",
    "rebuild_totals",
    "upsert_rows",
    "ImportSession",
]

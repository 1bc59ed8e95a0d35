"""
Trial balance parsers.

Pipeline:
- numbers: locale-tolerant cell parsing
- header_detector: header row and composite header detection
- column_resolver: column role guessing (keywords, then data profiling)
- row_resolver: per-row debit/credit resolution with Closing/Trial fallbacks
- sheet_loader: xlsx/xls/csv decoding into a SheetFrame
- validators: structural, row-level and balance checks
"""

from .numbers import parse_number, parse_amount, is_numeric_cell
from .header_detector import detect_header_row, build_composite_headers, extract_table
from .column_resolver import guess_mapping
from .row_resolver import RowResolver, RowAmounts, resolve_row, collapse_dual_sided
from .sheet_loader import DecodeTracker, load_frame, list_sheets, read_workbook, frame_from_rows
from .validators import ImportValidation, Severity, ValidationIssue, validate_import

__all__ = [
    "parse_number",
    "parse_amount",
    "is_numeric_cell",
    "detect_header_row",
    "build_composite_headers",
    "extract_table",
    "guess_mapping",
    "RowResolver",
    "RowAmounts",
    "resolve_row",
    "collapse_dual_sided",
    "DecodeTracker",
    "load_frame",
    "list_sheets",
    "read_workbook",
    "frame_from_rows",
    "ImportValidation",
    "Severity",
    "ValidationIssue",
    "validate_import",
]

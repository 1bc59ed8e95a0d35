#!/usr/bin/env python3
"""
tbimport CLI - Trial balance import command line interface.

Usage:
    tbimport inspect trial_balance.xlsx
    tbimport inspect trial_balance.xlsx --sheet "TB 2024"
    tbimport import trial_balance.xlsx --mode current_only --group-duplicates
    tbimport import trial_balance.csv --output ledger.csv
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from tbimport.core.exceptions import MappingValidationError, TBImportError
from tbimport.core.models import AMOUNT_FIELDS, ImportMode
from tbimport.core.preferences import ImportPreferences
from tbimport.services.import_session import ImportSession

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, debug: bool = False):
    """Configure logging."""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def load_preferences(args) -> ImportPreferences:
    """Preferences from --config, overridden by command line flags."""
    prefs = ImportPreferences.load(Path(args.config) if args.config else None)
    if getattr(args, "sheet", None):
        prefs.sheet_name = args.sheet
    if getattr(args, "mode", None):
        prefs.import_mode = ImportMode(args.mode)
    if getattr(args, "group_duplicates", False):
        prefs.group_duplicates_to_notes = True
    return prefs


def format_amount(value) -> str:
    return f"{value:,.2f}"


def print_mapping(session: ImportSession):
    frame = session.frame
    print(f"\nColumn mapping:")
    for name, column in session.mapping.assigned().items():
        print(f"  {name:<16} -> [{column}] {frame.headers[column]}")
    unmapped = [name for name in ("account", "category") + AMOUNT_FIELDS if getattr(session.mapping, name) is None]
    if unmapped:
        print(f"  (unmapped: {', '.join(unmapped)})")


def print_issues(validation):
    if not validation.issues:
        print("\nNo issues found")
        return
    print(f"\nIssues:")
    for issue in validation.issues:
        print(f"  {issue}")


def write_output(ledger, output: Path):
    """Write the ledger as CSV or JSON (by extension)."""
    if output.suffix.lower() == ".json":
        payload = {
            "rows": ledger.to_records(),
            "notes": ledger.notes_records(),
        }
        with open(output, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, default=str)
    else:
        ledger.to_dataframe().to_csv(output, index=False)
    print(f"\nLedger written to {output}")


# ============================================================================
# Command Handlers
# ============================================================================

def cmd_inspect(args, prefs: ImportPreferences) -> int:
    """Handle inspect command - show sheets, header and guessed mapping."""
    session = ImportSession(prefs)
    frame = session.load_file(Path(args.file))

    print(f"\nFile:   {args.file}")
    print(f"Sheets: {', '.join(frame.sheet_names)}")
    print(f"Active: {frame.active_sheet}")
    if frame.has_detected_header:
        print(f"Header row: {frame.header_row_index} (data starts at {frame.data_start_index})")
    else:
        print("Header row: not detected (synthetic column names)")
    print(f"Data rows: {len(frame.rows)}")

    print(f"\nHeaders:")
    for index, header in enumerate(frame.headers):
        print(f"  [{index}] {header}")

    session.guess_mapping()
    print_mapping(session)
    _, validation = session.preview()
    print_issues(validation)
    return 1 if validation.has_blocking else 0


def cmd_import(args, prefs: ImportPreferences) -> int:
    """Handle import command - run the full import and print the ledger."""
    session = ImportSession(prefs)
    session.load_file(Path(args.file))
    session.guess_mapping()
    print_mapping(session)

    try:
        validation = session.confirm()
    except MappingValidationError as e:
        print_issues(session.validation)
        print(f"\nImport blocked: {e.message}")
        return 1

    print_issues(validation)
    result = session.merge()
    ledger = result.ledger

    print(f"\nImported {len(ledger)} account(s) "
          f"({len(result.created)} created, {len(result.updated)} updated)")
    if result.duplicates:
        print(f"Duplicate accounts: {', '.join(sorted(result.duplicates))}")

    print(f"\n{'Account':<40} {'Debit':>15} {'Credit':>15} {'Prev Debit':>15} {'Prev Credit':>15}")
    print("-" * 104)
    for row in ledger.rows:
        print(f"{row.account[:40]:<40} {format_amount(row.debit):>15} {format_amount(row.credit):>15} "
              f"{format_amount(row.previous_debit):>15} {format_amount(row.previous_credit):>15}")

    if args.output:
        write_output(ledger, Path(args.output))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tbimport",
        description="Trial balance spreadsheet import",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--debug', action='store_true', help='Debug output')
    parser.add_argument('--config', '-c', help='JSON preference file')

    subparsers = parser.add_subparsers(dest='command', help='Command')

    inspect_parser = subparsers.add_parser('inspect', help='Show detected header and column mapping')
    inspect_parser.add_argument('file', help='Spreadsheet (.xlsx, .xls, .csv)')
    inspect_parser.add_argument('--sheet', '-s', help='Sheet name (default: best match)')

    import_parser = subparsers.add_parser('import', help='Import a trial balance')
    import_parser.add_argument('file', help='Spreadsheet (.xlsx, .xls, .csv)')
    import_parser.add_argument('--sheet', '-s', help='Sheet name (default: best match)')
    import_parser.add_argument('--mode', '-m', choices=[m.value for m in ImportMode],
                               help='Year import mode')
    import_parser.add_argument('--group-duplicates', '-g', action='store_true',
                               help='Keep duplicate account lines as working notes')
    import_parser.add_argument('--output', '-o', help='Write ledger to .csv or .json')
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose, args.debug)

    try:
        prefs = load_preferences(args)
        if args.command == 'inspect':
            return cmd_inspect(args, prefs)
        elif args.command == 'import':
            return cmd_import(args, prefs)
        else:
            parser.print_help()
            return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled")
        return 130
    except TBImportError as e:
        print(f"\nError: {e.message}")
        if args.debug:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""
Import session - drives one spreadsheet import from file to ledger.

States:
    IDLE -> SHEET_LOADED -> MAPPING_GUESSED -> MAPPING_CONFIRMED -> MERGED -> IDLE

Confirming a mapping runs validation; any blocking issue raises
MappingValidationError and the session stays in MAPPING_GUESSED. Warnings
never block but are kept on the session for the host to display.

Usage:
    session = ImportSession(ImportPreferences.load(config_path))
    session.load_file(Path("tb.xlsx"))
    session.guess_mapping()
    session.confirm()
    result = session.merge()
    ledger = session.ledger
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from tbimport.core.exceptions import InvalidStateError, MappingValidationError
from tbimport.core.models import ColumnMapping, ImportMode, ImportState, SheetFrame
from tbimport.core.preferences import ImportPreferences
from tbimport.parsers.column_resolver import guess_mapping
from tbimport.parsers.sheet_loader import DecodeTracker, choose_sheet, frame_from_rows, read_workbook
from tbimport.parsers.validators import ImportValidation, validate_import
from tbimport.services.ledger_merge import Ledger, MergeResult, upsert_rows
from tbimport.services.reconciliation import BuildResult, build_incoming_rows, normalize_extracted_rows

logger = logging.getLogger(__name__)

_MAPPING_STATES = (ImportState.MAPPING_GUESSED, ImportState.MAPPING_CONFIRMED)


class ImportSession:
    """One trial balance import against a long-lived ledger."""

    def __init__(self, preferences: Optional[ImportPreferences] = None, ledger: Optional[Ledger] = None):
        self.preferences = preferences or ImportPreferences()
        self.ledger = ledger or Ledger()
        self.state = ImportState.IDLE
        self.frame: Optional[SheetFrame] = None
        self.mapping: Optional[ColumnMapping] = None
        self.validation: Optional[ImportValidation] = None
        self.last_merge: Optional[MergeResult] = None
        self._sheets: Dict[str, List[List[Any]]] = {}
        self._decodes = DecodeTracker()

    def _require(self, attempted: str, *allowed: ImportState) -> None:
        if self.state not in allowed:
            raise InvalidStateError(self.state.value, attempted)

    def _clear_import(self) -> None:
        self.frame = None
        self.mapping = None
        self.validation = None
        self._sheets = {}

    @property
    def sheet_names(self) -> Tuple[str, ...]:
        return tuple(self._sheets)

    # Sheet loading

    def begin_decode(self) -> int:
        """Register a file selection; returns the request id to complete it with."""
        return self._decodes.begin()

    def complete_decode(
        self,
        request_id: int,
        sheets: Mapping[str, Sequence[Sequence[Any]]],
        sheet_name: Optional[str] = None,
    ) -> Optional[SheetFrame]:
        """
        Accept decoded sheets for a file selection.

        Returns None (and leaves the session untouched) when a newer file was
        selected after request_id was issued.
        """
        if self._decodes.accept(request_id, sheets) is None:
            return None

        self._clear_import()
        self._sheets = {name: list(rows) for name, rows in sheets.items()}
        return self.select_sheet(sheet_name if sheet_name is not None else self.preferences.sheet_name)

    def load_file(
        self,
        source: Union[str, Path, bytes],
        sheet_name: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> Optional[SheetFrame]:
        """
        Decode a spreadsheet and move to SHEET_LOADED.

        Loading a file is allowed from any state; it abandons the import in
        progress but never touches the ledger.

        Raises:
            SheetLoadError: File cannot be decoded or the sheet is missing
        """
        request_id = self.begin_decode()
        sheets = read_workbook(source, filename)
        return self.complete_decode(request_id, sheets, sheet_name)

    def select_sheet(self, sheet_name: Optional[str] = None) -> SheetFrame:
        """Switch to another sheet of the loaded workbook."""
        if not self._sheets:
            raise InvalidStateError(self.state.value, "select a sheet")

        max_scan = self.preferences.header_scan_rows
        active = choose_sheet(self._sheets, sheet_name, max_scan)
        frame = frame_from_rows(self._sheets[active], active, list(self._sheets), max_scan)
        self.load_frame(frame, keep_sheets=True)
        return frame

    def load_frame(self, frame: SheetFrame, keep_sheets: bool = False) -> SheetFrame:
        """Start an import from an already decoded SheetFrame."""
        if not keep_sheets:
            self._clear_import()
        self.frame = frame
        self.mapping = None
        self.validation = None
        self.state = ImportState.SHEET_LOADED
        logger.info(f"Sheet '{frame.active_sheet}' loaded with {len(frame.rows)} data rows")
        return frame

    # Mapping

    def guess_mapping(self) -> ColumnMapping:
        """Guess the default column mapping for the loaded sheet."""
        self._require("guess mapping", ImportState.SHEET_LOADED, *_MAPPING_STATES)
        self.mapping = guess_mapping(
            self.frame.headers,
            self.frame.rows,
            self.preferences.profile_sample_rows,
        )
        self.validation = None
        self.state = ImportState.MAPPING_GUESSED
        return self.mapping

    def update_mapping(self, **changes: Optional[int]) -> ColumnMapping:
        """
        Override mapped columns, e.g. update_mapping(previous_debit=None).

        Any confirmed mapping goes back to MAPPING_GUESSED.
        """
        self._require("update mapping", *_MAPPING_STATES)
        self.mapping = self.mapping.update(**changes)
        self.validation = None
        self.state = ImportState.MAPPING_GUESSED
        return self.mapping

    def set_import_mode(self, mode: Union[ImportMode, str]) -> None:
        self.preferences.import_mode = ImportMode(mode)

    def set_group_duplicates(self, enabled: bool) -> None:
        self.preferences.group_duplicates_to_notes = bool(enabled)

    # Preview, confirm, merge

    def build_rows(self) -> BuildResult:
        """Parse every data row with the current mapping and preferences."""
        self._require("build rows", *_MAPPING_STATES)
        prefs = self.preferences
        return build_incoming_rows(
            self.frame,
            self.mapping,
            mode=prefs.import_mode,
            policy=prefs.dual_sided_policy,
            aliases=prefs.account_aliases,
            threshold=prefs.zero_threshold,
        )

    def preview(self) -> Tuple[BuildResult, ImportValidation]:
        """Parse and validate without changing state."""
        build_result = self.build_rows()
        prefs = self.preferences
        validation = validate_import(
            self.frame,
            self.mapping,
            prefs.import_mode,
            build_result,
            prefs.balance_tolerance,
            prefs.imbalance_threshold,
        )
        return build_result, validation

    def confirm(self) -> ImportValidation:
        """
        Validate and confirm the mapping.

        Raises:
            MappingValidationError: The mapping has blocking issues
        """
        self._require("confirm mapping", ImportState.MAPPING_GUESSED)
        _, validation = self.preview()
        self.validation = validation
        if validation.has_blocking:
            raise MappingValidationError(validation.blocking)

        for issue in validation.warnings + validation.infos:
            logger.warning(f"Import issue: {issue.message}")
        self.state = ImportState.MAPPING_CONFIRMED
        return validation

    def merge(self) -> MergeResult:
        """Merge the confirmed import into the ledger."""
        self._require("merge", ImportState.MAPPING_CONFIRMED)
        build_result = self.build_rows()
        return self._merge(build_result.rows)

    def merge_extracted(self, records: Iterable[Mapping[str, Any]]) -> Tuple[MergeResult, BuildResult]:
        """
        Merge rows returned by document extraction.

        The records skip header and column detection but pass through the same
        normalization, year reconciliation and merge as spreadsheet rows.
        """
        self._require("merge extracted rows", ImportState.IDLE, ImportState.MERGED)
        prefs = self.preferences
        build_result = normalize_extracted_rows(
            records,
            mode=prefs.import_mode,
            policy=prefs.dual_sided_policy,
            aliases=prefs.account_aliases,
            threshold=prefs.zero_threshold,
        )
        return self._merge(build_result.rows), build_result

    def _merge(self, rows) -> MergeResult:
        result = upsert_rows(self.ledger, rows, self.preferences.group_duplicates_to_notes)
        self.ledger = result.ledger
        self.last_merge = result
        self.state = ImportState.MERGED
        return result

    def reset(self) -> None:
        """Back to IDLE; the ledger is kept."""
        self._clear_import()
        self.state = ImportState.IDLE

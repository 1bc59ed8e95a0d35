"""
Spreadsheet decoding.

Reads .xlsx/.xlsm (openpyxl), .xls (xlrd) and .csv files through pandas with
header=None so every cell is kept raw, picks the sheet to import, strips the
detected header and produces an immutable SheetFrame.
"""

import csv
import io
import logging
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from tbimport.core.exceptions import SheetLoadError
from tbimport.core.models import SheetFrame
from tbimport.parsers.header_detector import (
    MAX_SCAN_ROWS,
    detect_header_row,
    extract_table,
    score_header_row,
)

logger = logging.getLogger(__name__)

EXCEL_ENGINES = {
    ".xlsx": "openpyxl",
    ".xlsm": "openpyxl",
    ".xls": "xlrd",
}
CSV_SUFFIXES = {".csv", ".txt"}
SUPPORTED_SUFFIXES = set(EXCEL_ENGINES) | CSV_SUFFIXES

CSV_SHEET_NAME = "Sheet1"

# Sheet names that look like a trial balance win ties
_PREFERRED_SHEET_TOKENS = ("trial", "tb")

Source = Union[str, Path, bytes]


def _clean_cell(value: Any) -> Any:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return value
    if isinstance(value, str) and not value.strip():
        return None
    return value


def dataframe_to_rows(df: pd.DataFrame) -> List[List[Any]]:
    """Convert a header=None DataFrame into a list of raw cell rows (NaN -> None)."""
    return [[_clean_cell(value) for value in row] for row in df.itertuples(index=False, name=None)]


def _suffix(source: Source, filename: Optional[str]) -> str:
    name = filename if filename is not None else (None if isinstance(source, bytes) else str(source))
    if not name:
        raise SheetLoadError("A file name is required to decode raw bytes")
    return Path(name).suffix.lower()


def _handle(source: Source):
    return io.BytesIO(source) if isinstance(source, bytes) else source


def _read_csv(source: Source) -> pd.DataFrame:
    if isinstance(source, bytes):
        text = source.decode("utf-8-sig")
    else:
        text = Path(source).read_text(encoding="utf-8-sig")

    # Title rows are narrower than the table; size the frame to the widest row
    width = max((len(record) for record in csv.reader(io.StringIO(text))), default=0)
    if width == 0:
        return pd.DataFrame()
    return pd.read_csv(
        io.StringIO(text),
        header=None,
        names=list(range(width)),
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=False,
    )


def read_workbook(source: Source, filename: Optional[str] = None) -> Dict[str, List[List[Any]]]:
    """
    Decode every sheet of a workbook into raw cell rows.

    Args:
        source: File path or the raw file bytes
        filename: Original file name (required when source is bytes)

    Returns:
        Ordered {sheet_name: rows}

    Raises:
        SheetLoadError: Unsupported extension or unreadable file
    """
    suffix = _suffix(source, filename)
    label = filename or str(source if not isinstance(source, bytes) else "<bytes>")

    if suffix not in SUPPORTED_SUFFIXES:
        raise SheetLoadError(f"Unsupported file type: {suffix or '(none)'}", file_path=label)

    try:
        if suffix in CSV_SUFFIXES:
            return {CSV_SHEET_NAME: dataframe_to_rows(_read_csv(source))}

        sheets = pd.read_excel(
            _handle(source),
            sheet_name=None,
            header=None,
            engine=EXCEL_ENGINES[suffix],
        )
    except FileNotFoundError as e:
        raise SheetLoadError(f"File not found: {label}", file_path=label) from e
    except Exception as e:
        raise SheetLoadError(f"Failed to read {label}: {str(e)}", file_path=label) from e

    logger.debug(f"Decoded {len(sheets)} sheet(s) from {label}")
    return {str(name): dataframe_to_rows(df) for name, df in sheets.items()}


def list_sheets(source: Source, filename: Optional[str] = None) -> List[str]:
    """Return the sheet names of a workbook (a CSV has one sheet)."""
    return list(read_workbook(source, filename))


def _sheet_rank(name: str, rows: Sequence[Sequence[Any]], max_scan: int) -> Tuple[float, int]:
    header_index = detect_header_row(rows, max_scan)
    score = score_header_row(rows, header_index).score if header_index is not None else float("-inf")
    tokens = set(re.split(r"[^a-z]+", name.lower()))
    preferred = int(any(token in tokens for token in _PREFERRED_SHEET_TOKENS))
    return score, preferred


def choose_sheet(
    sheets: Dict[str, Sequence[Sequence[Any]]],
    requested: Optional[str] = None,
    max_scan: int = MAX_SCAN_ROWS,
) -> str:
    """
    Pick the sheet to import.

    The requested sheet when given, else the sheet whose header row scores
    highest (trial-balance-like names win ties), else the first sheet.
    """
    if not sheets:
        raise SheetLoadError("Workbook contains no sheets")
    if requested is not None:
        if requested not in sheets:
            raise SheetLoadError(
                f"Sheet '{requested}' not found (available: {', '.join(sheets)})",
                code="SHEET_NOT_FOUND",
            )
        return requested

    names = list(sheets)
    best = max(names, key=lambda n: (_sheet_rank(n, sheets[n], max_scan), -names.index(n)))
    logger.debug(f"Selected sheet '{best}' of {names}")
    return best


def frame_from_rows(
    rows: Sequence[Sequence[Any]],
    sheet_name: str = CSV_SHEET_NAME,
    sheet_names: Optional[Sequence[str]] = None,
    max_scan: int = MAX_SCAN_ROWS,
) -> SheetFrame:
    """Detect the header of raw rows and build a SheetFrame."""
    headers, data_rows, header_index, data_start = extract_table(list(rows), max_scan)
    return SheetFrame(
        sheet_names=tuple(sheet_names) if sheet_names else (sheet_name,),
        active_sheet=sheet_name,
        headers=headers,
        rows=data_rows,
        header_row_index=header_index,
        data_start_index=data_start,
    )


def load_frame(
    source: Source,
    sheet_name: Optional[str] = None,
    filename: Optional[str] = None,
    max_scan: int = MAX_SCAN_ROWS,
) -> SheetFrame:
    """
    Decode a file and return the SheetFrame of the selected sheet.

    Raises:
        SheetLoadError: File cannot be read or the sheet does not exist
    """
    sheets = read_workbook(source, filename)
    active = choose_sheet(sheets, sheet_name, max_scan)
    frame = frame_from_rows(sheets[active], active, list(sheets), max_scan)
    logger.info(
        f"Loaded sheet '{active}': {len(frame.rows)} data rows, "
        f"header row {frame.header_row_index}"
    )
    return frame


class DecodeTracker:
    """
    Guards against stale decodes.

    Every decode request gets a monotonically increasing id; only the result
    of the most recent request may be accepted, so a slow decode of an older
    file can never replace the frame of a newer selection.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._latest = 0

    @property
    def latest(self) -> int:
        with self._lock:
            return self._latest

    def begin(self) -> int:
        """Register a new decode request and return its id."""
        with self._lock:
            self._latest += 1
            return self._latest

    def is_current(self, request_id: int) -> bool:
        with self._lock:
            return request_id == self._latest

    def accept(self, request_id: int, result: Any) -> Optional[Any]:
        """Return result if request_id is still the latest request, else None."""
        if not self.is_current(request_id):
            logger.debug(f"Discarding stale decode {request_id} (latest {self.latest})")
            return None
        return result

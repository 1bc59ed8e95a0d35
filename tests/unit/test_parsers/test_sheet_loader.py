"""
Unit tests for spreadsheet decoding and sheet selection.
"""

import pytest

from tbimport.core.exceptions import SheetLoadError
from tbimport.parsers.sheet_loader import (
    DecodeTracker,
    choose_sheet,
    frame_from_rows,
    list_sheets,
    load_frame,
    read_workbook,
)


class TestReadWorkbook:
    """Tests for xlsx/csv decoding."""

    def test_xlsx_sheets_and_blank_cells(self, write_xlsx, titled_sheet_rows):
        path = write_xlsx({"Trial Balance": titled_sheet_rows})

        sheets = read_workbook(path)

        assert list(sheets) == ["Trial Balance"]
        rows = sheets["Trial Balance"]
        assert rows[0][0] == "ABC Trading LLC"
        assert rows[1] == [None, None, None]
        assert rows[3] == ["Account", "Debit", "Credit"]
        assert rows[4][1] == 1500
        assert rows[4][2] is None

    def test_xlsx_from_bytes(self, write_xlsx, titled_sheet_rows):
        path = write_xlsx({"TB": titled_sheet_rows})

        sheets = read_workbook(path.read_bytes(), filename="upload.xlsx")

        assert list(sheets) == ["TB"]

    def test_csv_with_narrow_title_rows(self, write_csv):
        path = write_csv(
            "Trial Balance\n"
            "\n"
            "Account,Debit,Credit\n"
            'Cash,"1,000.00",\n'
            'Capital,,"1,000.00"\n'
        )

        rows = read_workbook(path)["Sheet1"]

        assert rows[0] == ["Trial Balance", None, None]
        assert rows[1] == [None, None, None]
        assert rows[3] == ["Cash", "1,000.00", None]

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "tb.pdf"
        path.write_bytes(b"%PDF")
        with pytest.raises(SheetLoadError):
            read_workbook(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(SheetLoadError) as exc_info:
            read_workbook(tmp_path / "missing.xlsx")
        assert exc_info.value.code == "SHEET_LOAD_ERROR"

    def test_bytes_need_filename(self):
        with pytest.raises(SheetLoadError):
            read_workbook(b"data")

    def test_list_sheets(self, write_xlsx, titled_sheet_rows):
        path = write_xlsx({"Cover": [["Report"]], "TB": titled_sheet_rows})
        assert list_sheets(path) == ["Cover", "TB"]


class TestChooseSheet:
    """Tests for sheet selection."""

    def test_best_header_wins(self, titled_sheet_rows):
        sheets = {"Cover": [["Annual report"], ["Prepared by finance"]], "Data": titled_sheet_rows}
        assert choose_sheet(sheets) == "Data"

    def test_trial_name_breaks_tie(self, titled_sheet_rows):
        sheets = {"Copy": titled_sheet_rows, "Trial Balance": titled_sheet_rows}
        assert choose_sheet(sheets) == "Trial Balance"

    def test_first_sheet_when_no_header(self):
        sheets = {"One": [["x"]], "Two": [["y"]]}
        assert choose_sheet(sheets) == "One"

    def test_requested_sheet(self, titled_sheet_rows):
        sheets = {"Cover": [["x"]], "Data": titled_sheet_rows}
        assert choose_sheet(sheets, "Cover") == "Cover"

    def test_requested_sheet_missing(self):
        with pytest.raises(SheetLoadError) as exc_info:
            choose_sheet({"Data": []}, "Other")
        assert exc_info.value.code == "SHEET_NOT_FOUND"

    def test_empty_workbook(self):
        with pytest.raises(SheetLoadError):
            choose_sheet({})


class TestLoadFrame:
    """Tests for load_frame and frame_from_rows."""

    def test_load_frame_xlsx(self, write_xlsx, titled_sheet_rows):
        path = write_xlsx({"Cover": [["Annual report"]], "TB": titled_sheet_rows})

        frame = load_frame(path)

        assert frame.active_sheet == "TB"
        assert frame.sheet_names == ("Cover", "TB")
        assert frame.headers == ("Account", "Debit", "Credit")
        assert frame.header_row_index == 3
        assert frame.data_start_index == 4
        assert len(frame.rows) == 5
        assert frame.rows[0][0] == "Cash on Hand"

    def test_load_frame_csv(self, write_csv):
        path = write_csv("Account,Debit,Credit\nCash,100,\nCapital,,100\n")

        frame = load_frame(path)

        assert frame.active_sheet == "Sheet1"
        assert frame.headers == ("Account", "Debit", "Credit")
        assert frame.rows[1] == ("Capital", None, "100")

    def test_frame_from_rows_composite(self, composite_sheet_rows):
        frame = frame_from_rows(composite_sheet_rows, "TB")

        assert frame.headers == ("2024 Debit", "2024 Credit", "2023 Debit", "2023 Credit")
        assert frame.header_row_index == 7
        assert len(frame.rows) == 2
        assert frame.has_detected_header


class TestDecodeTracker:
    """Tests for the stale decode guard."""

    def test_latest_result_accepted(self):
        tracker = DecodeTracker()
        request = tracker.begin()
        assert tracker.accept(request, "frame") == "frame"

    def test_stale_result_discarded(self):
        tracker = DecodeTracker()
        older = tracker.begin()
        newer = tracker.begin()

        assert tracker.accept(older, "old frame") is None
        assert tracker.accept(newer, "new frame") == "new frame"

    def test_ids_increase(self):
        tracker = DecodeTracker()
        ids = [tracker.begin() for _ in range(3)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 3
        assert tracker.latest == ids[-1]

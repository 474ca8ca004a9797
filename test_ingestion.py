from datetime import datetime
from unittest.mock import patch

import pytest

import ingestion
from conftest import build_xls_workbook
from ingestion import (
    MAX_FILE_SIZE,
    Ingestor,
    NoWorksheetError,
    cell_text,
    has_allowed_extension,
    number_string,
    preview_text,
)
from models import SheetCell, UploadedFile
from utils.result import ErrorKind


class TestCellText:
    """
    Tests for the cell text stored in the grid.
    """

    @pytest.mark.parametrize(
        "cell, expected",
        [
            (None, ""),
            (SheetCell("n", 30.0, "General"), "30"),
            (SheetCell("n", 2.5, "General"), "2.5"),
            (SheetCell("n", 0.1 + 0.2, "0.00"), "0.30000000000000004"),
            (SheetCell("n", 1.5, "# ?/?"), "1 1/2"),
            (SheetCell("d", datetime(2024, 1, 15), "mm/dd/yyyy"), "01/15/2024"),
            (SheetCell("d", datetime(2024, 1, 15), "yyyy-mm-dd"), "2024-01-15"),
            (SheetCell("d", datetime(2024, 1, 15, 9, 30), "yyyy-mm-dd h:mm"), "2024-01-15 09:30:00"),
            (SheetCell("s", "a/b"), "a/b"),
            (SheetCell("s", "hello"), "hello"),
            (SheetCell("e", "#N/A"), "#N/A"),
            (SheetCell("b", False), "FALSE"),
        ],
        ids=["absent", "integral-float", "float", "full-precision", "fraction-keeps-slash",
             "slashed-date", "dashed-date", "datetime", "text-with-slash", "text", "error", "boolean"]
    )
    def test_cell_text_rule(self, cell, expected):
        """
        Test that slash-containing display text wins, numbers keep full
        precision, dates use their ISO form and other cells their display text.
        """
        assert cell_text(cell) == expected

    def test_preview_text_renders_dates_as_iso(self):
        """
        Test that preview text ignores the date format.
        """
        cell = SheetCell("d", datetime(2024, 1, 15, 10, 0), "mm/dd/yyyy")
        assert preview_text(cell) == "2024-01-15"

    def test_preview_text_for_other_cells(self):
        assert preview_text(SheetCell("n", 42, "General")) == "42"
        assert preview_text(None) == ""

    @pytest.mark.parametrize(
        "value, expected",
        [(7, "7"), (7.0, "7"), (-3.25, "-3.25"), (1e21, "1e+21")],
        ids=["int", "integral-float", "negative", "huge"]
    )
    def test_number_string(self, value, expected):
        assert number_string(value) == expected


class TestCheckUpload:
    """
    Tests for the type and size checks done before decoding.
    """

    @pytest.mark.parametrize(
        "filename, expected",
        [
            ("report.xlsx", True),
            ("REPORT.XLSX", True),
            ("legacy.xls", True),
            ("data.csv", False),
            ("archive.xlsx.zip", False),
            ("", False),
        ],
        ids=["xlsx", "upper-case", "xls", "csv", "double-extension", "empty"]
    )
    def test_allowed_extensions(self, filename, expected):
        assert has_allowed_extension(filename) is expected

    def test_invalid_type_is_rejected(self):
        """
        Test that a non-Excel file fails with InvalidFileType naming the file.
        """
        result = Ingestor.check_upload(UploadedFile("data.csv", b"a,b", 3))

        assert result.is_failure()
        assert result.kind == ErrorKind.INVALID_FILE_TYPE
        assert "data.csv" in result.error
        assert result.status_code.value == 400

    def test_oversized_file_is_rejected(self):
        """
        Test that a file above the size cap fails with FileTooLarge.
        """
        result = Ingestor.check_upload(UploadedFile("big.xlsx", b"", MAX_FILE_SIZE + 1))

        assert result.kind == ErrorKind.FILE_TOO_LARGE
        assert result.error == "File too large: big.xlsx. Maximum size is 50MB."

    def test_file_at_cap_is_accepted(self):
        result = Ingestor.check_upload(UploadedFile("ok.xlsx", b"", MAX_FILE_SIZE))
        assert result.is_success()


class TestIngest:
    """
    Tests for decoding uploaded workbooks.
    """

    def test_reads_text_and_numbers(self, make_upload):
        """
        Test that a simple workbook decodes to a grid of cell text.
        """
        upload = make_upload("people.xlsx", [["ID", "Name", "Score"], [1, "Alice", 2.5], [2, "Bob", 30]])

        result = Ingestor.ingest(upload)

        assert result.is_success()
        assert result.data.grid == [["ID", "Name", "Score"], ["1", "Alice", "2.5"], ["2", "Bob", "30"]]
        assert result.data.sheet_name == "Sheet1"

    def test_absent_cells_become_empty_strings(self, make_upload):
        upload = make_upload("gaps.xlsx", [["A", "B", "C"], ["x", None, "z"]])

        grid = Ingestor.ingest(upload).data.grid

        assert grid[1] == ["x", "", "z"]

    def test_grid_starts_at_first_used_cell(self, make_upload):
        """
        Test that leading empty rows and columns are not part of the grid.
        """
        rows = [[None, None, None], [None, "ID", "Name"], [None, "1", "Alice"]]
        upload = make_upload("offset.xlsx", rows)

        grid = Ingestor.ingest(upload).data.grid

        assert grid == [["ID", "Name"], ["1", "Alice"]]

    def test_only_first_sheet_is_read(self, make_upload):
        upload = make_upload(
            "multi.xlsx",
            [["ID"], ["1"]],
            extra_sheets=[("Other", [["Ignored"], ["x"]])]
        )

        grid = Ingestor.ingest(upload).data.grid

        assert grid == [["ID"], ["1"]]

    def test_date_and_fraction_formats(self, make_upload):
        """
        Test the slash rule on real cells: slashed dates and fractions keep
        their display text, dashed dates use the ISO form.
        """
        rows = [["When", "Other", "Qty"], [datetime(2024, 1, 15), datetime(2024, 2, 1), 1.5]]
        formats = {(1, 0): "mm/dd/yyyy", (1, 1): "yyyy-mm-dd", (1, 2): "# ?/?"}
        upload = make_upload("formats.xlsx", rows, number_formats=formats)

        sheet = Ingestor.ingest(upload).data

        assert sheet.grid[1] == ["01/15/2024", "2024-02-01", "1 1/2"]
        assert sheet.preview_grid[1] == ["2024-01-15", "2024-02-01", "1 1/2"]

    def test_extension_matching_is_case_insensitive(self, make_upload):
        result = Ingestor.ingest(make_upload("UPPER.XLSX", [["ID"], ["1"]]))
        assert result.is_success()

    def test_xlsx_content_with_xls_extension(self, make_upload):
        """
        Test that the container is recognized from its bytes, not its name.
        """
        result = Ingestor.ingest(make_upload("renamed.xls", [["ID"], ["1"]]))
        assert result.is_success()
        assert result.data.grid == [["ID"], ["1"]]

    def test_ole2_content_is_read_as_legacy_xls(self):
        """
        Test that an OLE2 signature routes the file to the xls reader.
        """
        content = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1" + b"\x00" * 32
        upload = UploadedFile("legacy.xls", content, len(content))
        cells = [[SheetCell("s", "ID")], [SheetCell("n", 1.0)]]

        with patch.object(Ingestor, "_read_xls", return_value=("Sheet1", cells)) as read_xls:
            result = Ingestor.ingest(upload)

        read_xls.assert_called_once_with(content)
        assert result.data.grid == [["ID"], ["1"]]

    def test_legacy_xls_cells(self):
        """
        Test a real .xls file: number formats are looked up through the cell
        style, slashed display text is kept, numbers keep full precision.
        """
        rows = [
            ["ID", "When", "Slashed", "Qty", "Amount", "Flag"],
            [2, datetime(2024, 1, 15), datetime(2024, 1, 15), 1.5, 1234.5678, True],
        ]
        formats = {(1, 1): "yyyy-mm-dd", (1, 2): "mm/dd/yyyy", (1, 3): "# ?/?", (1, 4): "#,##0.00"}
        content = build_xls_workbook(rows, number_formats=formats, title="Legacy")

        result = Ingestor.ingest(UploadedFile("legacy.xls", content, len(content)))

        assert result.is_success()
        sheet = result.data
        assert sheet.sheet_name == "Legacy"
        assert sheet.grid == [
            ["ID", "When", "Slashed", "Qty", "Amount", "Flag"],
            ["2", "2024-01-15", "01/15/2024", "1 1/2", "1234.5678", "TRUE"],
        ]
        assert sheet.preview_grid[1][2] == "2024-01-15"

    def test_legacy_xls_blank_cells_are_absent(self):
        content = build_xls_workbook([["ID", None, "Name"], [1, None, "Alice"]])

        sheet = Ingestor.ingest(UploadedFile("gaps.xls", content, len(content))).data

        assert sheet.grid == [["ID", "", "Name"], ["1", "", "Alice"]]

    @pytest.mark.parametrize(
        "filename",
        ["corrupt.xlsx", "corrupt.xls"],
        ids=["xlsx", "xls"]
    )
    def test_undecodable_bytes(self, filename):
        """
        Test that garbage bytes fail with DecodeError instead of raising.
        """
        content = b"this is not a spreadsheet"
        with patch.object(ingestion.logger, "error"):
            result = Ingestor.ingest(UploadedFile(filename, content, len(content)))

        assert result.kind == ErrorKind.DECODE_ERROR
        assert result.error == f"Failed to process file: {filename}. Please ensure it's a valid Excel file."

    def test_workbook_without_worksheet(self, make_upload):
        upload = make_upload("nosheet.xlsx", [["ID"]])
        with patch.object(Ingestor, "read_first_sheet", side_effect=NoWorksheetError()):
            result = Ingestor.ingest(upload)

        assert result.kind == ErrorKind.NO_WORKSHEET
        assert result.error == "No worksheets found in file: nosheet.xlsx"

    def test_empty_worksheet(self, make_upload):
        result = Ingestor.ingest(make_upload("empty.xlsx", []))

        assert result.kind == ErrorKind.EMPTY_FILE
        assert result.error == "Empty file: empty.xlsx"

    def test_type_check_happens_before_decoding(self):
        with patch.object(Ingestor, "read_first_sheet") as read_first_sheet:
            result = Ingestor.ingest(UploadedFile("notes.txt", b"hello", 5))

        assert result.kind == ErrorKind.INVALID_FILE_TYPE
        read_first_sheet.assert_not_called()

import logging
import os
import time
from datetime import date, datetime, time as dt_time, timedelta
from io import BytesIO
from typing import List, Optional, Tuple

import openpyxl
import xlrd

from cell_format import date_string, display_text
from models import IngestedSheet, RawGrid, SheetCell, UploadedFile, iso_date
from utils.result import Result

logger = logging.getLogger(__name__)

# Upload limits
MAX_FILE_SIZE = 50 * 1024 * 1024
ALLOWED_EXTENSIONS = (".xlsx", ".xls")

_ZIP_SIGNATURE = b"PK\x03\x04"
_OLE2_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

# openpyxl names built-in format 14 after its ECMA-376 text; Excel displays it as m/d/yy
_BUILTIN_FORMAT_DISPLAY = {"mm-dd-yy": "m/d/yy"}

CellGrid = List[List[Optional[SheetCell]]]


class NoWorksheetError(Exception):
    """Raised when a workbook does not contain any worksheet."""


def has_allowed_extension(filename: str) -> bool:
    return os.path.splitext(filename or "")[1].lower() in ALLOWED_EXTENSIONS


def number_string(value) -> str:
    """Full-precision decimal string of a number, without a trailing .0"""
    if isinstance(value, int):
        return str(value)
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def cell_text(cell: Optional[SheetCell]) -> str:
    """
    Derive the text stored in the grid for one cell.

    Display text containing a "/" (fractions, slashed dates) is kept verbatim.
    Otherwise numbers keep their full precision and dates their ISO form,
    and everything else uses the display text.

    Args:
        cell: Decoded cell, or None for an absent cell

    Returns:
        Cell text, "" for absent cells
    """
    if cell is None:
        return ""
    display = display_text(cell)
    if "/" in display:
        return display
    if cell.kind == "n":
        return number_string(cell.value)
    if cell.kind == "d":
        return date_string(cell.value)
    if display:
        return display
    return "" if cell.value is None else str(cell.value)


def preview_text(cell: Optional[SheetCell]) -> str:
    """Like cell_text, but dates always render as YYYY-MM-DD."""
    if cell is not None and cell.kind == "d":
        return iso_date(cell.value)
    return cell_text(cell)


def _trim_to_used_range(cells: CellGrid) -> CellGrid:
    """Drop the empty rows and columns surrounding the populated cells."""
    used_rows = [r for r, row in enumerate(cells) if any(cell is not None for cell in row)]
    if not used_rows:
        return []
    used_cols = [
        c for row in cells for c, cell in enumerate(row) if cell is not None
    ]
    first_col, last_col = min(used_cols), max(used_cols)
    trimmed = []
    for row in cells[used_rows[0]:used_rows[-1] + 1]:
        padded = list(row) + [None] * (last_col + 1 - len(row))
        trimmed.append(padded[first_col:last_col + 1])
    return trimmed


class Ingestor:
    """
    Decodes uploaded spreadsheet bytes into a grid of cell text.

    Only the first worksheet of a workbook is read. Files are rejected before
    decoding when their extension is not allowed or they exceed MAX_FILE_SIZE.
    """

    @staticmethod
    def check_upload(upload: UploadedFile) -> Result[UploadedFile]:
        """
        Validate the file type and size of an upload without decoding it.

        Args:
            upload: Uploaded file

        Returns:
            Result containing the upload, or an InvalidFileType / FileTooLarge failure
        """
        if not has_allowed_extension(upload.filename):
            logger.warning("Rejected file type", extra={"upload_name": upload.filename})
            return Result.invalid_file_type(upload.filename)
        if upload.size > MAX_FILE_SIZE or len(upload.content) > MAX_FILE_SIZE:
            logger.warning(
                "Rejected oversized file",
                extra={"upload_name": upload.filename, "size": upload.size}
            )
            return Result.file_too_large(upload.filename)
        return Result.ok(upload)

    @staticmethod
    def ingest(upload: UploadedFile) -> Result[IngestedSheet]:
        """
        Decode the first worksheet of an uploaded file.

        Args:
            upload: Uploaded file

        Returns:
            Result containing the IngestedSheet, or a failure of kind
            InvalidFileType, FileTooLarge, NoWorksheet, DecodeError or EmptyFile
        """
        return Ingestor.check_upload(upload).and_then(Ingestor._decode)

    @staticmethod
    def _decode(upload: UploadedFile) -> Result[IngestedSheet]:
        try:
            start_time = time.perf_counter()
            sheet_name, cells = Ingestor.read_first_sheet(upload.content, upload.filename)
            read_time = time.perf_counter() - start_time
        except NoWorksheetError:
            logger.warning("Workbook has no worksheet", extra={"upload_name": upload.filename})
            return Result.no_worksheet(upload.filename)
        except Exception as e:
            logger.error(
                "Failed to decode spreadsheet",
                extra={
                    "upload_name": upload.filename,
                    "error": str(e),
                    "error_type": type(e).__name__
                }
            )
            return Result.decode_error(upload.filename)

        cells = _trim_to_used_range(cells)
        if not cells:
            logger.warning("Worksheet is empty", extra={"upload_name": upload.filename})
            return Result.empty_file(upload.filename)

        sheet = IngestedSheet(
            filename=upload.filename,
            sheet_name=sheet_name,
            grid=Ingestor.to_grid(cells),
            preview_grid=Ingestor.to_grid(cells, preview=True),
        )
        logger.info(
            "Read worksheet",
            extra={
                "upload_name": upload.filename,
                "sheet_name": sheet_name,
                "row_count": len(sheet.grid),
                "column_count": len(sheet.grid[0]),
                "read_time_seconds": f"{read_time:.2f}"
            }
        )
        return Result.ok(sheet)

    @staticmethod
    def to_grid(cells: CellGrid, preview: bool = False) -> RawGrid:
        convert = preview_text if preview else cell_text
        return [[convert(cell) for cell in row] for row in cells]

    @staticmethod
    def read_first_sheet(content: bytes, filename: str) -> Tuple[str, CellGrid]:
        """
        Read the cells of the first worksheet.

        The container is recognized from its signature; the extension decides
        only when the bytes carry neither a ZIP nor an OLE2 signature.

        Raises:
            NoWorksheetError: The workbook has no worksheet
            Exception: Whatever the underlying reader raises for corrupt data
        """
        if content.startswith(_ZIP_SIGNATURE):
            return Ingestor._read_xlsx(content)
        if content.startswith(_OLE2_SIGNATURE):
            return Ingestor._read_xls(content)
        if filename.lower().endswith(".xls"):
            return Ingestor._read_xls(content)
        return Ingestor._read_xlsx(content)

    @staticmethod
    def _read_xlsx(content: bytes) -> Tuple[str, CellGrid]:
        workbook = openpyxl.load_workbook(BytesIO(content), data_only=True)
        try:
            if not workbook.worksheets:
                raise NoWorksheetError()
            worksheet = workbook.worksheets[0]
            cells = [
                [Ingestor._from_openpyxl(cell) for cell in row]
                for row in worksheet.iter_rows(
                    min_row=1, max_row=worksheet.max_row,
                    min_col=1, max_col=worksheet.max_column
                )
            ]
            return worksheet.title, cells
        finally:
            workbook.close()

    @staticmethod
    def _from_openpyxl(cell) -> Optional[SheetCell]:
        value = cell.value
        if value is None:
            return None
        number_format = cell.number_format or "General"
        number_format = _BUILTIN_FORMAT_DISPLAY.get(number_format, number_format)
        if isinstance(value, bool):
            return SheetCell("b", value, number_format)
        if isinstance(value, (datetime, date, dt_time)):
            return SheetCell("d", value, number_format)
        if isinstance(value, timedelta):
            return SheetCell("s", str(value), number_format)
        if isinstance(value, (int, float)):
            return SheetCell("n", value, number_format)
        if cell.data_type == "e":
            return SheetCell("e", str(value), number_format)
        return SheetCell("s", str(value), number_format)

    @staticmethod
    def _read_xls(content: bytes) -> Tuple[str, CellGrid]:
        book = xlrd.open_workbook(file_contents=content, formatting_info=True)
        try:
            if book.nsheets == 0:
                raise NoWorksheetError()
            sheet = book.sheet_by_index(0)
            cells = [
                [Ingestor._from_xlrd(book, sheet, r, c) for c in range(sheet.ncols)]
                for r in range(sheet.nrows)
            ]
            return sheet.name, cells
        finally:
            book.release_resources()

    @staticmethod
    def _from_xlrd(book, sheet, row: int, col: int) -> Optional[SheetCell]:
        ctype = sheet.cell_type(row, col)
        if ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
            return None
        value = sheet.cell_value(row, col)
        number_format = "General"
        xf_index = sheet.cell_xf_index(row, col)
        if xf_index < len(book.xf_list):
            format_key = book.xf_list[xf_index].format_key
            if format_key in book.format_map:
                number_format = book.format_map[format_key].format_str or "General"

        if ctype == xlrd.XL_CELL_TEXT:
            return SheetCell("s", value, number_format)
        if ctype == xlrd.XL_CELL_BOOLEAN:
            return SheetCell("b", bool(value), number_format)
        if ctype == xlrd.XL_CELL_ERROR:
            return SheetCell("e", xlrd.error_text_from_code.get(value, "#ERR"), number_format)
        if ctype == xlrd.XL_CELL_DATE:
            try:
                moment = xlrd.xldate.xldate_as_datetime(value, book.datemode)
            except xlrd.xldate.XLDateError:
                return SheetCell("n", value, number_format)
            return SheetCell("d", moment, number_format)
        return SheetCell("n", value, number_format)

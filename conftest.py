"""
Pytest configuration file.

Puts the project's source directory on the Python path so the flat modules
import during test execution, and provides factories that build small Excel
workbooks in memory for the tests.
"""
import os
import sys
from io import BytesIO

import pytest
import xlwt
from openpyxl import Workbook

# Add the current directory to the Python path
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from models import UploadedFile  # noqa: E402


def build_workbook(rows, number_formats=None, title="Sheet1", extra_sheets=()):
    """
    Build an .xlsx workbook and return its bytes.

    Args:
        rows: List of rows; None leaves a cell absent
        number_formats: Optional {(row, col): format} using 0-based indexes
        title: Title of the first worksheet
        extra_sheets: Further worksheets as (title, rows) pairs
    """
    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = title
    for r, row in enumerate(rows, start=1):
        for c, value in enumerate(row, start=1):
            if value is not None:
                worksheet.cell(row=r, column=c, value=value)
    for (r, c), number_format in (number_formats or {}).items():
        worksheet.cell(row=r + 1, column=c + 1).number_format = number_format
    for sheet_title, sheet_rows in extra_sheets:
        sheet = workbook.create_sheet(sheet_title)
        for row in sheet_rows:
            sheet.append(row)
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def build_xls_workbook(rows, number_formats=None, title="Sheet1"):
    """
    Build a legacy .xls workbook and return its bytes.

    Args:
        rows: List of rows; None leaves a cell absent
        number_formats: Optional {(row, col): format} using 0-based indexes
        title: Title of the worksheet
    """
    workbook = xlwt.Workbook()
    worksheet = workbook.add_sheet(title)
    number_formats = number_formats or {}
    for r, row in enumerate(rows):
        for c, value in enumerate(row):
            if value is None:
                continue
            if (r, c) in number_formats:
                worksheet.write(r, c, value, xlwt.easyxf(num_format_str=number_formats[(r, c)]))
            else:
                worksheet.write(r, c, value)
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def make_workbook():
    """Fixture returning the workbook builder."""
    return build_workbook


@pytest.fixture
def make_upload():
    """Fixture returning a builder of in-memory UploadedFile objects."""
    def _make_upload(filename, rows=None, content=None, **kwargs):
        if content is None:
            content = build_workbook(rows or [], **kwargs)
        return UploadedFile(filename=filename, content=content, size=len(content))
    return _make_upload

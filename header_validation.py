"""
Header extraction and cross-file header consistency checks.

Headers are compared after normalization (accents, case and surrounding
whitespace ignored). When two files disagree on their headers, the first
data row serves as a fallback: identical first rows mean the files very
likely carry the same columns under slightly different names, so the file is
accepted with an advisory instead of being rejected.
"""
import logging
from typing import List, Optional

from models import HeaderColumn, RawGrid, Severity, ValidationIssue
from utils.result import ErrorKind
from utils.text import normalize_key

logger = logging.getLogger(__name__)

ADVISORY_MESSAGE = (
    "Column headers differ (case/accents/empty columns), but first data row is identical. File accepted."
)
STRUCTURE_MESSAGE = "Column structure differs from the first file."
FIRST_ROW_MESSAGE = "First data row also differs from the first file."
NO_HEADERS_MESSAGE = "No column headers found."


def extract_headers(grid: RawGrid) -> List[HeaderColumn]:
    """
    Read the header row (row 0) of a grid.

    Blank header cells are left out of the list, but every header keeps the
    index of the column it came from so data cells stay aligned.

    Args:
        grid: Cell text of the worksheet

    Returns:
        Non-blank, trimmed headers in column order
    """
    if not grid:
        return []
    return [
        HeaderColumn(name=text.strip(), index=index)
        for index, text in enumerate(grid[0])
        if text.strip()
    ]


def project_row(row: List[str], headers: List[HeaderColumn]) -> List[str]:
    """Cells of a row at the header columns, "" where the row is short."""
    return [row[header.index] if header.index < len(row) else "" for header in headers]


def first_data_row(grid: RawGrid, headers: List[HeaderColumn]) -> List[str]:
    """Row 1 projected onto the header columns, or [] when the grid has no data row."""
    if len(grid) < 2:
        return []
    return project_row(grid[1], headers)


class HeaderValidator:
    """
    Compares each file of a batch against the first file checked.

    One instance is created per batch; the first file passed to check()
    becomes the reference for every later file.
    """

    def __init__(self):
        self.reference_headers: Optional[List[str]] = None
        self.reference_first_row: Optional[List[str]] = None
        self.reference_filename: Optional[str] = None

    @property
    def has_reference(self) -> bool:
        return self.reference_headers is not None

    def check(self, filename: str, headers: List[HeaderColumn], first_row: List[str]) -> List[ValidationIssue]:
        """
        Validate one file's headers against the batch reference.

        Args:
            filename: Name of the file, for logging
            headers: Headers extracted from the file
            first_row: First data row projected onto the headers

        Returns:
            Issues found; empty when the file is consistent
        """
        if not headers:
            logger.warning("File has no column headers", extra={"upload_name": filename})
            return [ValidationIssue(NO_HEADERS_MESSAGE, Severity.FATAL, ErrorKind.NO_HEADERS)]

        normalized_headers = [normalize_key(header.name) for header in headers]
        normalized_first_row = [normalize_key(cell) for cell in first_row]

        if not self.has_reference:
            self.reference_headers = normalized_headers
            self.reference_first_row = normalized_first_row
            self.reference_filename = filename
            logger.info(
                "Reference headers set",
                extra={"upload_name": filename, "headers": normalized_headers}
            )
            return []

        if normalized_headers == self.reference_headers:
            return []

        log_context = {
            "upload_name": filename,
            "reference_file": self.reference_filename,
            "headers": normalized_headers,
            "reference_headers": self.reference_headers
        }
        if normalized_first_row == self.reference_first_row:
            logger.info("Headers differ but first data row matches", extra=log_context)
            return [ValidationIssue(ADVISORY_MESSAGE, Severity.ADVISORY, ErrorKind.HEADER_MISMATCH_ADVISORY)]

        logger.warning("Column structure differs from reference", extra=log_context)
        return [
            ValidationIssue(STRUCTURE_MESSAGE, Severity.FATAL, ErrorKind.HEADER_MISMATCH),
            ValidationIssue(FIRST_ROW_MESSAGE, Severity.FATAL, ErrorKind.HEADER_MISMATCH),
        ]


def is_valid(issues: List[ValidationIssue]) -> bool:
    """A file is valid when none of its issues is fatal."""
    return not any(issue.is_fatal for issue in issues)

import logging
from datetime import date, datetime, timezone
from io import BytesIO
from typing import Dict, List, Optional

import pandas as pd
from openpyxl.utils import get_column_letter

from header_validation import HeaderValidator, extract_headers, first_data_row
from ingestion import Ingestor
from models import (
    SOURCE_FILE_FIELD,
    ConsolidatedWorkbook,
    HeaderColumn,
    IngestedSheet,
    Record,
    UploadedFile,
)
from utils.log_context import LogContext
from utils.result import Result
from utils.text import is_blank, natural_sort_key, normalize_key

logger = logging.getLogger(__name__)

CONSOLIDATED_SHEET_NAME = "Consolidated Data"
SOURCE_FILE_COLUMN = "Source File"
MAX_COLUMN_WIDTH = 50
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def consolidated_filename(today: Optional[date] = None) -> str:
    """Download name of a consolidated workbook, dated in UTC."""
    today = today or datetime.now(timezone.utc).date()
    return f"consolidated-excel-{today.isoformat()}.xlsx"


def build_records(sheet: IngestedSheet, headers: List[HeaderColumn], canonical_by_key: Dict[str, str]) -> List[Record]:
    """
    Turn the data rows of a sheet into records keyed by header.

    A header whose normalized form matches a canonical column is stored under
    the canonical name, so "name" in a later file fills the "Name" column.
    Wholly empty rows are skipped.

    Args:
        sheet: Ingested worksheet
        headers: Headers of the sheet
        canonical_by_key: Canonical column name by normalized key

    Returns:
        One record per non-blank data row, tagged with the source filename
    """
    canonical_names = set(canonical_by_key.values())
    keys = [
        header.name if header.name in canonical_names
        else canonical_by_key.get(normalize_key(header.name), header.name)
        for header in headers
    ]

    records = []
    for row in sheet.grid[1:]:
        if is_blank(row):
            continue
        record: Record = {}
        for key, header in zip(keys, headers):
            value = row[header.index] if header.index < len(row) else ""
            if value or key not in record:
                record[key] = value
        record[SOURCE_FILE_FIELD] = sheet.filename
        records.append(record)
    return records


def column_widths(df: pd.DataFrame) -> List[int]:
    """Width per column: longest text plus two characters, capped at MAX_COLUMN_WIDTH."""
    widths = []
    for column in df.columns:
        longest = max([len(str(column))] + [len(str(value)) for value in df[column]])
        widths.append(min(longest + 2, MAX_COLUMN_WIDTH))
    return widths


class Consolidator:
    """
    Merges uploaded spreadsheets into a single workbook.

    The first file decides the output columns. Any file that cannot be loaded
    fails the whole batch, since a partial merge has no meaning.
    """

    @staticmethod
    def consolidate(
        files: List[UploadedFile],
        include_source_file: bool = False,
        request_id: Optional[str] = None
    ) -> Result[ConsolidatedWorkbook]:
        """
        Consolidate a batch of uploaded files.

        Args:
            files: Uploaded files in the order they were sent
            include_source_file: Add a trailing "Source File" column
            request_id: Identifier used to correlate log lines

        Returns:
            Result containing the ConsolidatedWorkbook, or the first failure
        """
        log_context = {"request_id": request_id, "file_count": len(files)}
        try:
            with LogContext("consolidation", **log_context):
                return Consolidator._consolidate(files, include_source_file)
        except Exception as e:
            logger.exception("Unexpected error during consolidation", extra={**log_context, "error": str(e)})
            return Result.server_error("Internal server error during file processing")

    @staticmethod
    def _consolidate(files: List[UploadedFile], include_source_file: bool) -> Result[ConsolidatedWorkbook]:
        # Type and size are checked for the whole batch before anything is decoded
        for upload in files:
            check = Ingestor.check_upload(upload)
            if check.is_failure():
                return Result.fail(check.error, check.kind)

        validator = HeaderValidator()
        canonical: Optional[List[str]] = None
        canonical_by_key: Dict[str, str] = {}
        records: List[Record] = []

        for position, upload in enumerate(files):
            ingest_result = Ingestor.ingest(upload)
            if ingest_result.is_failure():
                return Result.fail(ingest_result.error, ingest_result.kind)
            sheet = ingest_result.data

            headers = extract_headers(sheet.grid)
            if not headers:
                logger.warning("No headers found", extra={"upload_name": upload.filename})
                return Result.no_headers(upload.filename)

            for issue in validator.check(upload.filename, headers, first_data_row(sheet.grid, headers)):
                logger.warning(
                    "Header check: %s", issue.message,
                    extra={"upload_name": upload.filename, "severity": issue.severity.value}
                )

            if canonical is None:
                canonical = list(dict.fromkeys(header.name for header in headers))
                for name in canonical:
                    canonical_by_key.setdefault(normalize_key(name), name)

            file_records = build_records(sheet, headers, canonical_by_key)
            if position == 0 and not file_records:
                logger.warning("First file has no data rows", extra={"upload_name": upload.filename})
                return Result.consolidation_failed(f"No data rows found in first file: {upload.filename}")

            logger.info(
                "Collected records",
                extra={"upload_name": upload.filename, "record_count": len(file_records)}
            )
            records.extend(file_records)

        table = Consolidator.build_table(records, canonical, include_source_file)
        workbook = ConsolidatedWorkbook(
            filename=consolidated_filename(),
            content=Consolidator.to_xlsx(table),
            columns=list(table.columns),
            row_count=len(table),
        )
        logger.info(
            "Consolidated workbook created",
            extra={"row_count": workbook.row_count, "columns": workbook.columns}
        )
        return Result.ok(workbook)

    @staticmethod
    def build_table(records: List[Record], columns: List[str], include_source_file: bool = False) -> pd.DataFrame:
        """
        Project records onto the canonical columns and sort them.

        Missing cells become "", columns outside the canonical list are
        dropped. Rows are sorted by the first column with a natural, stable
        ordering so ties keep their input order.

        Args:
            records: Records of all files in input order
            columns: Canonical column names
            include_source_file: Add a trailing "Source File" column

        Returns:
            DataFrame of strings
        """
        rows = [[record.get(column, "") for column in columns] for record in records]
        output_columns = list(columns)
        if include_source_file:
            output_columns.append(SOURCE_FILE_COLUMN)
            for row, record in zip(rows, records):
                row.append(record.get(SOURCE_FILE_FIELD, ""))

        if columns and rows:
            rows.sort(key=lambda row: natural_sort_key(row[0]))
        return pd.DataFrame(rows, columns=output_columns, dtype=object)

    @staticmethod
    def to_xlsx(table: pd.DataFrame) -> bytes:
        """Write the table to xlsx bytes with auto-sized columns."""
        buffer = BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            table.to_excel(writer, sheet_name=CONSOLIDATED_SHEET_NAME, index=False)
            worksheet = writer.sheets[CONSOLIDATED_SHEET_NAME]
            for position, width in enumerate(column_widths(table), start=1):
                worksheet.column_dimensions[get_column_letter(position)].width = width
        return buffer.getvalue()

import logging
from typing import Dict, List

from header_validation import HeaderValidator, extract_headers, first_data_row, is_valid, project_row
from ingestion import Ingestor
from models import IngestedSheet, PreviewEntry, PreviewResponse, PreviewSummary, UploadedFile
from utils.log_context import LogContext
from utils.result import ErrorKind
from utils.text import is_blank

logger = logging.getLogger(__name__)

SAMPLE_ROW_LIMIT = 5

# Per-file messages shown when a file cannot be loaded
PREVIEW_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.INVALID_FILE_TYPE: "Invalid file type. Only .xlsx and .xls files are supported.",
    ErrorKind.FILE_TOO_LARGE: "File too large. Maximum size is 50MB.",
    ErrorKind.NO_WORKSHEET: "No worksheets found in file.",
    ErrorKind.EMPTY_FILE: "File appears to be empty.",
    ErrorKind.DECODE_ERROR: "Failed to read file. Please ensure it's a valid Excel file.",
}


class Previewer:
    """
    Builds the review report shown before a consolidation.

    Files that cannot be loaded never abort the batch: each one becomes an
    invalid entry carrying a single message, and the remaining files are
    still previewed.
    """

    @staticmethod
    def preview(files: List[UploadedFile], request_id: str = None) -> PreviewResponse:
        """
        Preview a batch of uploaded files.

        Args:
            files: Uploaded files in the order they were sent
            request_id: Identifier used to correlate log lines

        Returns:
            PreviewResponse with one entry per file and a batch summary
        """
        validator = HeaderValidator()
        previews = []

        with LogContext("preview", request_id=request_id, file_count=len(files)):
            for upload in files:
                previews.append(Previewer.preview_file(upload, validator))

        summary = PreviewSummary(
            total_files=len(files),
            valid_files=sum(1 for entry in previews if entry.is_valid),
            total_rows=sum(entry.total_rows for entry in previews),
            all_columns=list(dict.fromkeys(column for entry in previews for column in entry.columns)),
        )
        logger.info(
            "Preview summary",
            extra={
                "request_id": request_id,
                "total_files": summary.total_files,
                "valid_files": summary.valid_files,
                "total_rows": summary.total_rows
            }
        )
        return PreviewResponse(previews=previews, summary=summary)

    @staticmethod
    def preview_file(upload: UploadedFile, validator: HeaderValidator) -> PreviewEntry:
        """
        Preview one file, checking its headers against the batch reference.

        Args:
            upload: Uploaded file
            validator: Header validator shared by the batch

        Returns:
            PreviewEntry for the file
        """
        ingest_result = Ingestor.ingest(upload)
        if ingest_result.is_failure():
            message = PREVIEW_MESSAGES.get(ingest_result.kind, ingest_result.error)
            return PreviewEntry(filename=upload.filename, is_valid=False, errors=[message])

        sheet: IngestedSheet = ingest_result.data
        headers = extract_headers(sheet.grid)
        issues = validator.check(upload.filename, headers, first_data_row(sheet.grid, headers))

        data_rows = [
            project_row(row, headers)
            for row in sheet.preview_grid[1:]
        ]
        data_rows = [row for row in data_rows if not is_blank(row)]
        names = [header.name for header in headers]
        sample_rows = [dict(zip(names, row)) for row in data_rows[:SAMPLE_ROW_LIMIT]]

        return PreviewEntry(
            filename=upload.filename,
            columns=names,
            sample_rows=sample_rows,
            total_rows=len(data_rows),
            is_valid=is_valid(issues),
            errors=[issue.message for issue in issues],
        )

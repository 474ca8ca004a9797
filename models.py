"""
Data models shared by the ingestion, validation, preview and consolidation steps.

Dataclasses describe the in-memory data flowing between steps; pydantic
models describe the JSON returned by the API.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field

from utils.result import ErrorKind

# A grid of cell text, rows x columns. Row 0 is the header row.
RawGrid = List[List[str]]

# Header -> cell text, plus the "_source_file" provenance field.
Record = Dict[str, str]

SOURCE_FILE_FIELD = "_source_file"


@dataclass
class UploadedFile:
    """
    One uploaded spreadsheet held in memory.

    Attributes:
        filename: Name given by the client
        content: Raw bytes (left empty when the upload exceeded the size cap)
        size: Size in bytes as read or declared
    """
    filename: str
    content: bytes
    size: int


@dataclass
class SheetCell:
    """
    A decoded worksheet cell.

    Attributes:
        kind: "s" text, "n" number, "d" date, "b" boolean, "e" error
        value: Underlying value (str, int/float, datetime/date/time, bool)
        number_format: Number-format code applied to the cell
    """
    kind: str
    value: Any
    number_format: str = "General"


@dataclass
class IngestedSheet:
    """First worksheet of an uploaded file as cell text: the grid and its preview rendering."""
    filename: str
    sheet_name: str
    grid: RawGrid = field(default_factory=list)
    preview_grid: RawGrid = field(default_factory=list)


@dataclass(frozen=True)
class HeaderColumn:
    """A non-blank header and the column index it was read from."""
    name: str
    index: int


class Severity(str, Enum):
    FATAL = "fatal"
    ADVISORY = "advisory"


@dataclass(frozen=True)
class ValidationIssue:
    message: str
    severity: Severity
    kind: ErrorKind

    @property
    def is_fatal(self) -> bool:
        return self.severity is Severity.FATAL


@dataclass
class ConsolidatedWorkbook:
    """Serialized result of a consolidation run."""
    filename: str
    content: bytes
    columns: List[str]
    row_count: int


def iso_date(value: Any) -> str:
    """Render a date or datetime as YYYY-MM-DD."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.isoformat()
    return str(value)


# Response models for the API

class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PreviewEntry(_CamelModel):
    """
    Preview of one uploaded file.

    Attributes:
        filename: Name of the uploaded file
        columns: Header row with blank headers removed
        sample_rows: Up to five non-blank data rows keyed by header
        total_rows: Number of non-blank data rows
        is_valid: False when the file failed to load or has a fatal issue
        errors: Fatal and advisory messages, in the order they were found
    """
    filename: str
    columns: List[str] = Field(default_factory=list)
    sample_rows: List[Dict[str, str]] = Field(default_factory=list, alias="sampleRows")
    total_rows: int = Field(default=0, alias="totalRows")
    is_valid: bool = Field(default=False, alias="isValid")
    errors: List[str] = Field(default_factory=list)


class PreviewSummary(_CamelModel):
    total_files: int = Field(alias="totalFiles")
    valid_files: int = Field(alias="validFiles")
    total_rows: int = Field(alias="totalRows")
    all_columns: List[str] = Field(alias="allColumns")


class PreviewResponse(_CamelModel):
    previews: List[PreviewEntry]
    summary: PreviewSummary


class ErrorResponse(BaseModel):
    error: str

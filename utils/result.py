from enum import Enum
from typing import Generic, TypeVar, Optional, Callable, Any, Dict, Union
from http import HTTPStatus

T = TypeVar('T')  # Generic type variable
U = TypeVar('U')  # Additional type variable for chained operations


class ErrorKind(str, Enum):
    """
    Failure categories produced while ingesting, validating and merging spreadsheets.

    Every kind except INTERNAL_ERROR is caused by the uploaded files themselves
    and is reported to the caller as a 400.
    """
    INVALID_FILE_TYPE = "InvalidFileType"
    FILE_TOO_LARGE = "FileTooLarge"
    NO_WORKSHEET = "NoWorksheet"
    EMPTY_FILE = "EmptyFile"
    NO_HEADERS = "NoHeaders"
    DECODE_ERROR = "DecodeError"
    HEADER_MISMATCH = "HeaderMismatch"
    HEADER_MISMATCH_ADVISORY = "HeaderMismatchAdvisory"
    CONSOLIDATION_FAILED = "ConsolidationFailed"
    INTERNAL_ERROR = "InternalError"

    @property
    def status_code(self) -> HTTPStatus:
        if self is ErrorKind.INTERNAL_ERROR:
            return HTTPStatus.INTERNAL_SERVER_ERROR
        return HTTPStatus.BAD_REQUEST


class Result(Generic[T]):
    """
    A generic result class that represents the outcome of an operation.

    Operations in this service return a Result instead of raising, so the
    preview endpoint can turn a failure into per-file data while the
    consolidate endpoint can turn it into an error response.

    Attributes:
        success (bool): Indicates if the operation was successful
        data (Optional[T]): The result data (only present when success is True)
        error (Optional[str]): Error message (only present when success is False)
        kind (Optional[ErrorKind]): Failure category (only present when success is False)
        status_code (HTTPStatus): HTTP status code derived from the kind unless given
    """
    def __init__(
        self,
        success: bool,
        data: Optional[T] = None,
        error: Optional[str] = None,
        kind: Optional[ErrorKind] = None,
        status_code: Optional[Union[int, HTTPStatus]] = None
    ):
        self.success = success
        self.data = data
        self.error = error
        self.kind = kind

        if status_code is None:
            if success:
                self.status_code = HTTPStatus.OK
            elif kind is not None:
                self.status_code = kind.status_code
            else:
                self.status_code = HTTPStatus.BAD_REQUEST
        elif isinstance(status_code, HTTPStatus):
            self.status_code = status_code
        else:
            self.status_code = HTTPStatus(status_code)

    @classmethod
    def ok(cls, data: T) -> "Result[T]":
        """
        Create a successful Result with the provided data.

        Args:
            data (T): The data to be wrapped in the Result

        Returns:
            Result[T]: A successful Result containing the provided data
        """
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, kind: ErrorKind) -> "Result[T]":
        """
        Create a failed Result with the provided error message and kind.

        Args:
            error (str): The error message describing the failure
            kind (ErrorKind): Failure category, which also decides the HTTP status

        Returns:
            Result[T]: A failed Result containing the error message
        """
        return cls(success=False, error=error, kind=kind)

    @classmethod
    def invalid_file_type(cls, filename: str) -> "Result[T]":
        return cls.fail(
            f"Invalid file type: {filename}. Only .xlsx and .xls files are supported.",
            ErrorKind.INVALID_FILE_TYPE
        )

    @classmethod
    def file_too_large(cls, filename: str) -> "Result[T]":
        return cls.fail(f"File too large: {filename}. Maximum size is 50MB.", ErrorKind.FILE_TOO_LARGE)

    @classmethod
    def no_worksheet(cls, filename: str) -> "Result[T]":
        return cls.fail(f"No worksheets found in file: {filename}", ErrorKind.NO_WORKSHEET)

    @classmethod
    def empty_file(cls, filename: str) -> "Result[T]":
        return cls.fail(f"Empty file: {filename}", ErrorKind.EMPTY_FILE)

    @classmethod
    def no_headers(cls, filename: str) -> "Result[T]":
        return cls.fail(f"No headers found in file: {filename}", ErrorKind.NO_HEADERS)

    @classmethod
    def decode_error(cls, filename: str) -> "Result[T]":
        return cls.fail(
            f"Failed to process file: {filename}. Please ensure it's a valid Excel file.",
            ErrorKind.DECODE_ERROR
        )

    @classmethod
    def consolidation_failed(cls, error: str) -> "Result[T]":
        return cls.fail(error, ErrorKind.CONSOLIDATION_FAILED)

    @classmethod
    def server_error(cls, error: str = "Internal server error") -> "Result[T]":
        """
        Create a failed Result with INTERNAL_SERVER_ERROR status code.

        Args:
            error (str, optional): The error message. Defaults to "Internal server error".

        Returns:
            Result[T]: A failed Result with 500 status code
        """
        return cls.fail(error, ErrorKind.INTERNAL_ERROR)

    def is_success(self) -> bool:
        return self.success

    def is_failure(self) -> bool:
        return not self.success

    def and_then(self, fn: Callable[[T], "Result[U]"]) -> "Result[U]":
        """
        Chain operations that return Result objects.

        If this Result is a failure, it short-circuits and returns a failure
        carrying the same error and kind. Otherwise the function is applied to
        the data and its Result is returned.

        Args:
            fn (Callable[[T], Result[U]]): Function that takes the success data and returns a new Result

        Returns:
            Result[U]: Either the original failure or the new Result from the function
        """
        if self.is_failure():
            return Result(success=False, error=self.error, kind=self.kind, status_code=self.status_code)
        return fn(self.data)  # type: ignore

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert a failed Result to the JSON error payload returned by the API.

        Successful results are wrapped as {"data": ...} for completeness.

        Returns:
            Dict[str, Any]: {"error": message} or {"data": data}
        """
        if self.is_success():
            return {"data": self.data}
        return {"error": self.error}

    def __str__(self) -> str:
        status_info = f"{self.status_code.value} {self.status_code.phrase}"
        if self.is_success():
            data_repr = str(self.data)
            # Truncate long data representations
            if len(data_repr) > 100:
                data_repr = f"{data_repr[:97]}..."
            return f"Success ({status_info}): {data_repr}"
        return f"Failure ({status_info}, {self.kind.value if self.kind else 'unknown'}): {self.error}"

    def __repr__(self) -> str:
        return (
            f"Result(success={self.success}, status_code={self.status_code!r}, "
            f"kind={self.kind!r}, data={self.data!r}, error={self.error!r})"
        )

from typing import Generic, TypeVar, Optional, Any, Dict, Union
from enum import Enum
from http import HTTPStatus

T = TypeVar('T')  # Generic type variable


class ErrorKind(str, Enum):
    """
    Classification of every way an upload request can fail.

    The decode-stage kinds are produced by the upload gate; PIPELINE_ERROR is
    attached to failures reported by the ingestion pipeline.
    """
    DECODE_LIMIT_EXCEEDED = "DecodeLimitExceeded"
    DECODE_OTHER_MULTER_ERROR = "DecodeOtherMulterError"
    DECODE_GENERIC_FAILURE = "DecodeGenericFailure"
    MISSING_FILE = "MissingFile"
    PIPELINE_ERROR = "PipelineError"


class Result(Generic[T]):
    """
    Outcome of an upload step: either success with data or a classified failure.

    A Result is built once, through one of the factory class methods, and is
    then only read. Failures carry an ErrorKind so the rendering stage can
    report what went wrong without inspecting the message text.

    Attributes:
        success (bool): Indicates if the operation was successful
        data (Optional[T]): The result data (only present when success is True)
        error (Optional[str]): Error message (only present when success is False)
        kind (Optional[ErrorKind]): Failure classification (only present when success is False)
        status_code (HTTPStatus): HTTP status code (default: 200 for success, 400 for failure)
    """
    def __init__(
        self,
        success: bool,
        data: Optional[T] = None,
        error: Optional[str] = None,
        status_code: Optional[Union[int, HTTPStatus]] = None,
        kind: Optional[ErrorKind] = None
    ):
        self.success = success
        self.data = data
        self.error = error
        self.kind = kind

        if status_code is None:
            self.status_code = HTTPStatus.OK if success else HTTPStatus.BAD_REQUEST
        else:
            self.status_code = HTTPStatus(int(status_code))

    @classmethod
    def ok(cls, data: T, status_code: Optional[Union[int, HTTPStatus]] = HTTPStatus.OK) -> "Result[T]":
        """
        Create a successful Result with the provided data.

        Args:
            data (T): The data to be wrapped in the Result
            status_code (Optional[Union[int, HTTPStatus]], optional): HTTP status code. Defaults to 200 OK.

        Returns:
            Result[T]: A successful Result containing the provided data
        """
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(
        cls,
        error: str,
        status_code: Optional[Union[int, HTTPStatus]] = HTTPStatus.BAD_REQUEST,
        kind: Optional[ErrorKind] = None
    ) -> "Result[T]":
        """
        Create a failed Result with the provided error message.

        Args:
            error (str): The error message describing the failure
            status_code (Optional[Union[int, HTTPStatus]], optional): HTTP status code. Defaults to 400 BAD_REQUEST.
            kind (Optional[ErrorKind], optional): Failure classification. Defaults to None.

        Returns:
            Result[T]: A failed Result containing the error message
        """
        return cls(success=False, error=error, status_code=status_code, kind=kind)

    @classmethod
    def not_found(cls, error: str = "Resource not found") -> "Result[T]":
        """Create a failed Result with NOT_FOUND status code."""
        return cls(success=False, error=error, status_code=HTTPStatus.NOT_FOUND)

    @classmethod
    def server_error(cls, error: str = "Internal server error") -> "Result[T]":
        """Create a failed Result with INTERNAL_SERVER_ERROR status code."""
        return cls(success=False, error=error, status_code=HTTPStatus.INTERNAL_SERVER_ERROR)

    def is_success(self) -> bool:
        return self.success

    def is_failure(self) -> bool:
        return not self.success

    def with_kind(self, kind: ErrorKind) -> "Result[T]":
        """
        Return a failure tagged with ``kind`` when it has no classification yet.

        Successful results and already classified failures are returned as-is,
        so the message and status code of the original failure are never changed.
        """
        if self.is_success() or self.kind is not None:
            return self
        return Result.fail(self.error or "", status_code=self.status_code, kind=kind)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert Result to a dictionary suitable for API responses.

        Returns:
            Dict[str, Any]: Dictionary containing status, status_code, data/error and kind
        """
        response = {
            "success": self.success,
            "status_code": self.status_code.value,
            "status": self.status_code.phrase
        }

        if self.is_success():
            response["data"] = self.data
        else:
            response["error"] = self.error
            response["kind"] = self.kind.value if self.kind is not None else None

        return response

    def __str__(self) -> str:
        status_info = f"{self.status_code.value} {self.status_code.phrase}"
        if self.is_success():
            data_repr = str(self.data)
            # Truncate long data representations
            if len(data_repr) > 100:
                data_repr = f"{data_repr[:97]}..."
            return f"Success ({status_info}): {data_repr}"
        kind = self.kind.value if self.kind is not None else "Unclassified"
        return f"Failure ({status_info}, {kind}): {self.error}"

    def __repr__(self) -> str:
        return (
            f"Result(success={self.success}, status_code={self.status_code!r}, "
            f"data={self.data!r}, error={self.error!r}, kind={self.kind!r})"
        )

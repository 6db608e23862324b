import pandas as pd
import logging
import time
import uuid
from typing import Any, BinaryIO, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from http import HTTPStatus
from utils.result import Result

logger = logging.getLogger(__name__)


class LogContext:
    """Context manager for tracking and logging operation metrics"""
    def __init__(self, operation_name: str, **kwargs):
        self.operation_name = operation_name
        self.start_time = None
        self.request_id = kwargs.get('request_id', str(uuid.uuid4())[:8])
        self.extra = kwargs

    def __enter__(self):
        self.start_time = time.time()
        logger.info(f"Starting {self.operation_name}", extra={"request_id": self.request_id, **self.extra})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        if exc_type:
            logger.error(
                f"Failed {self.operation_name} in {duration:.2f}s: {str(exc_val)}",
                extra={"request_id": self.request_id, "duration": duration, **self.extra},
                exc_info=(exc_type, exc_val, exc_tb)
            )
        else:
            logger.info(
                f"Completed {self.operation_name} in {duration:.2f}s",
                extra={"request_id": self.request_id, "duration": duration, **self.extra}
            )


class ProcessResponse(BaseModel):
    """
    Standardized response schema for an ingested workbook.

    Attributes:
        success: Whether the operation was successful
        status_code: HTTP status code of the response
        status: HTTP status description
        file_name: Name of the uploaded file
        sheet_name: Worksheet that was read
        headers: Column headers of the worksheet
        rows: 2D array of cell values rendered as strings
        total_rows: Total number of data rows read
        error: Informational message, e.g. when the sheet is empty
    """
    success: bool
    status_code: Optional[int] = 200
    status: Optional[str] = "OK"
    file_name: Optional[str] = None
    sheet_name: Optional[str] = None
    headers: Optional[List[str]] = None
    rows: Optional[List[List[str]]] = None
    total_rows: Optional[int] = None
    error: Optional[str] = None


class WorkbookRequest(BaseModel):
    """
    Schema for a workbook handed to the ingestion pipeline.

    Attributes:
        file: Readable binary stream positioned anywhere; it is rewound before reading
        file_name: Original name of the uploaded file
        required_columns: Column names that must exist in the first worksheet
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    file: Any
    file_name: Optional[str] = None
    required_columns: List[str] = Field(default_factory=list)


class FileProcessor:
    """
    Default ingestion pipeline for uploaded spreadsheets.

    Reads the first worksheet, checks that the required columns are present
    and returns the table as strings. Expected problems come back as failed
    Results; nothing raises to the caller.
    """

    @staticmethod
    def process_file(request: WorkbookRequest) -> Result[ProcessResponse]:
        """
        Process an uploaded workbook.

        Args:
            request: WorkbookRequest with the file stream and column requirements

        Returns:
            Result[ProcessResponse]: Result object containing either a successful response or error
        """
        request_id = str(uuid.uuid4())[:8]
        log_context = {
            "request_id": request_id,
            "file_name": request.file_name,
            "required_columns": request.required_columns
        }

        logger.info("Processing uploaded workbook", extra=log_context)

        try:
            with LogContext("workbook read", **log_context):
                read_result = FileProcessor._read_workbook(request.file)

            if not read_result.is_success():
                logger.warning(f"Workbook read failed: {read_result.error}", extra=log_context)
                return read_result

            sheet_name, df = read_result.data
            log_context["row_count"] = len(df)

            with LogContext("column validation", **log_context):
                column_result = FileProcessor._validate_columns(df, request.required_columns)

            if not column_result.is_success():
                logger.warning(f"Column validation failed: {column_result.error}", extra=log_context)
                return column_result

            with LogContext("data processing", **log_context):
                process_result = FileProcessor._process_data(df, request.file_name, sheet_name)

            if process_result.is_success():
                logger.info(
                    f"Successfully processed workbook with {process_result.data.total_rows} rows",
                    extra=log_context
                )

            return process_result

        except Exception as e:
            logger.exception("Unexpected error during workbook processing", extra={**log_context, "error": str(e)})
            return Result.server_error(f"Processing error: {str(e)}")

    @staticmethod
    def _read_workbook(stream: BinaryIO) -> Result[tuple]:
        """
        Read the first worksheet of the workbook.

        Returns:
            Result containing (sheet_name, DataFrame) or an error message
        """
        if stream is None:
            logger.error("No workbook stream provided")
            return Result.not_found("No file provided")

        try:
            stream.seek(0)
            start_time = time.time()
            with pd.ExcelFile(stream) as workbook:
                sheet_name = workbook.sheet_names[0]
                df = workbook.parse(sheet_name)
            read_time = time.time() - start_time
            logger.info(
                "Successfully read workbook",
                extra={
                    "sheet_name": sheet_name,
                    "row_count": len(df),
                    "column_count": len(df.columns),
                    "read_time_seconds": f"{read_time:.2f}"
                }
            )
            return Result.ok((str(sheet_name), df))
        except Exception as e:
            logger.error(
                "Failed to read workbook",
                extra={"error": str(e), "error_type": type(e).__name__}
            )
            return Result.fail(f"Failed to read Excel file: {str(e)}", status_code=HTTPStatus.BAD_REQUEST)

    @staticmethod
    def _validate_columns(df: pd.DataFrame, required_columns: List[str]) -> Result[bool]:
        """
        Validates that all required columns exist in the DataFrame.

        Args:
            df: DataFrame to validate
            required_columns: List of column names that must exist

        Returns:
            Result indicating success or error with missing columns
        """
        valid_required_cols = [col for col in required_columns or [] if col]
        available = [str(col) for col in df.columns]
        missing_cols = [col for col in valid_required_cols if col not in available]

        log_context = {
            "available_columns": available,
            "required_columns": valid_required_cols,
            "missing_columns": missing_cols
        }

        if missing_cols:
            error_msg = f"Missing required columns: {', '.join(missing_cols)} from excel"
            logger.error("Column validation failed", extra=log_context)
            return Result.not_found(error_msg)

        logger.info("Column validation successful", extra=log_context)
        return Result.ok(True)

    @staticmethod
    def _process_data(df: pd.DataFrame, file_name: Optional[str], sheet_name: str) -> Result[ProcessResponse]:
        """
        Convert the worksheet into headers and string rows.

        Returns:
            Result containing ProcessResponse with processed data
        """
        headers = [str(col) for col in df.columns]

        if df.empty:
            logger.warning("Worksheet is empty", extra={"sheet_name": sheet_name})
            response = ProcessResponse(
                success=True,
                file_name=file_name,
                sheet_name=sheet_name,
                headers=headers,
                rows=[],
                total_rows=0,
                error="No data found",
                status_code=HTTPStatus.OK.value,
                status=HTTPStatus.OK.phrase
            )
            return Result.ok(response)

        start_time = time.time()
        rows = FileProcessor._stringify_rows(df)
        processing_time = time.time() - start_time

        logger.info(
            "Successfully processed data",
            extra={
                "sheet_name": sheet_name,
                "processed_rows": len(rows),
                "processing_time_seconds": f"{processing_time:.2f}"
            }
        )

        response = ProcessResponse(
            success=True,
            file_name=file_name,
            sheet_name=sheet_name,
            headers=headers,
            rows=rows,
            total_rows=len(rows),
            status_code=HTTPStatus.OK.value,
            status=HTTPStatus.OK.phrase
        )
        return Result.ok(response)

    @staticmethod
    def _stringify_rows(df: pd.DataFrame) -> List[List[str]]:
        """Render every cell as a string, with blanks for missing values."""
        rows = []
        for _, row in df.iterrows():
            rows.append([str(value) if pd.notna(value) else "" for value in row.tolist()])
        return rows

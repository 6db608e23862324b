"""
Upload gate for the admin endpoint.

Decodes the multipart body, enforces the single ``file`` field contract and
turns every decoder failure into a classified ``Result`` so the caller can
always render a response.
"""
import logging
import os
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict
from starlette.datastructures import FormData, UploadFile
from starlette.formparsers import MultiPartException, MultiPartParser
from starlette.requests import Request

from config import DeploymentContext, Settings
from utils.result import ErrorKind, Result

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024
# Vercel rejects request bodies above this no matter what is configured
SERVERLESS_MAX_FILE_SIZE_MB = 4

DEFAULT_FIELD_NAME = "file"
ALLOWED_EXTENSIONS = {".xlsx", ".xls"}
EXCEL_MIME_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
    "application/octet-stream",
}
MAX_FILE_PARTS = 10
MAX_FIELDS = 20
# Room for boundaries, part headers and small text fields around the file
MULTIPART_ALLOWANCE_BYTES = 64 * 1024

GENERIC_FAILURE_MESSAGE = "File upload failed"
MISSING_FILE_MESSAGE = 'No file uploaded. Please attach an Excel file in the "file" field.'


class DecoderError(Exception):
    """Rejection raised by the multipart decoder, identified by a limit code."""

    MESSAGES = {
        "LIMIT_FILE_SIZE": "File too large",
        "LIMIT_FILE_COUNT": "Too many files",
        "LIMIT_UNEXPECTED_FILE": "Unexpected field",
        "LIMIT_FIELD_COUNT": "Too many fields",
        "MALFORMED_PART": "Malformed multipart body",
    }

    def __init__(self, code: str, field: Optional[str] = None, message: Optional[str] = None):
        self.code = code
        self.field = field
        self.message = message or self.MESSAGES.get(code, code)
        super().__init__(self.message)


class UnsupportedFileType(ValueError):
    """Uploaded file does not have a spreadsheet extension."""


class BodyLimitExceeded(MultiPartException):
    """Request body grew past the upload ceiling while it was being parsed."""

    def __init__(self) -> None:
        super().__init__(DecoderError.MESSAGES["LIMIT_FILE_SIZE"])


def decoder_error_from(message: str) -> DecoderError:
    """Map a multipart parser message to the matching decoder limit code."""
    if message.startswith("Too many fields"):
        return DecoderError("LIMIT_FIELD_COUNT", message=message)
    if message.startswith("Too many files"):
        return DecoderError("LIMIT_FILE_COUNT", message=message)
    return DecoderError("MALFORMED_PART", message=message)


async def limit_body(stream: AsyncIterator[bytes], max_bytes: int) -> AsyncIterator[bytes]:
    """
    Pass request body chunks through until ``max_bytes`` is exceeded.

    The chunk that crosses the ceiling is cut at it, so no more than
    ``max_bytes`` ever reaches the parser's spool files, while fields sent
    ahead of the file are still parsed.
    """
    received = 0
    async for chunk in stream:
        remaining = max_bytes - received
        received += len(chunk)
        if received > max_bytes:
            if remaining > 0:
                yield chunk[:remaining]
            raise BodyLimitExceeded()
        yield chunk


class SizeLimit(BaseModel):
    """Effective upload ceiling and how it is presented to the user."""
    model_config = ConfigDict(frozen=True)

    max_bytes: int
    label: str


def resolve_size_limit(context: DeploymentContext, configured_mb: Optional[int] = None) -> SizeLimit:
    """
    Work out the upload ceiling that will actually be enforced.

    Serverless hosts cap the request body themselves, so the configured value
    is ignored there and the fixed platform limit is reported instead.

    Args:
        context: Deployment context of the running service
        configured_mb: MAX_FILE_SIZE_MB setting; None means the 25MB default

    Returns:
        SizeLimit: Byte ceiling plus the label used in error messages
    """
    if context == DeploymentContext.SERVERLESS:
        return SizeLimit(
            max_bytes=SERVERLESS_MAX_FILE_SIZE_MB * BYTES_PER_MB,
            label=f"{SERVERLESS_MAX_FILE_SIZE_MB}MB (Vercel)",
        )
    megabytes = configured_mb if configured_mb is not None else Settings.model_fields["max_file_size_mb"].default
    return SizeLimit(max_bytes=megabytes * BYTES_PER_MB, label=f"{megabytes}MB")


class DecodedUpload(BaseModel):
    """The single spreadsheet part extracted from a valid upload request."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    upload: UploadFile
    filename: str
    content_type: Optional[str] = None
    size: int


class DecodeAttempt:
    """
    Result of decoding one request, together with the parsed form it came from.

    The attempt owns the parsed form: ``close()`` releases the spooled upload
    files and must be called once the request has been answered. When parsing
    stopped part way, ``partial_fields`` holds the text fields read before the
    failure.
    """

    def __init__(
        self,
        outcome: Result[DecodedUpload],
        form: Optional[FormData] = None,
        partial_fields: Optional[Dict[str, str]] = None
    ):
        self.outcome = outcome
        self.form = form
        self.partial_fields = dict(partial_fields or {})

    @property
    def fields(self) -> Dict[str, str]:
        """Text fields of the form; only those read before a failure when parsing stopped early."""
        if self.form is None:
            return dict(self.partial_fields)
        return _text_fields(self.form.multi_items())

    async def close(self) -> None:
        if self.form is not None:
            await self.form.close()


def _measure(upload: UploadFile) -> int:
    size = getattr(upload, "size", None)
    if size is not None:
        return size
    stream = upload.file
    position = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(position)
    return size


def _text_fields(items: List[Tuple[str, Any]]) -> Dict[str, str]:
    return {key: value for key, value in items if isinstance(value, str)}


def _check_file_type(upload: UploadFile) -> None:
    extension = os.path.splitext(upload.filename or "")[1].lower()
    if extension not in ALLOWED_EXTENSIONS:
        raise UnsupportedFileType("Only Excel files (.xlsx, .xls) are allowed")


class UploadGate:
    """
    Decodes and validates admin upload requests.

    The size limit is resolved before the gate is built and passed in, so the
    gate never reads configuration or the environment itself.
    """

    def __init__(self, size_limit: SizeLimit, field_name: str = DEFAULT_FIELD_NAME):
        self.size_limit = size_limit
        self.field_name = field_name

    async def decode(self, request: Request) -> DecodeAttempt:
        """
        Consume the request body and extract exactly one spreadsheet file.

        Never raises for bad input: decoder rejections and unexpected errors
        are returned as failed outcomes with status 400. Multipart bodies are
        parsed from a capped stream, so parsing stops once the body exceeds the
        size limit plus a small allowance for the rest of the form.

        Args:
            request: Incoming multipart/form-data request

        Returns:
            DecodeAttempt: Outcome (DecodedUpload or classified failure) and the parsed form
        """
        seen: List[Tuple[str, Any]] = []
        try:
            form = await self._read_form(request, seen)
        except BodyLimitExceeded:
            error = DecoderError("LIMIT_FILE_SIZE", field=self.field_name)
            return DecodeAttempt(self.classify(error), partial_fields=_text_fields(seen))
        except MultiPartException as e:
            return DecodeAttempt(self.classify(decoder_error_from(e.message)), partial_fields=_text_fields(seen))
        except Exception as e:
            return DecodeAttempt(self.classify(e))

        return DecodeAttempt(self.validate(form), form)

    async def _read_form(self, request: Request, seen: List[Tuple[str, Any]]) -> FormData:
        content_type = request.headers.get("content-type", "")
        if not content_type.lower().startswith("multipart/form-data"):
            return await request.form(max_files=MAX_FILE_PARTS, max_fields=MAX_FIELDS)

        body = limit_body(request.stream(), self.size_limit.max_bytes + MULTIPART_ALLOWANCE_BYTES)
        parser = MultiPartParser(request.headers, body, max_files=MAX_FILE_PARTS, max_fields=MAX_FIELDS)
        try:
            return await parser.parse()
        except MultiPartException:
            # Fields completed before the failure, e.g. a responseType sent ahead of the file
            seen.extend(parser.items)
            raise

    def validate(self, form: FormData) -> Result[DecodedUpload]:
        """
        Check a decoded form against the single-file contract.

        Rejects files under other field names, more than one file, a missing
        file, non-spreadsheet extensions and files over the size limit, in
        that order.
        """
        try:
            files = [
                (key, value) for key, value in form.multi_items()
                if isinstance(value, UploadFile) and value.filename
            ]
            for key, _ in files:
                if key != self.field_name:
                    raise DecoderError("LIMIT_UNEXPECTED_FILE", field=key)
            if len(files) > 1:
                raise DecoderError("LIMIT_FILE_COUNT", field=self.field_name)
            if not files:
                logger.warning(f"Upload rejected: no file in field '{self.field_name}'")
                return Result.fail(MISSING_FILE_MESSAGE, kind=ErrorKind.MISSING_FILE)

            upload = files[0][1]
            _check_file_type(upload)
            if upload.content_type not in EXCEL_MIME_TYPES:
                logger.warning(
                    "Unexpected content type for spreadsheet upload",
                    extra={"upload_filename": upload.filename, "content_type": upload.content_type}
                )

            size = _measure(upload)
            if size > self.size_limit.max_bytes:
                raise DecoderError("LIMIT_FILE_SIZE", field=self.field_name)
        except Exception as e:
            return self.classify(e)

        logger.info(
            f"Decoded upload '{upload.filename}' ({size} bytes)",
            extra={"upload_filename": upload.filename, "size": size, "limit": self.size_limit.max_bytes}
        )
        return Result.ok(DecodedUpload(
            upload=upload,
            filename=upload.filename,
            content_type=upload.content_type,
            size=size,
        ))

    def classify(self, error: Exception) -> Result[DecodedUpload]:
        """
        Convert a decode-stage exception into a failed Result.

        The size message names the enforced limit; other decoder errors keep
        the decoder's text; anything else keeps its own message or falls back
        to a generic one.
        """
        if isinstance(error, DecoderError):
            if error.code == "LIMIT_FILE_SIZE":
                message = f"File too large. Maximum {self.size_limit.label} allowed."
                kind = ErrorKind.DECODE_LIMIT_EXCEEDED
            else:
                message = error.message
                kind = ErrorKind.DECODE_OTHER_MULTER_ERROR
            logger.warning(f"Upload rejected by decoder: {error.code}", extra={"field": error.field})
        else:
            message = str(error) or GENERIC_FAILURE_MESSAGE
            kind = ErrorKind.DECODE_GENERIC_FAILURE
            if isinstance(error, UnsupportedFileType):
                logger.warning(f"Upload rejected: {message}")
            else:
                logger.exception(f"Unexpected error while decoding upload: {message}")
        return Result.fail(message, kind=kind)


def build_gate(settings: Settings, field_name: str = DEFAULT_FIELD_NAME) -> UploadGate:
    """Create a gate with the size limit for the configured deployment context."""
    limit = resolve_size_limit(settings.deployment_context, settings.max_file_size_mb)
    return UploadGate(limit, field_name=field_name)


def describe(upload: DecodedUpload) -> Dict[str, Any]:
    """Log-friendly summary of a decoded upload."""
    return {"upload_filename": upload.filename, "content_type": upload.content_type, "size": upload.size}

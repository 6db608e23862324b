import asyncio
import io
import pytest
from unittest.mock import patch, MagicMock
from starlette.datastructures import FormData, Headers, UploadFile
from starlette.formparsers import MultiPartException

from config import DeploymentContext, Settings
from upload_gate import (
    BodyLimitExceeded,
    DecodeAttempt,
    DecoderError,
    SizeLimit,
    UnsupportedFileType,
    UploadGate,
    build_gate,
    decoder_error_from,
    limit_body,
    resolve_size_limit,
)
from utils.result import ErrorKind, Result

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
MB = 1024 * 1024


def make_upload(filename="voters.xlsx", content=b"PK\x03\x04", content_type=XLSX_MIME, size="auto"):
    return UploadFile(
        file=io.BytesIO(content),
        size=len(content) if size == "auto" else size,
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


@pytest.fixture
def gate():
    """
    Fixture providing a gate with a 1MB limit.

    Returns:
        UploadGate: Gate enforcing a 1MB ceiling
    """
    return UploadGate(SizeLimit(max_bytes=1 * MB, label="1MB"))


class TestResolveSizeLimit:
    """
    Tests for resolve_size_limit.
    """

    @pytest.mark.parametrize(
        "context, configured_mb, expected_bytes, expected_label",
        [
            (DeploymentContext.SERVERLESS, None, 4 * MB, "4MB (Vercel)"),
            (DeploymentContext.SERVERLESS, 100, 4 * MB, "4MB (Vercel)"),
            (DeploymentContext.CONVENTIONAL, None, 25 * MB, "25MB"),
            (DeploymentContext.CONVENTIONAL, 10, 10 * MB, "10MB"),
        ],
        ids=["serverless-default", "serverless-ignores-config", "conventional-default", "conventional-configured"]
    )
    def test_limits(self, context, configured_mb, expected_bytes, expected_label):
        """
        Test the byte ceiling and label for each deployment context.

        Args:
            context: Deployment context under test
            configured_mb: MAX_FILE_SIZE_MB value, or None for the default
            expected_bytes: Ceiling that should be enforced
            expected_label: Label that should appear in error messages
        """
        limit = resolve_size_limit(context, configured_mb)

        assert limit.max_bytes == expected_bytes
        assert limit.label == expected_label

    def test_limit_is_immutable(self):
        """
        Test that a resolved limit cannot be changed after the fact.
        """
        limit = resolve_size_limit(DeploymentContext.CONVENTIONAL)

        with pytest.raises(Exception):
            limit.max_bytes = 1

    def test_build_gate_uses_settings(self):
        """
        Test that build_gate derives the limit from the settings' deployment context.
        """
        gate = build_gate(Settings(vercel="1", max_file_size_mb=50))

        assert gate.size_limit.label == "4MB (Vercel)"
        assert gate.field_name == "file"


class TestValidate:
    """
    Tests for UploadGate.validate with already decoded forms.
    """

    def test_single_excel_file_is_accepted(self, gate):
        """
        Test that one spreadsheet under the file field is accepted as-is.

        Args:
            gate: Fixture providing a 1MB gate
        """
        upload = make_upload()
        result = gate.validate(FormData([("file", upload), ("responseType", "html")]))

        assert result.is_success()
        assert result.data.upload is upload
        assert result.data.filename == "voters.xlsx"
        assert result.data.content_type == XLSX_MIME
        assert result.data.size == 4

    def test_missing_file(self, gate):
        """
        Test that a form without a file is a 400 MissingFile failure.

        Args:
            gate: Fixture providing a 1MB gate
        """
        result = gate.validate(FormData([("responseType", "html")]))

        assert result.is_failure()
        assert result.kind == ErrorKind.MISSING_FILE
        assert result.status_code.value == 400

    def test_text_value_under_file_field_counts_as_missing(self, gate):
        """
        Test that a plain text value named file is not treated as an upload.

        Args:
            gate: Fixture providing a 1MB gate
        """
        result = gate.validate(FormData([("file", "voters.xlsx")]))

        assert result.kind == ErrorKind.MISSING_FILE

    def test_empty_file_input_counts_as_missing(self, gate):
        """
        Test that an empty file input from a browser form counts as no file.

        Args:
            gate: Fixture providing a 1MB gate
        """
        result = gate.validate(FormData([("file", make_upload(filename="", content=b""))]))

        assert result.kind == ErrorKind.MISSING_FILE

    def test_file_under_other_field(self, gate):
        """
        Test that a file under another field name is an unexpected-field error.

        Args:
            gate: Fixture providing a 1MB gate
        """
        result = gate.validate(FormData([("attachment", make_upload())]))

        assert result.kind == ErrorKind.DECODE_OTHER_MULTER_ERROR
        assert result.error == "Unexpected field"

    def test_two_files(self, gate):
        """
        Test that two files under the file field are rejected.

        Args:
            gate: Fixture providing a 1MB gate
        """
        result = gate.validate(FormData([("file", make_upload()), ("file", make_upload("b.xls"))]))

        assert result.kind == ErrorKind.DECODE_OTHER_MULTER_ERROR
        assert result.error == "Too many files"

    @pytest.mark.parametrize("filename", ["report.csv", "report", "report.xlsx.exe"])
    def test_non_excel_extension(self, gate, filename):
        """
        Test that non-spreadsheet extensions are rejected by the file filter.

        Args:
            gate: Fixture providing a 1MB gate
            filename: Upload name with a disallowed extension
        """
        result = gate.validate(FormData([("file", make_upload(filename=filename))]))

        assert result.kind == ErrorKind.DECODE_GENERIC_FAILURE
        assert result.error == "Only Excel files (.xlsx, .xls) are allowed"

    def test_extension_check_ignores_case(self, gate):
        """
        Test that upper-case extensions are accepted.

        Args:
            gate: Fixture providing a 1MB gate
        """
        result = gate.validate(FormData([("file", make_upload(filename="VOTERS.XLS"))]))

        assert result.is_success()

    def test_unexpected_mime_type_is_only_logged(self, gate):
        """
        Test that a MIME mismatch produces a warning but not a rejection.

        Args:
            gate: Fixture providing a 1MB gate
        """
        with patch("upload_gate.logger") as mock_logger:
            result = gate.validate(FormData([("file", make_upload(content_type="text/plain"))]))

        assert result.is_success()
        mock_logger.warning.assert_called_once()

    def test_file_over_limit(self, gate):
        """
        Test that a file one byte over the limit is rejected with the limit label.

        Args:
            gate: Fixture providing a 1MB gate
        """
        result = gate.validate(FormData([("file", make_upload(content=b"\0" * (MB + 1)))]))

        assert result.kind == ErrorKind.DECODE_LIMIT_EXCEEDED
        assert result.error == "File too large. Maximum 1MB allowed."

    def test_file_exactly_at_limit_is_accepted(self, gate):
        """
        Test that a file of exactly the limit passes.

        Args:
            gate: Fixture providing a 1MB gate
        """
        result = gate.validate(FormData([("file", make_upload(content=b"\0" * MB))]))

        assert result.is_success()

    def test_size_is_measured_when_unknown(self, gate):
        """
        Test that an upload without a recorded size is measured and the stream rewound.

        Args:
            gate: Fixture providing a 1MB gate
        """
        upload = make_upload(content=b"\0" * (MB + 10), size=None)

        result = gate.validate(FormData([("file", upload)]))

        assert result.kind == ErrorKind.DECODE_LIMIT_EXCEEDED
        assert upload.file.tell() == 0


class TestClassify:
    """
    Tests for UploadGate.classify.
    """

    def test_size_error_reports_effective_limit(self):
        """
        Test that the size message names the serverless ceiling, not the configured one.
        """
        gate = UploadGate(resolve_size_limit(DeploymentContext.SERVERLESS))

        result = gate.classify(DecoderError("LIMIT_FILE_SIZE", field="file"))

        assert result.error == "File too large. Maximum 4MB (Vercel) allowed."
        assert result.kind == ErrorKind.DECODE_LIMIT_EXCEEDED
        assert result.status_code.value == 400

    def test_other_decoder_error_keeps_decoder_text(self, gate):
        """
        Test that non-size decoder errors are reported with the decoder's text.

        Args:
            gate: Fixture providing a 1MB gate
        """
        result = gate.classify(DecoderError("MALFORMED_PART", message="Missing boundary in multipart."))

        assert result.error == "Missing boundary in multipart."
        assert result.kind == ErrorKind.DECODE_OTHER_MULTER_ERROR

    def test_generic_error_keeps_message(self, gate):
        """
        Test that unexpected errors keep their own message.

        Args:
            gate: Fixture providing a 1MB gate
        """
        with patch("upload_gate.logger"):
            result = gate.classify(OSError("disk full"))

        assert result.error == "disk full"
        assert result.kind == ErrorKind.DECODE_GENERIC_FAILURE

    def test_generic_error_without_message_uses_fallback(self, gate):
        """
        Test that an error without a message falls back to the generic text.

        Args:
            gate: Fixture providing a 1MB gate
        """
        with patch("upload_gate.logger"):
            result = gate.classify(RuntimeError())

        assert result.error == "File upload failed"
        assert result.status_code.value == 400

    def test_unsupported_type_is_generic_failure(self, gate):
        """
        Test that the file filter rejection is classified as a generic failure.

        Args:
            gate: Fixture providing a 1MB gate
        """
        result = gate.classify(UnsupportedFileType("Only Excel files (.xlsx, .xls) are allowed"))

        assert result.kind == ErrorKind.DECODE_GENERIC_FAILURE

    def test_decoder_error_default_messages(self):
        """
        Test the default texts for decoder codes, including unknown codes.
        """
        assert DecoderError("LIMIT_UNEXPECTED_FILE").message == "Unexpected field"
        assert DecoderError("LIMIT_FIELD_COUNT").message == "Too many fields"
        assert DecoderError("SOMETHING_NEW").message == "SOMETHING_NEW"

    @pytest.mark.parametrize(
        "message, expected_code",
        [
            ("Too many fields. Maximum number of fields is 20.", "LIMIT_FIELD_COUNT"),
            ("Too many files. Maximum number of files is 10.", "LIMIT_FILE_COUNT"),
            ("Missing boundary in multipart.", "MALFORMED_PART"),
        ],
        ids=["fields", "files", "malformed"]
    )
    def test_decoder_error_from_parser_message(self, message, expected_code):
        """
        Test that multipart parser messages map to decoder codes and keep their text.

        Args:
            message: Message raised by the multipart parser
            expected_code: Decoder code the message should map to
        """
        error = decoder_error_from(message)

        assert error.code == expected_code
        assert error.message == message


class TestLimitBody:
    """
    Tests for the capped request body stream.
    """

    @staticmethod
    def _drain(chunks, max_bytes):
        forwarded = []

        async def source():
            for chunk in chunks:
                yield chunk

        async def run():
            async for chunk in limit_body(source(), max_bytes):
                forwarded.append(chunk)

        return forwarded, run

    def test_body_within_limit_is_forwarded(self):
        """
        Test that a body under the ceiling passes through unchanged.
        """
        forwarded, run = self._drain([b"a" * 10, b"b" * 10], max_bytes=20)

        asyncio.run(run())

        assert b"".join(forwarded) == b"a" * 10 + b"b" * 10

    def test_oversized_body_stops_at_ceiling(self):
        """
        Test that a 40MB body against a ~1MB ceiling stops before the ceiling is passed.

        This test verifies the parser never receives more than the ceiling,
        so the spooled file stays bounded regardless of the body size.
        """
        max_bytes = MB + 64 * 1024
        forwarded, run = self._drain([b"\0" * (256 * 1024)] * 160, max_bytes=max_bytes)

        with pytest.raises(BodyLimitExceeded):
            asyncio.run(run())

        assert sum(len(chunk) for chunk in forwarded) <= max_bytes

    def test_single_large_chunk_is_cut_at_ceiling(self):
        """
        Test that a body delivered in one chunk is forwarded up to the ceiling only.

        This test verifies leading form fields in the same chunk still reach
        the parser before the limit error is raised.
        """
        forwarded, run = self._drain([b"responseType" + b"\0" * (40 * MB)], max_bytes=MB)

        with pytest.raises(BodyLimitExceeded):
            asyncio.run(run())

        assert sum(len(chunk) for chunk in forwarded) == MB
        assert forwarded[0].startswith(b"responseType")

    def test_limit_error_is_a_multipart_error(self):
        """
        Test that the limit error is raised through the parser's own error type.
        """
        error = BodyLimitExceeded()

        assert isinstance(error, MultiPartException)
        assert error.message == "File too large"


class TestDecode:
    """
    Tests for UploadGate.decode against a stubbed request.
    """

    def _request(self, form=None, error=None):
        request = MagicMock()
        request.headers = {}

        async def read_form(**kwargs):
            if error is not None:
                raise error
            return form

        request.form = MagicMock(side_effect=read_form)
        return request

    def test_decode_returns_outcome_and_fields(self, gate):
        """
        Test that a decoded form yields the upload and its text fields.

        Args:
            gate: Fixture providing a 1MB gate
        """
        form = FormData([("file", make_upload()), ("responseType", "html")])

        attempt = asyncio.run(gate.decode(self._request(form=form)))

        assert attempt.outcome.is_success()
        assert attempt.fields == {"responseType": "html"}

    def test_decoder_failure_has_no_fields(self, gate):
        """
        Test that an unexpected decoder failure is generic and carries no fields.

        Args:
            gate: Fixture providing a 1MB gate
        """
        with patch("upload_gate.logger"):
            attempt = asyncio.run(gate.decode(self._request(error=RuntimeError("stream reset"))))

        assert attempt.outcome.kind == ErrorKind.DECODE_GENERIC_FAILURE
        assert attempt.outcome.error == "stream reset"
        assert attempt.fields == {}

    def test_parser_limit_error_is_mapped(self, gate):
        """
        Test that a parser field-count error becomes a decoder error with the parser's text.

        Args:
            gate: Fixture providing a 1MB gate
        """
        error = MultiPartException("Too many fields. Maximum number of fields is 20.")

        attempt = asyncio.run(gate.decode(self._request(error=error)))

        assert attempt.outcome.kind == ErrorKind.DECODE_OTHER_MULTER_ERROR
        assert attempt.outcome.error == "Too many fields. Maximum number of fields is 20."

    def test_partial_fields_are_kept_without_form(self):
        """
        Test that fields read before an aborted parse are still exposed.
        """
        attempt = DecodeAttempt(Result.fail("x"), partial_fields={"responseType": "html"})

        assert attempt.fields == {"responseType": "html"}

    def test_close_releases_form(self):
        """
        Test that closing an attempt closes the parsed form.
        """
        form = MagicMock()

        async def close():
            form.closed = True

        form.close = MagicMock(side_effect=close)
        attempt = DecodeAttempt(Result.fail("x"), form)

        asyncio.run(attempt.close())

        assert form.closed is True

    def test_close_without_form_is_noop(self):
        """
        Test that closing an attempt with no form does nothing.
        """
        asyncio.run(DecodeAttempt(Result.fail("x")).close())

"""
Hand-off from a decoded upload to the ingestion pipeline, and presentation of
every outcome (gate failures included) in the selected response mode.
"""
import logging
from typing import Callable, List, Optional

from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, JSONResponse, Response
from starlette.requests import Request

from excel_file_process import FileProcessor, ProcessResponse, WorkbookRequest
from page_renderer import error_fragment, render_page, success_fragment
from response_mode import ResponseMode
from upload_gate import DecodedUpload, describe
from utils.result import ErrorKind, Result

logger = logging.getLogger(__name__)

# nginx convention for a request the client abandoned
CLIENT_CLOSED_REQUEST = 499

Pipeline = Callable[[WorkbookRequest], Result[ProcessResponse]]


class UploadHandler:
    """
    Runs the ingestion pipeline for one decoded upload and renders the result.

    Args:
        pipeline: Callable taking a WorkbookRequest and returning a Result
        required_columns: Columns the pipeline must find in the worksheet
    """

    def __init__(self, pipeline: Pipeline = FileProcessor.process_file, required_columns: Optional[List[str]] = None):
        self.pipeline = pipeline
        self.required_columns = list(required_columns or [])

    async def handle(self, request: Request, decoded: DecodedUpload, mode: ResponseMode) -> Response:
        """
        Send the decoded file through the pipeline and answer in ``mode``.

        A pipeline failure keeps its own message and status code; an exception
        escaping the pipeline is reported as a 500. Both are tagged
        PipelineError.
        """
        if await request.is_disconnected():
            logger.warning("Client disconnected before processing, skipping pipeline", extra=describe(decoded))
            return Response(status_code=CLIENT_CLOSED_REQUEST)

        decoded.upload.file.seek(0)
        workbook = WorkbookRequest(
            file=decoded.upload.file,
            file_name=decoded.filename,
            required_columns=self.required_columns,
        )
        try:
            result = await run_in_threadpool(self.pipeline, workbook)
        except Exception as e:
            logger.exception(f"Ingestion pipeline raised for '{decoded.filename}'", extra=describe(decoded))
            result = Result.server_error(f"Processing error: {str(e)}")

        return self.respond(result.with_kind(ErrorKind.PIPELINE_ERROR), mode)

    @staticmethod
    def respond(result: Result, mode: ResponseMode) -> Response:
        """
        Render an upload outcome as an HTML page or a JSON body.

        Used for gate failures and pipeline results alike so that both look
        the same to the client.
        """
        status_code = result.status_code.value

        if result.is_failure():
            logger.info(f"Responding with failure: {result}", extra={"mode": mode.value})
            if mode == ResponseMode.HTML:
                kind = result.kind.value if result.kind is not None else None
                page = render_page(error_fragment(result.error or "", kind))
                return HTMLResponse(content=page, status_code=status_code)
            return JSONResponse(status_code=status_code, content=result.to_dict())

        response: ProcessResponse = result.data
        if mode == ResponseMode.HTML:
            page = render_page(success_fragment(
                file_name=response.file_name,
                total_rows=response.total_rows or 0,
                headers=response.headers or [],
                rows=response.rows or [],
                sheet_name=response.sheet_name,
                note=response.error,
            ))
            return HTMLResponse(content=page, status_code=status_code)
        return JSONResponse(status_code=status_code, content=jsonable_encoder(response))

"""Admin upload routes: the HTML form and the endpoint it posts to."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, Response

from config import Settings, get_settings
from page_renderer import render_page, upload_page_fragment
from response_mode import RESPONSE_TYPE_FIELD, select_mode
from upload_gate import UploadGate, build_gate
from upload_handler import UploadHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin Upload"])


def get_upload_gate(settings: Settings = Depends(get_settings)) -> UploadGate:
    """Build a gate for this request with the limit of the current deployment."""
    return build_gate(settings)


def get_upload_handler(settings: Settings = Depends(get_settings)) -> UploadHandler:
    return UploadHandler(required_columns=settings.required_columns)


@router.get("/upload", response_class=HTMLResponse)
async def upload_form_page() -> HTMLResponse:
    """Serve the admin upload form."""
    return HTMLResponse(render_page(upload_page_fragment()))


@router.post("/upload")
async def upload_excel(
    request: Request,
    response_type: Optional[str] = Query(None, alias=RESPONSE_TYPE_FIELD),
    gate: UploadGate = Depends(get_upload_gate),
    handler: UploadHandler = Depends(get_upload_handler),
) -> Response:
    """
    Accept an Excel file and run it through the ingestion pipeline.

    The response mode comes from the ``responseType`` query parameter when
    given, otherwise from the ``responseType`` form field; without either the
    endpoint answers with JSON. Every failure is answered with a 400 (or the
    pipeline's own status) in that mode.
    """
    attempt = await gate.decode(request)
    try:
        hint = response_type if response_type is not None else attempt.fields.get(RESPONSE_TYPE_FIELD)
        mode = select_mode(hint)
        outcome = attempt.outcome
        if outcome.is_failure():
            return handler.respond(outcome, mode)
        logger.info(f"Upload accepted, responding as {mode.value}")
        return await handler.handle(request, outcome.data, mode)
    finally:
        await attempt.close()

"""
WhatsApp REST endpoints for Pairline.

Paths and response shapes are kept stable for existing web apps that
poll /wa-status and /wa-qr and post to /wa-send and /send-invoice.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse

from pairline.app.dependencies import get_dispatch_pipeline, get_session_manager, get_settings
from pairline.app.uploads import has_file, save_upload
from pairline.config import AppSettings
from pairline.dispatch import DispatchPipeline, SendRequest
from pairline.session import SessionManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["whatsapp"])


@router.get("/wa-status", summary="WhatsApp connection status")
async def wa_status(
    session: SessionManager = Depends(get_session_manager),
) -> Dict[str, Any]:
    """Return `Connected` with the paired user, or `waiting`."""
    return session.current_status().to_dict()


@router.get(
    "/wa-qr",
    summary="Pending pairing QR code",
    responses={404: {"description": "No QR available"}},
)
async def wa_qr(session: SessionManager = Depends(get_session_manager)) -> Any:
    challenge = session.pending_challenge()
    if challenge:
        return {"qr": challenge}
    return JSONResponse(status_code=404, content={"error": "No QR available"})


@router.post(
    "/wa-send",
    summary="Send a WhatsApp message or document",
    responses={
        200: {"description": "Message sent"},
        400: {"description": "Missing or invalid phone number"},
        413: {"description": "Attachment too large"},
        500: {"description": "Transport failed to deliver"},
        503: {"description": "WhatsApp not connected (may include qr)"},
    },
)
async def wa_send(
    to: Optional[str] = Form(None),
    message: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    pipeline: DispatchPipeline = Depends(get_dispatch_pipeline),
    settings: AppSettings = Depends(get_settings),
) -> Dict[str, Any]:
    """
    Send to a Sri Lankan number in any common format.

    With `file`, the document is sent and `message` becomes its caption.
    """
    logger.info(f"/wa-send request: to={to!r}, has_message={bool(message)}, has_file={has_file(file)}")

    attachment = None
    if has_file(file):
        attachment = await save_upload(file, settings.upload_dir, settings.max_upload_bytes)

    result = await pipeline.send(SendRequest(destination=to, body=message, attachment=attachment))
    return result.to_dict()


@router.post(
    "/send-invoice",
    summary="Send an invoice document",
    responses={
        200: {"description": "Invoice sent"},
        400: {"description": "Mobile number or invoice file missing"},
        503: {"description": "WhatsApp not connected"},
        500: {"description": "Transport failed to deliver"},
    },
)
async def send_invoice(
    mobileNumber: Optional[str] = Form(None),
    invoiceFile: Optional[UploadFile] = File(None),
    pipeline: DispatchPipeline = Depends(get_dispatch_pipeline),
    settings: AppSettings = Depends(get_settings),
) -> Dict[str, str]:
    attachment = None
    if has_file(invoiceFile):
        attachment = await save_upload(invoiceFile, settings.upload_dir, settings.max_upload_bytes)

    await pipeline.send_invoice(mobileNumber, attachment)
    return {"message": "Invoice sent successfully!"}


@router.post("/wa-reset", summary="Reset the WhatsApp session")
async def wa_reset(session: SessionManager = Depends(get_session_manager)) -> Dict[str, str]:
    """
    Wipe the linked-device session and force a fresh QR.

    Returns immediately; re-initialization happens in the background.
    """
    session.reset_session()
    return {
        "status": "reset",
        "message": "WhatsApp session cleared. Please reload and scan new QR.",
    }

"""
Payments API routes.

Exposes the provider webhook and the client confirm-poll. Keep this thin:
no SDK details here, and responses are the flat acknowledgment bodies the
provider and the checkout pages expect.
"""
from __future__ import annotations

import json
from typing import Any
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette import status as http_status

from api.dependencies import get_confirm_service, get_webhook_service
from application.dtos.payments import ConfirmRequest
from application.services.confirm_service import ConfirmService
from application.services.webhook_service import WebhookService
from core.logging_config import get_logger


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.post("/webhooks/stripe", summary="Stripe webhook")
async def stripe_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    # Signature is computed over the raw bytes; never parse before verifying
    raw_body = await request.body()
    result = await service.handle_webhook(request.method, dict(request.headers), raw_body)
    status_code = http_status.HTTP_500_INTERNAL_SERVER_ERROR if result.retryable else http_status.HTTP_200_OK
    return JSONResponse(status_code=status_code, content=result.to_response())


@router.api_route("/confirm-session", methods=["GET", "POST"], summary="Confirm checkout after redirect")
async def confirm_session(request: Request, service: ConfirmService = Depends(get_confirm_service)):
    fields: dict[str, Any] = dict(request.query_params)
    if request.method == "POST":
        fields.update(await _body_fields(request))
    try:
        req = ConfirmRequest.model_validate(fields)
    except ValidationError as exc:
        logger.info("confirm_invalid_request", errors=exc.error_count())
        return JSONResponse(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            content={"ok": False, "error": "invalid_session_id"},
        )
    result = await service.confirm(req)
    return JSONResponse(status_code=http_status.HTTP_200_OK, content=result.to_response())


async def _body_fields(request: Request) -> dict[str, Any]:
    body = await request.body()
    if not body:
        return {}
    content_type = (request.headers.get("content-type") or "").lower()
    text = body.decode("utf-8", errors="ignore")
    if "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(text))
    try:
        parsed = json.loads(text)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}

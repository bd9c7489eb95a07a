"""Payment provider webhooks (no user auth; requests are signed by Stripe)."""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from app.services.payments import WebhookError, get_webhook_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
):
    """Receive a Stripe event.

    The body is read as raw bytes: the signature covers the exact byte stream.
    """
    if not stripe_signature:
        return JSONResponse(status_code=400, content={"error": "No signature header"})

    payload = await request.body()
    service = get_webhook_service()

    try:
        await asyncio.to_thread(service.handle, payload, stripe_signature)
    except WebhookError as e:
        return JSONResponse(status_code=e.status_code, content={"error": e.message})

    return {"message": "Webhook processed successfully"}


@router.api_route("/stripe", methods=["GET", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"], include_in_schema=False)
async def stripe_webhook_method_not_allowed():
    return JSONResponse(
        status_code=405,
        content={"error": "Method Not Allowed"},
        headers={"Allow": "POST"},
    )

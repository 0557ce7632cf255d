"""
Zalo OA webhook endpoints (/webhook/zalo).

POST always answers 200 so Zalo does not retry; failures are reported in the
body as {success: false, message}.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from notifyhub.app import ServiceContainer, get_services
from notifyhub.engine.logging import log_webhook_event
from notifyhub.schemas import ZaloWebhookEvent, fail, ok

logger = logging.getLogger("notifyhub.api.webhook")

router = APIRouter(prefix="/webhook/zalo", tags=["webhook"])

SIGNATURE_HEADER = "X-ZEvent-Signature"


@router.get("", response_class=PlainTextResponse)
async def verify_webhook_url(challenge: Optional[str] = None) -> str:
    """URL verification: echo the challenge, else acknowledge."""
    logger.info("Zalo OA webhook verification request")
    return challenge or "OK"


@router.post("")
async def receive_webhook(request: Request, services: ServiceContainer = Depends(get_services)):
    raw = (await request.body()).decode("utf-8", errors="replace")
    try:
        event = ZaloWebhookEvent.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Malformed webhook body: {e}")
        return fail("Error processing webhook", "Malformed webhook body")

    signature = request.headers.get(SIGNATURE_HEADER)
    if not services.webhook.verify_webhook_signature(signature, raw, event.timestamp):
        logger.warning("Rejected Zalo webhook with invalid signature")
        if services.log_queue is not None:
            services.log_queue.push(log_webhook_event("", len(event.data), signature_valid=False))
        return fail("Invalid webhook signature")

    try:
        result = await services.webhook.handle_webhook_event(event)
    except Exception as e:
        logger.error(f"Error processing webhook: {e}")
        return fail("Error processing webhook")
    return ok("Webhook processed successfully", data=result)


@router.post("/test")
async def test_webhook(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    services: ServiceContainer = Depends(get_services),
):
    text = (payload or {}).get("text")
    try:
        result = await services.webhook.handle_webhook_event(services.webhook.build_test_event(text))
    except Exception as e:
        logger.error(f"Error processing test webhook: {e}")
        return fail("Error processing test webhook")
    return ok("Test webhook processed successfully", data=result)


@router.get("/health")
async def webhook_health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

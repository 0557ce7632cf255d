"""Zalo OAuth and chat test endpoints (/auth/zalo)."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, RedirectResponse

from notifyhub.app import ServiceContainer, get_services
from notifyhub.channels.zalo import token_preview
from notifyhub.schemas import fail, ok

logger = logging.getLogger("notifyhub.api.auth")

router = APIRouter(prefix="/auth/zalo", tags=["auth"])


@router.get("")
async def initiate_auth(services: ServiceContainer = Depends(get_services)):
    """Redirect the browser to the Zalo permission page."""
    try:
        auth_url = services.zalo.get_auth_url()
    except Exception as e:
        logger.error(f"Error initiating Zalo auth: {e}")
        return JSONResponse(status_code=500, content=fail("Failed to initiate Zalo authentication", e))
    logger.info(f"Redirecting to Zalo auth URL: {auth_url}")
    return RedirectResponse(auth_url)


@router.get("/callback")
async def handle_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    services: ServiceContainer = Depends(get_services),
):
    if error:
        logger.error(f"Zalo auth error: {error}")
        return JSONResponse(status_code=400, content=fail("Zalo authentication failed", error))
    if not code:
        logger.error("No authorization code received from Zalo")
        return JSONResponse(status_code=400, content=fail("No authorization code received"))

    try:
        tokens = await services.zalo.handle_callback(code, state)
    except Exception as e:
        logger.error(f"Error handling Zalo callback: {e}")
        return JSONResponse(status_code=500, content=fail("Failed to process Zalo callback", e))

    return ok(
        "Zalo authentication successful - tokens obtained",
        data={
            "access_token_preview": token_preview(tokens.access_token),
            "refresh_token_preview": token_preview(tokens.refresh_token),
            "expires_in": tokens.expires_in,
        },
    )


@router.get("/status")
async def token_status(services: ServiceContainer = Depends(get_services)):
    try:
        return ok(data=services.zalo.get_token_status())
    except Exception as e:
        logger.error(f"Error getting token status: {e}")
        return fail("Failed to get token status", e)


@router.post("/refresh")
async def refresh_token(services: ServiceContainer = Depends(get_services)):
    try:
        tokens = await services.zalo.refresh_token()
    except Exception as e:
        logger.error(f"Error refreshing token: {e}")
        return fail("Failed to refresh token", e)
    return ok(
        "Tokens refreshed successfully",
        data={"expires_in": tokens.expires_in, "access_token": token_preview(tokens.access_token)},
    )


@router.post("/clear")
async def clear_tokens(services: ServiceContainer = Depends(get_services)):
    try:
        services.zalo.clear_tokens()
    except Exception as e:
        logger.error(f"Error clearing tokens: {e}")
        return fail("Failed to clear tokens", e)
    return ok("Tokens cleared successfully")


@router.get("/profile")
async def profile(services: ServiceContainer = Depends(get_services)):
    try:
        return ok(data=await services.zalo.get_user_info())
    except Exception as e:
        logger.error(f"Error fetching OA profile: {e}")
        return fail("Failed to fetch Official Account profile", e)


@router.get("/test-message")
async def test_message(
    message: Optional[str] = None,
    services: ServiceContainer = Depends(get_services),
):
    text = message or "Test message from HRM Notification Service"
    try:
        await services.zalo.send_group_message(text)
    except Exception as e:
        logger.error(f"Error sending test message: {e}")
        return fail("Failed to send test message", e)
    return ok("Test message sent successfully via CS API", data={"sent_message": text})


@router.get("/test-gmf-message")
async def test_gmf_message(
    message: Optional[str] = None,
    group_id: Optional[str] = None,
    services: ServiceContainer = Depends(get_services),
):
    text = message or "Test GMF message from HRM Notification Service 🚀"
    try:
        await services.zalo.send_group_text_message(text, group_id)
    except Exception as e:
        logger.error(f"Error sending test GMF message: {e}")
        return fail("Failed to send test GMF message", e)
    return ok(
        "Test GMF message sent successfully",
        data={"sent_message": text, "api": "GMF (Group Message Feature)"},
    )


@router.get("/test-rich-message")
async def test_rich_message(
    title: str = "HRM Notification Service",
    subtitle: str = "Rich message test",
    services: ServiceContainer = Depends(get_services),
):
    try:
        await services.zalo.send_rich_group_message(title, subtitle)
    except Exception as e:
        logger.error(f"Error sending test rich message: {e}")
        return fail("Failed to send test rich message", e)
    return ok("Test rich message sent successfully", data={"title": title, "subtitle": subtitle})

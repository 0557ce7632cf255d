"""Notification endpoints (/notifications): manual trigger, history stubs, health and stats."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from notifyhub.app import ServiceContainer, get_services
from notifyhub.schemas import NotificationPayload, fail, ok

logger = logging.getLogger("notifyhub.api.notifications")

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _consumer_status(services: ServiceContainer) -> dict:
    if services.consumer is None:
        return {"connected": False, "enabled": False}
    return {"enabled": True, **services.consumer.get_connection_status()}


@router.get("/health")
async def health(services: ServiceContainer = Depends(get_services)):
    await services.health.check_all()
    platform = services.health.get_platform_health()
    return {
        "status": platform["status"],
        "service": "notification-service",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "kafka": _consumer_status(services),
        "task_events": services.notifications.get_task_event_stats(),
        "checks": platform["checks"],
    }


@router.get("/stats")
async def stats(request: Request, services: ServiceContainer = Depends(get_services)):
    return {
        "kafka_consumer": _consumer_status(services),
        "task_event_stats": services.notifications.get_task_event_stats(),
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
    }


@router.post("/test")
async def test_notification(
    payload: NotificationPayload,
    services: ServiceContainer = Depends(get_services),
):
    try:
        await services.notifications.process_notification(payload)
    except Exception as e:
        logger.error(f"Error processing test notification: {e}")
        return fail("Failed to process test notification", e)
    return ok("Test notification processed successfully")


@router.get("/{user_id}/history")
async def notification_history(user_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        history = await services.notifications.get_notification_history(user_id)
    except Exception as e:
        logger.error(f"Error fetching notification history: {e}")
        return fail("Failed to fetch notification history", e)
    return ok(data=[n.model_dump(by_alias=True) for n in history])


@router.post("/{notification_id}/read")
async def mark_as_read(notification_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        await services.notifications.mark_notification_as_read(notification_id)
    except Exception as e:
        logger.error(f"Error marking notification as read: {e}")
        return fail("Failed to mark notification as read", e)
    return ok("Notification marked as read")

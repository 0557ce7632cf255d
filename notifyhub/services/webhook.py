"""
notifyhub Webhook Service — Inbound Zalo OA events.

Each event carries a batch of messages, processed in order. A message that
fails validation or handling is logged and skipped; the rest of the batch
still runs.

Dispatch:
    group message  → text (keyword scan) → attachments (image/location/file) → auto-reply
    direct message → logged only
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from notifyhub.engine.config import ZaloConfig
from notifyhub.engine.logging import log_webhook_event
from notifyhub.schemas import ZaloAttachment, ZaloWebhookEvent, ZaloWebhookMessage

logger = logging.getLogger("notifyhub.services.webhook")

KEYWORDS = ("urgent", "khẩn cấp", "help", "hỗ trợ", "task", "công việc")
AUTO_REPLY_TRIGGERS = ("help", "hỗ trợ")
AUTO_REPLY_TEXT = "Chúng tôi đã nhận được yêu cầu hỗ trợ của bạn và sẽ phản hồi sớm nhất có thể."


def extract_keywords(text: str) -> List[str]:
    """Keywords contained in text (case-insensitive substring match), in list order."""
    lowered = text.lower()
    return [k for k in KEYWORDS if k.lower() in lowered]


def compute_signature(app_id: str, body: str, timestamp: str, app_secret: str) -> str:
    return hashlib.sha256(f"{app_id}{body}{timestamp}{app_secret}".encode("utf-8")).hexdigest()


class ZaloWebhookService:
    def __init__(self, config: ZaloConfig, zalo_client: Any = None, log_queue: Any = None):
        self._config = config
        self._zalo = zalo_client
        self._log_queue = log_queue

    async def handle_webhook_event(self, event: ZaloWebhookEvent) -> Dict[str, int]:
        """
        Process every message in the event.

        Returns:
            {"processed": n, "failed": m}
        """
        logger.info(f"Received Zalo webhook event with {len(event.data)} messages")
        processed = failed = 0
        event_name = ""

        for raw in event.data:
            try:
                message = ZaloWebhookMessage.model_validate(raw)
                event_name = event_name or message.event_name
                await self._process_message(message)
                processed += 1
            except ValidationError as e:
                failed += 1
                logger.error(f"Invalid webhook message skipped: {e.error_count()} validation errors")
            except Exception as e:
                failed += 1
                msg_id = raw.get("message", {}).get("msg_id") if isinstance(raw, dict) else None
                logger.error(f"Error processing webhook message {msg_id}: {e}")

        if self._log_queue is not None:
            self._log_queue.push(log_webhook_event(event_name, len(event.data), failed=failed))
        return {"processed": processed, "failed": failed}

    async def _process_message(self, message: ZaloWebhookMessage) -> None:
        logger.info(f"Processing message {message.message.msg_id} from user {message.sender.id}")
        if message.group_info is not None:
            await self._handle_group_message(message)
        else:
            self._handle_direct_message(message)

    async def _handle_group_message(self, message: ZaloWebhookMessage) -> None:
        group = message.group_info
        logger.info(
            f"Group message in {group.group_id} ({group.group_name}, {group.group_type}) "
            f"from {message.sender.id}: {len(message.message.attachments)} attachments"
        )

        if message.message.text:
            self._handle_text_message(message.message.text)

        for attachment in message.message.attachments:
            self._handle_attachment(attachment)

        await self._auto_reply_if_needed(message)

    def _handle_direct_message(self, message: ZaloWebhookMessage) -> None:
        logger.info(f"Direct message received from user {message.sender.id}")

    def _handle_text_message(self, text: str) -> List[str]:
        logger.info(f'Text message: "{text}"')
        keywords = extract_keywords(text)
        if keywords:
            logger.info(f"Extracted keywords: {', '.join(keywords)}")
        return keywords

    def _handle_attachment(self, attachment: ZaloAttachment) -> None:
        payload = attachment.payload
        if attachment.type == "image":
            logger.info(f"Image attachment received: {payload.get('url')}")
        elif attachment.type == "location":
            coordinates = payload.get("coordinates") or {}
            logger.info(
                f"Location attachment: lat={coordinates.get('latitude')}, "
                f"lng={coordinates.get('longitude')}"
            )
        elif attachment.type == "file":
            logger.info(f"File attachment: {payload.get('url')}")
        else:
            logger.info(f"Unknown attachment type: {attachment.type}")

    async def _auto_reply_if_needed(self, message: ZaloWebhookMessage) -> bool:
        """Reply to help requests. Returns True if a reply was triggered."""
        text = (message.message.text or "").lower()
        if not any(trigger in text for trigger in AUTO_REPLY_TRIGGERS):
            return False

        logger.info("Auto-reply triggered for help request")
        if self._config.auto_reply_enabled and self._zalo is not None and message.group_info:
            await self._zalo.send_group_text_message(AUTO_REPLY_TEXT, message.group_info.group_id)
            logger.info(f"Auto-reply sent to group {message.group_info.group_id}")
        return True

    def verify_webhook_signature(
        self,
        signature: Optional[str],
        body: str,
        timestamp: Optional[str] = None,
    ) -> bool:
        """
        Check the X-ZEvent-Signature header.

        Always True unless webhook_verify_signature is enabled; then the header
        must be ``mac=<sha256(app_id + body + timestamp + app_secret)>``.
        """
        if not self._config.webhook_verify_signature:
            return True
        if not signature:
            return False

        provided = signature.strip()
        if provided.startswith("mac="):
            provided = provided[len("mac="):]
        expected = compute_signature(
            self._config.app_id, body, timestamp or "", self._config.app_secret,
        )
        return hmac.compare_digest(provided, expected)

    def build_test_event(self, text: Optional[str] = None) -> ZaloWebhookEvent:
        """Mock group text event for POST /webhook/zalo/test."""
        now = datetime.now(timezone.utc).isoformat()
        return ZaloWebhookEvent(
            app_id=self._config.app_id,
            timestamp=now,
            data=[
                {
                    "app_id": self._config.app_id,
                    "user_id_by_app": "test-user-123",
                    "oa_id": "test-oa-id",
                    "timestamp": now,
                    "event_name": "user_send_text",
                    "message": {
                        "text": text or "Test message from webhook",
                        "msg_id": f"test-msg-{int(time.time() * 1000)}",
                    },
                    "sender": {"id": "test-sender-123"},
                    "recipient": {"id": self._config.app_id},
                    "group_info": {
                        "group_id": self._config.group_id or "test-group-123",
                        "group_name": "Test Group",
                        "group_type": "GMF",
                    },
                }
            ],
        )

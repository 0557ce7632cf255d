"""Unit tests for notifyhub.services.webhook — inbound Zalo events, keywords, auto-reply and signatures."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from notifyhub.engine.config import ZaloConfig
from notifyhub.schemas import ZaloWebhookEvent
from notifyhub.services.webhook import (
    AUTO_REPLY_TEXT,
    ZaloWebhookService,
    compute_signature,
    extract_keywords,
)


def _group_message(text=None, attachments=None, msg_id="m-1"):
    return {
        "app_id": "app-123",
        "event_name": "user_send_text",
        "timestamp": "1714550000000",
        "message": {"text": text, "msg_id": msg_id, "attachments": attachments or []},
        "sender": {"id": "u-1"},
        "recipient": {"id": "oa-1"},
        "group_info": {"group_id": "g-1", "group_name": "Team", "group_type": "GMF"},
    }


def _event(*messages):
    return ZaloWebhookEvent(app_id="app-123", timestamp="1714550000000", data=list(messages))


class TestExtractKeywords:
    def test_case_insensitive(self):
        assert extract_keywords("URGENT: need HELP") == ["urgent", "help"]

    def test_vietnamese(self):
        assert extract_keywords("Cần hỗ trợ công việc gấp") == ["hỗ trợ", "công việc"]

    def test_substring_match(self):
        assert extract_keywords("multitasking") == ["task"]

    def test_none(self):
        assert extract_keywords("good morning") == []


class TestHandleWebhookEvent:
    def setup_method(self):
        self.zalo = MagicMock()
        self.zalo.send_group_text_message = AsyncMock()
        self.log_queue = MagicMock()
        self.service = ZaloWebhookService(
            ZaloConfig(app_id="app-123", auto_reply_enabled=True),
            zalo_client=self.zalo,
            log_queue=self.log_queue,
        )

    @pytest.mark.asyncio
    async def test_group_text_message(self):
        with patch.object(self.service, "_handle_text_message", wraps=self.service._handle_text_message) as spy:
            result = await self.service.handle_webhook_event(_event(_group_message("urgent task")))

        assert result == {"processed": 1, "failed": 0}
        spy.assert_called_once_with("urgent task")

    @pytest.mark.asyncio
    async def test_attachments_handled(self):
        attachments = [
            {"type": "image", "payload": {"url": "https://img.test/1.png"}},
            {"type": "location", "payload": {"coordinates": {"latitude": 10.7, "longitude": 106.6}}},
            {"type": "file", "payload": {"url": "https://files.test/a.pdf"}},
            {"type": "sticker", "payload": {}},
        ]
        with patch.object(self.service, "_handle_attachment", wraps=self.service._handle_attachment) as spy:
            result = await self.service.handle_webhook_event(_event(_group_message(attachments=attachments)))

        assert result == {"processed": 1, "failed": 0}
        assert [c.args[0].type for c in spy.call_args_list] == ["image", "location", "file", "sticker"]

    @pytest.mark.asyncio
    async def test_direct_message_only_logged(self):
        message = _group_message("help")
        del message["group_info"]
        result = await self.service.handle_webhook_event(_event(message))

        assert result == {"processed": 1, "failed": 0}
        self.zalo.send_group_text_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_auto_reply_sent(self):
        await self.service.handle_webhook_event(_event(_group_message("Cần hỗ trợ")))
        self.zalo.send_group_text_message.assert_awaited_once_with(AUTO_REPLY_TEXT, "g-1")

    @pytest.mark.asyncio
    async def test_auto_reply_disabled(self):
        service = ZaloWebhookService(ZaloConfig(auto_reply_enabled=False), zalo_client=self.zalo)
        await service.handle_webhook_event(_event(_group_message("help")))
        self.zalo.send_group_text_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_auto_reply_without_trigger(self):
        await self.service.handle_webhook_event(_event(_group_message("urgent")))
        self.zalo.send_group_text_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_message_isolated(self):
        self.zalo.send_group_text_message.side_effect = RuntimeError("zalo down")
        result = await self.service.handle_webhook_event(_event(
            _group_message("help", msg_id="m-1"),
            _group_message("hello", msg_id="m-2"),
        ))
        assert result == {"processed": 1, "failed": 1}

    @pytest.mark.asyncio
    async def test_invalid_message_isolated(self):
        bad = _group_message("hi")
        bad["group_info"] = {"group_name": "no id"}
        result = await self.service.handle_webhook_event(_event(bad, _group_message("hi", msg_id="m-2")))
        assert result == {"processed": 1, "failed": 1}

    @pytest.mark.asyncio
    async def test_empty_event(self):
        assert await self.service.handle_webhook_event(_event()) == {"processed": 0, "failed": 0}

    @pytest.mark.asyncio
    async def test_numeric_ids_accepted(self):
        message = _group_message("hi")
        message["sender"] = {"id": 123456}
        message["group_info"]["group_id"] = 987
        assert await self.service.handle_webhook_event(_event(message)) == {"processed": 1, "failed": 0}

    @pytest.mark.asyncio
    async def test_event_logged(self):
        await self.service.handle_webhook_event(_event(_group_message("hi")))
        entry = self.log_queue.push.call_args.args[0]
        assert entry.object_type == "webhooks"
        assert entry.category == "execution"
        assert entry.data["object_ref"] == "user_send_text"
        assert entry.data["message_count"] == 1

    @pytest.mark.asyncio
    async def test_build_test_event(self):
        event = self.service.build_test_event("need help")
        assert len(event.data) == 1
        assert event.data[0]["message"]["text"] == "need help"
        assert await self.service.handle_webhook_event(event) == {"processed": 1, "failed": 0}
        self.zalo.send_group_text_message.assert_awaited_once()

    def test_build_test_event_default_text(self):
        event = self.service.build_test_event()
        assert event.data[0]["message"]["text"] == "Test message from webhook"
        assert event.data[0]["group_info"]["group_id"] == "test-group-123"


class TestSignature:
    BODY = '{"app_id":"app-123","data":[]}'
    TIMESTAMP = "1714550000000"

    def _service(self, enabled=True):
        return ZaloWebhookService(ZaloConfig(
            app_id="app-123",
            app_secret="secret",
            webhook_verify_signature=enabled,
        ))

    def test_disabled_accepts_anything(self):
        assert self._service(enabled=False).verify_webhook_signature(None, self.BODY) is True

    def test_valid_signature(self):
        mac = compute_signature("app-123", self.BODY, self.TIMESTAMP, "secret")
        assert self._service().verify_webhook_signature(f"mac={mac}", self.BODY, self.TIMESTAMP) is True

    def test_valid_signature_without_prefix(self):
        mac = compute_signature("app-123", self.BODY, self.TIMESTAMP, "secret")
        assert self._service().verify_webhook_signature(mac, self.BODY, self.TIMESTAMP) is True

    def test_tampered_body(self):
        mac = compute_signature("app-123", self.BODY, self.TIMESTAMP, "secret")
        assert self._service().verify_webhook_signature(f"mac={mac}", self.BODY + " ", self.TIMESTAMP) is False

    def test_missing_signature(self):
        assert self._service().verify_webhook_signature(None, self.BODY, self.TIMESTAMP) is False

    def test_compute_signature_is_sha256_hex(self):
        mac = compute_signature("a", "b", "c", "d")
        assert len(mac) == 64
        int(mac, 16)

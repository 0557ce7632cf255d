"""
notifyhub Message Consumer — Kafka subscription and topic routing.

Topics are routed through a TopicRouter (topic → async handler) that is
checked against the subscribed topic set before the consumer connects.

Delivery is at-most-once: offsets auto-commit whatever the handler outcome.
Empty or malformed bodies are dropped, handler failures are logged and
counted, and nothing is retried or dead-lettered.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union

from aiokafka import AIOKafkaConsumer
from aiokafka.errors import KafkaError
from pydantic import ValidationError

from notifyhub.engine.config import KafkaConfig
from notifyhub.engine.errors import RelayConfigError, RelayIntegrationError, RelayValidationError
from notifyhub.engine.logging import log_message_event
from notifyhub.schemas import NotificationPayload, NotificationType, TaskEvent

logger = logging.getLogger("notifyhub.services.consumer")

TASK_EVENTS = "task-events"
USER_NOTIFICATIONS = "user.notifications"
EMAIL_NOTIFICATIONS = "email.notifications"
SMS_NOTIFICATIONS = "sms.notifications"

SUBSCRIBED_TOPICS: Tuple[str, ...] = (
    TASK_EVENTS,
    USER_NOTIFICATIONS,
    EMAIL_NOTIFICATIONS,
    SMS_NOTIFICATIONS,
)

TopicHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class TopicRouter:
    """Registered mapping from topic name to handler."""

    def __init__(self):
        self._handlers: Dict[str, TopicHandler] = {}

    def register(self, topic: str, handler: TopicHandler) -> None:
        if topic in self._handlers:
            raise RelayConfigError(f"Handler already registered for topic '{topic}'", topic=topic)
        self._handlers[topic] = handler

    def resolve(self, topic: str) -> Optional[TopicHandler]:
        return self._handlers.get(topic)

    @property
    def topics(self) -> List[str]:
        return list(self._handlers)

    def validate(self, subscribed: Iterable[str]) -> None:
        """
        Ensure every subscribed topic has a handler and every handler is subscribed.

        Raises:
            RelayConfigError: listing the unrouted and unsubscribed topics.
        """
        subscribed_set = set(subscribed)
        routed = set(self._handlers)
        unrouted = sorted(subscribed_set - routed)
        unsubscribed = sorted(routed - subscribed_set)
        if unrouted or unsubscribed:
            raise RelayConfigError(
                "Topic routing does not match subscriptions",
                unrouted=unrouted,
                unsubscribed=unsubscribed,
            )


def _decode(value: Union[bytes, str, None]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class MessageConsumer:
    """
    Consumes the notification topics and forwards payloads to the NotificationService.

    Args:
        kafka_config: Kafka section of Settings.
        notification_service: Receives task events and notifications.
        consumer_factory: Zero-arg callable returning an AIOKafkaConsumer-like
            object (start/stop/async iteration). Defaults to a real AIOKafkaConsumer.
        log_queue: Optional AsyncLogQueue for per-message records.
    """

    def __init__(
        self,
        kafka_config: KafkaConfig,
        notification_service: Any,
        consumer_factory: Optional[Callable[[], Any]] = None,
        log_queue: Any = None,
        topics: Iterable[str] = SUBSCRIBED_TOPICS,
    ):
        self._config = kafka_config
        self._notifications = notification_service
        self._consumer_factory = consumer_factory or self._create_kafka_consumer
        self._log_queue = log_queue
        self._topics = tuple(topics)

        self._router = TopicRouter()
        self._router.register(TASK_EVENTS, self._handle_task_event)
        self._router.register(USER_NOTIFICATIONS, self._handle_user_notification)
        self._router.register(EMAIL_NOTIFICATIONS, self._handle_email_notification)
        self._router.register(SMS_NOTIFICATIONS, self._handle_sms_notification)

        self._consumer: Any = None
        self._task: Optional[asyncio.Task] = None
        self._connected = False
        self._received = 0
        self._processed = 0
        self._failed = 0
        self._dropped = 0

    @property
    def router(self) -> TopicRouter:
        return self._router

    def _create_kafka_consumer(self) -> AIOKafkaConsumer:
        return AIOKafkaConsumer(
            *self._topics,
            bootstrap_servers=self._config.brokers,
            client_id=self._config.client_id,
            group_id=self._config.consumer_group_id,
            enable_auto_commit=True,
            auto_offset_reset=self._config.auto_offset_reset,
        )

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    async def start(self) -> None:
        """
        Validate routing, connect, subscribe and spawn the consume loop.

        Raises:
            RelayConfigError: routing table does not match the topic set.
            RelayIntegrationError: the broker could not be reached.
        """
        self._router.validate(self._topics)

        self._consumer = self._consumer_factory()
        try:
            await self._consumer.start()
        except KafkaError as e:
            logger.error(f"Failed to connect Kafka consumer: {e}")
            raise RelayIntegrationError(
                f"Failed to connect Kafka consumer: {e}",
                connected_system="kafka",
                brokers=",".join(self._config.brokers),
            ) from e

        self._connected = True
        logger.info(f"Kafka consumer connected, subscribed to {', '.join(self._topics)}")
        self._task = asyncio.create_task(self._consume_loop(), name="notifyhub-consumer")

    async def stop(self) -> None:
        self._connected = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._consumer is not None:
            try:
                await self._consumer.stop()
            except KafkaError as e:
                logger.error(f"Error disconnecting Kafka consumer: {e}")
            self._consumer = None
        logger.info(f"Kafka consumer stopped ({self._processed} messages processed)")

    async def _consume_loop(self) -> None:
        try:
            async for record in self._consumer:
                await self.handle_message(record.topic, record.partition, record.key, record.value)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Kafka consume loop terminated")
            self._connected = False

    # -----------------------------------------------------------------------
    # Per-message handling
    # -----------------------------------------------------------------------

    async def handle_message(
        self,
        topic: str,
        partition: Optional[int],
        key: Union[bytes, str, None],
        value: Union[bytes, str, None],
    ) -> bool:
        """
        Parse and route one message. Never raises.

        Returns:
            True if a handler ran to completion.
        """
        self._received += 1
        try:
            key_text = _decode(key)
            body = _decode(value)
        except UnicodeDecodeError as e:
            return self._drop(topic, partition, None, f"undecodable message: {e}")

        logger.info(f"Message #{self._received} from {topic}[{partition}] key={key_text}")

        if not body or not body.strip():
            return self._drop(topic, partition, key_text, "empty message")

        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            return self._drop(topic, partition, key_text, f"malformed JSON: {e}")
        if not isinstance(data, dict):
            return self._drop(topic, partition, key_text, "message body is not a JSON object")

        handler = self._router.resolve(topic)
        if handler is None:
            return self._drop(topic, partition, key_text, "unknown topic")

        start = time.monotonic()
        try:
            await handler(data)
        except Exception as e:
            self._failed += 1
            duration_ms = (time.monotonic() - start) * 1000
            logger.error(f"Error processing message #{self._received} from {topic}: {e}")
            self._record(log_message_event(topic, partition, key_text, False, duration_ms, error=str(e)))
            return False

        self._processed += 1
        duration_ms = (time.monotonic() - start) * 1000
        self._record(log_message_event(topic, partition, key_text, True, duration_ms))
        return True

    def _drop(self, topic: str, partition: Optional[int], key: Optional[str], reason: str) -> bool:
        self._dropped += 1
        logger.warning(f"Dropping message from {topic}: {reason}")
        self._record(log_message_event(topic, partition, key, False, error=reason))
        return False

    async def _handle_task_event(self, data: Dict[str, Any]) -> None:
        try:
            event = TaskEvent.model_validate(data)
        except ValidationError as e:
            raise RelayValidationError(
                "Invalid task event payload", validation_errors=e.errors(),
            ) from e
        await self._notifications.process_task_event(event)
        logger.info(f"Task event {event.event_type} processed for task {event.task_code}")

    async def _handle_user_notification(self, data: Dict[str, Any]) -> None:
        await self._notifications.process_notification(self._to_notification(data))

    async def _handle_email_notification(self, data: Dict[str, Any]) -> None:
        await self._notifications.process_notification(
            self._to_notification({**data, "type": NotificationType.EMAIL.value})
        )

    async def _handle_sms_notification(self, data: Dict[str, Any]) -> None:
        await self._notifications.process_notification(
            self._to_notification({**data, "type": NotificationType.SMS.value})
        )

    @staticmethod
    def _to_notification(data: Dict[str, Any]) -> NotificationPayload:
        try:
            return NotificationPayload.model_validate(data)
        except ValidationError as e:
            raise RelayValidationError(
                "Invalid notification payload", validation_errors=e.errors(),
            ) from e

    def get_connection_status(self) -> Dict[str, Any]:
        return {
            "connected": self._connected,
            "messages_processed": self._processed,
            "messages_failed": self._failed,
            "messages_dropped": self._dropped,
            "topics": list(self._topics),
        }

    def _record(self, entry: Any) -> None:
        if self._log_queue is not None:
            self._log_queue.push(entry)

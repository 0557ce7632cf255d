"""notifyhub services: notification dispatcher, Kafka consumer, webhook handler."""

from notifyhub.services.consumer import MessageConsumer, TopicRouter
from notifyhub.services.notification import NotificationService
from notifyhub.services.webhook import ZaloWebhookService

__all__ = ["MessageConsumer", "NotificationService", "TopicRouter", "ZaloWebhookService"]

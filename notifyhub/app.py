"""
notifyhub Application — FastAPI factory, service container and lifespan.

Services are built once per application and stored on ``app.state.services``;
routers reach them through the ``get_services`` dependency. Nothing below the
app holds global state: each component receives its config section and
collaborators explicitly.

Run:
    notifyhub run --port 3000
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request

from notifyhub import __version__
from notifyhub.channels.email import EmailSender
from notifyhub.channels.zalo import ZaloClient
from notifyhub.engine.cache import create_cache
from notifyhub.engine.config import Settings, get_settings
from notifyhub.engine.credentials import CredentialCipher
from notifyhub.engine.errors import RelayIntegrationError
from notifyhub.engine.health import HealthCheckService
from notifyhub.engine.logging import (
    AsyncLogQueue,
    get_log_queue,
    init_logging,
    log_system_event,
    shutdown_logging,
)
from notifyhub.engine.token_cache import TokenCache
from notifyhub.services.consumer import MessageConsumer
from notifyhub.services.notification import NotificationService
from notifyhub.services.webhook import ZaloWebhookService

logger = logging.getLogger("notifyhub.app")


@dataclass
class ServiceContainer:
    settings: Settings
    cache: Any
    token_cache: TokenCache
    zalo: ZaloClient
    email: EmailSender
    notifications: NotificationService
    webhook: ZaloWebhookService
    health: HealthCheckService
    consumer: Optional[MessageConsumer] = None
    log_queue: Optional[AsyncLogQueue] = None


def build_services(
    settings: Settings,
    http_client: Any = None,
    consumer_factory: Optional[Callable[[], Any]] = None,
    clock: Optional[Callable[[], float]] = None,
) -> ServiceContainer:
    """Wire every service from settings. Test doubles can be injected here."""
    log_queue = init_logging(settings.logging.directory) if settings.logging.event_log_enabled else None

    cache = create_cache(settings.cache, clock=clock)
    token_cache = TokenCache(cache, CredentialCipher(settings.secret_key), clock=clock)
    zalo = ZaloClient(settings.zalo, token_cache, http_client=http_client, log_queue=log_queue)
    email = EmailSender(settings.email)
    notifications = NotificationService(email, zalo, settings.email)
    webhook = ZaloWebhookService(settings.zalo, zalo_client=zalo, log_queue=log_queue)

    consumer = None
    if settings.kafka.enabled:
        consumer = MessageConsumer(
            settings.kafka,
            notifications,
            consumer_factory=consumer_factory,
            log_queue=log_queue,
        )

    health = HealthCheckService()
    health.register_cache_check(cache)
    if consumer is not None:
        health.register_consumer_check(consumer)
    health.register_token_check(zalo)

    return ServiceContainer(
        settings=settings,
        cache=cache,
        token_cache=token_cache,
        zalo=zalo,
        email=email,
        notifications=notifications,
        webhook=webhook,
        health=health,
        consumer=consumer,
        log_queue=log_queue,
    )


def get_services(request: Request) -> ServiceContainer:
    """FastAPI dependency: the container attached to the running app."""
    return request.app.state.services


@asynccontextmanager
async def lifespan(app: FastAPI):
    services: ServiceContainer = app.state.services
    app.state.started_at = time.monotonic()

    services.zalo.load_cached_tokens()
    if services.consumer is not None:
        try:
            await services.consumer.start()
        except RelayIntegrationError as e:
            # HTTP surface stays up; /notifications/health reports the consumer as down
            logger.error(f"Message consumer not started: {e.message}")
    else:
        logger.info("Kafka consumer disabled")

    if services.log_queue is not None:
        services.log_queue.push(log_system_event("startup", details={"version": __version__}))
    logger.info(f"notifyhub {__version__} started ({services.settings.environment})")

    yield

    if services.consumer is not None:
        await services.consumer.stop()
    await services.zalo.aclose()
    services.cache.close()
    if services.log_queue is not None:
        services.log_queue.push(log_system_event("shutdown"))
        if services.log_queue is get_log_queue():
            shutdown_logging()
        else:
            services.log_queue.stop()
    logger.info("notifyhub stopped")


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[ServiceContainer] = None,
) -> FastAPI:
    """Application factory."""
    from notifyhub.api import auth, notifications, webhook

    if services is None:
        services = build_services(settings or get_settings())

    app = FastAPI(
        title="notifyhub",
        description="Kafka → email / Zalo notification relay",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.started_at = time.monotonic()

    @app.get("/")
    async def hello() -> str:
        return "Hello World!"

    app.include_router(auth.router)
    app.include_router(notifications.router)
    app.include_router(webhook.router)
    return app

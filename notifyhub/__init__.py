"""
notifyhub — Task notification relay.

Consumes task-lifecycle and ad-hoc notification messages from Kafka and fans
them out to e-mail, a Zalo Official Account group chat and push/SMS
placeholders. A FastAPI surface exposes OAuth, webhook and health endpoints.
"""

__version__ = "1.0.0"
__all__ = ["engine", "channels", "services", "api"]

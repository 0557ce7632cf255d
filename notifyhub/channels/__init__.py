"""notifyhub outbound channels: Zalo OA API client and SMTP mail client."""

from notifyhub.channels.email import EmailSender
from notifyhub.channels.zalo import ZaloClient, is_token_error

__all__ = ["EmailSender", "ZaloClient", "is_token_error"]

"""SMTP mail client for notifyhub."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Optional

from notifyhub.engine.config import EmailConfig
from notifyhub.engine.errors import RelayIntegrationError

logger = logging.getLogger("notifyhub.channels.email")

TASK_CREATED_HTML = """\
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; background-color: #f8f9fa;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background-color: #007bff; color: white; padding: 20px; text-align: center; border-radius: 8px 8px 0 0;">
      <h1>Nhiệm vụ mới được tạo</h1>
    </div>
    <div style="background-color: white; padding: 30px; border-radius: 0 0 8px 8px;">
      <p>Xin chào,</p>
      <p>Một nhiệm vụ mới đã được tạo trong hệ thống quản lý nhân sự:</p>
      <div style="background-color: #e9ecef; padding: 15px; border-radius: 5px; margin: 20px 0;">
        <h3>Thông tin nhiệm vụ:</h3>
        <p><strong>Mã nhiệm vụ:</strong> {task_code}</p>
        <p><strong>Tên nhiệm vụ:</strong> {task_name}</p>
        {project_line}
        <p><strong>Thời gian tạo:</strong> {created_at}</p>
      </div>
      <p>Vui lòng truy cập hệ thống để xem chi tiết và bắt đầu làm việc.</p>
      <p>Trân trọng,<br><strong>Hệ thống quản lý nhân sự</strong></p>
    </div>
    <p style="text-align: center; color: #6c757d; font-size: 14px;">Đây là email tự động, vui lòng không trả lời.</p>
  </div>
</body>
</html>
"""

TASK_CREATED_TEXT = """\
Nhiệm vụ mới được tạo

Mã nhiệm vụ: {task_code}
Tên nhiệm vụ: {task_name}
{project_line}Thời gian tạo: {created_at}

Vui lòng truy cập hệ thống để xem chi tiết.

Trân trọng,
Hệ thống quản lý nhân sự
"""


class EmailSender:
    """
    Sends mail over SMTP.

    smtplib is blocking, so each send runs in a worker thread via
    asyncio.to_thread. A new connection is opened per message.
    """

    def __init__(self, config: EmailConfig):
        self._config = config

    def _connect(self) -> smtplib.SMTP:
        server = smtplib.SMTP(self._config.host, self._config.port, timeout=self._config.timeout)
        try:
            if self._config.use_tls:
                server.starttls()
            if self._config.user and self._config.password:
                server.login(self._config.user, self._config.password)
        except Exception:
            server.close()
            raise
        return server

    def _send_sync(self, to: str, subject: str, html: str, text: Optional[str]) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self._config.from_address
        msg["To"] = to
        if text:
            msg.attach(MIMEText(text, "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))

        with self._connect() as server:
            server.send_message(msg)

    async def send_email(self, to: str, subject: str, html: str, text: Optional[str] = None) -> None:
        """
        Send one message.

        Raises:
            RelayIntegrationError: connection, authentication or delivery failure.
        """
        try:
            await asyncio.to_thread(self._send_sync, to, subject, html, text)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to}: {e}")
            raise RelayIntegrationError(
                f"Failed to send email to {to}: {e}",
                connected_system="smtp",
                recipient=to,
            ) from e
        logger.info(f"Email sent successfully to {to}")

    async def send_task_created_email(
        self,
        email: str,
        task_code: str,
        task_name: str,
        project_name: Optional[str] = None,
    ) -> None:
        created_at = datetime.now().strftime("%H:%M:%S %d/%m/%Y")
        html = TASK_CREATED_HTML.format(
            task_code=escape(task_code),
            task_name=escape(task_name),
            project_line=(
                f"<p><strong>Dự án:</strong> {escape(project_name)}</p>" if project_name else ""
            ),
            created_at=created_at,
        )
        text = TASK_CREATED_TEXT.format(
            task_code=task_code,
            task_name=task_name,
            project_line=f"Dự án: {project_name}\n" if project_name else "",
            created_at=created_at,
        )
        await self.send_email(email, f"Nhiệm vụ mới được tạo: {task_code}", html, text)

    async def test_connection(self) -> bool:
        """Open a session and issue NOOP. Never raises."""
        def _probe() -> bool:
            with self._connect() as server:
                code, _ = server.noop()
                return code == 250

        try:
            ok = await asyncio.to_thread(_probe)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Email connection test failed: {e}")
            return False
        if ok:
            logger.info("Email connection test successful")
        return ok

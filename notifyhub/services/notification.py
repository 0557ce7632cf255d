"""
notifyhub Notification Service — Central dispatcher for task events and ad-hoc notifications.

Task events fan out per type:
    task.created    task-created email → group chat message → push per assignee
    task.updated    group chat message → push per assignee
    task.assigned   email notification per assignee → group chat message
    task.completed  on-time/late log → push per assignee + creator → group chat message

Email and chat failures are logged where they happen and never abort the
surrounding handler. The per-channel senders for ad-hoc notifications only log:
delivery backends and history persistence are outside this service.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from notifyhub.engine.config import EmailConfig
from notifyhub.schemas import NotificationPayload, NotificationType, TaskEvent, TaskEventType

logger = logging.getLogger("notifyhub.services.notification")


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _display_date(value: Optional[str]) -> str:
    parsed = _parse_datetime(value)
    return parsed.strftime("%d/%m/%Y") if parsed else (value or "")


def _display_datetime(value: Optional[str]) -> str:
    parsed = _parse_datetime(value)
    return parsed.strftime("%H:%M:%S %d/%m/%Y") if parsed else (value or "")


def is_completed_on_time(event: TaskEvent) -> Optional[bool]:
    """
    Compare completion time (updated_at, else timestamp) to due_date.

    Returns None when there is no due date or either side is unparseable.
    """
    due = _parse_datetime(event.due_date)
    if due is None:
        return None
    completed = _parse_datetime(event.updated_at or event.timestamp)
    if completed is None:
        return None
    return completed <= due


def format_task_message(event: TaskEvent) -> str:
    """Plain-text group chat message describing a task event."""
    if event.event_type == TaskEventType.TASK_CREATED.value:
        header = "🆕 New task created"
    elif event.event_type == TaskEventType.TASK_UPDATED.value:
        header = "✏️ Task updated"
    elif event.event_type == TaskEventType.TASK_ASSIGNED.value:
        header = "👤 Task assigned"
    elif event.event_type == TaskEventType.TASK_COMPLETED.value:
        header = "✅ Task completed"
    else:
        header = f"📋 Task event: {event.event_type}"

    lines = [
        header,
        "",
        f"Code: {event.task_code}",
        f"Name: {event.task_name}",
    ]
    if event.description:
        lines.append(f"Description: {event.description}")
    if event.project_name:
        lines.append(f"Project: {event.project_name}")
    lines.append(f"Status: {event.status}")
    lines.append(f"Type: {event.type}")
    lines.append(f"Progress: {event.process}%")
    if event.start_at:
        lines.append(f"Start date: {_display_date(event.start_at)}")
    if event.due_date:
        lines.append(f"Due date: {_display_date(event.due_date)}")
    lines.append(f"Created by: User {event.creator_id}")
    if event.event_type == TaskEventType.TASK_UPDATED.value:
        lines.append(f"Updated by: User {event.updater_id}")
    if event.assignee_ids:
        lines.append("Assigned to: " + ", ".join(f"User {a}" for a in event.assignee_ids))
    if event.label_ids:
        lines.append("Labels: " + ", ".join(str(label) for label in event.label_ids))
    lines.append(f"Time: {_display_datetime(event.timestamp)}")
    lines.append(f"Task ID: #{event.task_id}")
    return "\n".join(lines)


@dataclass
class TaskEventStats:
    """Process-lifetime counters; reset on restart."""
    total: int = 0
    by_type: Dict[str, int] = field(
        default_factory=lambda: {t.value: 0 for t in TaskEventType}
    )
    last_processed: Optional[str] = None
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def record(self, event_type: str) -> None:
        self.total += 1
        self.by_type[event_type] += 1
        self.last_processed = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "by_type": dict(self.by_type),
            "last_processed": self.last_processed,
            "uptime_since": self.started_at,
        }


class NotificationService:
    """
    Dispatches task events and ad-hoc notifications.

    Args:
        email_sender: EmailSender (or any object with send_task_created_email).
        zalo_client: ZaloClient used for group chat messages.
        email_config: Provides the task-created recipient address.
    """

    def __init__(self, email_sender: Any, zalo_client: Any, email_config: EmailConfig):
        self._email = email_sender
        self._zalo = zalo_client
        self._email_config = email_config
        self._stats = TaskEventStats()
        self._handlers = {
            TaskEventType.TASK_CREATED.value: self._handle_task_created,
            TaskEventType.TASK_UPDATED.value: self._handle_task_updated,
            TaskEventType.TASK_ASSIGNED.value: self._handle_task_assigned,
            TaskEventType.TASK_COMPLETED.value: self._handle_task_completed,
        }

    # -----------------------------------------------------------------------
    # Ad-hoc notifications
    # -----------------------------------------------------------------------

    async def process_notification(self, payload: NotificationPayload) -> None:
        logger.info(f"Processing {payload.type} notification for user {payload.user_id}")

        if payload.type == NotificationType.EMAIL.value:
            await self._send_email_notification(payload)
        elif payload.type == NotificationType.SMS.value:
            await self._send_sms_notification(payload)
        elif payload.type == NotificationType.PUSH.value:
            await self._send_push_notification(payload)
        else:
            logger.warning(f"Unknown notification type: {payload.type}")

    async def _send_email_notification(self, payload: NotificationPayload) -> None:
        logger.info(f"Email notification sent to user {payload.user_id}")
        logger.debug(f"Email content: {payload.title} - {payload.message}")

    async def _send_sms_notification(self, payload: NotificationPayload) -> None:
        logger.info(f"SMS notification sent to user {payload.user_id}")
        logger.debug(f"SMS content: {payload.message}")

    async def _send_push_notification(self, payload: NotificationPayload) -> None:
        logger.info(f"Push notification sent to user {payload.user_id}")
        logger.debug(f"Push content: {payload.title} - {payload.message}")

    async def get_notification_history(self, user_id: str) -> List[NotificationPayload]:
        logger.info(f"Fetching notification history for user {user_id}")
        return []

    async def mark_notification_as_read(self, notification_id: str) -> None:
        logger.info(f"Marking notification {notification_id} as read")

    # -----------------------------------------------------------------------
    # Task events
    # -----------------------------------------------------------------------

    async def process_task_event(self, event: TaskEvent) -> None:
        handler = self._handlers.get(event.event_type)
        if handler is None:
            logger.warning(f"Unknown task event type: {event.event_type}")
            return

        self._stats.record(event.event_type)
        logger.info(f"Processing task event {event.event_type} for task {event.task_code}")
        logger.debug(
            f"Stats - total: {self._stats.total}, "
            f"{event.event_type}: {self._stats.by_type[event.event_type]}"
        )
        await handler(event)

    def get_task_event_stats(self) -> Dict[str, Any]:
        return self._stats.to_dict()

    async def _handle_task_created(self, event: TaskEvent) -> None:
        logger.info(f"Task created: {event.task_code} - {event.task_name}")

        recipient = self._email_config.task_created_recipient
        try:
            await self._email.send_task_created_email(
                recipient, event.task_code, event.task_name, event.project_name,
            )
            logger.info(f"Task-created email sent to {recipient}")
        except Exception as e:
            logger.error(f"Failed to send task-created email for {event.task_code}: {e}")

        await self._send_chat_notification(event)

        for assignee_id in event.assignee_ids:
            await self.process_notification(self._build_notification(
                event,
                user_id=assignee_id,
                prefix="task_created",
                kind=NotificationType.PUSH,
                title="New Task Assigned",
                message=f"You have been assigned to task: {event.task_name}",
                metadata={
                    "start_at": event.start_at,
                    "due_date": event.due_date,
                    "creator_id": event.creator_id,
                    "updater_id": event.updater_id,
                },
            ))

    async def _handle_task_updated(self, event: TaskEvent) -> None:
        logger.info(f"Task updated: {event.task_code} by user {event.updater_id}")

        await self._send_chat_notification(event)

        for assignee_id in event.assignee_ids:
            await self.process_notification(self._build_notification(
                event,
                user_id=assignee_id,
                prefix="task_updated",
                kind=NotificationType.PUSH,
                title="Task Updated",
                message=f'Task "{event.task_name}" has been updated',
                metadata={"updater_id": event.updater_id},
            ))

    async def _handle_task_assigned(self, event: TaskEvent) -> None:
        logger.info(
            f"Task assigned: {event.task_code} to users "
            f"{', '.join(str(a) for a in event.assignee_ids)}"
        )

        for assignee_id in event.assignee_ids:
            await self.process_notification(self._build_notification(
                event,
                user_id=assignee_id,
                prefix="task_assigned",
                kind=NotificationType.EMAIL,
                title="Task Assignment",
                message=f"You have been assigned to task: {event.task_name}",
                metadata={
                    "start_at": event.start_at,
                    "due_date": event.due_date,
                    "description": event.description,
                    "creator_id": event.creator_id,
                    "updater_id": event.updater_id,
                },
            ))

        await self._send_chat_notification(event)

    async def _handle_task_completed(self, event: TaskEvent) -> None:
        logger.info(f"Task completed: {event.task_code} by user {event.updater_id}")

        on_time = is_completed_on_time(event)
        if on_time is True:
            logger.info(f"Task {event.task_code} completed on time (due {event.due_date})")
        elif on_time is False:
            logger.info(f"Task {event.task_code} completed late (due {event.due_date})")

        # Producers mix numeric and string ids
        recipients = list(dict.fromkeys(str(user_id) for user_id in event.assignee_ids))
        if event.creator_id is not None and str(event.creator_id) not in recipients:
            recipients.append(str(event.creator_id))

        for user_id in recipients:
            await self.process_notification(self._build_notification(
                event,
                user_id=user_id,
                prefix="task_completed",
                kind=NotificationType.PUSH,
                title="Task Completed",
                message=f'Task "{event.task_name}" has been completed',
                metadata={
                    "completed_by": event.updater_id,
                    "completed_at": event.updated_at,
                },
            ))

        await self._send_chat_notification(event)

    async def _send_chat_notification(self, event: TaskEvent) -> None:
        if not event.zalo_gid:
            logger.warning(
                f"No Zalo group id on task {event.task_code}; skipping chat notification"
            )
            return

        try:
            await self._zalo.send_group_text_message(format_task_message(event), event.zalo_gid)
            logger.info(f"Chat notification sent for task {event.task_code} to group {event.zalo_gid}")
        except Exception as e:
            logger.error(f"Failed to send chat notification for task {event.task_code}: {e}")

    @staticmethod
    def _build_notification(
        event: TaskEvent,
        user_id: Any,
        prefix: str,
        kind: NotificationType,
        title: str,
        message: str,
        metadata: Dict[str, Any],
    ) -> NotificationPayload:
        meta: Dict[str, Any] = {
            "task_id": event.task_id,
            "task_code": event.task_code,
            "project_id": event.project_id,
            "department_id": event.department_id,
            "event_type": event.event_type,
            "status": event.status,
            "type": event.type,
            "process": event.process,
        }
        meta.update(metadata)
        return NotificationPayload(
            id=f"{prefix}_{event.task_id}_{user_id}",
            user_id=str(user_id),
            type=kind.value,
            title=title,
            message=message,
            metadata=meta,
            timestamp=event.timestamp,
        )

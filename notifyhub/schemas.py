"""
notifyhub Schemas — pydantic models for every wire payload.

Inbound:  TaskEvent (task-events topic), NotificationPayload (user/email/sms
          topics and POST /notifications/test), ZaloWebhookEvent (POST /webhook/zalo)
Outbound: ok() / fail() helpers for the uniform {success, message, data, error} body
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

Identifier = Union[int, str]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _stringify(value: Any) -> Any:
    # Producers send numeric ids for string fields
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class TaskEventType(str, Enum):
    TASK_CREATED = "task.created"
    TASK_UPDATED = "task.updated"
    TASK_ASSIGNED = "task.assigned"
    TASK_COMPLETED = "task.completed"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        return value in cls._value2member_map_


class NotificationType(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class TaskEvent(BaseModel):
    """
    Task lifecycle event published by the HR service.

    ``event_type`` is kept as a plain string so unknown types can be logged
    and ignored instead of failing validation.
    """

    model_config = ConfigDict(extra="allow")

    event_id: str = ""
    event_type: str
    timestamp: str = Field(default_factory=_now_iso)
    source: str = ""
    task_id: Identifier
    task_code: str
    task_name: str
    description: Optional[str] = None
    project_id: Optional[Identifier] = None
    project_name: Optional[str] = None
    department_id: Optional[Identifier] = None
    creator_id: Optional[Identifier] = None
    updater_id: Optional[Identifier] = None
    status: str = ""
    type: str = ""
    process: int = Field(default=0, ge=0, le=100)
    start_at: Optional[str] = None
    due_date: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    assignee_ids: List[Identifier] = Field(default_factory=list)
    label_ids: List[Identifier] = Field(default_factory=list)
    org_id: Optional[Identifier] = None
    zalo_gid: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("event_id", "task_code", "zalo_gid", mode="before")
    @classmethod
    def coerce_strings(cls, v: Any) -> Any:
        return _stringify(v)


class NotificationPayload(BaseModel):
    """Ad-hoc notification for one user over one channel."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = ""
    user_id: str = Field(default="", alias="userId")
    type: str
    title: str = ""
    message: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: str = Field(default_factory=_now_iso)

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def coerce_strings(cls, v: Any) -> Any:
        return _stringify(v)


# ---------------------------------------------------------------------------
# Zalo webhook payloads
# ---------------------------------------------------------------------------

class ZaloAttachment(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    type: str = ""
    payload: Dict[str, Any] = Field(default_factory=dict)


class ZaloMessageBody(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    text: Optional[str] = None
    msg_id: str = ""
    attachments: List[ZaloAttachment] = Field(default_factory=list)


class ZaloParticipant(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str = ""


class ZaloGroupInfo(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    group_id: str
    group_name: str = ""
    group_type: str = ""


class ZaloWebhookMessage(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    app_id: str = ""
    user_id_by_app: str = ""
    oa_id: str = ""
    timestamp: str = ""
    event_name: str = ""
    message: ZaloMessageBody = Field(default_factory=ZaloMessageBody)
    sender: ZaloParticipant = Field(default_factory=ZaloParticipant)
    recipient: ZaloParticipant = Field(default_factory=ZaloParticipant)
    group_info: Optional[ZaloGroupInfo] = None


class ZaloWebhookEvent(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    app_id: str = ""
    timestamp: str = ""
    # Entries are validated one at a time by the webhook handler
    data: List[Any] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------

def ok(message: Optional[str] = None, data: Any = None) -> Dict[str, Any]:
    """Uniform success body: {success: true, message?, data?}."""
    body: Dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def fail(message: str, error: Optional[Union[str, BaseException]] = None) -> Dict[str, Any]:
    """Uniform failure body: {success: false, message, error?}."""
    if isinstance(error, BaseException):
        error = getattr(error, "message", None) or str(error)
    body: Dict[str, Any] = {"success": False, "message": message}
    if error is not None:
        body["error"] = error
    return body

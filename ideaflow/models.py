import re
import uuid
from datetime import datetime, timezone, date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

Priority = Literal["high", "medium", "low"]
Duration = Literal["15m", "30m", "1h", "2h", "4h", "1d"]
TaskStatus = Literal["pending", "in_progress", "completed"]

PRIORITIES = ("high", "medium", "low")
DURATIONS = ("15m", "30m", "1h", "2h", "4h", "1d")

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_HH_MM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# ============ AI RESPONSE SCHEMA ============
class AITask(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = Field(min_length=1)
    description: str
    priority: Priority
    estimated_duration: Duration
    suggested_due_date: Optional[str]  # YYYY-MM-DD or null, key required
    needs_user_input: bool
    timeline_question: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v

    @field_validator("suggested_due_date")
    @classmethod
    def due_date_format(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        if not _ISO_DATE.match(v):
            raise ValueError("suggested_due_date must be YYYY-MM-DD")
        date.fromisoformat(v)  # rejects impossible dates like 2026-02-30
        return v

    @property
    def is_resolved(self) -> bool:
        return not self.needs_user_input and not self.timeline_question


class AIResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str
    tasks: List[AITask] = Field(min_length=1, max_length=4)
    suggestions: Optional[List[str]] = None


# ============ STORED ROWS ============
class IdeaRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_id)
    user_id: str
    content: str
    ai_response: Dict[str, Any]
    created_at: datetime = Field(default_factory=utc_now)


class TaskRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_id)
    user_id: str
    idea_id: Optional[str] = None  # weak reference, lookup only
    title: str
    description: Optional[str] = None
    status: TaskStatus = "pending"
    priority: Priority = "medium"
    estimated_duration: Optional[Duration] = None
    due_date: Optional[datetime] = None
    needs_user_input: bool = False
    timeline_question: Optional[str] = None
    notification_sent: bool = False
    completed_at: Optional[datetime] = None
    source_data: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class PendingDecomposition(BaseModel):
    """Draft tasks waiting for the user's answer about timing. Never stored in the database."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str
    idea: str
    ai_response: AIResponse
    created_at: datetime = Field(default_factory=utc_now)


# ============ REQUEST MODELS ============
class ProcessIdeaRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    idea: Optional[str] = None
    userId: Optional[str] = None
    dateConfirmation: Optional[str] = None
    pendingId: Optional[str] = None


class VoiceToTextRequest(BaseModel):
    audio: Optional[str] = None  # base64
    filename: Optional[str] = "recording.webm"


class TaskUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    estimated_duration: Optional[Duration] = None
    due_date: Optional[datetime] = None


class MakeTaskPayload(BaseModel):
    user_email: EmailStr
    title: str = Field(min_length=1)
    description: Optional[str] = None
    source: Literal["gmail", "whatsapp"]
    message_content: str = ""
    suggested_date: Optional[str] = None
    priority: Optional[Priority] = None
    ai_analysis: Optional[str] = None


# ============ PREFERENCES ============
class UserPreferences(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: str
    theme: Literal["light", "dark"] = "light"
    notifications_enabled: bool = True
    daily_reminder_time: str = "09:00"
    updated_at: datetime = Field(default_factory=utc_now)


class PreferencesUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    theme: Optional[Literal["light", "dark"]] = None
    notifications_enabled: Optional[bool] = None
    daily_reminder_time: Optional[str] = None

    @field_validator("daily_reminder_time")
    @classmethod
    def reminder_time_format(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _HH_MM.match(v):
            raise ValueError("daily_reminder_time must be HH:MM")
        return v

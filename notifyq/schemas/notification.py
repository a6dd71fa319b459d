"""Notification queue schemas"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any, List, Union
from datetime import datetime
from enum import Enum
import uuid

# Priority names accepted from producers and their queue ordering weight
PRIORITY_LEVELS: Dict[str, int] = {
    "urgent": 10,
    "high": 8,
    "normal": 5,
    "low": 2,
}
DEFAULT_PRIORITY = "normal"

def resolve_priority(value: Union[int, str, None]) -> int:
    """Map a priority name or integer to the queue ordering weight"""
    if value is None:
        return PRIORITY_LEVELS[DEFAULT_PRIORITY]
    if isinstance(value, bool):
        return PRIORITY_LEVELS[DEFAULT_PRIORITY]
    if isinstance(value, int):
        return value
    text = str(value).strip().lower()
    if text.lstrip("-").isdigit():
        return int(text)
    return PRIORITY_LEVELS.get(text, PRIORITY_LEVELS[DEFAULT_PRIORITY])

def priority_name(value: Union[int, str, None]) -> str:
    """Closest priority name for display on the Notification record"""
    if isinstance(value, str) and value.strip().lower() in PRIORITY_LEVELS:
        return value.strip().lower()
    weight = resolve_priority(value)
    for name, level in sorted(PRIORITY_LEVELS.items(), key=lambda kv: -kv[1]):
        if weight >= level:
            return name
    return "low"

class BaseSchema(BaseModel):
    """Base schema with common configuration"""

    model_config = {"from_attributes": True}

class NotificationPayload(BaseSchema):
    """Content carried by a queue item"""

    type: str = Field(..., min_length=1, max_length=50)
    category: str = Field(default="general", max_length=50)
    priority: str = DEFAULT_PRIORITY
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    action_url: Optional[str] = Field(None, max_length=500)
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("type", "title", "message", mode="before")
    @classmethod
    def strip_required_text(cls, v):
        if isinstance(v, str):
            v = v.strip()
        return v

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v):
        return v or "general"

    @field_validator("data", mode="before")
    @classmethod
    def default_data(cls, v):
        return v or {}

class EnqueueRequest(BaseSchema):
    """Producer request to notify one user"""

    user_id: uuid.UUID
    type: str = Field(..., min_length=1, max_length=50)
    category: Optional[str] = None
    priority: Union[int, str] = DEFAULT_PRIORITY
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    action_url: Optional[str] = Field(None, max_length=500)
    data: Dict[str, Any] = Field(default_factory=dict)
    scheduled_for: Optional[datetime] = None
    batchable: bool = False

    @field_validator("type", "title", "message", mode="before")
    @classmethod
    def strip_required_text(cls, v):
        if isinstance(v, str):
            v = v.strip()
        return v

    def to_payload(self) -> NotificationPayload:
        return NotificationPayload(
            type=self.type,
            category=self.category or "general",
            priority=priority_name(self.priority),
            title=self.title,
            message=self.message,
            action_url=self.action_url,
            data=self.data,
        )

class EnqueueResult(BaseSchema):
    """Outcome of producer intake"""

    queued: bool
    queue_item_id: Optional[int] = None
    scheduled_for: Optional[datetime] = None
    reason: Optional[str] = None

class ItemOutcome(str, Enum):
    """What one dispatch pass did with one claimed item"""
    COMPLETED = "completed"
    DEFERRED = "deferred"
    FAILED = "failed"
    STUCK = "stuck"  # store error, left processing for the reclaim sweep
    SKIPPED = "skipped"  # finalized or reclaimed by another worker meanwhile

class ChannelOutcome(str, Enum):
    DELIVERED = "delivered"
    QUEUED = "queued"
    QUOTA_EXHAUSTED = "quota_exhausted"

class ItemReport(BaseSchema):
    queue_item_id: int
    outcome: ItemOutcome
    notification_id: Optional[uuid.UUID] = None
    channels: Dict[str, ChannelOutcome] = Field(default_factory=dict)
    rescheduled_for: Optional[datetime] = None
    error: Optional[str] = None

class DispatchReport(BaseSchema):
    """Summary of one dispatch worker invocation"""

    claimed: int = 0
    completed: int = 0
    deferred: int = 0
    failed: int = 0
    stuck: int = 0
    skipped: int = 0
    items: List[ItemReport] = Field(default_factory=list)

    def record(self, item: ItemReport) -> None:
        self.items.append(item)
        if item.outcome == ItemOutcome.COMPLETED:
            self.completed += 1
        elif item.outcome == ItemOutcome.DEFERRED:
            self.deferred += 1
        elif item.outcome == ItemOutcome.FAILED:
            self.failed += 1
        elif item.outcome == ItemOutcome.STUCK:
            self.stuck += 1
        else:
            self.skipped += 1

class QuotaUsage(BaseSchema):
    notification_type: str
    channel: str
    used: int
    limit: int
    remaining: int

class QueueStats(BaseSchema):
    since: datetime
    until: datetime
    queue: Dict[str, int]
    deliveries: Dict[str, Dict[str, int]]

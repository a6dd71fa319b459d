"""
Notification queue model
Durable backlog of notification intents awaiting dispatch
"""

from sqlalchemy import Column, Integer, BigInteger, Text, DateTime, Uuid, Enum, Index
import enum

from .base import Base, TimestampedModel, JSONType
from notifyq.utils.helpers import utcnow

class QueueStatus(str, enum.Enum):
    """Queue item lifecycle states"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

class QueueItem(Base, TimestampedModel):
    """An intent to notify one user"""

    __tablename__ = "notification_queue"

    # Integer key keeps FIFO tie-breaking stable when created_at collides
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id = Column(Uuid, nullable=False, index=True)

    priority = Column(Integer, nullable=False, default=5)
    status = Column(
        Enum(QueueStatus, name="notification_queue_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=QueueStatus.PENDING
    )
    scheduled_for = Column(DateTime, nullable=False, default=utcnow)

    # type, category, title, message, action_url, data
    payload = Column(JSONType, nullable=False, default=dict)

    processed_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)

    # Indexes
    __table_args__ = (
        Index("idx_notification_queue_due", "status", "scheduled_for"),
        Index("idx_notification_queue_order", "priority", "created_at"),
    )


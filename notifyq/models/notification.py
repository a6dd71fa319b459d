"""
Notification model for user communications
In-app record plus one delivery log row per channel attempt
"""

from sqlalchemy import Column, String, Text, Boolean, BigInteger, Integer, ForeignKey, Index, DateTime, Uuid, Enum
from sqlalchemy.orm import relationship
import enum
import uuid

from .base import Base, TimestampedModel, JSONType

class DeliveryChannel(str, enum.Enum):
    IN_APP = "in_app"
    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"

class DeliveryStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"

# Channels that go through an external transport and the rate limiter
EXTERNAL_CHANNELS = (DeliveryChannel.PUSH, DeliveryChannel.EMAIL, DeliveryChannel.SMS)

class Notification(Base, TimestampedModel):
    """User notifications"""

    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)

    # 1:1 with the queue item that produced it
    queue_item_id = Column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("notification_queue.id", ondelete="SET NULL"),
        nullable=True,
        unique=True
    )

    # Notification content
    type = Column(String(50), nullable=False)  # price_alert, order_filled, security_alert, ...
    category = Column(String(50), nullable=False, default="general")
    priority = Column(String(20), nullable=False, default="normal")
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    # Action
    action_url = Column(String(500), nullable=True)

    # Status
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)

    # Metadata
    data = Column(JSONType, default=dict)

    # Relationships
    deliveries = relationship("DeliveryLogEntry", back_populates="notification", lazy="selectin")

    # Indexes
    __table_args__ = (
        Index("idx_notifications_user_unread", "user_id", "is_read"),
        Index("idx_notifications_type", "type"),
    )

class DeliveryLogEntry(Base, TimestampedModel):
    """One delivery attempt of a notification over one channel"""

    __tablename__ = "notification_delivery_log"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    notification_id = Column(Uuid, ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid, nullable=False)

    channel = Column(
        Enum(DeliveryChannel, name="delivery_channel", values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    status = Column(
        Enum(DeliveryStatus, name="delivery_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=DeliveryStatus.PENDING
    )

    sent_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    provider_reference = Column(String(200), nullable=True)  # Twilio SID, FCM message id, ...

    # Relationships
    notification = relationship("Notification", back_populates="deliveries")

    # Indexes
    __table_args__ = (
        Index("idx_delivery_log_channel_status", "channel", "status"),
        Index("idx_delivery_log_user_created", "user_id", "created_at"),
    )

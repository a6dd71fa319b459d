"""
Notification preference model
Written by the settings UI, read-only to the delivery pipeline
"""

from sqlalchemy import Column, String, Boolean, Integer, Time, DateTime, Uuid

from .base import Base
from notifyq.utils.helpers import utcnow

class NotificationPreference(Base):
    """Per-user channel, category, quiet hours and batching preferences"""

    __tablename__ = "notification_preferences"

    user_id = Column(Uuid, primary_key=True)

    # Channel preferences
    in_app_enabled = Column(Boolean, nullable=False, default=True)
    push_enabled = Column(Boolean, nullable=False, default=True)
    email_enabled = Column(Boolean, nullable=False, default=True)
    sms_enabled = Column(Boolean, nullable=False, default=True)

    # Category preferences
    price_alerts = Column(Boolean, nullable=False, default=True)
    order_updates = Column(Boolean, nullable=False, default=True)
    portfolio_updates = Column(Boolean, nullable=False, default=True)
    social_updates = Column(Boolean, nullable=False, default=True)
    marketing_updates = Column(Boolean, nullable=False, default=False)
    security_alerts = Column(Boolean, nullable=False, default=True)

    # Timing preferences, local wall-clock in `timezone`
    quiet_hours_start = Column(Time, nullable=True)
    quiet_hours_end = Column(Time, nullable=True)
    timezone = Column(String(64), nullable=False, default="UTC")

    # Batching preferences
    batch_notifications = Column(Boolean, nullable=False, default=False)
    batch_interval_minutes = Column(Integer, nullable=False, default=60)

    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

"""
User notification preferences
Read-only view of the settings UI's preference rows
"""

from typing import Optional, List, Dict
from functools import cached_property
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import uuid
import logging

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notifyq.models import NotificationPreference, DeliveryChannel, EXTERNAL_CHANNELS
from notifyq.core.exceptions import TransientStoreError

logger = logging.getLogger(__name__)

# Notification type -> preference category column
TYPE_CATEGORIES: Dict[str, str] = {
    "price_alert": "price_alerts",
    "order_filled": "order_updates",
    "order_cancelled": "order_updates",
    "portfolio_update": "portfolio_updates",
    "social_mention": "social_updates",
    "social_like": "social_updates",
    "social_comment": "social_updates",
    "security_alert": "security_alerts",
}

class ResolvedPreferences(BaseModel):
    """Preferences with defaults applied for users that never saved any"""

    model_config = {"from_attributes": True}

    user_id: uuid.UUID
    in_app_enabled: bool = True
    push_enabled: bool = True
    email_enabled: bool = True
    sms_enabled: bool = True

    price_alerts: bool = True
    order_updates: bool = True
    portfolio_updates: bool = True
    social_updates: bool = True
    marketing_updates: bool = False
    security_alerts: bool = True

    quiet_hours_start: Optional[time] = None
    quiet_hours_end: Optional[time] = None
    timezone: str = "UTC"

    batch_notifications: bool = False
    batch_interval_minutes: int = 60

    @cached_property
    def zone(self) -> ZoneInfo:
        """Resolved once per instance; unknown names fall back to UTC"""
        try:
            return ZoneInfo(self.timezone or "UTC")
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone {self.timezone!r} for user {self.user_id}, using UTC")
            return ZoneInfo("UTC")

    @property
    def has_quiet_hours(self) -> bool:
        return (
            self.quiet_hours_start is not None
            and self.quiet_hours_end is not None
            and self.quiet_hours_start != self.quiet_hours_end
        )

    def _local(self, now: datetime) -> datetime:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self.zone)

    def in_quiet_hours(self, now: datetime) -> bool:
        """
        Whether `now` falls inside [start, end) in the user's time zone

        Windows with start after end wrap past midnight. A window whose
        start equals its end is empty.

        Args:
            now: Naive UTC or aware datetime
        """
        if not self.has_quiet_hours:
            return False
        local_time = self._local(now).time().replace(tzinfo=None)
        start, end = self.quiet_hours_start, self.quiet_hours_end
        if start < end:
            return start <= local_time < end
        return local_time >= start or local_time < end

    def quiet_window_end(self, now: datetime) -> datetime:
        """
        End of the quiet window containing `now`, as naive UTC

        Only meaningful when in_quiet_hours(now) is True.
        """
        local_now = self._local(now)
        end_date = local_now.date()
        start, end = self.quiet_hours_start, self.quiet_hours_end
        if start > end and local_now.time().replace(tzinfo=None) >= start:
            end_date = end_date + timedelta(days=1)

        local_end = datetime.combine(end_date, end, tzinfo=self.zone)
        return local_end.astimezone(timezone.utc).replace(tzinfo=None)

    def enabled_channels(self) -> List[DeliveryChannel]:
        """
        Channels an item fans out to

        In-app is always included; the external channels follow their
        toggles.
        """
        channels = [DeliveryChannel.IN_APP]
        for channel in EXTERNAL_CHANNELS:
            if getattr(self, f"{channel.value}_enabled"):
                channels.append(channel)
        return channels

    def allows_type(self, notification_type: str) -> bool:
        """False when the user switched off the category this type belongs to"""
        category = TYPE_CATEGORIES.get(notification_type)
        if category is None:
            return True
        return bool(getattr(self, category))

class PreferenceService:
    """Preference reads for the delivery pipeline"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_preferences(self, user_id: uuid.UUID) -> ResolvedPreferences:
        """
        Load a user's preferences

        Raises:
            TransientStoreError: Preference store unavailable
        """
        try:
            result = await self.db.execute(
                select(NotificationPreference).where(NotificationPreference.user_id == user_id)
            )
            row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise TransientStoreError(f"Failed to load preferences for user {user_id}: {e}") from e

        if row is None:
            return ResolvedPreferences(user_id=user_id)
        return ResolvedPreferences.model_validate(row)

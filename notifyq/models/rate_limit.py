"""Rate limit counter model"""

from sqlalchemy import Column, Integer, BigInteger, String, DateTime, Uuid, UniqueConstraint, Index

from .base import Base

class RateLimitCounter(Base):
    """Sends per (user, notification type, channel) inside one hour bucket"""

    __tablename__ = "notification_rate_limits"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id = Column(Uuid, nullable=False)
    notification_type = Column(String(50), nullable=False)
    channel = Column(String(20), nullable=False)
    window_start = Column(DateTime, nullable=False)
    count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "notification_type", "channel", "window_start",
            name="uq_notification_rate_limit_bucket"
        ),
        Index("idx_notification_rate_limits_window", "window_start"),
    )

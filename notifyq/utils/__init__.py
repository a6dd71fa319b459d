"""Utilities package"""

from .helpers import utcnow, to_naive_utc, floor_to_hour, next_interval_boundary, mask_phone

__all__ = [
    "utcnow",
    "to_naive_utc",
    "floor_to_hour",
    "next_interval_boundary",
    "mask_phone"
]

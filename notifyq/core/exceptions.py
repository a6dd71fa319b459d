"""
Custom exception classes for the notification pipeline
Every error carries a stable error_code so callers can classify it
"""

from typing import Optional

class NotifyQException(Exception):
    """Base exception class for the notification pipeline"""

    default_code = "NOTIFYQ_ERROR"

    def __init__(self, detail: str, error_code: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.error_code = error_code or self.default_code

class ValidationError(NotifyQException):
    """Malformed enqueue payload, rejected at intake and never queued"""

    default_code = "VALIDATION_ERROR"

class TransientStoreError(NotifyQException):
    """Store read/write failure during claim or finalize

    The affected item stays in processing until the reclaim sweep picks it up.
    """

    default_code = "STORE_UNAVAILABLE"

class ItemProcessingError(NotifyQException):
    """Failure while building the Notification or delivery rows for one item"""

    default_code = "ITEM_PROCESSING_FAILED"

class QueueItemNotFound(NotifyQException):
    """Queue item does not exist"""

    default_code = "NOT_FOUND"

    def __init__(self, item_id: int):
        super().__init__(f"Queue item {item_id} not found")
        self.item_id = item_id

class InvalidTransitionError(NotifyQException):
    """Status change not allowed by the transition table"""

    default_code = "INVALID_TRANSITION"

    def __init__(self, current: str, target: str, entity: str = "queue item"):
        super().__init__(f"Cannot move {entity} from {current} to {target}")
        self.current = current
        self.target = target

class TransportError(NotifyQException):
    """A push/email/SMS provider rejected or failed a send"""

    default_code = "TRANSPORT_FAILED"

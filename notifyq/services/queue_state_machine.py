"""
Queue item and delivery state machines for managing status transitions
"""

from typing import Dict, List, Set

from notifyq.models import QueueStatus, DeliveryStatus
from notifyq.core.exceptions import InvalidTransitionError

class QueueStateMachine:
    """
    Manages valid queue item status transitions
    """

    def __init__(self):
        # Define valid transitions
        self.transitions: Dict[QueueStatus, Set[QueueStatus]] = {
            QueueStatus.PENDING: {
                QueueStatus.PROCESSING
            },
            QueueStatus.PROCESSING: {
                QueueStatus.COMPLETED,
                QueueStatus.FAILED,
                QueueStatus.PENDING  # Quiet-hour deferral and stuck-item reclaim
            },
            QueueStatus.COMPLETED: set(),  # Terminal state
            QueueStatus.FAILED: set()  # Terminal state
        }

    def can_transition(
        self,
        current_status: QueueStatus,
        new_status: QueueStatus
    ) -> bool:
        """
        Check if transition is valid

        Args:
            current_status: Current item status
            new_status: Desired new status

        Returns:
            True if transition is allowed
        """
        valid_transitions = self.transitions.get(current_status, set())
        return new_status in valid_transitions

    def ensure_transition(
        self,
        current_status: QueueStatus,
        new_status: QueueStatus
    ) -> None:
        """Raise InvalidTransitionError unless the transition is allowed"""
        if not self.can_transition(current_status, new_status):
            raise InvalidTransitionError(QueueStatus(current_status).value, QueueStatus(new_status).value)

    def get_valid_transitions(
        self,
        current_status: QueueStatus
    ) -> List[QueueStatus]:
        """Get list of valid transitions from current status"""
        return list(self.transitions.get(current_status, set()))

    def is_terminal_state(self, status: QueueStatus) -> bool:
        """
        Check if status is a terminal state

        Args:
            status: Queue item status

        Returns:
            True if no more transitions possible
        """
        return len(self.transitions.get(status, set())) == 0

class DeliveryStateMachine:
    """Delivery log transitions driven by transport providers"""

    def __init__(self):
        self.transitions: Dict[DeliveryStatus, Set[DeliveryStatus]] = {
            DeliveryStatus.PENDING: {
                DeliveryStatus.SENT,
                DeliveryStatus.DELIVERED,
                DeliveryStatus.FAILED
            },
            DeliveryStatus.SENT: {
                DeliveryStatus.DELIVERED,
                DeliveryStatus.FAILED
            },
            DeliveryStatus.DELIVERED: set(),
            DeliveryStatus.FAILED: set()
        }

    def can_transition(self, current_status: DeliveryStatus, new_status: DeliveryStatus) -> bool:
        return new_status in self.transitions.get(current_status, set())

    def ensure_transition(self, current_status: DeliveryStatus, new_status: DeliveryStatus) -> None:
        if not self.can_transition(current_status, new_status):
            raise InvalidTransitionError(
                DeliveryStatus(current_status).value,
                DeliveryStatus(new_status).value,
                entity="delivery"
            )

queue_state_machine = QueueStateMachine()
delivery_state_machine = DeliveryStateMachine()

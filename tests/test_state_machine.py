"""
Unit tests for the queue and delivery state machines.
"""
import pytest

from notifyq.core.exceptions import InvalidTransitionError
from notifyq.models import QueueStatus, DeliveryStatus
from notifyq.services.queue_state_machine import QueueStateMachine, DeliveryStateMachine


class TestQueueStateMachine:
    """Tests for queue item transitions."""

    def setup_method(self):
        self.machine = QueueStateMachine()

    @pytest.mark.parametrize("current,target", [
        (QueueStatus.PENDING, QueueStatus.PROCESSING),
        (QueueStatus.PROCESSING, QueueStatus.COMPLETED),
        (QueueStatus.PROCESSING, QueueStatus.FAILED),
        (QueueStatus.PROCESSING, QueueStatus.PENDING),
    ])
    def test_valid_transitions(self, current, target):
        """Test the allowed lifecycle moves."""
        assert self.machine.can_transition(current, target)
        self.machine.ensure_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (QueueStatus.PENDING, QueueStatus.COMPLETED),
        (QueueStatus.PENDING, QueueStatus.FAILED),
        (QueueStatus.COMPLETED, QueueStatus.PENDING),
        (QueueStatus.FAILED, QueueStatus.PROCESSING),
        (QueueStatus.COMPLETED, QueueStatus.FAILED),
    ])
    def test_invalid_transitions(self, current, target):
        """Test moves outside the lifecycle are rejected."""
        assert not self.machine.can_transition(current, target)
        with pytest.raises(InvalidTransitionError) as exc_info:
            self.machine.ensure_transition(current, target)
        assert exc_info.value.error_code == "INVALID_TRANSITION"

    def test_terminal_states(self):
        """Test completed and failed are terminal."""
        assert self.machine.is_terminal_state(QueueStatus.COMPLETED)
        assert self.machine.is_terminal_state(QueueStatus.FAILED)
        assert not self.machine.is_terminal_state(QueueStatus.PROCESSING)
        assert self.machine.get_valid_transitions(QueueStatus.COMPLETED) == []


class TestDeliveryStateMachine:
    """Tests for delivery row transitions."""

    def test_sent_can_still_fail(self):
        """Test a sent message can later bounce."""
        machine = DeliveryStateMachine()
        assert machine.can_transition(DeliveryStatus.SENT, DeliveryStatus.FAILED)
        assert machine.can_transition(DeliveryStatus.PENDING, DeliveryStatus.DELIVERED)

    def test_delivered_is_final(self):
        """Test delivered rows never move again."""
        machine = DeliveryStateMachine()
        with pytest.raises(InvalidTransitionError):
            machine.ensure_transition(DeliveryStatus.DELIVERED, DeliveryStatus.FAILED)
        with pytest.raises(InvalidTransitionError):
            machine.ensure_transition(DeliveryStatus.SENT, DeliveryStatus.PENDING)

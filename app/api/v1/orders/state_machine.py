"""
Order state machine for managing order status transitions
"""

from typing import Dict, List, Set
from app.models.order import OrderStatus

class OrderStateMachine:
    """
    Manages valid order status transitions

    ``paid`` is only reachable from ``created`` and only after a verified
    gateway signature; ``refunded`` only from ``paid`` by an administrator.
    """

    def __init__(self):
        # Define valid transitions
        self.transitions: Dict[OrderStatus, Set[OrderStatus]] = {
            OrderStatus.CREATED: {
                OrderStatus.PAID,
                OrderStatus.FAILED,
                OrderStatus.CANCELLED
            },
            OrderStatus.PAID: {
                OrderStatus.REFUNDED
            },
            OrderStatus.FAILED: set(),     # Terminal state
            OrderStatus.CANCELLED: set(),  # Terminal state
            OrderStatus.REFUNDED: set()    # Terminal state
        }

    def can_transition(
        self,
        current_status: OrderStatus,
        new_status: OrderStatus
    ) -> bool:
        """
        Check if transition is valid

        Args:
            current_status: Current order status
            new_status: Desired new status

        Returns:
            True if transition is allowed
        """
        valid_transitions = self.transitions.get(OrderStatus(current_status), set())
        return OrderStatus(new_status) in valid_transitions

    def get_valid_transitions(
        self,
        current_status: OrderStatus
    ) -> List[OrderStatus]:
        """Get list of valid transitions from current status"""
        return list(self.transitions.get(OrderStatus(current_status), set()))

    def is_terminal_state(self, status: OrderStatus) -> bool:
        """
        Check if status is a terminal state

        Args:
            status: Order status

        Returns:
            True if no more transitions possible
        """
        return len(self.transitions.get(OrderStatus(status), set())) == 0

    def is_settled(self, status: OrderStatus) -> bool:
        """True once the order has left ``created``"""
        return OrderStatus(status) != OrderStatus.CREATED

    def is_cancellable(self, status: OrderStatus) -> bool:
        return self.can_transition(status, OrderStatus.CANCELLED)

    def is_refundable(self, status: OrderStatus) -> bool:
        return self.can_transition(status, OrderStatus.REFUNDED)

import pytest

from app.api.v1.orders.state_machine import OrderStateMachine
from app.models import OrderStatus

@pytest.fixture
def machine():
    return OrderStateMachine()

@pytest.mark.parametrize("target", [OrderStatus.PAID, OrderStatus.FAILED, OrderStatus.CANCELLED])
def test_created_moves_forward(machine, target):
    assert machine.can_transition(OrderStatus.CREATED, target)

def test_only_paid_orders_refund(machine):
    assert machine.can_transition(OrderStatus.PAID, OrderStatus.REFUNDED)
    assert not machine.can_transition(OrderStatus.CREATED, OrderStatus.REFUNDED)
    assert machine.is_refundable(OrderStatus.PAID)
    assert not machine.is_refundable(OrderStatus.FAILED)

def test_paid_is_never_reentered(machine):
    for status in OrderStatus:
        if status != OrderStatus.CREATED:
            assert not machine.can_transition(status, OrderStatus.PAID)

@pytest.mark.parametrize("status", [OrderStatus.FAILED, OrderStatus.CANCELLED, OrderStatus.REFUNDED])
def test_terminal_states(machine, status):
    assert machine.is_terminal_state(status)
    assert machine.get_valid_transitions(status) == []

def test_accepts_plain_strings(machine):
    assert machine.can_transition("created", "paid")
    assert machine.is_cancellable("created")
    assert not machine.is_cancellable("paid")
    assert machine.is_settled("refunded")
    assert not machine.is_settled("created")

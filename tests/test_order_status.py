import pytest

from models.order import OrderStatus, can_transition

PENDING = OrderStatus.PENDING
PROCESSING = OrderStatus.PROCESSING
SHIPPED = OrderStatus.SHIPPED
DELIVERED = OrderStatus.DELIVERED
CANCELLED = OrderStatus.CANCELLED


@pytest.mark.parametrize(
    "old, new",
    [
        (PENDING, PROCESSING),
        (PROCESSING, SHIPPED),
        (SHIPPED, DELIVERED),
        (PENDING, SHIPPED),
        (PENDING, DELIVERED),
        (SHIPPED, SHIPPED),
        (PENDING, CANCELLED),
        (PROCESSING, CANCELLED),
    ],
)
def test_allowed_transitions(old, new):
    assert can_transition(old, new)


@pytest.mark.parametrize(
    "old, new",
    [
        (PROCESSING, PENDING),
        (DELIVERED, SHIPPED),
        (SHIPPED, CANCELLED),
        (DELIVERED, CANCELLED),
        (CANCELLED, CANCELLED),
        (CANCELLED, PENDING),
        (CANCELLED, DELIVERED),
    ],
)
def test_rejected_transitions(old, new):
    assert not can_transition(old, new)


def test_accepts_raw_string_values():
    assert can_transition("PENDING", "PROCESSING")
    assert not can_transition("DELIVERED", "PENDING")

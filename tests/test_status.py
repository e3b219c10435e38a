import pytest

from orderflow.domain.status import OrderStatus, can_transition, sources_for


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        (OrderStatus.PENDING, OrderStatus.PROCESSING, True),
        (OrderStatus.PENDING, OrderStatus.CANCELLED, True),
        (OrderStatus.PENDING, OrderStatus.SHIPPED, False),
        (OrderStatus.PROCESSING, OrderStatus.REFUNDED, True),
        (OrderStatus.SHIPPED, OrderStatus.CANCELLED, False),
        (OrderStatus.SHIPPED, OrderStatus.DELIVERED, True),
        (OrderStatus.DELIVERED, OrderStatus.REFUNDED, False),
    ],
)
def test_transitions(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_terminal_statuses_have_no_exits():
    for status in OrderStatus:
        if status.is_terminal:
            assert not any(can_transition(status, target) for target in OrderStatus)


def test_cancel_sources():
    assert sources_for(OrderStatus.CANCELLED) == {OrderStatus.PENDING, OrderStatus.PROCESSING}

import pytest

from perrino.core.status import (
    NOMINAL_FLOW,
    OrderStatus,
    TERMINAL_STATUSES,
    allowed,
    status_priority,
    transition_table,
)


def test_forward_table_allows_any_later_nominal_status():
    for i, current in enumerate(NOMINAL_FLOW[:-1]):
        for target in NOMINAL_FLOW[i + 1:]:
            assert allowed(current, target)
        for target in NOMINAL_FLOW[:i]:
            assert not allowed(current, target)


def test_partial_delivery_is_reentrant():
    assert allowed(OrderStatus.PARTIALLY_DELIVERED, OrderStatus.PARTIALLY_DELIVERED)
    assert allowed(OrderStatus.PARTIALLY_DELIVERED, OrderStatus.PARTIALLY_DELIVERED, allow_skip_ahead=False)
    assert not allowed(OrderStatus.IN_PRODUCTION, OrderStatus.IN_PRODUCTION)


@pytest.mark.parametrize("skip", [True, False])
def test_cancel_from_any_active_status_and_terminals_are_closed(skip):
    table = transition_table(skip)
    for status in OrderStatus:
        if status in TERMINAL_STATUSES:
            assert table[status] == frozenset()
        else:
            assert OrderStatus.CANCELLED in table[status]


def test_stepwise_only_moves_one_step():
    assert allowed(OrderStatus.RECEIVED, OrderStatus.IN_PRODUCTION, allow_skip_ahead=False)
    assert not allowed(OrderStatus.RECEIVED, OrderStatus.READY_FOR_PICKUP, allow_skip_ahead=False)
    assert allowed(OrderStatus.READY_FOR_PICKUP, OrderStatus.DELIVERED, allow_skip_ahead=False)


def test_urgent_orders_sort_first():
    assert status_priority(OrderStatus.CANCELLED, is_urgent=True) == 0
    assert status_priority(OrderStatus.RECEIVED, is_urgent=False) == 1
    assert status_priority(OrderStatus.CANCELLED, is_urgent=False) == 5

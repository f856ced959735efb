from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

from perrino.core.status import OrderStatus, PaymentStatus
from perrino.services.order_aggregate import build_order_aggregate, derive_status, sort_for_listing

TODAY = date(2026, 5, 15)


def _order(id=1, status=OrderStatus.RECEIVED, quantity=10, total="100.00", due=date(2026, 5, 20),
           is_urgent=False, created=datetime(2026, 5, 1, tzinfo=timezone.utc)):
    return SimpleNamespace(
        id=id,
        order_number=f"ORD-{id:06d}",
        client_id=1,
        client=SimpleNamespace(name="Colegio Central"),
        description="Camisetas",
        service_type="Bordado",
        quantity=quantity,
        total=Decimal(total),
        status=status.value,
        due_date=due,
        is_urgent=is_urgent,
        created_at=created,
        needs_reconciliation=False,
    )


def _entry(id, status, at, qty=None):
    return SimpleNamespace(id=id, status=status.value, changed_at=at, quantity_delivered=qty)


def _payment(amount, at=datetime(2026, 5, 2, tzinfo=timezone.utc)):
    return SimpleNamespace(amount=Decimal(amount), payment_date=at)


def _history(*statuses):
    return [
        _entry(i + 1, status, datetime(2026, 5, 1, i, tzinfo=timezone.utc), qty)
        for i, (status, qty) in enumerate(statuses)
    ]


def test_derived_status_uses_latest_entry_with_id_tiebreak():
    at = datetime(2026, 5, 1, tzinfo=timezone.utc)
    history = [
        _entry(2, OrderStatus.IN_PRODUCTION, at),
        _entry(1, OrderStatus.RECEIVED, at),
    ]
    assert derive_status(history) == OrderStatus.IN_PRODUCTION
    assert derive_status([]) is None


def test_delayed_only_when_past_due_and_not_terminal():
    history = _history((OrderStatus.RECEIVED, None))
    late = build_order_aggregate(_order(due=date(2026, 5, 14)), history, [], TODAY)
    assert late.is_delayed
    assert late.days_remaining == -1

    due_today = build_order_aggregate(_order(due=TODAY), history, [], TODAY)
    assert not due_today.is_delayed
    assert due_today.days_remaining == 0

    delivered = build_order_aggregate(
        _order(status=OrderStatus.DELIVERED, due=date(2026, 5, 1)),
        _history((OrderStatus.RECEIVED, None), (OrderStatus.DELIVERED, None)),
        [],
        TODAY,
    )
    assert not delivered.is_delayed


def test_delivery_counts():
    history = _history(
        (OrderStatus.RECEIVED, None),
        (OrderStatus.READY_FOR_PICKUP, None),
        (OrderStatus.PARTIALLY_DELIVERED, 3),
        (OrderStatus.PARTIALLY_DELIVERED, 4),
    )
    agg = build_order_aggregate(_order(status=OrderStatus.PARTIALLY_DELIVERED), history, [], TODAY)
    assert agg.total_delivered == 7
    assert agg.remaining_to_deliver == 3
    assert agg.partial_delivery_count == 2
    assert agg.integrity_ok

    history.append(_entry(5, OrderStatus.DELIVERED, datetime(2026, 5, 2, tzinfo=timezone.utc)))
    agg = build_order_aggregate(_order(status=OrderStatus.DELIVERED), history, [], TODAY)
    assert agg.total_delivered == 10
    assert agg.remaining_to_deliver == 0


def test_payment_figures():
    history = _history((OrderStatus.RECEIVED, None))
    agg = build_order_aggregate(_order(total="300.00"), history, [_payment("100"), _payment("50.50")], TODAY)
    assert agg.total_paid == Decimal("150.50")
    assert agg.remaining_balance == Decimal("149.50")
    assert agg.payment_progress == 50.17
    assert agg.payment_status == PaymentStatus.PARTIAL

    unpaid = build_order_aggregate(_order(), history, [], TODAY)
    assert unpaid.payment_status == PaymentStatus.PENDING
    assert unpaid.last_payment_at is None


def test_integrity_mismatch_is_reported():
    history = _history((OrderStatus.RECEIVED, None))
    agg = build_order_aggregate(_order(status=OrderStatus.READY_FOR_PICKUP), history, [], TODAY)
    assert not agg.integrity_ok
    assert agg.derived_status == OrderStatus.RECEIVED


def test_listing_order_urgent_then_progress_then_newest():
    def agg(id, status, urgent=False, day=1):
        return build_order_aggregate(
            _order(id=id, status=status, is_urgent=urgent, created=datetime(2026, 5, day, tzinfo=timezone.utc)),
            _history((status, None)),
            [],
            TODAY,
        )

    ordered = sort_for_listing([
        agg(1, OrderStatus.CANCELLED),
        agg(2, OrderStatus.DELIVERED),
        agg(3, OrderStatus.READY_FOR_PICKUP),
        agg(4, OrderStatus.RECEIVED, day=1),
        agg(5, OrderStatus.IN_PRODUCTION, day=3),
        agg(6, OrderStatus.DELIVERED, urgent=True),
        agg(7, OrderStatus.PARTIALLY_DELIVERED),
    ])
    assert [a.order_id for a in ordered] == [6, 5, 4, 3, 7, 2, 1]

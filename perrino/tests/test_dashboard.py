from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

from perrino.core.status import OrderStatus, PaymentMethod
from perrino.services.dashboard_service import DashboardPeriod, build_dashboard, get_dashboard
from perrino.services.order_aggregate import build_order_aggregate
from perrino.services.payment_ledger import record_payment
from perrino.services.status_engine import transition_status

TODAY = date(2026, 5, 15)


def _agg(id, client_id, status, total, created, payments=(), due=date(2026, 6, 1), urgent=False, service="Bordado"):
    order = SimpleNamespace(
        id=id,
        order_number=f"ORD-{id:06d}",
        client_id=client_id,
        client=SimpleNamespace(name=f"Cliente {client_id}"),
        description="Pedido",
        service_type=service,
        quantity=10,
        total=Decimal(total),
        status=status.value,
        due_date=due,
        is_urgent=urgent,
        created_at=created,
        needs_reconciliation=False,
    )
    history = [SimpleNamespace(id=id, status=status.value, changed_at=created, quantity_delivered=None)]
    rows = [SimpleNamespace(amount=Decimal(a), payment_date=at) for a, at in payments]
    return build_order_aggregate(order, history, rows, TODAY)


def _dt(y, m, d):
    return datetime(y, m, d, 15, tzinfo=timezone.utc)


def test_default_period_is_twelve_calendar_months():
    period = DashboardPeriod.default(TODAY)
    assert period.start == date(2025, 6, 1)
    assert period.end == date(2026, 5, 31)
    assert len(period.months()) == 12


def test_build_dashboard_metrics_and_breakdowns():
    aggregates = [
        _agg(1, 1, OrderStatus.IN_PRODUCTION, "500", _dt(2026, 5, 2),
             payments=[("200", _dt(2026, 5, 3))], urgent=True),
        _agg(2, 1, OrderStatus.DELIVERED, "300", _dt(2026, 4, 10),
             payments=[("300", _dt(2026, 4, 20))], service="Sublimación"),
        _agg(3, 2, OrderStatus.RECEIVED, "100", _dt(2026, 4, 1), due=date(2026, 5, 1)),
        _agg(4, 3, OrderStatus.CANCELLED, "900", _dt(2026, 3, 1)),
    ]
    clients = [SimpleNamespace(id=i, name=f"Cliente {i}") for i in (1, 2, 3)]
    expenses = [
        SimpleNamespace(amount=Decimal("80"), date=date(2026, 5, 5)),
        SimpleNamespace(amount=Decimal("20"), date=date(2026, 4, 30)),
    ]

    result = build_dashboard(aggregates, clients, expenses, DashboardPeriod.default(TODAY), TODAY)
    m = result.metrics
    assert m.active_orders == 2
    assert m.completed_orders == 1
    assert m.cancelled_orders == 1
    assert m.delayed_orders == 1
    assert m.urgent_orders == 1
    assert m.monthly_revenue == Decimal("200.00")
    assert m.previous_month_revenue == Decimal("300.00")
    assert m.monthly_expenses == Decimal("80.00")
    assert m.previous_month_expenses == Decimal("20.00")
    assert m.total_clients == 3
    # 300 + 100; el cancelado no cuenta
    assert m.pending_to_collect == Decimal("400.00")

    assert set(result.by_status) == set(OrderStatus)
    assert result.by_status[OrderStatus.READY_FOR_PICKUP] == 0

    may = next(b for b in result.by_month if b.month == "2026-05")
    assert may.count == 1
    assert may.collected == Decimal("200.00")

    assert [c.client_id for c in result.top_clients] == [1]
    assert result.top_clients[0].collected == Decimal("500.00")

    assert result.recent_orders[0].order_id == 1
    assert [a.order_id for a in result.attention] == [1, 3]


def test_get_dashboard_reads_from_store(db, make_order, actor):
    order = make_order(total="250.00")
    record_payment(db, order.id, "100", PaymentMethod.CASH, actor)
    transition_status(db, order.id, OrderStatus.IN_PRODUCTION, "En taller", actor)

    result = get_dashboard(db)
    assert result.metrics.active_orders == 1
    assert result.metrics.pending_to_collect == Decimal("150.00")
    assert result.by_status[OrderStatus.IN_PRODUCTION] == 1

"""
Vista agregada de un pedido.

Todo se deriva en el momento de la lectura a partir del pedido, su historial de estados y
sus pagos. Las funciones de este módulo son puras: no consultan la base de datos, no
escriben y no guardan nada entre llamadas.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from perrino.core.clock import as_utc
from perrino.core.serialization_helpers import to_money
from perrino.core.status import (
    OrderStatus,
    PaymentStatus,
    TERMINAL_STATUSES,
    status_priority,
)


@dataclass(frozen=True)
class OrderAggregate:
    order_id: int
    order_number: str
    client_id: int
    client_name: Optional[str]
    description: str
    service_type: str
    quantity: int
    total: Decimal
    status: OrderStatus
    due_date: date
    is_urgent: bool
    created_at: datetime

    total_paid: Decimal
    remaining_balance: Decimal
    payment_progress: float
    is_paid: bool
    payment_status: PaymentStatus
    last_payment_at: Optional[datetime]

    total_delivered: int
    remaining_to_deliver: int
    partial_delivery_count: int

    is_delayed: bool
    days_remaining: int
    status_priority: int

    derived_status: Optional[OrderStatus]
    integrity_ok: bool
    needs_reconciliation: bool

    # (fecha de pago, monto) de cada pago; lo usa el tablero para los ingresos por mes
    payment_entries: Tuple[Tuple[datetime, Decimal], ...] = field(default=(), repr=False)


def history_sort_key(entry) -> Tuple[datetime, int]:
    return as_utc(entry.changed_at), entry.id or 0


def latest_entry(history: Iterable):
    entries = list(history)
    if not entries:
        return None
    return max(entries, key=history_sort_key)


def derive_status(history: Iterable) -> Optional[OrderStatus]:
    """El estado de un pedido es el de su entrada de historial más reciente."""
    entry = latest_entry(history)
    if entry is None:
        return None
    return OrderStatus(entry.status)


def partial_delivered_quantity(history: Iterable) -> int:
    return sum(
        entry.quantity_delivered or 0
        for entry in history
        if entry.status == OrderStatus.PARTIALLY_DELIVERED.value
    )


def delivered_quantity(status: OrderStatus, quantity: int, history: Sequence) -> int:
    if status == OrderStatus.DELIVERED:
        return quantity
    return partial_delivered_quantity(history)


def sum_payments(payments: Iterable) -> Decimal:
    return to_money(sum((to_money(p.amount) for p in payments), Decimal("0")))


def payment_progress(total_paid: Decimal, total: Decimal) -> float:
    if total <= 0:
        return 0.0
    return round(float(total_paid / total * 100), 2)


def payment_status(total_paid: Decimal, remaining: Decimal) -> PaymentStatus:
    if remaining <= 0:
        return PaymentStatus.PAID
    if total_paid > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def is_delayed(status: OrderStatus, due_date: date, today: date) -> bool:
    return due_date < today and status not in TERMINAL_STATUSES


def build_order_aggregate(order, history: Sequence, payments: Sequence, today: date) -> OrderAggregate:
    """Deriva la vista completa de un pedido; misma entrada, mismo resultado."""
    status = OrderStatus(order.status)
    total = to_money(order.total)
    quantity = int(order.quantity or 0)

    paid = sum_payments(payments)
    remaining = to_money(total - paid)

    delivered = delivered_quantity(status, quantity, history)
    derived = derive_status(history)

    payment_dates = [as_utc(p.payment_date) for p in payments]
    client = getattr(order, "client", None)

    return OrderAggregate(
        order_id=order.id,
        order_number=order.order_number,
        client_id=order.client_id,
        client_name=client.name if client is not None else None,
        description=order.description,
        service_type=order.service_type,
        quantity=quantity,
        total=total,
        status=status,
        due_date=order.due_date,
        is_urgent=bool(order.is_urgent),
        created_at=as_utc(order.created_at),
        total_paid=paid,
        remaining_balance=remaining,
        payment_progress=payment_progress(paid, total),
        is_paid=remaining <= 0,
        payment_status=payment_status(paid, remaining),
        last_payment_at=max(payment_dates) if payment_dates else None,
        total_delivered=delivered,
        remaining_to_deliver=max(0, quantity - delivered),
        partial_delivery_count=sum(
            1 for entry in history if entry.status == OrderStatus.PARTIALLY_DELIVERED.value
        ),
        is_delayed=is_delayed(status, order.due_date, today),
        days_remaining=(order.due_date - today).days,
        status_priority=status_priority(status, bool(order.is_urgent)),
        derived_status=derived,
        integrity_ok=derived == status,
        needs_reconciliation=bool(order.needs_reconciliation),
        payment_entries=tuple(
            (as_utc(p.payment_date), to_money(p.amount)) for p in payments
        ),
    )


def order_sort_key(aggregate: OrderAggregate):
    """Urgentes primero, luego por avance del estado, luego los más recientes."""
    return aggregate.status_priority, -aggregate.created_at.timestamp()


def sort_for_listing(aggregates: Iterable[OrderAggregate]) -> List[OrderAggregate]:
    return sorted(aggregates, key=order_sort_key)

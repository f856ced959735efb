"""
Tablero del taller.

`build_dashboard` es una agregación pura sobre las vistas agregadas de los pedidos, los
clientes y los gastos; `get_dashboard` solo carga esas filas y delega.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from perrino.core.clock import business_date, business_today
from perrino.core.config import settings
from perrino.core.serialization_helpers import to_money
from perrino.core.status import ACTIVE_STATUSES, OrderStatus
from perrino.models.client import Client
from perrino.models.expense import Expense
from perrino.services.order_aggregate import OrderAggregate, sort_for_listing
from perrino.services.order_service import load_all_aggregates


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def month_start(value: date) -> date:
    return value.replace(day=1)


def shift_month(value: date, months: int) -> date:
    """Primer día del mes desplazado `months` meses."""
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def month_end(value: date) -> date:
    return shift_month(value, 1) - timedelta(days=1)


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


@dataclass(frozen=True)
class DashboardPeriod:
    start: date
    end: date

    @classmethod
    def default(cls, today: date) -> "DashboardPeriod":
        """Los 12 meses calendario que terminan con el mes actual."""
        return cls(start=shift_month(month_start(today), -11), end=month_end(today))

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end

    def months(self) -> List[str]:
        keys = []
        current = month_start(self.start)
        while current <= self.end:
            keys.append(month_key(current))
            current = shift_month(current, 1)
        return keys


@dataclass
class DashboardMetrics:
    active_orders: int = 0
    completed_orders: int = 0
    cancelled_orders: int = 0
    delayed_orders: int = 0
    on_time_orders: int = 0
    urgent_orders: int = 0
    monthly_revenue: Decimal = ZERO
    previous_month_revenue: Decimal = ZERO
    monthly_expenses: Decimal = ZERO
    previous_month_expenses: Decimal = ZERO
    total_clients: int = 0
    pending_to_collect: Decimal = ZERO


@dataclass
class MonthBucket:
    month: str
    count: int = 0
    order_value: Decimal = ZERO
    collected: Decimal = ZERO


@dataclass
class ServiceBucket:
    service_type: str
    count: int = 0
    total: Decimal = ZERO


@dataclass
class TopClient:
    client_id: int
    name: Optional[str]
    order_count: int
    collected: Decimal


@dataclass
class DashboardAggregate:
    period: DashboardPeriod
    metrics: DashboardMetrics
    by_status: Dict[OrderStatus, int]
    by_month: List[MonthBucket]
    by_service: List[ServiceBucket]
    top_clients: List[TopClient]
    recent_orders: List[OrderAggregate]
    attention: List[OrderAggregate] = field(default_factory=list)


def _sum(values: Iterable[Decimal]) -> Decimal:
    return to_money(sum(values, ZERO))


def _month_payments(aggregates: Sequence[OrderAggregate], month: date) -> Decimal:
    first, last = month_start(month), month_end(month)
    return _sum(
        amount
        for agg in aggregates
        for paid_at, amount in agg.payment_entries
        if first <= business_date(paid_at) <= last
    )


def _month_expenses(expenses: Sequence, month: date) -> Decimal:
    first, last = month_start(month), month_end(month)
    return _sum(to_money(e.amount) for e in expenses if first <= e.date <= last)


def build_dashboard(
    aggregates: Sequence[OrderAggregate],
    clients: Sequence,
    expenses: Sequence,
    period: DashboardPeriod,
    today: date,
    top_clients_limit: int = 4,
    recent_orders_limit: int = 5,
) -> DashboardAggregate:
    previous_month = shift_month(month_start(today), -1)

    active = [agg for agg in aggregates if agg.status in ACTIVE_STATUSES]
    metrics = DashboardMetrics(
        active_orders=len(active),
        completed_orders=sum(1 for agg in aggregates if agg.status == OrderStatus.DELIVERED),
        cancelled_orders=sum(1 for agg in aggregates if agg.status == OrderStatus.CANCELLED),
        delayed_orders=sum(1 for agg in active if agg.is_delayed),
        on_time_orders=sum(1 for agg in active if not agg.is_delayed),
        urgent_orders=sum(1 for agg in active if agg.is_urgent),
        monthly_revenue=_month_payments(aggregates, today),
        previous_month_revenue=_month_payments(aggregates, previous_month),
        monthly_expenses=_month_expenses(expenses, today),
        previous_month_expenses=_month_expenses(expenses, previous_month),
        total_clients=len(clients),
        pending_to_collect=_sum(
            agg.remaining_balance
            for agg in aggregates
            if agg.status != OrderStatus.CANCELLED and agg.remaining_balance > 0
        ),
    )

    by_status = {status: 0 for status in OrderStatus}
    for agg in aggregates:
        by_status[agg.status] += 1

    months = {key: MonthBucket(month=key) for key in period.months()}
    services: Dict[str, ServiceBucket] = {}
    clients_by_id = {c.id: c for c in clients}
    collected_by_client: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    orders_by_client: Dict[int, int] = defaultdict(int)

    for agg in aggregates:
        created = business_date(agg.created_at)
        if period.contains(created):
            bucket = months[month_key(created)]
            bucket.count += 1
            bucket.order_value = to_money(bucket.order_value + agg.total)

            service = services.setdefault(agg.service_type, ServiceBucket(service_type=agg.service_type))
            service.count += 1
            service.total = to_money(service.total + agg.total)
            orders_by_client[agg.client_id] += 1

        for paid_at, amount in agg.payment_entries:
            paid_on = business_date(paid_at)
            if not period.contains(paid_on):
                continue
            bucket = months[month_key(paid_on)]
            bucket.collected = to_money(bucket.collected + amount)
            collected_by_client[agg.client_id] = to_money(collected_by_client[agg.client_id] + amount)

    ranked: List[Tuple[int, Decimal]] = sorted(
        ((client_id, amount) for client_id, amount in collected_by_client.items() if amount > 0),
        key=lambda item: (-item[1], item[0]),
    )
    top_clients = [
        TopClient(
            client_id=client_id,
            name=getattr(clients_by_id.get(client_id), "name", None),
            order_count=orders_by_client.get(client_id, 0),
            collected=amount,
        )
        for client_id, amount in ranked[:top_clients_limit]
    ]

    recent = sorted(aggregates, key=lambda agg: (agg.created_at, agg.order_id), reverse=True)
    attention = sort_for_listing(agg for agg in active if agg.is_urgent or agg.is_delayed)

    return DashboardAggregate(
        period=period,
        metrics=metrics,
        by_status=by_status,
        by_month=list(months.values()),
        by_service=sorted(services.values(), key=lambda s: (-s.count, s.service_type)),
        top_clients=top_clients,
        recent_orders=recent[:recent_orders_limit],
        attention=attention,
    )


def get_dashboard(
    db: Session,
    period: Optional[DashboardPeriod] = None,
    today: Optional[date] = None,
) -> DashboardAggregate:
    today = today or business_today()
    period = period or DashboardPeriod.default(today)
    aggregates = load_all_aggregates(db, today)
    clients = db.query(Client).all()
    expenses = db.query(Expense).all()

    mismatched = [agg.order_number for agg in aggregates if not agg.integrity_ok]
    if mismatched:
        logger.error("Dashboard built with %d order(s) out of sync with history: %s",
                     len(mismatched), ", ".join(mismatched))

    return build_dashboard(
        aggregates,
        clients,
        expenses,
        period,
        today,
        top_clients_limit=settings.top_clients_limit,
        recent_orders_limit=settings.recent_orders_limit,
    )

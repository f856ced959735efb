"""
Servicio de pedidos: alta, edición de campos, lectura del agregado y utilidades
compartidas por el motor de estados y el libro de pagos.
"""
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from perrino.core.clock import as_utc, business_date, business_today, utcnow
from perrino.core.errors import (
    ClientNotFound,
    DomainError,
    IntegrityFault,
    InvalidAmount,
    InvalidQuantity,
    LedgerUnavailable,
    OrderNotFound,
    QuantityExceeded,
)
from perrino.core.folio_service import generate_folio
from perrino.core.serialization_helpers import MAX_MONEY, to_money
from perrino.core.status import OrderStatus
from perrino.models.client import Client
from perrino.models.order import Order
from perrino.models.payment import Payment
from perrino.models.status_history import StatusHistoryEntry
from perrino.services.order_aggregate import (
    OrderAggregate,
    build_order_aggregate,
    derive_status,
    delivered_quantity,
    sort_for_listing,
    sum_payments,
)


logger = logging.getLogger(__name__)

CREATION_OBSERVATION = "Pedido recibido"

OrderRef = Union[int, str]


@dataclass(frozen=True)
class Actor:
    """Usuario que ejecuta la operación, ya resuelto por el colaborador de identidad."""

    id: Optional[int]
    name: str

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(id=user.id, name=user.display_name)


@dataclass
class OrderFilters:
    status: Optional[OrderStatus] = None
    client_id: Optional[int] = None
    is_urgent: Optional[bool] = None
    search: Optional[str] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None


@dataclass
class OrderPage:
    data: List[OrderAggregate]
    count: int
    page: int
    page_size: int
    total_pages: int


def commit_or_raise(db: Session, operation: str) -> None:
    """Confirma la transacción completa o la deshace y reporta el almacén como no disponible."""
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Ledger write failed during %s: %s", operation, exc)
        raise LedgerUnavailable(f"No se pudo registrar la operación ({operation}); reintente") from exc


def load_order(db: Session, order_ref: OrderRef, for_update: bool = False) -> Order:
    """Busca por id numérico o por número de pedido (ORD-000123)."""
    query = db.query(Order)
    if isinstance(order_ref, str) and not order_ref.isdigit():
        query = query.filter(Order.order_number == order_ref.strip().upper())
    else:
        query = query.filter(Order.id == int(order_ref))
    if for_update:
        query = query.with_for_update()
    try:
        order = query.first()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Ledger read failed for order %s: %s", order_ref, exc)
        raise LedgerUnavailable("No se pudo leer el pedido; reintente") from exc
    if not order:
        raise OrderNotFound(order_ref)
    return order


def load_history(db: Session, order_id: int) -> List[StatusHistoryEntry]:
    return (
        db.query(StatusHistoryEntry)
        .options(selectinload(StatusHistoryEntry.photos))
        .filter(StatusHistoryEntry.order_id == order_id)
        .order_by(StatusHistoryEntry.changed_at.asc(), StatusHistoryEntry.id.asc())
        .all()
    )


def load_payments(db: Session, order_id: int) -> List[Payment]:
    return (
        db.query(Payment)
        .options(selectinload(Payment.photos))
        .filter(Payment.order_id == order_id)
        .order_by(Payment.payment_date.asc(), Payment.id.asc())
        .all()
    )


def flag_for_reconciliation(db: Session, order: Order, derived: Optional[OrderStatus]) -> None:
    logger.error(
        "Integrity fault on order %s: status=%s but latest history says %s; flagged for manual reconciliation",
        order.order_number,
        order.status,
        derived.value if derived else None,
    )
    if not order.needs_reconciliation:
        order.needs_reconciliation = True
        commit_or_raise(db, "flag_for_reconciliation")


def ensure_integrity(db: Session, order: Order, history: List[StatusHistoryEntry]) -> OrderStatus:
    """
    Verifica que order.status coincida con el historial. Una discrepancia no se corrige:
    se marca el pedido para conciliación manual y se detiene la operación.
    """
    derived = derive_status(history)
    if derived is None or derived.value != order.status:
        flag_for_reconciliation(db, order, derived)
        raise IntegrityFault(
            f"El estado del pedido {order.order_number} no coincide con su historial",
            {
                "order_id": order.id,
                "status": order.status,
                "history_status": derived.value if derived else None,
            },
        )
    return derived


def parse_total(value) -> Decimal:
    """Total del pedido: número finito entre 0 y el máximo que guarda la columna."""
    try:
        total = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount("El total debe ser un número válido", {"total": str(value)})
    if not total.is_finite() or total < 0:
        raise InvalidAmount("El total no puede ser negativo", {"total": str(value)})
    if total > MAX_MONEY:
        raise InvalidAmount(f"El total no puede superar ${MAX_MONEY}", {"total": str(value)})
    return to_money(total)


def next_changed_at(history: List[StatusHistoryEntry], now: Optional[datetime] = None) -> datetime:
    """Marca de tiempo de una nueva entrada; nunca anterior a la última registrada."""
    now = as_utc(now) if now is not None else utcnow()
    if history:
        last = max(as_utc(entry.changed_at) for entry in history)
        if last > now:
            return last
    return now


def create_order(
    db: Session,
    client_id: int,
    description: str,
    service_type: str,
    quantity: int,
    total,
    due_date: date,
    actor: Actor,
    is_urgent: bool = False,
    observation: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Order:
    """Crea el pedido en RECIBIDO junto con su entrada de historial sintética, en una sola transacción."""
    if quantity is None or quantity < 1:
        raise InvalidQuantity("La cantidad debe ser un entero positivo")
    total_val = parse_total(total)

    client = db.query(Client).filter(Client.id == client_id).first()
    if not client:
        raise ClientNotFound(client_id)

    created_at = as_utc(now) if now is not None else utcnow()
    order = Order(
        order_number=generate_folio(db, "ORDER"),
        client_id=client.id,
        description=description.strip(),
        service_type=service_type,
        quantity=quantity,
        total=total_val,
        due_date=due_date,
        is_urgent=is_urgent,
        status=OrderStatus.RECEIVED.value,
        created_at=created_at,
    )
    db.add(order)
    db.flush()

    db.add(StatusHistoryEntry(
        order_id=order.id,
        status=OrderStatus.RECEIVED.value,
        observations=(observation or "").strip() or CREATION_OBSERVATION,
        changed_by_id=actor.id,
        changed_by_name=actor.name,
        changed_at=created_at,
    ))
    commit_or_raise(db, "create_order")
    db.refresh(order)
    logger.info("Order %s created for client %s (qty=%s, total=%s)", order.order_number, client.id, quantity, total_val)
    return order


EDITABLE_FIELDS = ("description", "service_type", "quantity", "total", "due_date", "is_urgent")


def update_order_fields(db: Session, order_ref: OrderRef, changes: dict) -> Order:
    """
    Edición directa de campos (no pasa por la máquina de estados). El total no puede
    quedar por debajo de lo pagado ni la cantidad por debajo de lo entregado.
    """
    order = load_order(db, order_ref, for_update=True)
    try:
        updates = _validated_updates(db, order, changes)
    except DomainError as exc:
        logger.warning("Edit rejected for %s: %s", order.order_number, exc)
        db.rollback()
        raise

    for field_name, value in updates.items():
        setattr(order, field_name, value)

    commit_or_raise(db, "update_order")
    db.refresh(order)
    if updates:
        logger.info("Order %s fields updated: %s", order.order_number, ", ".join(sorted(updates)))
    return order


def _validated_updates(db: Session, order: Order, changes: dict) -> dict:
    updates = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}

    if "total" in updates:
        new_total = parse_total(updates["total"])
        paid = sum_payments(load_payments(db, order.id))
        if new_total < paid:
            raise InvalidAmount(
                f"El total (${new_total}) no puede ser menor a lo ya pagado (${paid})",
                {"total": str(new_total), "total_paid": str(paid)},
            )
        updates["total"] = new_total

    if "quantity" in updates:
        new_quantity = int(updates["quantity"])
        if new_quantity < 1:
            raise InvalidQuantity("La cantidad debe ser un entero positivo")
        delivered = delivered_quantity(OrderStatus(order.status), order.quantity, load_history(db, order.id))
        if order.status != OrderStatus.DELIVERED.value and new_quantity < delivered:
            raise QuantityExceeded(
                f"La cantidad ({new_quantity}) no puede ser menor a lo ya entregado ({delivered})",
                {"quantity": new_quantity, "total_delivered": delivered},
            )
        updates["quantity"] = new_quantity

    if "description" in updates:
        updates["description"] = updates["description"].strip()

    return updates


def get_order_aggregate(db: Session, order_ref: OrderRef, today: Optional[date] = None) -> OrderAggregate:
    order = load_order(db, order_ref)
    history = load_history(db, order.id)
    payments = load_payments(db, order.id)
    aggregate = build_order_aggregate(order, history, payments, today or business_today())
    if not aggregate.integrity_ok:
        flag_for_reconciliation(db, order, aggregate.derived_status)
    return aggregate


def load_all_aggregates(db: Session, today: Optional[date] = None) -> List[OrderAggregate]:
    """Agregados de todos los pedidos, recalculados desde las filas actuales."""
    today = today or business_today()
    orders = (
        db.query(Order)
        .options(
            selectinload(Order.client),
            selectinload(Order.status_history),
            selectinload(Order.payments),
        )
        .all()
    )
    return [
        build_order_aggregate(order, order.status_history, order.payments, today)
        for order in orders
    ]


def _matches(aggregate: OrderAggregate, filters: OrderFilters) -> bool:
    if filters.status is not None and aggregate.status != filters.status:
        return False
    if filters.client_id is not None and aggregate.client_id != filters.client_id:
        return False
    if filters.is_urgent is not None and aggregate.is_urgent != filters.is_urgent:
        return False
    created = business_date(aggregate.created_at)
    if filters.from_date is not None and created < filters.from_date:
        return False
    if filters.to_date is not None and created > filters.to_date:
        return False
    if filters.search:
        needle = filters.search.strip().lower()
        haystack = (aggregate.order_number, aggregate.description, aggregate.client_name or "")
        if not any(needle in value.lower() for value in haystack):
            return False
    return True


def list_orders(
    db: Session,
    filters: Optional[OrderFilters] = None,
    page: int = 1,
    page_size: int = 10,
    today: Optional[date] = None,
) -> OrderPage:
    filters = filters or OrderFilters()
    aggregates = [agg for agg in load_all_aggregates(db, today) if _matches(agg, filters)]
    ordered = sort_for_listing(aggregates)

    count = len(ordered)
    start = (page - 1) * page_size
    return OrderPage(
        data=ordered[start:start + page_size],
        count=count,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(count / page_size) if page_size else 0,
    )

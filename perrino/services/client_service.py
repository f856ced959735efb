from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from perrino.core.clock import business_today
from perrino.core.errors import ClientNotFound
from perrino.core.serialization_helpers import to_money
from perrino.core.status import ACTIVE_STATUSES, OrderStatus
from perrino.models.client import Client
from perrino.services.order_aggregate import OrderAggregate
from perrino.services.order_service import commit_or_raise, load_all_aggregates


logger = logging.getLogger(__name__)


@dataclass
class ClientStats:
    client: Client
    total_orders: int = 0
    active_orders: int = 0
    completed_orders: int = 0
    total_spent: Decimal = Decimal("0.00")
    last_order_at: Optional[datetime] = None


def _normalize_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def create_client(
    db: Session,
    name: str,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    cedula: Optional[str] = None,
    address: Optional[str] = None,
    notes: Optional[str] = None,
) -> Client:
    client = Client(
        name=_normalize_text(name) or "Cliente Sin Nombre",
        email=_normalize_text(email),
        phone=_normalize_text(phone),
        cedula=_normalize_text(cedula),
        address=_normalize_text(address),
        notes=_normalize_text(notes),
    )
    db.add(client)
    commit_or_raise(db, "create_client")
    db.refresh(client)
    logger.info("Client %s created (%s)", client.id, client.name)
    return client


def get_client(db: Session, client_id: int) -> Client:
    client = db.query(Client).filter(Client.id == client_id).first()
    if not client:
        raise ClientNotFound(client_id)
    return client


def collect_stats(clients: List[Client], aggregates: List[OrderAggregate]) -> List[ClientStats]:
    """
    Estadísticas por cliente calculadas desde las vistas agregadas.
    total_spent es lo efectivamente pagado, no el valor de los pedidos.
    """
    stats: Dict[int, ClientStats] = {c.id: ClientStats(client=c) for c in clients}
    for agg in aggregates:
        entry = stats.get(agg.client_id)
        if entry is None:
            continue
        entry.total_orders += 1
        if agg.status in ACTIVE_STATUSES:
            entry.active_orders += 1
        elif agg.status == OrderStatus.DELIVERED:
            entry.completed_orders += 1
        entry.total_spent = to_money(entry.total_spent + agg.total_paid)
        if entry.last_order_at is None or agg.created_at > entry.last_order_at:
            entry.last_order_at = agg.created_at
    return list(stats.values())


def list_clients_with_stats(
    db: Session,
    search: Optional[str] = None,
    today: Optional[date] = None,
) -> List[ClientStats]:
    clients = db.query(Client).order_by(Client.name.asc(), Client.id.asc()).all()
    if search:
        needle = search.strip().lower()
        clients = [
            c for c in clients
            if needle in c.name.lower()
            or needle in (c.phone or "")
            or needle in (c.email or "").lower()
            or needle in (c.cedula or "")
        ]
    return collect_stats(clients, load_all_aggregates(db, today or business_today()))

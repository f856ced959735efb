from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from perrino.core.database import get_db
from perrino.core.deps import require_admin
from perrino.core.serialization_helpers import serialize_datetime, serialize_decimal
from perrino.models.user import User
from perrino.services.client_service import (
    ClientStats,
    collect_stats,
    create_client,
    get_client,
    list_clients_with_stats,
)
from perrino.services.order_service import load_all_aggregates

router = APIRouter()


class ClientCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    cedula: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


class ClientOut(BaseModel):
    id: int
    name: str
    email: Optional[str]
    phone: Optional[str]
    cedula: Optional[str]
    address: Optional[str]
    notes: Optional[str]
    created_at: str
    total_orders: int
    active_orders: int
    completed_orders: int
    total_spent: float
    last_order_at: Optional[str]

    class Config:
        from_attributes = True


def _client_out(stats: ClientStats) -> ClientOut:
    c = stats.client
    return ClientOut(
        id=c.id,
        name=c.name,
        email=c.email,
        phone=c.phone,
        cedula=c.cedula,
        address=c.address,
        notes=c.notes,
        created_at=serialize_datetime(c.created_at),
        total_orders=stats.total_orders,
        active_orders=stats.active_orders,
        completed_orders=stats.completed_orders,
        total_spent=serialize_decimal(stats.total_spent),
        last_order_at=serialize_datetime(stats.last_order_at),
    )


@router.get("/", response_model=List[ClientOut])
def get_clients(
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    """Clientes con sus totales (pedidos activos/completados y lo pagado)."""
    return [_client_out(s) for s in list_clients_with_stats(db, search=search)]


@router.post("/", response_model=ClientOut, status_code=201)
def post_client(
    data: ClientCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    client = create_client(db, **data.model_dump())
    return _client_out(ClientStats(client=client))


@router.get("/{client_id}", response_model=ClientOut)
def get_client_detail(
    client_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    client = get_client(db, client_id)
    stats = collect_stats([client], load_all_aggregates(db))
    return _client_out(stats[0])

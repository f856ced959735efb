"""
Rutas de pedidos: alta, listado, detalle agregado, cambios de estado y abonos.
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from perrino.core.database import get_db
from perrino.core.deps import require_admin
from perrino.core.status import (
    OrderStatus,
    PaymentMethod,
    PAYMENT_STATUS_LABELS,
    STATUS_LABELS,
)
from perrino.core.serialization_helpers import MAX_MONEY, serialize_datetime, serialize_decimal
from perrino.models.user import User
from perrino.services.evidence_store import EvidenceStore, EvidenceUpload, get_evidence_store
from perrino.services.order_aggregate import OrderAggregate
from perrino.services.order_service import (
    Actor,
    OrderFilters,
    create_order,
    get_order_aggregate,
    list_orders,
    load_history,
    load_order,
    load_payments,
    update_order_fields,
)
from perrino.services.payment_ledger import record_payment
from perrino.services.status_engine import transition_status

router = APIRouter()

MAX_TOTAL = float(MAX_MONEY)


class OrderCreate(BaseModel):
    client_id: int
    description: str = Field(..., min_length=1)
    service_type: str = Field(..., min_length=1)
    quantity: int
    total: float = Field(..., ge=0, le=MAX_TOTAL)
    due_date: date
    is_urgent: bool = False
    observation: Optional[str] = None


class OrderUpdate(BaseModel):
    description: Optional[str] = None
    service_type: Optional[str] = None
    quantity: Optional[int] = None
    total: Optional[float] = Field(None, ge=0, le=MAX_TOTAL)
    due_date: Optional[date] = None
    is_urgent: Optional[bool] = None


class OrderOut(BaseModel):
    id: int
    order_number: str
    client_id: int
    client_name: Optional[str]
    description: str
    service_type: str
    quantity: int
    total: float
    status: str
    status_label: str
    due_date: date
    is_urgent: bool
    created_at: str

    total_paid: float
    remaining_balance: float
    payment_progress: float
    is_paid: bool
    payment_status: str
    payment_status_label: str
    last_payment_at: Optional[str]

    total_delivered: int
    remaining_to_deliver: int
    partial_delivery_count: int

    is_delayed: bool
    days_remaining: int
    status_priority: int
    needs_reconciliation: bool


class OrderListOut(BaseModel):
    data: List[OrderOut]
    count: int
    page: int
    page_size: int
    total_pages: int


class HistoryEntryOut(BaseModel):
    id: int
    status: str
    status_label: str
    observations: str
    quantity_delivered: Optional[int]
    changed_by_id: Optional[int]
    changed_by_name: Optional[str]
    changed_at: str
    photo_urls: List[str]


class PaymentOut(BaseModel):
    id: int
    amount: float
    amount_requested: float
    method: str
    notes: Optional[str]
    received_by_id: Optional[int]
    received_by_name: Optional[str]
    payment_date: str
    photo_urls: List[str]


class TransitionOut(BaseModel):
    order_id: int
    order_number: str
    status: str
    history_entry_id: int
    total_delivered: int


class PaymentResultOut(BaseModel):
    payment_id: int
    order_id: int
    amount_applied: float
    amount_requested: float
    total_paid: float
    remaining_balance: float
    payment_progress: float


def aggregate_out(agg: OrderAggregate) -> OrderOut:
    return OrderOut(
        id=agg.order_id,
        order_number=agg.order_number,
        client_id=agg.client_id,
        client_name=agg.client_name,
        description=agg.description,
        service_type=agg.service_type,
        quantity=agg.quantity,
        total=serialize_decimal(agg.total),
        status=agg.status.value,
        status_label=STATUS_LABELS[agg.status],
        due_date=agg.due_date,
        is_urgent=agg.is_urgent,
        created_at=serialize_datetime(agg.created_at),
        total_paid=serialize_decimal(agg.total_paid),
        remaining_balance=serialize_decimal(agg.remaining_balance),
        payment_progress=agg.payment_progress,
        is_paid=agg.is_paid,
        payment_status=agg.payment_status.value,
        payment_status_label=PAYMENT_STATUS_LABELS[agg.payment_status],
        last_payment_at=serialize_datetime(agg.last_payment_at),
        total_delivered=agg.total_delivered,
        remaining_to_deliver=agg.remaining_to_deliver,
        partial_delivery_count=agg.partial_delivery_count,
        is_delayed=agg.is_delayed,
        days_remaining=agg.days_remaining,
        status_priority=agg.status_priority,
        needs_reconciliation=agg.needs_reconciliation,
    )


def _read_uploads(files: List[UploadFile]) -> List[EvidenceUpload]:
    uploads = []
    for f in files or []:
        # Los navegadores envían un campo vacío cuando no se elige archivo
        if not f.filename:
            continue
        uploads.append(EvidenceUpload(
            data=f.file.read(),
            content_type=f.content_type or "",
            filename=f.filename,
        ))
    return uploads


def _clean_urls(urls: List[str]) -> List[str]:
    return [u.strip() for u in urls or [] if u and u.strip()]


@router.get("/", response_model=OrderListOut)
def get_orders(
    status: Optional[OrderStatus] = Query(None),
    client_id: Optional[int] = Query(None),
    is_urgent: Optional[bool] = Query(None),
    search: Optional[str] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    """Listado ordenado por prioridad: urgentes, luego por estado, luego los más recientes."""
    filters = OrderFilters(
        status=status,
        client_id=client_id,
        is_urgent=is_urgent,
        search=search,
        from_date=from_date,
        to_date=to_date,
    )
    result = list_orders(db, filters, page=page, page_size=page_size)
    return OrderListOut(
        data=[aggregate_out(agg) for agg in result.data],
        count=result.count,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
    )


@router.post("/", response_model=OrderOut, status_code=201)
def post_order(
    data: OrderCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    order = create_order(
        db,
        client_id=data.client_id,
        description=data.description,
        service_type=data.service_type,
        quantity=data.quantity,
        total=data.total,
        due_date=data.due_date,
        actor=Actor.from_user(user),
        is_urgent=data.is_urgent,
        observation=data.observation,
    )
    return aggregate_out(get_order_aggregate(db, order.id))


@router.get("/{order_ref}", response_model=OrderOut)
def get_order(
    order_ref: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    """Pedido por id o por número (ORD-000123)."""
    return aggregate_out(get_order_aggregate(db, order_ref))


@router.patch("/{order_ref}", response_model=OrderOut)
def patch_order(
    order_ref: str,
    data: OrderUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    order = update_order_fields(db, order_ref, data.model_dump(exclude_unset=True))
    return aggregate_out(get_order_aggregate(db, order.id))


@router.get("/{order_ref}/history", response_model=List[HistoryEntryOut])
def get_order_history(
    order_ref: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    order = load_order(db, order_ref)
    return [
        {
            "id": h.id,
            "status": h.status,
            "status_label": STATUS_LABELS[OrderStatus(h.status)],
            "observations": h.observations,
            "quantity_delivered": h.quantity_delivered,
            "changed_by_id": h.changed_by_id,
            "changed_by_name": h.changed_by_name,
            "changed_at": serialize_datetime(h.changed_at),
            "photo_urls": h.photo_urls,
        }
        for h in load_history(db, order.id)
    ]


@router.get("/{order_ref}/payments", response_model=List[PaymentOut])
def get_order_payments(
    order_ref: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    order = load_order(db, order_ref)
    return [
        {
            "id": p.id,
            "amount": serialize_decimal(p.amount),
            "amount_requested": serialize_decimal(p.amount_requested),
            "method": p.method,
            "notes": p.notes,
            "received_by_id": p.received_by_id,
            "received_by_name": p.received_by_name,
            "payment_date": serialize_datetime(p.payment_date),
            "photo_urls": p.photo_urls,
        }
        for p in load_payments(db, order.id)
    ]


@router.post("/{order_ref}/status", response_model=TransitionOut)
def post_order_status(
    order_ref: str,
    status: OrderStatus = Form(...),
    observation: Optional[str] = Form(None),
    quantity_delivered: Optional[int] = Form(None),
    photos: List[UploadFile] = File(default=[]),
    photo_urls: List[str] = Form(default=[]),
    db: Session = Depends(get_db),
    evidence_store: EvidenceStore = Depends(get_evidence_store),
    user: User = Depends(require_admin),
):
    """
    Cambia el estado del pedido. Las observaciones son obligatorias; quantity_delivered
    solo aplica a PARCIALMENTE_ENTREGADO. Las fotos se suben antes de registrar el cambio.
    """
    result = transition_status(
        db,
        order_ref,
        status,
        observation,
        Actor.from_user(user),
        photos=_read_uploads(photos),
        photo_urls=_clean_urls(photo_urls),
        evidence_store=evidence_store,
        quantity_delivered=quantity_delivered,
    )
    return TransitionOut(
        order_id=result.order_id,
        order_number=result.order_number,
        status=result.status.value,
        history_entry_id=result.history_entry_id,
        total_delivered=result.total_delivered,
    )


@router.post("/{order_ref}/payments", response_model=PaymentResultOut, status_code=201)
def post_order_payment(
    order_ref: str,
    amount: str = Form(...),
    method: PaymentMethod = Form(PaymentMethod.CASH),
    notes: Optional[str] = Form(None),
    photos: List[UploadFile] = File(default=[]),
    photo_urls: List[str] = Form(default=[]),
    db: Session = Depends(get_db),
    evidence_store: EvidenceStore = Depends(get_evidence_store),
    user: User = Depends(require_admin),
):
    """Registra un abono; un monto mayor al saldo se ajusta al saldo pendiente."""
    result = record_payment(
        db,
        order_ref,
        amount,
        method,
        Actor.from_user(user),
        notes=notes,
        photos=_read_uploads(photos),
        photo_urls=_clean_urls(photo_urls),
        evidence_store=evidence_store,
    )
    return PaymentResultOut(
        payment_id=result.payment_id,
        order_id=result.order_id,
        amount_applied=serialize_decimal(result.amount_applied),
        amount_requested=serialize_decimal(result.amount_requested),
        total_paid=serialize_decimal(result.total_paid),
        remaining_balance=serialize_decimal(result.remaining_balance),
        payment_progress=result.payment_progress,
    )

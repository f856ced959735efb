"""
Motor de transiciones de estado de pedidos.

Valida la transición contra el estado actual (leído del historial, con la fila del pedido
bloqueada), sube las fotos de evidencia y luego, en UNA transacción, agrega la entrada de
historial con sus fotos y actualiza order.status. Si algo falla antes del commit no queda
nada escrito.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from perrino.core.config import settings
from perrino.core.errors import (
    DomainError,
    InvalidQuantity,
    InvalidTransition,
    MissingObservation,
    OrderTerminal,
    QuantityExceeded,
)
from perrino.core.status import OrderStatus, STATUS_LABELS, allowed, is_terminal
from perrino.models.order import Order
from perrino.models.status_history import StatusHistoryEntry, StatusPhoto
from perrino.services.evidence_store import (
    STATUS_PHOTOS_FOLDER,
    EvidenceStore,
    EvidenceUpload,
    get_evidence_store,
    upload_evidence,
)
from perrino.services.order_aggregate import partial_delivered_quantity
from perrino.services.order_service import (
    Actor,
    OrderRef,
    commit_or_raise,
    ensure_integrity,
    load_history,
    load_order,
    next_changed_at,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    order_id: int
    order_number: str
    status: OrderStatus
    history_entry_id: int
    total_delivered: int


def validate_transition(
    order: Order,
    current: OrderStatus,
    target: OrderStatus,
    observation: Optional[str],
    history: Sequence[StatusHistoryEntry],
    quantity_delivered: Optional[int] = None,
    allow_skip_ahead: bool = True,
) -> None:
    """Lanza el error tipado correspondiente si la transición no es válida."""
    if is_terminal(current):
        raise OrderTerminal(
            f"El pedido {order.order_number} está {STATUS_LABELS[current].lower()} y no admite más cambios",
            {"status": current.value},
        )

    if not allowed(current, target, allow_skip_ahead):
        raise InvalidTransition(
            f"No se puede pasar de {STATUS_LABELS[current]} a {STATUS_LABELS[target]}",
            {"from": current.value, "to": target.value},
        )

    if not observation or not observation.strip():
        raise MissingObservation("Las observaciones son obligatorias para cambiar el estado")

    if target != OrderStatus.PARTIALLY_DELIVERED:
        if quantity_delivered is not None:
            raise InvalidQuantity(
                "La cantidad entregada solo aplica a entregas parciales",
                {"to": target.value},
            )
        return

    if quantity_delivered is None or isinstance(quantity_delivered, bool) or quantity_delivered < 1:
        raise InvalidQuantity("La cantidad entregada debe ser un entero positivo")

    already = partial_delivered_quantity(history)
    if already + quantity_delivered > order.quantity:
        raise QuantityExceeded(
            f"La entrega de {quantity_delivered} unidades supera lo pendiente "
            f"({order.quantity - already} de {order.quantity})",
            {
                "quantity": order.quantity,
                "total_delivered": already,
                "quantity_delivered": quantity_delivered,
            },
        )


def transition_status(
    db: Session,
    order_ref: OrderRef,
    target_status: OrderStatus,
    observation: Optional[str],
    actor: Actor,
    photos: Sequence[EvidenceUpload] = (),
    photo_urls: Sequence[str] = (),
    quantity_delivered: Optional[int] = None,
    evidence_store: Optional[EvidenceStore] = None,
    allow_skip_ahead: Optional[bool] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    target = OrderStatus(target_status)
    if allow_skip_ahead is None:
        allow_skip_ahead = settings.allow_skip_ahead

    order = load_order(db, order_ref, for_update=True)
    history = load_history(db, order.id)
    current = ensure_integrity(db, order, history)

    try:
        validate_transition(
            order, current, target, observation, history,
            quantity_delivered=quantity_delivered,
            allow_skip_ahead=allow_skip_ahead,
        )
    except DomainError as exc:
        logger.warning(
            "Transition rejected for %s (%s -> %s): %s",
            order.order_number, current.value, target.value, exc,
        )
        db.rollback()
        raise

    # Evidencias primero: si la subida falla no se ha escrito nada
    urls: List[str] = list(photo_urls)
    if photos:
        try:
            urls.extend(upload_evidence(
                evidence_store or get_evidence_store(),
                photos,
                f"{STATUS_PHOTOS_FOLDER}/orders/{order.id}",
            ))
        except Exception:
            db.rollback()
            raise

    entry = StatusHistoryEntry(
        order_id=order.id,
        status=target.value,
        observations=observation.strip(),
        quantity_delivered=quantity_delivered if target == OrderStatus.PARTIALLY_DELIVERED else None,
        changed_by_id=actor.id,
        changed_by_name=actor.name,
        changed_at=next_changed_at(history, now),
    )
    entry.photos = [StatusPhoto(photo_url=url) for url in urls]
    if target == OrderStatus.DELIVERED:
        total_delivered = order.quantity
    else:
        total_delivered = partial_delivered_quantity(history) + (
            quantity_delivered if target == OrderStatus.PARTIALLY_DELIVERED else 0
        )

    db.add(entry)
    order.status = target.value
    commit_or_raise(db, "transition_status")
    entry_id = entry.id

    logger.info(
        "Order %s: %s -> %s by %s (entry=%s, photos=%d)",
        order.order_number, current.value, target.value, actor.name, entry_id, len(urls),
    )
    return TransitionResult(
        order_id=order.id,
        order_number=order.order_number,
        status=target,
        history_entry_id=entry_id,
        total_delivered=total_delivered,
    )

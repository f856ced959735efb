"""
Libro de pagos (abonos) de pedidos.

Cada abono se valida contra el saldo pendiente calculado desde los pagos ya registrados.
Un monto mayor al saldo se ajusta al saldo (se guarda también el monto ingresado para
auditoría); si el pedido ya no tiene saldo el abono se rechaza. Los pagos no modifican el
estado del pedido.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from perrino.core.clock import as_utc, utcnow
from perrino.core.errors import DomainError, InvalidAmount, OrderFullyPaid
from perrino.core.serialization_helpers import MAX_MONEY, to_money
from perrino.core.status import PaymentMethod
from perrino.models.payment import Payment, PaymentPhoto
from perrino.services.evidence_store import (
    PAYMENT_RECEIPTS_FOLDER,
    EvidenceStore,
    EvidenceUpload,
    get_evidence_store,
    upload_evidence,
)
from perrino.services.order_aggregate import payment_progress, sum_payments
from perrino.services.order_service import (
    Actor,
    OrderRef,
    commit_or_raise,
    load_order,
    load_payments,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentResult:
    payment_id: int
    order_id: int
    amount_applied: Decimal
    amount_requested: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    payment_progress: float

    @property
    def was_clamped(self) -> bool:
        return self.amount_applied != self.amount_requested


def parse_amount(amount) -> Decimal:
    """
    Convierte el monto a Decimal de dos decimales; rechaza no numéricos y <= 0.
    Un monto mayor al máximo de la columna se registra como ese máximo (luego se ajusta al saldo).
    """
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount("Ingresa un monto válido mayor a 0", {"amount": str(amount)})
    if not value.is_finite() or value <= 0:
        raise InvalidAmount("Ingresa un monto válido mayor a 0", {"amount": str(amount)})
    if value > MAX_MONEY:
        logger.warning("Payment amount %s capped to %s", amount, MAX_MONEY)
        value = MAX_MONEY
    value = to_money(value)
    if value <= 0:
        raise InvalidAmount("Ingresa un monto válido mayor a 0", {"amount": str(amount)})
    return value


def apply_to_balance(requested: Decimal, total: Decimal, already_paid: Decimal) -> Decimal:
    """Monto que se aplicará: el solicitado, ajustado al saldo pendiente."""
    remaining = to_money(total - already_paid)
    if remaining <= 0:
        raise OrderFullyPaid(
            "El pedido ya está completamente pagado",
            {"total": str(total), "total_paid": str(already_paid)},
        )
    return min(requested, remaining)


def record_payment(
    db: Session,
    order_ref: OrderRef,
    amount,
    method: PaymentMethod,
    actor: Actor,
    notes: Optional[str] = None,
    photos: Sequence[EvidenceUpload] = (),
    photo_urls: Sequence[str] = (),
    evidence_store: Optional[EvidenceStore] = None,
    now: Optional[datetime] = None,
) -> PaymentResult:
    method = PaymentMethod(method)
    requested = parse_amount(amount)

    # Bloquea la fila del pedido: dos abonos simultáneos no pueden pasar ambos la validación de saldo
    order = load_order(db, order_ref, for_update=True)
    total = to_money(order.total)
    existing = load_payments(db, order.id)
    already_paid = sum_payments(existing)

    try:
        applied = apply_to_balance(requested, total, already_paid)
    except DomainError as exc:
        logger.warning("Payment rejected for %s: %s", order.order_number, exc)
        db.rollback()
        raise

    if applied != requested:
        logger.warning(
            "Payment on %s clamped from %s to remaining balance %s",
            order.order_number, requested, applied,
        )

    # Evidencias primero: si la subida falla no se ha escrito nada
    urls: List[str] = list(photo_urls)
    if photos:
        try:
            urls.extend(upload_evidence(
                evidence_store or get_evidence_store(),
                photos,
                f"{PAYMENT_RECEIPTS_FOLDER}/orders/{order.id}",
            ))
        except Exception:
            db.rollback()
            raise

    payment = Payment(
        order_id=order.id,
        amount=applied,
        amount_requested=requested,
        method=method.value,
        notes=(notes or "").strip() or None,
        received_by_id=actor.id,
        received_by_name=actor.name,
        payment_date=as_utc(now) if now is not None else utcnow(),
    )
    payment.photos = [PaymentPhoto(photo_url=url) for url in urls]
    db.add(payment)

    order_id = order.id
    order_number = order.order_number
    commit_or_raise(db, "record_payment")

    total_paid = to_money(already_paid + applied)
    remaining = to_money(total - total_paid)
    logger.info(
        "Payment %s on %s: %s via %s by %s (remaining %s)",
        payment.id, order_number, applied, method.value, actor.name, remaining,
    )
    return PaymentResult(
        payment_id=payment.id,
        order_id=order_id,
        amount_applied=applied,
        amount_requested=requested,
        total_paid=total_paid,
        remaining_balance=remaining,
        payment_progress=payment_progress(total_paid, total),
    )

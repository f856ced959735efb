"""
Estados de pedido, tabla de transiciones y catálogos de pago.

El flujo nominal es RECIBIDO -> CONFECCION -> RETIRO -> [PARCIALMENTE_ENTREGADO]* -> ENTREGADO,
con CANCELADO alcanzable desde cualquier estado no terminal. Las reglas de transición viven
en dos tablas explícitas; el resto del código solo pregunta `allowed(current, target)`.
"""
from enum import Enum
from typing import Dict, FrozenSet


class OrderStatus(str, Enum):
    RECEIVED = "RECIBIDO"
    IN_PRODUCTION = "CONFECCION"
    READY_FOR_PICKUP = "RETIRO"
    PARTIALLY_DELIVERED = "PARCIALMENTE_ENTREGADO"
    DELIVERED = "ENTREGADO"
    CANCELLED = "CANCELADO"


class PaymentMethod(str, Enum):
    CASH = "efectivo"
    TRANSFER = "transferencia"
    CARD = "tarjeta"
    OTHER = "otro"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


NOMINAL_FLOW = (
    OrderStatus.RECEIVED,
    OrderStatus.IN_PRODUCTION,
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.PARTIALLY_DELIVERED,
    OrderStatus.DELIVERED,
)

TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

ACTIVE_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {
        OrderStatus.RECEIVED,
        OrderStatus.IN_PRODUCTION,
        OrderStatus.READY_FOR_PICKUP,
        OrderStatus.PARTIALLY_DELIVERED,
    }
)

# Cualquier avance a un estado posterior del flujo, entrega parcial re-entrante y cancelación
FORWARD_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.RECEIVED: frozenset(
        {
            OrderStatus.IN_PRODUCTION,
            OrderStatus.READY_FOR_PICKUP,
            OrderStatus.PARTIALLY_DELIVERED,
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
        }
    ),
    OrderStatus.IN_PRODUCTION: frozenset(
        {
            OrderStatus.READY_FOR_PICKUP,
            OrderStatus.PARTIALLY_DELIVERED,
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
        }
    ),
    OrderStatus.READY_FOR_PICKUP: frozenset(
        {OrderStatus.PARTIALLY_DELIVERED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}
    ),
    OrderStatus.PARTIALLY_DELIVERED: frozenset(
        {OrderStatus.PARTIALLY_DELIVERED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}
    ),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Solo el siguiente paso del flujo (sin saltos)
STEPWISE_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.RECEIVED: frozenset({OrderStatus.IN_PRODUCTION, OrderStatus.CANCELLED}),
    OrderStatus.IN_PRODUCTION: frozenset({OrderStatus.READY_FOR_PICKUP, OrderStatus.CANCELLED}),
    OrderStatus.READY_FOR_PICKUP: frozenset(
        {OrderStatus.PARTIALLY_DELIVERED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}
    ),
    OrderStatus.PARTIALLY_DELIVERED: frozenset(
        {OrderStatus.PARTIALLY_DELIVERED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}
    ),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

STATUS_LABELS: Dict[OrderStatus, str] = {
    OrderStatus.RECEIVED: "Recibido",
    OrderStatus.IN_PRODUCTION: "En Confección",
    OrderStatus.READY_FOR_PICKUP: "Listo para Retiro",
    OrderStatus.PARTIALLY_DELIVERED: "Parcialmente Entregado",
    OrderStatus.DELIVERED: "Entregado",
    OrderStatus.CANCELLED: "Cancelado",
}

PAYMENT_STATUS_LABELS: Dict[PaymentStatus, str] = {
    PaymentStatus.PENDING: "Pendiente",
    PaymentStatus.PARTIAL: "Pago Parcial",
    PaymentStatus.PAID: "Pagado",
}

# Menor número = aparece antes en los listados
STATUS_PRIORITY: Dict[OrderStatus, int] = {
    OrderStatus.RECEIVED: 1,
    OrderStatus.IN_PRODUCTION: 1,
    OrderStatus.READY_FOR_PICKUP: 2,
    OrderStatus.PARTIALLY_DELIVERED: 3,
    OrderStatus.DELIVERED: 4,
    OrderStatus.CANCELLED: 5,
}
URGENT_PRIORITY = 0


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def transition_table(allow_skip_ahead: bool = True) -> Dict[OrderStatus, FrozenSet[OrderStatus]]:
    return FORWARD_TRANSITIONS if allow_skip_ahead else STEPWISE_TRANSITIONS


def allowed(current: OrderStatus, target: OrderStatus, allow_skip_ahead: bool = True) -> bool:
    """True when `target` is reachable from `current` in a single transition."""
    return target in transition_table(allow_skip_ahead)[current]


def status_priority(status: OrderStatus, is_urgent: bool) -> int:
    if is_urgent:
        return URGENT_PRIORITY
    return STATUS_PRIORITY[status]

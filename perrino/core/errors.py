"""
Errores tipados del dominio de pedidos.

Cada error lleva un `code` estable y el status HTTP con el que se reporta. Los errores de
validación nunca escriben nada; los de colaboradores (evidencias, base de datos) ocurren
antes de confirmar la transacción y se pueden reintentar completos.
"""
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse


class DomainError(Exception):
    code = "BAD_REQUEST"
    status_code = status.HTTP_400_BAD_REQUEST
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# Validación (error del llamador)

class InvalidTransition(DomainError):
    code = "INVALID_TRANSITION"
    status_code = status.HTTP_409_CONFLICT


class MissingObservation(DomainError):
    code = "MISSING_OBSERVATION"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class InvalidQuantity(DomainError):
    code = "INVALID_QUANTITY"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class QuantityExceeded(DomainError):
    code = "QUANTITY_EXCEEDED"
    status_code = status.HTTP_409_CONFLICT


class OrderTerminal(DomainError):
    code = "ORDER_TERMINAL"
    status_code = status.HTTP_409_CONFLICT


class InvalidAmount(DomainError):
    code = "INVALID_AMOUNT"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class OrderFullyPaid(DomainError):
    code = "ORDER_FULLY_PAID"
    status_code = status.HTTP_409_CONFLICT


class InvalidEvidence(DomainError):
    """Archivo rechazado por tipo o tamaño; reintentar el mismo archivo no sirve."""

    code = "INVALID_EVIDENCE"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


# No encontrado

class NotFound(DomainError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class OrderNotFound(NotFound):
    def __init__(self, order_ref: Any):
        super().__init__(f"Pedido no encontrado: {order_ref}", {"order": str(order_ref)})


class ClientNotFound(NotFound):
    def __init__(self, client_id: Any):
        super().__init__(f"Cliente no encontrado: {client_id}", {"client_id": client_id})


# Colaboradores

class EvidenceUploadFailed(DomainError):
    code = "EVIDENCE_UPLOAD_FAILED"
    status_code = status.HTTP_502_BAD_GATEWAY
    retryable = True


class LedgerUnavailable(DomainError):
    code = "LEDGER_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True


# Integridad

class IntegrityFault(DomainError):
    """order.status no coincide con la última entrada del historial."""

    code = "INTEGRITY_FAULT"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    body: Dict[str, Any] = {"detail": exc.message, "code": exc.code, "retryable": exc.retryable}
    if exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=body)

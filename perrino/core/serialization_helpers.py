"""
Helpers genéricos de serialización.
NO contiene lógica de negocio, solo utilidades de formato.
"""
from decimal import Decimal, ROUND_HALF_UP

CENTS = Decimal("0.01")
# Máximo que cabe en las columnas Numeric(10, 2)
MAX_MONEY = Decimal("99999999.99")


def to_money(value) -> Decimal:
    """Normaliza cualquier número a Decimal con dos decimales"""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def serialize_decimal(value):
    """Convierte Decimal a float para serialización JSON"""
    if value is None:
        return None
    return float(value)


def serialize_datetime(value):
    """Convierte datetime/date a string ISO para serialización JSON"""
    if value is None:
        return None
    return value.isoformat()

"""
Servicio centralizado para generación de folios.
Genera los números de pedido visibles para el cliente (ORD-000001) usando FolioCounter.
"""
from sqlalchemy.orm import Session

from perrino.models.folio_counter import FolioCounter


PREFIX_MAP = {
    "ORDER": "ORD",
}


def get_next_folio_seq(db: Session, tipo: str) -> int:
    """
    Obtiene el siguiente número de secuencia para un tipo de folio.
    Crea el contador si no existe.

    Usa with_for_update() para evitar condiciones de carrera en entornos concurrentes.
    NO hace commit - el caller debe hacer commit después de asignar el folio.
    """
    counter = (
        db.query(FolioCounter)
        .filter(FolioCounter.tipo == tipo)
        .with_for_update()
        .first()
    )

    if not counter:
        counter = FolioCounter(tipo=tipo, next_seq=1)
        db.add(counter)
        db.flush()

    current_seq = counter.next_seq
    counter.next_seq += 1
    return current_seq


def generate_folio(db: Session, tipo: str = "ORDER") -> str:
    """
    Genera un folio único con formato: {PREFIX}-{SEQ:06d}

    Returns:
        Folio generado (ej: 'ORD-000001')
    """
    if tipo not in PREFIX_MAP:
        raise ValueError(f"Tipo de folio inválido: {tipo}")

    prefix = PREFIX_MAP[tipo]
    seq = get_next_folio_seq(db, tipo)
    return f"{prefix}-{str(seq).zfill(6)}"

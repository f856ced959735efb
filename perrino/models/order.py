from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, Numeric, Date, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from perrino.models.base import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(20), nullable=False, unique=True, index=True)  # ORD-000001
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)

    description = Column(Text, nullable=False)
    service_type = Column(String(100), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    total = Column(Numeric(10, 2), nullable=False, default=0)
    due_date = Column(Date, nullable=False)
    is_urgent = Column(Boolean, nullable=False, default=False)

    # Copia desnormalizada del estado de la última entrada del historial.
    # Solo se escribe en la misma transacción que agrega esa entrada.
    status = Column(String(30), nullable=False, default="RECIBIDO", index=True)
    needs_reconciliation = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=lambda: datetime.now(timezone.utc))

    client = relationship("Client", back_populates="orders")
    status_history = relationship(
        "StatusHistoryEntry",
        back_populates="order",
        order_by="StatusHistoryEntry.id",
    )
    payments = relationship(
        "Payment",
        back_populates="order",
        order_by="Payment.id",
    )

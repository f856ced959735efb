from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from perrino.models.base import Base


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)

    amount = Column(Numeric(10, 2), nullable=False)  # Monto aplicado al saldo
    amount_requested = Column(Numeric(10, 2), nullable=False)  # Monto ingresado antes de ajustar al saldo
    method = Column(String(20), nullable=False)  # efectivo, transferencia, tarjeta, otro
    notes = Column(Text, nullable=True)

    received_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    received_by_name = Column(String(255), nullable=False, default="Admin")

    payment_date = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)

    order = relationship("Order", back_populates="payments")
    photos = relationship("PaymentPhoto", cascade="all, delete-orphan", order_by="PaymentPhoto.id")

    @property
    def photo_urls(self):
        return [p.photo_url for p in self.photos]


class PaymentPhoto(Base):
    __tablename__ = "payment_photos"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id", ondelete="CASCADE"), nullable=False, index=True)
    photo_url = Column(String(1000), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

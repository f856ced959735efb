from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from perrino.models.base import Base


class StatusHistoryEntry(Base):
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)

    status = Column(String(30), nullable=False)
    observations = Column(Text, nullable=True)  # Vacío solo en la entrada sintética de creación
    quantity_delivered = Column(Integer, nullable=True)  # Solo para PARCIALMENTE_ENTREGADO

    # Usuario que hizo el cambio; guardamos el nombre por si el usuario se elimina
    changed_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    changed_by_name = Column(String(255), nullable=False, default="Admin")

    changed_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)

    order = relationship("Order", back_populates="status_history")
    photos = relationship("StatusPhoto", cascade="all, delete-orphan", order_by="StatusPhoto.id")

    @property
    def photo_urls(self):
        return [p.photo_url for p in self.photos]


class StatusPhoto(Base):
    __tablename__ = "order_status_photos"

    id = Column(Integer, primary_key=True, index=True)
    status_history_id = Column(Integer, ForeignKey("order_status_history.id", ondelete="CASCADE"), nullable=False, index=True)
    photo_url = Column(String(1000), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

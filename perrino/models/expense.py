from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Numeric, Date, DateTime

from perrino.models.base import Base


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)
    type_name = Column(String(100), nullable=False, default="Otros")
    description = Column(String(500), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

from datetime import timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from perrino.core.clock import business_today
from perrino.core.roles import Role
from perrino.core.security import hash_password
from perrino.core.status import OrderStatus, PaymentMethod
from perrino.models.client import Client
from perrino.models.user import User
from perrino.services.client_service import create_client
from perrino.services.order_service import Actor, create_order
from perrino.services.payment_ledger import record_payment
from perrino.services.status_engine import transition_status


DEMO_EMAIL = "admin@perrino.local"


def seed_demo(db: Session):
    if db.query(User).filter(User.email == DEMO_EMAIL).first():
        return
    user = User(
        email=DEMO_EMAIL,
        hashed_password=hash_password("secret123"),
        role=Role.admin.value,
        first_name="Admin",
        last_name="Demo",
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    if db.query(Client).first():
        return

    actor = Actor.from_user(user)
    today = business_today()
    escuela = create_client(db, "Unidad Educativa San José", phone="0991234567")
    club = create_client(db, "Club Deportivo Norte", email="club@norte.ec")

    uniformes = create_order(
        db, escuela.id, "Camisetas bordadas con logo", "Bordado", 50,
        Decimal("500.00"), today + timedelta(days=10), actor,
    )
    record_payment(db, uniformes.id, Decimal("200.00"), PaymentMethod.CASH, actor, notes="Anticipo")
    transition_status(db, uniformes.id, OrderStatus.IN_PRODUCTION, "Inicia confección", actor)

    camisetas = create_order(
        db, club.id, "Camisetas estampadas numeradas", "Sublimación", 20,
        Decimal("260.00"), today + timedelta(days=2), actor, is_urgent=True,
    )
    transition_status(db, camisetas.id, OrderStatus.READY_FOR_PICKUP, "Listo en mostrador", actor)

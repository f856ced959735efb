import os
import tempfile

# Configuración de pruebas antes de importar la app
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("EVIDENCE_DIR", tempfile.mkdtemp(prefix="perrino-evidence-"))

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from perrino.core.database import SessionLocal, engine
from perrino.core.errors import EvidenceUploadFailed
from perrino.core.security import create_token_pair, hash_password
from perrino.main import app
from perrino.models import Base, User
from perrino.services.client_service import create_client
from perrino.services.evidence_store import get_evidence_store
from perrino.services.order_service import Actor, create_order


class FakeEvidenceStore:
    """Guarda en memoria lo subido; con fail=True simula la caída del almacén."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploads = []

    def upload(self, data: bytes, content_type: str, folder: str) -> str:
        if self.fail:
            raise EvidenceUploadFailed("Almacén de evidencias no disponible")
        self.uploads.append((folder, content_type, data))
        return f"https://evidence.test/{folder}/{len(self.uploads)}.jpg"


@pytest.fixture(autouse=True)
def schema():
    import perrino.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def evidence_store():
    return FakeEvidenceStore()


@pytest.fixture
def client(evidence_store):
    app.dependency_overrides[get_evidence_store] = lambda: evidence_store
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def admin_user(db):
    user = User(
        email="admin@test.com",
        hashed_password=hash_password("secret"),
        role="ADMIN",
        first_name="Ana",
        last_name="Torres",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def actor(admin_user):
    return Actor.from_user(admin_user)


@pytest.fixture
def auth_headers(admin_user):
    access, _ = create_token_pair(admin_user.id)
    return {"Authorization": f"Bearer {access}"}


@pytest.fixture
def shop_client(db):
    return create_client(db, "Colegio Central", phone="0990000001")


@pytest.fixture
def make_order(db, actor, shop_client):
    def _make(quantity=50, total="1000.00", due_in_days=7, is_urgent=False, service_type="Bordado", now=None):
        return create_order(
            db,
            client_id=shop_client.id,
            description="Camisetas bordadas",
            service_type=service_type,
            quantity=quantity,
            total=Decimal(total),
            due_date=date.today() + timedelta(days=due_in_days),
            actor=actor,
            is_urgent=is_urgent,
            now=now,
        )

    return _make

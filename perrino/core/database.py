import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from perrino.core.config import settings
from perrino.models.base import Base


logger = logging.getLogger(__name__)


def _build_engine(url: str):
    if url.startswith("sqlite"):
        # In-memory SQLite must share a single connection across threads
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


engine = _build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    # Create tables in dev/test without running Alembic
    if settings.env in {"dev", "test"}:
        import perrino.models  # noqa: F401  registers every table on Base.metadata

        Base.metadata.create_all(bind=engine)
        logger.info("Schema ensured on %s", engine.url.render_as_string(hide_password=True))

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from perrino.core.config import settings
from perrino.core.errors import DomainError, domain_error_handler
from perrino.routes.auth import router as auth_router
from perrino.routes.clients import router as clients_router
from perrino.routes.dashboard import router as dashboard_router
from perrino.routes.health import router as health_router
from perrino.routes.orders import router as orders_router
from perrino.core.database import SessionLocal, init_db
from perrino.services.seed import seed_demo


logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(title="Perrino Orders API", version="0.1.0")

    origins = settings.cors_origins
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(DomainError, domain_error_handler)

    app.include_router(health_router, tags=["health"])
    app.include_router(auth_router, prefix="/auth", tags=["auth"])
    app.include_router(clients_router, prefix="/clients", tags=["clients"])
    app.include_router(orders_router, prefix="/orders", tags=["orders"])
    app.include_router(dashboard_router, prefix="/dashboard", tags=["dashboard"])

    # Evidencias fotográficas guardadas por LocalEvidenceStore
    os.makedirs(settings.evidence_dir, exist_ok=True)
    app.mount(settings.evidence_base_url, StaticFiles(directory=settings.evidence_dir), name="evidence")

    return app


app = create_app()

# Only seed in development or when explicitly requested
if settings.env == "dev" or os.getenv("FORCE_SEED") == "true":
    try:
        init_db()
        with SessionLocal() as db:
            seed_demo(db)
    except Exception:
        logger.exception("Demo seed failed")

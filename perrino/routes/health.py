from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from perrino.core.database import get_db
from perrino.core.errors import LedgerUnavailable

router = APIRouter()


@router.get("/health")
def health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise LedgerUnavailable("Base de datos no disponible") from exc
    return {"status": "ok"}

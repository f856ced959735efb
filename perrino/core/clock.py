from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from perrino.core.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite devuelve datetimes sin zona; se interpretan como UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def business_today(now: Optional[datetime] = None) -> date:
    """Fecha local del taller, contra la que se comparan las fechas de entrega."""
    now = as_utc(now) if now is not None else utcnow()
    return now.astimezone(ZoneInfo(settings.timezone)).date()


def business_date(value: datetime) -> date:
    """Día local del taller en que ocurrió `value`."""
    return as_utc(value).astimezone(ZoneInfo(settings.timezone)).date()

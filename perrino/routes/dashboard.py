from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from perrino.core.clock import business_today
from perrino.core.database import get_db
from perrino.core.deps import require_admin
from perrino.core.status import STATUS_LABELS
from perrino.models.user import User
from perrino.routes.orders import OrderOut, aggregate_out
from perrino.services.dashboard_service import DashboardPeriod, get_dashboard

router = APIRouter()


class MetricsOut(BaseModel):
    active_orders: int
    completed_orders: int
    cancelled_orders: int
    delayed_orders: int
    on_time_orders: int
    urgent_orders: int
    monthly_revenue: float
    previous_month_revenue: float
    monthly_expenses: float
    previous_month_expenses: float
    total_clients: int
    pending_to_collect: float


class StatusCountOut(BaseModel):
    status: str
    label: str
    count: int


class MonthOut(BaseModel):
    month: str
    count: int
    order_value: float
    collected: float


class ServiceOut(BaseModel):
    service_type: str
    count: int
    total: float


class TopClientOut(BaseModel):
    client_id: int
    name: Optional[str]
    order_count: int
    collected: float


class DashboardOut(BaseModel):
    start: date
    end: date
    metrics: MetricsOut
    by_status: List[StatusCountOut]
    by_month: List[MonthOut]
    by_service: List[ServiceOut]
    top_clients: List[TopClientOut]
    recent_orders: List[OrderOut]
    attention: List[OrderOut]


@router.get("/", response_model=DashboardOut)
def dashboard(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    """Métricas del taller; por defecto los últimos 12 meses calendario."""
    today = business_today()
    default = DashboardPeriod.default(today)
    period = DashboardPeriod(start=start or default.start, end=end or default.end)
    if period.start > period.end:
        raise HTTPException(status_code=400, detail="La fecha inicial debe ser anterior a la final")

    result = get_dashboard(db, period, today)
    m = result.metrics
    metrics = {
        "active_orders": m.active_orders,
        "completed_orders": m.completed_orders,
        "cancelled_orders": m.cancelled_orders,
        "delayed_orders": m.delayed_orders,
        "on_time_orders": m.on_time_orders,
        "urgent_orders": m.urgent_orders,
        "monthly_revenue": float(m.monthly_revenue),
        "previous_month_revenue": float(m.previous_month_revenue),
        "monthly_expenses": float(m.monthly_expenses),
        "previous_month_expenses": float(m.previous_month_expenses),
        "total_clients": m.total_clients,
        "pending_to_collect": float(m.pending_to_collect),
    }
    return DashboardOut(
        start=period.start,
        end=period.end,
        metrics=MetricsOut(**metrics),
        by_status=[
            StatusCountOut(status=status.value, label=STATUS_LABELS[status], count=count)
            for status, count in result.by_status.items()
        ],
        by_month=[
            MonthOut(month=b.month, count=b.count, order_value=float(b.order_value), collected=float(b.collected))
            for b in result.by_month
        ],
        by_service=[
            ServiceOut(service_type=s.service_type, count=s.count, total=float(s.total))
            for s in result.by_service
        ],
        top_clients=[
            TopClientOut(client_id=c.client_id, name=c.name, order_count=c.order_count, collected=float(c.collected))
            for c in result.top_clients
        ],
        recent_orders=[aggregate_out(agg) for agg in result.recent_orders],
        attention=[aggregate_out(agg) for agg in result.attention],
    )

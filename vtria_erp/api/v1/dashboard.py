"""
Dashboard API endpoints
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from vtria_erp.api.deps import get_current_active_user, get_db, require_permission
from vtria_erp.core.responses import success_response
from vtria_erp.models.user import User
from vtria_erp.services.dashboard import DashboardService

router = APIRouter()


@router.get("/")
async def unified_dashboard(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("canViewReports"))
):
    """Audit, case, approval, SLA and system health figures in one payload"""
    return success_response(data=DashboardService(db).get_unified_dashboard(current_user))


@router.get("/analytics")
async def case_analytics(
    days: int = Query(90, ge=1, le=730),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("canViewReports"))
):
    return success_response(data=DashboardService(db).get_case_analytics(days))


@router.get("/sla-alerts")
async def sla_alerts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    return success_response(data=DashboardService(db).get_sla_alerts(current_user))

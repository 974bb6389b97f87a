"""
Notifications, escalations and SLA API endpoints
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from vtria_erp.api.deps import (
    get_current_active_user, get_db, get_pagination_params, require_module, require_permission
)
from vtria_erp.core.responses import paginated_response, success_response
from vtria_erp.models.user import User
from vtria_erp.schemas.notification import (
    EscalationResolve, EscalationResponse, EscalationRuleCreate, EscalationRuleResponse,
    ManualEscalation, ManualNotification, NotificationResponse, NotificationTemplateResponse
)
from vtria_erp.services.escalations import EscalationService
from vtria_erp.services.notifications import NotificationService
from vtria_erp.services.sla_monitor import SLAMonitorService

router = APIRouter()


# Notifications

@router.get("/notifications/templates")
async def list_templates(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    templates = NotificationService(db).list_templates()
    return success_response(data=[NotificationTemplateResponse.model_validate(t) for t in templates])


@router.get("/notifications")
async def my_notifications(
    status_filter: Optional[str] = Query(None, alias="status"),
    pagination: dict = Depends(get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Notifications addressed to the current user"""
    rows, total = NotificationService(db).list_queue(
        status=status_filter, user_id=current_user.id, page=pagination["page"], limit=pagination["limit"]
    )
    return paginated_response(
        [NotificationResponse.model_validate(r) for r in rows], pagination["page"], pagination["limit"], total
    )


@router.get("/notifications/queue")
async def notification_queue(
    status_filter: Optional[str] = Query(None, alias="status"),
    user_id: Optional[int] = Query(None),
    pagination: dict = Depends(get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("canViewAll"))
):
    rows, total = NotificationService(db).list_queue(
        status=status_filter, user_id=user_id, page=pagination["page"], limit=pagination["limit"]
    )
    return paginated_response(
        [NotificationResponse.model_validate(r) for r in rows], pagination["page"], pagination["limit"], total
    )


@router.post("/notifications", status_code=status.HTTP_201_CREATED)
async def send_notification(
    body: ManualNotification,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    row = NotificationService(db).send_manual(
        body.recipient_user_id, body.subject, body.message, case_id=body.case_id, priority=body.priority
    )
    return success_response(data=NotificationResponse.model_validate(row), message="Notification queued")


@router.post("/notifications/process")
async def process_notifications(
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("canViewAll"))
):
    return success_response(data=NotificationService(db).process_queue(limit))


@router.put("/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    row = NotificationService(db).mark_read(notification_id, current_user)
    return success_response(data=NotificationResponse.model_validate(row))


# Escalations

@router.get("/escalations/rules")
async def list_escalation_rules(
    active_only: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    rules = EscalationService(db).list_rules(active_only)
    return success_response(data=[EscalationRuleResponse.model_validate(r) for r in rules])


@router.post("/escalations/rules", status_code=status.HTTP_201_CREATED)
async def create_escalation_rule(
    body: EscalationRuleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("canManageSettings"))
):
    rule = EscalationService(db).create_rule(body.model_dump())
    return success_response(data=EscalationRuleResponse.model_validate(rule), message="Escalation rule created")


@router.get("/escalations")
async def escalation_history(
    case_id: Optional[int] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    rows = EscalationService(db).history(case_id=case_id, status=status_filter)
    return success_response(data=[EscalationResponse.model_validate(r) for r in rows])


@router.post("/escalations", status_code=status.HTTP_201_CREATED)
async def trigger_escalation(
    body: ManualEscalation,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    escalation = EscalationService(db).trigger_manual(
        body.case_id, current_user, body.reason,
        escalate_to_role=body.escalate_to_role, level=body.escalation_level
    )
    return success_response(data=EscalationResponse.model_validate(escalation), message="Case escalated")


@router.put("/escalations/{escalation_id}/resolve")
async def resolve_escalation(
    escalation_id: int,
    body: Optional[EscalationResolve] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    escalation = EscalationService(db).resolve(
        escalation_id, current_user, body.resolution_notes if body else None
    )
    return success_response(data=EscalationResponse.model_validate(escalation), message="Escalation resolved")


@router.get("/escalations/trends")
async def escalation_trends(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("reports"))
):
    return success_response(data=EscalationService(db).escalation_trends(days))


# SLA

@router.get("/sla/compliance")
async def sla_compliance(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("reports"))
):
    return success_response(data=SLAMonitorService(db).compliance_report(days))


@router.get("/sla/metrics")
async def sla_performance_metrics(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("reports"))
):
    return success_response(data=SLAMonitorService(db).performance_metrics(days))


@router.post("/sla/run")
async def run_sla_checks(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("canViewAll"))
):
    """Run warnings, breaches and automatic escalations now"""
    return success_response(data=SLAMonitorService(db).run_all(), message="SLA checks completed")

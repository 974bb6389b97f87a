"""
Audit trail API endpoints
Record and case trails, scope changes, approvals, exports and system health
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from vtria_erp.api.deps import client_ip, get_db, get_pagination_params, require_module
from vtria_erp.core.responses import paginated_response, success_response
from vtria_erp.models.user import User
from vtria_erp.schemas.audit import ApprovalDecision, AuditLogResponse, ScopeChangeResponse
from vtria_erp.services.audit import AuditService

router = APIRouter()


@router.get("/dashboard")
async def audit_dashboard(
    days: int = Query(7, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("audit"))
):
    return success_response(data=AuditService(db).get_dashboard(days))


@router.get("/records/{table_name}/{record_id}")
async def record_trail(
    table_name: str,
    record_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("audit"))
):
    entries = AuditService(db).get_record_trail(table_name, record_id)
    return success_response(data=[AuditLogResponse.model_validate(e) for e in entries])


@router.get("/cases/{case_id}")
async def case_trail(
    case_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("audit"))
):
    entries = AuditService(db).get_case_trail(case_id)
    return success_response(data=[AuditLogResponse.model_validate(e) for e in entries])


@router.get("/cases/{case_id}/scope-changes")
async def case_scope_changes(
    case_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("audit"))
):
    changes = AuditService(db).get_scope_changes(case_id)
    return success_response(data=[ScopeChangeResponse.model_validate(c) for c in changes])


@router.get("/users/summary")
async def user_activity_summary(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("audit"))
):
    return success_response(data=AuditService(db).get_user_activity_summary(days))


@router.get("/users/{user_id}")
async def user_activity(
    user_id: int,
    days: int = Query(30, ge=1, le=365),
    pagination: dict = Depends(get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("audit"))
):
    entries, total = AuditService(db).get_user_activity(
        user_id, days=days, page=pagination["page"], limit=pagination["limit"]
    )
    return paginated_response(
        [AuditLogResponse.model_validate(e) for e in entries], pagination["page"], pagination["limit"], total
    )


@router.get("/high-value-changes")
async def high_value_changes(
    days: int = Query(30, ge=1, le=365),
    threshold: Optional[float] = Query(None, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("audit"))
):
    changes = AuditService(db).get_high_value_changes(days=days, threshold=threshold)
    return success_response(data=[ScopeChangeResponse.model_validate(c) for c in changes])


@router.get("/approvals/pending")
async def pending_approvals(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("audit"))
):
    entries = AuditService(db).get_pending_approvals()
    return success_response(data=[AuditLogResponse.model_validate(e) for e in entries])


@router.post("/approvals/{audit_id}")
async def process_approval(
    audit_id: int,
    decision: ApprovalDecision,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("audit"))
):
    entry = AuditService(db).process_approval(
        audit_id, current_user, decision.decision, decision.notes, ip_address=client_ip(request)
    )
    return success_response(
        data=AuditLogResponse.model_validate(entry),
        message=f"Change {entry.approval_status}"
    )


@router.get("/export")
async def export_audit(
    kind: str = Query("all", pattern="^(all|scope_changes)$"),
    days: Optional[int] = Query(None, ge=1, le=3650),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("audit"))
):
    """CSV export; 404 when there is nothing to export"""
    content = AuditService(db).export_csv(kind, days)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="audit_{kind}.csv"'}
    )


@router.get("/system-health")
async def system_health(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("audit"))
):
    return success_response(data=AuditService(db).get_system_health())


@router.get("/{audit_id}")
async def get_audit_entry(
    audit_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("audit"))
):
    return success_response(data=AuditLogResponse.model_validate(AuditService(db).get_entry(audit_id)))

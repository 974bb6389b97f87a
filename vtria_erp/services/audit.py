"""
Audit Trail Service
Change logging, scope-change tracking and approval processing
"""
import csv
import io
import logging
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

import psutil
from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, or_, desc
from sqlalchemy.orm import Session

from vtria_erp.core.config import settings
from vtria_erp.core.database import check_db_connection
from vtria_erp.core.exceptions import (
    BusinessLogicError, InsufficientPermissionsError, NotFoundError, ValidationError
)
from vtria_erp.core.security import has_permission
from vtria_erp.models.audit import AuditLog, ScopeChange
from vtria_erp.models.case import Case
from vtria_erp.models.notification import CaseEscalation, NotificationQueue
from vtria_erp.models.user import User

logger = logging.getLogger(__name__)

APPROVAL_TABLES = ("quotations", "purchase_requisitions")
MONETARY_FIELDS = ("grand_total", "total_amount", "amount")
DECISION_ACTIONS = ("APPROVE", "REJECT")


def find_changed_fields(old: Optional[Dict[str, Any]], new: Optional[Dict[str, Any]]) -> List[str]:
    """Keys whose values differ between two snapshots; absent and None are equal"""
    old = old or {}
    new = new or {}
    return sorted(
        key for key in set(old) | set(new)
        if old.get(key) != new.get(key)
    )


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def monetary_change(
    table_name: str,
    old: Optional[Dict[str, Any]],
    new: Optional[Dict[str, Any]]
) -> Optional[Tuple[str, Decimal, Decimal]]:
    """Return (field, old, new) for the first changed monetary field on an approval table"""
    if table_name not in APPROVAL_TABLES or not old or not new:
        return None
    for field in MONETARY_FIELDS:
        if field in old and field in new:
            before, after = _to_decimal(old[field]), _to_decimal(new[field])
            if before is not None and after is not None and before != after:
                return field, before, after
    return None


def requires_approval(
    table_name: str,
    action: str,
    old: Optional[Dict[str, Any]] = None,
    new: Optional[Dict[str, Any]] = None
) -> bool:
    """
    Decide whether a change needs a second pair of eyes

    Approval decisions are always flagged. Updates to quotation or
    requisition values need approval above the absolute or percentage threshold.
    """
    if action in DECISION_ACTIONS:
        return True
    if action != "UPDATE":
        return False

    change = monetary_change(table_name, old, new)
    if change is None:
        return False

    _, before, after = change
    difference = abs(after - before)
    if difference > Decimal(str(settings.HIGH_VALUE_THRESHOLD)):
        return True
    if before > 0 and difference / before * 100 > Decimal(str(settings.APPROVAL_PERCENT_THRESHOLD)):
        return True
    return False


class AuditService:
    """Service for the audit trail and its approval workflow"""

    def __init__(self, db: Session):
        self.db = db

    def log_audit(
        self,
        table_name: str,
        record_id: Any,
        action: str,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        user: Optional[User] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        case_id: Optional[int] = None,
        case_number: Optional[str] = None,
        business_reason: Optional[str] = None,
        system_generated: bool = False,
        commit: bool = False,
    ) -> AuditLog:
        """Add an audit entry (and a scope change when money moved) to the session"""
        old_values = jsonable_encoder(old_values) if old_values is not None else None
        new_values = jsonable_encoder(new_values) if new_values is not None else None
        action = action.upper()

        approval = requires_approval(table_name, action, old_values, new_values)
        if action in DECISION_ACTIONS:
            approval_status = "approved" if action == "APPROVE" else "rejected"
        else:
            approval_status = "pending" if approval else None

        entry = AuditLog(
            table_name=table_name,
            record_id=str(record_id),
            action=action,
            old_values=old_values,
            new_values=new_values,
            changed_fields=find_changed_fields(old_values, new_values),
            user_id=user.id if user else None,
            user_name=(user.full_name or user.username) if user else "system",
            user_role=user.role if user else None,
            ip_address=ip_address,
            user_agent=user_agent[:255] if user_agent else None,
            case_id=case_id,
            case_number=case_number,
            business_reason=business_reason,
            approval_required=approval,
            approval_status=approval_status,
            system_generated=system_generated or user is None,
        )
        self.db.add(entry)
        self.db.flush()

        change = monetary_change(table_name, old_values, new_values)
        if change is not None:
            field, before, after = change
            difference = after - before
            percentage = round(difference / before * 100, 2) if before != 0 else None
            self.db.add(ScopeChange(
                audit_log_id=entry.id,
                case_id=case_id,
                table_name=table_name,
                record_id=str(record_id),
                field_name=field,
                old_value=before,
                new_value=after,
                value_difference=difference,
                percentage_change=percentage,
                status="pending" if approval else "approved",
            ))
            self.db.flush()

        if commit:
            self.db.commit()
        return entry

    def get_entry(self, audit_id: int) -> AuditLog:
        entry = self.db.query(AuditLog).filter(AuditLog.id == audit_id).first()
        if not entry:
            raise NotFoundError(f"Audit entry {audit_id} not found")
        return entry

    def get_record_trail(self, table_name: str, record_id: Any) -> List[AuditLog]:
        return self.db.query(AuditLog).filter(
            AuditLog.table_name == table_name,
            AuditLog.record_id == str(record_id)
        ).order_by(AuditLog.created_at, AuditLog.id).all()

    def get_case_trail(self, case_id: int) -> List[AuditLog]:
        return self.db.query(AuditLog).filter(
            or_(
                AuditLog.case_id == case_id,
                (AuditLog.table_name == "cases") & (AuditLog.record_id == str(case_id))
            )
        ).order_by(AuditLog.created_at, AuditLog.id).all()

    def get_scope_changes(self, case_id: int) -> List[ScopeChange]:
        return self.db.query(ScopeChange).filter(
            ScopeChange.case_id == case_id
        ).order_by(desc(ScopeChange.created_at)).all()

    def get_user_activity(
        self,
        user_id: int,
        days: int = 30,
        page: int = 1,
        limit: int = 50
    ) -> Tuple[List[AuditLog], int]:
        since = datetime.utcnow() - timedelta(days=days)
        query = self.db.query(AuditLog).filter(
            AuditLog.user_id == user_id,
            AuditLog.created_at >= since
        )
        total = query.count()
        items = query.order_by(desc(AuditLog.created_at), desc(AuditLog.id)) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, total

    def get_user_activity_summary(self, days: int = 30) -> List[Dict[str, Any]]:
        since = datetime.utcnow() - timedelta(days=days)
        rows = self.db.query(
            AuditLog.user_id, AuditLog.user_name, AuditLog.action, func.count(AuditLog.id)
        ).filter(
            AuditLog.created_at >= since,
            AuditLog.user_id.isnot(None)
        ).group_by(AuditLog.user_id, AuditLog.user_name, AuditLog.action).all()

        summary: Dict[int, Dict[str, Any]] = {}
        for user_id, user_name, action, count in rows:
            item = summary.setdefault(user_id, {
                "user_id": user_id, "user_name": user_name, "total": 0, "actions": {}
            })
            item["actions"][action] = count
            item["total"] += count
        return sorted(summary.values(), key=lambda s: s["total"], reverse=True)

    def get_high_value_changes(
        self,
        days: int = 30,
        threshold: Optional[float] = None,
        limit: Optional[int] = None
    ) -> List[ScopeChange]:
        threshold = Decimal(str(threshold if threshold is not None else settings.HIGH_VALUE_THRESHOLD))
        since = datetime.utcnow() - timedelta(days=days)
        query = self.db.query(ScopeChange).filter(
            ScopeChange.created_at >= since,
            or_(ScopeChange.value_difference >= threshold, ScopeChange.value_difference <= -threshold)
        ).order_by(desc(ScopeChange.created_at))
        if limit:
            query = query.limit(limit)
        return query.all()

    def get_pending_approvals(self) -> List[AuditLog]:
        return self.db.query(AuditLog).filter(
            AuditLog.approval_status == "pending"
        ).order_by(AuditLog.created_at).all()

    def process_approval(
        self,
        audit_id: int,
        user: User,
        decision: str,
        notes: Optional[str] = None,
        ip_address: Optional[str] = None
    ) -> AuditLog:
        """Approve or reject a pending change"""
        decision = (decision or "").lower()
        if decision not in ("approve", "reject"):
            raise ValidationError("Decision must be 'approve' or 'reject'")

        if not (has_permission(user.role, "canApproveAll") or user.role == "admin"):
            raise InsufficientPermissionsError("You are not allowed to process approvals")

        entry = self.get_entry(audit_id)
        if entry.approval_status != "pending":
            raise BusinessLogicError(f"Audit entry {audit_id} is not pending approval")

        status = "approved" if decision == "approve" else "rejected"
        entry.approval_status = status
        entry.approved_by = user.id
        entry.approved_at = datetime.utcnow()
        entry.approval_notes = notes

        for change in entry.scope_changes:
            change.status = status

        self.log_audit(
            table_name="audit_logs",
            record_id=entry.id,
            action=decision.upper(),
            new_values={"approval_status": status, "notes": notes, "original_action": entry.action},
            user=user,
            ip_address=ip_address,
            case_id=entry.case_id,
            case_number=entry.case_number,
            business_reason=notes,
        )
        self.db.commit()
        self.db.refresh(entry)

        logger.info(f"Audit entry {audit_id} {status} by {user.username}")
        return entry

    def get_dashboard(self, days: int = 7) -> Dict[str, Any]:
        since = datetime.utcnow() - timedelta(days=days)
        threshold = Decimal(str(settings.HIGH_VALUE_THRESHOLD))

        activity = dict(
            self.db.query(AuditLog.action, func.count(AuditLog.id))
            .filter(AuditLog.created_at >= since)
            .group_by(AuditLog.action).all()
        )

        scope_query = self.db.query(ScopeChange).filter(ScopeChange.created_at >= since)
        scope_total = scope_query.with_entities(func.sum(ScopeChange.value_difference)).scalar()
        high_value = scope_query.filter(
            or_(ScopeChange.value_difference >= threshold, ScopeChange.value_difference <= -threshold)
        ).count()

        top_users = [
            {"user_id": user_id, "user_name": user_name, "activity_count": count}
            for user_id, user_name, count in self.db.query(
                AuditLog.user_id, AuditLog.user_name, func.count(AuditLog.id).label("cnt")
            ).filter(
                AuditLog.created_at >= since,
                AuditLog.user_id.isnot(None)
            ).group_by(AuditLog.user_id, AuditLog.user_name)
            .order_by(desc("cnt")).limit(10).all()
        ]

        daily = [
            {"date": str(day), "count": count}
            for day, count in self.db.query(
                func.date(AuditLog.created_at), func.count(AuditLog.id)
            ).filter(AuditLog.created_at >= since)
            .group_by(func.date(AuditLog.created_at))
            .order_by(func.date(AuditLog.created_at)).all()
        ]

        return {
            "period_days": days,
            "activity_by_action": activity,
            "total_activity": sum(activity.values()),
            "scope_changes": {
                "count": scope_query.count(),
                "total_value_difference": float(scope_total or 0),
                "high_value_count": high_value,
            },
            "pending_approvals": self.db.query(AuditLog).filter(AuditLog.approval_status == "pending").count(),
            "top_users": top_users,
            "daily_activity": daily,
        }

    def export_csv(self, kind: str = "all", days: Optional[int] = None) -> str:
        """Render audit entries or scope changes as CSV text"""
        if kind not in ("all", "scope_changes"):
            raise ValidationError("Export type must be 'all' or 'scope_changes'")

        since = datetime.utcnow() - timedelta(days=days) if days else None
        output = io.StringIO()
        writer = csv.writer(output)

        if kind == "scope_changes":
            query = self.db.query(ScopeChange)
            if since:
                query = query.filter(ScopeChange.created_at >= since)
            rows = query.order_by(ScopeChange.created_at).all()
            if not rows:
                raise NotFoundError("No scope changes found for export")
            writer.writerow([
                "id", "case_id", "table_name", "record_id", "field_name", "old_value",
                "new_value", "value_difference", "percentage_change", "status", "created_at"
            ])
            for r in rows:
                writer.writerow([
                    r.id, r.case_id, r.table_name, r.record_id, r.field_name, r.old_value,
                    r.new_value, r.value_difference, r.percentage_change, r.status,
                    r.created_at.isoformat() if r.created_at else ""
                ])
        else:
            query = self.db.query(AuditLog)
            if since:
                query = query.filter(AuditLog.created_at >= since)
            rows = query.order_by(AuditLog.created_at, AuditLog.id).all()
            if not rows:
                raise NotFoundError("No audit entries found for export")
            writer.writerow([
                "id", "table_name", "record_id", "action", "changed_fields", "user_name",
                "user_role", "case_number", "approval_status", "ip_address", "created_at"
            ])
            for r in rows:
                writer.writerow([
                    r.id, r.table_name, r.record_id, r.action, ";".join(r.changed_fields or []),
                    r.user_name, r.user_role, r.case_number, r.approval_status, r.ip_address,
                    r.created_at.isoformat() if r.created_at else ""
                ])

        return output.getvalue()

    def get_system_health(self) -> Dict[str, Any]:
        database = check_db_connection(self.db)
        process = psutil.Process()
        memory = psutil.virtual_memory()

        health = {
            "database": database,
            "record_counts": {
                "cases": self.db.query(Case).count(),
                "audit_logs": self.db.query(AuditLog).count(),
                "users": self.db.query(User).count(),
            },
            "workflow": {
                "open_escalations": self.db.query(CaseEscalation).filter(CaseEscalation.status == "open").count(),
                "pending_notifications": self.db.query(NotificationQueue).filter(
                    NotificationQueue.status == "pending"
                ).count(),
                "sla_breached_cases": self.db.query(Case).filter(
                    Case.status == "active", Case.is_sla_breached.is_(True)
                ).count(),
            },
            "system": {
                "memory_percent": memory.percent,
                "process_memory_mb": round(process.memory_info().rss / (1024 * 1024), 2),
                "cpu_percent": psutil.cpu_percent(interval=None),
            },
        }
        health["status"] = "healthy" if database["connected"] else "degraded"
        return health

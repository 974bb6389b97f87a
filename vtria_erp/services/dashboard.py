"""
Dashboard Service
Unified dashboard aggregating audit, case, SLA and system health data
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from vtria_erp.core.config import settings
from vtria_erp.models.case import Case
from vtria_erp.models.notification import CaseEscalation
from vtria_erp.models.user import User
from vtria_erp.services.audit import AuditService
from vtria_erp.services.case_workflow import PRIORITIES, CaseWorkflowService

logger = logging.getLogger(__name__)


class DashboardService:
    """Read-only aggregations for the management dashboard"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)
        self.cases = CaseWorkflowService(db)

    def _sla_summary(self, now: datetime) -> Dict[str, int]:
        window_end = now + timedelta(hours=settings.SLA_WARNING_HOURS)
        active = self.db.query(Case).filter(Case.status == "active")
        return {
            "breached": active.filter(Case.is_sla_breached.is_(True)).count(),
            "at_risk": active.filter(
                Case.is_sla_breached.is_(False),
                Case.expected_state_completion > now,
                Case.expected_state_completion <= window_end
            ).count(),
            "open_escalations": self.db.query(CaseEscalation).filter(CaseEscalation.status == "open").count(),
        }

    def get_unified_dashboard(self, user: User) -> Dict[str, Any]:
        now = datetime.utcnow()
        health = self.audit.get_system_health()
        pending_workflow = self.cases.get_pending_approvals(user)

        return {
            "generated_at": now,
            "audit": self.audit.get_dashboard(days=7),
            "cases": self.cases.get_statistics(user),
            "high_value_changes": [
                {
                    "id": change.id,
                    "case_id": change.case_id,
                    "table_name": change.table_name,
                    "record_id": change.record_id,
                    "field_name": change.field_name,
                    "value_difference": float(change.value_difference or 0),
                    "percentage_change": float(change.percentage_change) if change.percentage_change is not None else None,
                    "status": change.status,
                    "created_at": change.created_at,
                }
                for change in self.audit.get_high_value_changes(limit=10)
            ],
            "pending_approvals": {
                "audit": len(self.audit.get_pending_approvals()),
                "workflow": len(pending_workflow),
            },
            "sla": self._sla_summary(now),
            "system_health": {
                "status": health["status"],
                "database": health["database"],
                "workflow": health["workflow"],
            },
        }

    def get_case_analytics(self, days: int = 90) -> Dict[str, Any]:
        since = datetime.utcnow() - timedelta(days=days)
        base = self.db.query(Case).filter(Case.status != "deleted", Case.created_at >= since)

        by_priority = {p: 0 for p in PRIORITIES}
        for priority, count in base.with_entities(Case.priority, func.count(Case.id)).group_by(Case.priority).all():
            by_priority[priority] = count

        by_state = dict(base.with_entities(Case.current_state, func.count(Case.id)).group_by(Case.current_state).all())

        by_month: Dict[str, int] = {}
        for (created_at,) in base.with_entities(Case.created_at).all():
            key = created_at.strftime("%Y-%m")
            by_month[key] = by_month.get(key, 0) + 1

        closed = base.filter(Case.closed_at.isnot(None)).all()
        cycle_days = [(c.closed_at - c.created_at).total_seconds() / 86400 for c in closed]

        return {
            "period_days": days,
            "by_priority": by_priority,
            "by_state": by_state,
            "by_month": [{"month": m, "count": c} for m, c in sorted(by_month.items())],
            "average_cycle_days": round(sum(cycle_days) / len(cycle_days), 2) if cycle_days else None,
        }

    def get_sla_alerts(self, user: User) -> List[Dict[str, Any]]:
        """Breached and at-risk cases visible to the user, most urgent first"""
        now = datetime.utcnow()
        window_end = now + timedelta(hours=settings.SLA_WARNING_HOURS)
        query = self.db.query(Case).filter(
            Case.status == "active",
            Case.expected_state_completion.isnot(None),
            Case.expected_state_completion <= window_end
        )
        cases = self.cases._visible(query, user).order_by(Case.expected_state_completion).all()

        return [
            {
                "case_id": case.id,
                "case_number": case.case_number,
                "project_name": case.project_name,
                "current_state": case.current_state,
                "current_sub_state": case.current_sub_state,
                "priority": case.priority,
                "assigned_to": case.assigned_to,
                "expected_state_completion": case.expected_state_completion,
                "hours_until_breach": round((case.expected_state_completion - now).total_seconds() / 3600, 2),
                "alert_type": "breached" if case.is_sla_breached or case.expected_state_completion <= now else "at_risk",
            }
            for case in cases
        ]

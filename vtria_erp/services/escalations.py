"""
Escalation Service
Escalation rules, manual escalations, resolution and trend reporting
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from vtria_erp.core.exceptions import BusinessLogicError, NotFoundError, ValidationError
from vtria_erp.core.security import ROLES
from vtria_erp.models.case import Case
from vtria_erp.models.notification import CaseEscalation, EscalationRule
from vtria_erp.models.user import User
from vtria_erp.services.audit import AuditService
from vtria_erp.services.notifications import NotificationService

logger = logging.getLogger(__name__)


class EscalationService:
    """Service for case escalations"""

    def __init__(self, db: Session):
        self.db = db
        self.notifications = NotificationService(db)
        self.audit = AuditService(db)

    def list_rules(self, active_only: bool = False) -> List[EscalationRule]:
        query = self.db.query(EscalationRule)
        if active_only:
            query = query.filter(EscalationRule.is_active.is_(True))
        return query.order_by(EscalationRule.escalation_level, EscalationRule.hours_overdue).all()

    def create_rule(self, data: Dict[str, Any]) -> EscalationRule:
        if data.get("escalate_to_role") not in ROLES:
            raise ValidationError(f"escalate_to_role must be one of: {', '.join(ROLES)}")
        rule = EscalationRule(**data)
        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def escalate(
        self,
        case: Case,
        role: str,
        reason: str,
        level: int = 1,
        rule: Optional[EscalationRule] = None,
        user: Optional[User] = None,
        created_at: Optional[datetime] = None,
    ) -> CaseEscalation:
        """Record an escalation and notify everyone holding the target role"""
        escalation = CaseEscalation(
            case_id=case.id,
            rule_id=rule.id if rule else None,
            escalation_level=level,
            escalated_to_role=role,
            state_name=case.current_state,
            reason=reason,
            status="open",
            escalated_by=user.id if user else None,
            created_at=created_at or datetime.utcnow(),
        )
        self.db.add(escalation)
        self.db.flush()

        self.notifications.queue_notification(
            "escalation",
            context={"case_number": case.case_number, "role": role, "level": level, "reason": reason},
            recipient_role=role,
            case_id=case.id,
            priority="high",
            created_at=created_at,
        )
        self.audit.log_audit(
            "case_escalations", escalation.id, "CREATE",
            new_values={"case_id": case.id, "role": role, "level": level, "reason": reason},
            user=user, case_id=case.id, case_number=case.case_number, business_reason=reason
        )
        return escalation

    def trigger_manual(
        self,
        case_id: int,
        user: User,
        reason: str,
        escalate_to_role: str = "director",
        level: int = 1,
    ) -> CaseEscalation:
        if escalate_to_role not in ROLES:
            raise ValidationError(f"escalate_to_role must be one of: {', '.join(ROLES)}")
        if not reason:
            raise ValidationError("An escalation reason is required")
        case = self.db.query(Case).filter(Case.id == case_id, Case.status != "deleted").first()
        if not case:
            raise NotFoundError(f"Case {case_id} not found")

        escalation = self.escalate(case, escalate_to_role, reason, level=level, user=user)
        self.db.commit()
        self.db.refresh(escalation)
        logger.info(f"Case {case.case_number} manually escalated to {escalate_to_role} by {user.username}")
        return escalation

    def history(self, case_id: Optional[int] = None, status: Optional[str] = None) -> List[CaseEscalation]:
        query = self.db.query(CaseEscalation)
        if case_id:
            query = query.filter(CaseEscalation.case_id == case_id)
        if status:
            query = query.filter(CaseEscalation.status == status)
        return query.order_by(desc(CaseEscalation.created_at), desc(CaseEscalation.id)).all()

    def resolve(self, escalation_id: int, user: User, notes: Optional[str] = None) -> CaseEscalation:
        escalation = self.db.query(CaseEscalation).filter(CaseEscalation.id == escalation_id).first()
        if not escalation:
            raise NotFoundError(f"Escalation {escalation_id} not found")
        if escalation.status != "open":
            raise BusinessLogicError(f"Escalation {escalation_id} is already {escalation.status}")

        escalation.status = "resolved"
        escalation.resolved_by = user.id
        escalation.resolved_at = datetime.utcnow()
        escalation.resolution_notes = notes
        self.audit.log_audit(
            "case_escalations", escalation.id, "UPDATE",
            old_values={"status": "open"}, new_values={"status": "resolved", "notes": notes},
            user=user, case_id=escalation.case_id
        )
        self.db.commit()
        self.db.refresh(escalation)
        return escalation

    def escalation_trends(self, days: int = 30) -> Dict[str, Any]:
        since = datetime.utcnow() - timedelta(days=days)
        rows = self.db.query(CaseEscalation).filter(CaseEscalation.created_at >= since).all()

        daily: Dict[str, int] = {}
        by_state: Dict[str, int] = {}
        by_level: Dict[int, int] = {}
        for row in rows:
            day = row.created_at.date().isoformat()
            daily[day] = daily.get(day, 0) + 1
            by_state[row.state_name or "unknown"] = by_state.get(row.state_name or "unknown", 0) + 1
            by_level[row.escalation_level] = by_level.get(row.escalation_level, 0) + 1

        return {
            "period_days": days,
            "total": len(rows),
            "open": sum(1 for r in rows if r.status == "open"),
            "daily": [{"date": d, "count": c} for d, c in sorted(daily.items())],
            "by_state": by_state,
            "by_level": by_level,
        }

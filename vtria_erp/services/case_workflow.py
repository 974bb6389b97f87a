"""
Case Workflow Service
State machine for the enquiry-to-delivery case lifecycle, sub-state steps,
SLA deadlines and approval gating
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, desc
from sqlalchemy.orm import Session

from vtria_erp.core.exceptions import (
    BusinessLogicError, InsufficientPermissionsError, InvalidStateTransitionError,
    NotFoundError, ValidationError
)
from vtria_erp.core.security import CASE_READ_ROLES, can_access_case, has_permission
from vtria_erp.models.case import Case, CaseStateTransition, CaseWorkflowDefinition
from vtria_erp.models.client import Client
from vtria_erp.models.manufacturing import DeliveryNote, WorkOrder
from vtria_erp.models.sales import Estimation, Quotation, SalesOrder
from vtria_erp.models.user import User
from vtria_erp.services.audit import AuditService
from vtria_erp.services.document_numbers import DocumentNumberService, DocumentType
from vtria_erp.services.notifications import NotificationService

logger = logging.getLogger(__name__)

CASE_STATES = ("enquiry", "estimation", "quotation", "order", "production", "delivery", "closed")

VALID_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "enquiry": ("estimation", "closed"),
    "estimation": ("quotation", "enquiry", "closed"),
    "quotation": ("order", "estimation", "closed"),
    "order": ("production", "quotation", "closed"),
    "production": ("delivery", "order", "closed"),
    "delivery": ("closed", "production"),
    "closed": (),
}

PRIORITIES = ("low", "medium", "high", "urgent")

# States whose documents are archived when the case rolls back out of them
ARCHIVED_ON_ROLLBACK = {
    "estimation": Estimation,
    "quotation": Quotation,
    "order": SalesOrder,
}

UPDATABLE_FIELDS = (
    "assigned_to", "priority", "notes", "expected_completion_date", "project_name", "requirements"
)


def is_valid_transition(from_state: str, to_state: str) -> bool:
    return to_state in VALID_TRANSITIONS.get(from_state, ())


def case_snapshot(case: Case) -> Dict[str, Any]:
    return {
        "current_state": case.current_state,
        "current_sub_state": case.current_sub_state,
        "status": case.status,
        "priority": case.priority,
        "assigned_to": case.assigned_to,
        "project_name": case.project_name,
        "requirements": case.requirements,
        "notes": case.notes,
        "expected_completion_date": case.expected_completion_date,
        "requires_approval": case.requires_approval,
    }


class CaseWorkflowService:
    """Service for case lifecycle operations"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)
        self.numbers = DocumentNumberService(db)
        self.notifications = NotificationService(db)

    # Workflow definitions

    def get_definitions(self, state: Optional[str] = None) -> List[CaseWorkflowDefinition]:
        query = self.db.query(CaseWorkflowDefinition).filter(CaseWorkflowDefinition.is_active.is_(True))
        if state:
            query = query.filter(CaseWorkflowDefinition.state_name == state)
        return query.order_by(CaseWorkflowDefinition.state_name, CaseWorkflowDefinition.step_order).all()

    def get_workflow_definitions(self, state: Optional[str] = None) -> Dict[str, List[CaseWorkflowDefinition]]:
        """Definitions grouped by state in lifecycle order"""
        if state and state not in CASE_STATES:
            raise ValidationError(f"Unknown case state '{state}'")
        grouped: Dict[str, List[CaseWorkflowDefinition]] = {}
        definitions = self.get_definitions(state)
        for name in CASE_STATES:
            steps = [d for d in definitions if d.state_name == name]
            if steps:
                grouped[name] = steps
        return grouped

    def _enter_step(self, case: Case, state: str, definition: Optional[CaseWorkflowDefinition]):
        """Position the case on a step and restart its SLA clock"""
        now = datetime.utcnow()
        case.current_state = state
        case.current_sub_state = definition.sub_state_name if definition else None
        case.state_entered_at = now
        case.is_sla_breached = False
        case.sla_breached_at = None

        if definition and definition.sla_hours:
            case.expected_state_completion = now + timedelta(hours=definition.sla_hours)
        else:
            case.expected_state_completion = None

        if definition and definition.requires_approval and state != "closed":
            case.requires_approval = True
            case.approval_pending_from = definition.approval_role
            self.notifications.queue_notification(
                "approval_required",
                context={
                    "case_number": case.case_number,
                    "role": definition.approval_role,
                    "sub_state": definition.sub_state_name,
                },
                recipient_role=definition.approval_role,
                case_id=case.id,
                priority=case.priority,
            )
        else:
            case.requires_approval = False
            case.approval_pending_from = None

    def _record_transition(
        self,
        case: Case,
        user: Optional[User],
        transition_type: str,
        from_state: Optional[str],
        to_state: Optional[str],
        from_sub_state: Optional[str] = None,
        to_sub_state: Optional[str] = None,
        notes: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> CaseStateTransition:
        transition = CaseStateTransition(
            case_id=case.id,
            from_state=from_state,
            to_state=to_state,
            from_sub_state=from_sub_state,
            to_sub_state=to_sub_state,
            transition_type=transition_type,
            notes=notes,
            reason=reason,
            created_by=user.id if user else None,
        )
        self.db.add(transition)
        return transition

    # Queries

    def _visible(self, query, user: User):
        """Restrict a case query to what the user may list"""
        if has_permission(user.role, "canViewAll") or user.role in CASE_READ_ROLES:
            return query
        return query.filter(or_(Case.created_by == user.id, Case.assigned_to == user.id))

    def get_case(self, case_id: int, user: Optional[User] = None) -> Case:
        case = self.db.query(Case).filter(Case.id == case_id, Case.status != "deleted").first()
        if not case:
            raise NotFoundError(f"Case {case_id} not found")
        if user is not None and not can_access_case(user, case):
            raise InsufficientPermissionsError("You do not have access to this case")
        return case

    def get_case_by_number(self, case_number: str, user: Optional[User] = None) -> Case:
        case = self.db.query(Case).filter(Case.case_number == case_number, Case.status != "deleted").first()
        if not case:
            raise NotFoundError(f"Case {case_number} not found")
        return self.get_case(case.id, user)

    def list_cases_by_state(
        self,
        state: str,
        user: User,
        page: int = 1,
        limit: int = 20,
        search: Optional[str] = None,
        priority: Optional[str] = None,
    ) -> Tuple[List[Case], int]:
        if state not in CASE_STATES:
            raise ValidationError(f"Unknown case state '{state}'")

        query = self._visible(
            self.db.query(Case).filter(Case.current_state == state, Case.status != "deleted"),
            user
        )
        if priority:
            query = query.filter(Case.priority == priority)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(Case.case_number.ilike(term), Case.project_name.ilike(term)))

        total = query.count()
        items = query.order_by(desc(Case.updated_at), desc(Case.id)) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, total

    def search_cases(self, term: str, user: User, limit: int = 50) -> List[Case]:
        if not term or not term.strip():
            raise ValidationError("Search term is required")
        pattern = f"%{term.strip()}%"
        query = self.db.query(Case).outerjoin(Client, Case.client_id == Client.id).filter(
            Case.status != "deleted",
            or_(
                Case.case_number.ilike(pattern),
                Case.project_name.ilike(pattern),
                Client.company_name.ilike(pattern),
            )
        )
        return self._visible(query, user).order_by(desc(Case.created_at)).limit(limit).all()

    def get_statistics(self, user: User) -> Dict[str, Any]:
        base = self._visible(self.db.query(Case).filter(Case.status != "deleted"), user)
        by_state = {state: 0 for state in CASE_STATES}
        for state, count in base.with_entities(Case.current_state, func.count(Case.id)).group_by(Case.current_state).all():
            by_state[state] = count

        month_start = datetime.utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        return {
            "by_state": by_state,
            "total": sum(by_state.values()),
            "active": base.filter(Case.status == "active").count(),
            "closed_this_month": base.filter(Case.closed_at >= month_start).count(),
            "sla_breached": base.filter(Case.status == "active", Case.is_sla_breached.is_(True)).count(),
            "pending_approvals": base.filter(Case.status == "active", Case.requires_approval.is_(True)).count(),
        }

    # Lifecycle

    def create_case(
        self,
        data: Dict[str, Any],
        user: User,
        enquiry_id: Optional[int] = None,
        commit: bool = True,
    ) -> Case:
        """Open a new case in the enquiry state"""
        client_id = data.get("client_id")
        project_name = (data.get("project_name") or "").strip()
        if not client_id or not project_name:
            raise ValidationError("Client and project name are required")

        if not self.db.query(Client).filter(Client.id == client_id).first():
            raise NotFoundError(f"Client {client_id} not found")

        priority = data.get("priority") or "medium"
        if priority not in PRIORITIES:
            raise ValidationError(f"Priority must be one of: {', '.join(PRIORITIES)}")

        case = Case(
            case_number=self.numbers.next_number(DocumentType.CASE),
            enquiry_id=enquiry_id,
            client_id=client_id,
            project_name=project_name,
            requirements=data.get("requirements"),
            estimated_value=data.get("estimated_value"),
            priority=priority,
            assigned_to=data.get("assigned_to"),
            created_by=user.id,
            notes=data.get("notes"),
            expected_completion_date=data.get("expected_completion_date"),
            status="active",
        )
        self.db.add(case)
        self.db.flush()

        steps = self.get_definitions("enquiry")
        self._enter_step(case, "enquiry", steps[0] if steps else None)
        self._record_transition(
            case, user, "state_change", None, "enquiry",
            to_sub_state=case.current_sub_state, notes="Case created"
        )
        self.audit.log_audit(
            "cases", case.id, "CREATE",
            new_values=case_snapshot(case),
            user=user, case_id=case.id, case_number=case.case_number
        )
        if case.assigned_to:
            self._notify_assignment(case)

        if commit:
            self.db.commit()
            self.db.refresh(case)
        logger.info(f"Case {case.case_number} created by {user.username}")
        return case

    def transition_case(
        self,
        case_id: int,
        to_state: str,
        user: User,
        notes: Optional[str] = None,
        reason: Optional[str] = None,
        enforce_approval: bool = True,
        commit: bool = True,
    ) -> Case:
        """Move a case to another state according to the transition table"""
        case = self.get_case(case_id, user)
        from_state = case.current_state

        if to_state not in CASE_STATES:
            raise ValidationError(f"Unknown case state '{to_state}'")
        if not is_valid_transition(from_state, to_state):
            allowed = VALID_TRANSITIONS.get(from_state, ())
            raise InvalidStateTransitionError(
                f"Cannot transition case from '{from_state}' to '{to_state}'. "
                f"Valid transitions: {', '.join(allowed) if allowed else 'none'}"
            )

        forward = CASE_STATES.index(to_state) > CASE_STATES.index(from_state)
        if enforce_approval and forward and to_state != "closed" and case.requires_approval:
            raise BusinessLogicError(
                f"Case {case.case_number} is awaiting {case.approval_pending_from} approval"
            )

        old_values = case_snapshot(case)
        from_sub_state = case.current_sub_state
        steps = self.get_definitions(to_state)
        self._enter_step(case, to_state, steps[0] if steps else None)

        self._record_transition(
            case, user, "state_change", from_state, to_state,
            from_sub_state=from_sub_state, to_sub_state=case.current_sub_state,
            notes=notes, reason=reason
        )
        self._apply_side_effects(case, from_state, to_state, user)

        self.audit.log_audit(
            "cases", case.id, "UPDATE",
            old_values=old_values, new_values=case_snapshot(case),
            user=user, case_id=case.id, case_number=case.case_number,
            business_reason=reason or notes
        )

        if commit:
            self.db.commit()
            self.db.refresh(case)
        logger.info(f"Case {case.case_number} moved {from_state} -> {to_state} by {user.username}")
        return case

    def _apply_side_effects(self, case: Case, from_state: str, to_state: str, user: User):
        now = datetime.utcnow()

        rollback = CASE_STATES.index(to_state) < CASE_STATES.index(from_state)
        if rollback and from_state in ARCHIVED_ON_ROLLBACK:
            model = ARCHIVED_ON_ROLLBACK[from_state]
            for record in self.db.query(model).filter(
                model.case_id == case.id, model.status != "archived"
            ).all():
                record.status = "archived"

        if to_state == "estimation":
            existing = self.db.query(Estimation).filter(
                Estimation.case_id == case.id, Estimation.status != "archived"
            ).first()
            if not existing:
                from vtria_erp.services.sales import EstimationService
                EstimationService(self.db).create_for_case(case, user, commit=False)

        if to_state == "closed":
            case.status = "closed"
            case.closed_at = now
            if case.enquiry is not None:
                case.enquiry.status = "closed"
            for work_order in self.db.query(WorkOrder).filter(
                WorkOrder.case_id == case.id,
                WorkOrder.status.notin_(("completed", "cancelled"))
            ).all():
                work_order.status = "completed"
                work_order.completed_at = now
            for note in self.db.query(DeliveryNote).filter(
                DeliveryNote.case_id == case.id, DeliveryNote.status != "delivered"
            ).all():
                note.status = "delivered"
                note.delivered_at = now

    def update_case(self, case_id: int, data: Dict[str, Any], user: User) -> Case:
        case = self.get_case(case_id, user)
        changes = {k: v for k, v in data.items() if k in UPDATABLE_FIELDS}
        if not changes:
            raise ValidationError("No updatable fields supplied")

        if "priority" in changes and changes["priority"] not in PRIORITIES:
            raise ValidationError(f"Priority must be one of: {', '.join(PRIORITIES)}")

        old_values = case_snapshot(case)
        reassigned = "assigned_to" in changes and changes["assigned_to"] != case.assigned_to
        if reassigned:
            if not has_permission(user.role, "canAssignCases"):
                raise InsufficientPermissionsError("You are not allowed to assign cases")
            assignee_id = changes["assigned_to"]
            if assignee_id is not None and not self.db.query(User).filter(User.id == assignee_id).first():
                raise NotFoundError(f"User {assignee_id} not found")

        for field, value in changes.items():
            setattr(case, field, value)

        if reassigned:
            self._record_transition(
                case, user, "assignment", case.current_state, case.current_state,
                from_sub_state=case.current_sub_state, to_sub_state=case.current_sub_state,
                notes=data.get("assignment_notes") or f"Assigned to user {case.assigned_to}"
            )
            if case.assigned_to:
                self._notify_assignment(case)

        self.audit.log_audit(
            "cases", case.id, "UPDATE",
            old_values=old_values, new_values=case_snapshot(case),
            user=user, case_id=case.id, case_number=case.case_number
        )
        self.db.commit()
        self.db.refresh(case)
        return case

    def _notify_assignment(self, case: Case):
        self.notifications.queue_notification(
            "case_assigned",
            context={"case_number": case.case_number, "project_name": case.project_name},
            recipient_user_id=case.assigned_to,
            case_id=case.id,
            priority=case.priority,
        )

    def get_case_timeline(self, case_id: int, user: User) -> List[Dict[str, Any]]:
        """Transitions and audit entries merged in chronological order"""
        case = self.get_case(case_id, user)
        events = []
        for t in case.transitions:
            events.append({
                "event_type": "transition",
                "transition_type": t.transition_type,
                "from_state": t.from_state,
                "to_state": t.to_state,
                "from_sub_state": t.from_sub_state,
                "to_sub_state": t.to_sub_state,
                "notes": t.notes,
                "reason": t.reason,
                "user_id": t.created_by,
                "user_name": t.user.full_name if t.user else None,
                "created_at": t.created_at,
            })
        for entry in self.audit.get_case_trail(case.id):
            events.append({
                "event_type": "audit",
                "action": entry.action,
                "table_name": entry.table_name,
                "record_id": entry.record_id,
                "changed_fields": entry.changed_fields,
                "user_id": entry.user_id,
                "user_name": entry.user_name,
                "created_at": entry.created_at,
            })
        events.sort(key=lambda e: (e["created_at"] or datetime.min, e["event_type"] == "audit"))
        return events

    def get_workflow_status(self, case_id: int, user: User) -> Dict[str, Any]:
        case = self.get_case(case_id, user)
        now = datetime.utcnow()
        steps = self.get_definitions(case.current_state)
        names = [s.sub_state_name for s in steps]
        index = names.index(case.current_sub_state) if case.current_sub_state in names else None
        definition = steps[index] if index is not None else None
        next_step = steps[index + 1].sub_state_name if index is not None and index + 1 < len(steps) else None

        hours_in_state = None
        if case.state_entered_at:
            hours_in_state = round((now - case.state_entered_at).total_seconds() / 3600, 2)
        hours_until_breach = None
        if case.expected_state_completion:
            hours_until_breach = round((case.expected_state_completion - now).total_seconds() / 3600, 2)

        return {
            "case_id": case.id,
            "case_number": case.case_number,
            "current_state": case.current_state,
            "current_sub_state": case.current_sub_state,
            "step_index": (index + 1) if index is not None else None,
            "total_steps": len(steps),
            "next_sub_state": next_step,
            "valid_transitions": list(VALID_TRANSITIONS.get(case.current_state, ())),
            "sla_hours": definition.sla_hours if definition else None,
            "state_entered_at": case.state_entered_at,
            "expected_state_completion": case.expected_state_completion,
            "hours_in_state": hours_in_state,
            "hours_until_breach": hours_until_breach,
            "is_sla_breached": case.is_sla_breached,
            "requires_approval": case.requires_approval,
            "approval_pending_from": case.approval_pending_from,
        }

    def advance_sub_state(self, case_id: int, user: User, notes: Optional[str] = None) -> Case:
        """Move to the next step inside the current state"""
        case = self.get_case(case_id, user)
        if case.status != "active":
            raise BusinessLogicError(f"Case {case.case_number} is {case.status}")
        if case.requires_approval:
            raise BusinessLogicError(
                f"Step '{case.current_sub_state}' is awaiting {case.approval_pending_from} approval"
            )

        steps = self.get_definitions(case.current_state)
        names = [s.sub_state_name for s in steps]
        if case.current_sub_state not in names:
            raise BusinessLogicError(f"Case {case.case_number} has no workflow step to advance from")
        index = names.index(case.current_sub_state)
        if index + 1 >= len(steps):
            raise BusinessLogicError(
                f"'{case.current_sub_state}' is the last step of state '{case.current_state}'; "
                f"use a state transition"
            )

        old_values = case_snapshot(case)
        from_sub_state = case.current_sub_state
        self._enter_step(case, case.current_state, steps[index + 1])
        self._record_transition(
            case, user, "sub_state_change", case.current_state, case.current_state,
            from_sub_state=from_sub_state, to_sub_state=case.current_sub_state, notes=notes
        )
        self.audit.log_audit(
            "cases", case.id, "UPDATE",
            old_values=old_values, new_values=case_snapshot(case),
            user=user, case_id=case.id, case_number=case.case_number
        )
        self.db.commit()
        self.db.refresh(case)
        return case

    def approve_workflow_step(self, case_id: int, user: User, notes: Optional[str] = None) -> Case:
        case = self.get_case(case_id, user)
        if not case.requires_approval:
            raise BusinessLogicError(f"Case {case.case_number} has no pending approval")
        if not (has_permission(user.role, "canApproveAll") or user.role == case.approval_pending_from):
            raise InsufficientPermissionsError(
                f"Approval for this step requires role '{case.approval_pending_from}'"
            )

        approval_role = case.approval_pending_from
        case.requires_approval = False
        case.approval_pending_from = None
        self._record_transition(
            case, user, "approval", case.current_state, case.current_state,
            from_sub_state=case.current_sub_state, to_sub_state=case.current_sub_state,
            notes=notes or f"Approved by {user.full_name} ({approval_role} step)"
        )
        self.audit.log_audit(
            "cases", case.id, "APPROVE",
            old_values={"requires_approval": True, "approval_pending_from": approval_role},
            new_values={"requires_approval": False, "approval_pending_from": None},
            user=user, case_id=case.id, case_number=case.case_number, business_reason=notes
        )
        self.db.commit()
        self.db.refresh(case)
        return case

    def get_pending_approvals(self, user: User) -> List[Case]:
        query = self.db.query(Case).filter(Case.status == "active", Case.requires_approval.is_(True))
        if not has_permission(user.role, "canApproveAll"):
            query = query.filter(Case.approval_pending_from == user.role)
        return query.order_by(Case.state_entered_at).all()

    def get_milestones(self, case_id: int, user: User) -> List[Dict[str, Any]]:
        case = self.get_case(case_id, user)
        entered: Dict[str, datetime] = {}
        for t in case.transitions:
            if t.transition_type == "state_change" and t.to_state:
                entered[t.to_state] = t.created_at

        current_index = CASE_STATES.index(case.current_state)
        milestones = []
        for index, state in enumerate(CASE_STATES):
            if index < current_index or (state == "closed" and case.current_state == "closed"):
                status = "completed"
            elif index == current_index:
                status = "current"
            else:
                status = "pending"
            milestones.append({
                "state": state,
                "order": index + 1,
                "status": status,
                "entered_at": entered.get(state) if status != "pending" else None,
            })
        return milestones

    def delete_case(self, case_id: int, user: User) -> Case:
        if user.role not in ("director", "admin"):
            raise InsufficientPermissionsError("Only directors and admins can delete cases")
        case = self.get_case(case_id, user)
        old_values = case_snapshot(case)
        case.status = "deleted"
        case.deleted_at = datetime.utcnow()
        self.audit.log_audit(
            "cases", case.id, "DELETE",
            old_values=old_values, new_values=case_snapshot(case),
            user=user, case_id=case.id, case_number=case.case_number
        )
        self.db.commit()
        return case

    def cancel_case(self, case_id: int, user: User, reason: str) -> Case:
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required")
        case = self.get_case(case_id, user)
        if case.current_state == "closed":
            raise BusinessLogicError(f"Case {case.case_number} is already closed")

        self.transition_case(
            case.id, "closed", user, notes="Case cancelled", reason=reason, commit=False
        )
        case.status = "cancelled"
        case.cancellation_reason = reason
        self.db.commit()
        self.db.refresh(case)
        return case

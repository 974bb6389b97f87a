"""
Manufacturing Service
Work orders and delivery notes, driving cases through production and delivery
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from vtria_erp.core.exceptions import BusinessLogicError, NotFoundError, ValidationError
from vtria_erp.models.case import Case
from vtria_erp.models.manufacturing import DeliveryNote, WorkOrder
from vtria_erp.models.sales import SalesOrder
from vtria_erp.models.user import User
from vtria_erp.services.audit import AuditService
from vtria_erp.services.case_workflow import PRIORITIES, CaseWorkflowService
from vtria_erp.services.document_numbers import DocumentNumberService, DocumentType

logger = logging.getLogger(__name__)

WORK_ORDER_TRANSITIONS = {
    "pending": ("in_progress", "on_hold", "cancelled"),
    "in_progress": ("completed", "on_hold", "cancelled"),
    "on_hold": ("in_progress", "cancelled"),
    "completed": (),
    "cancelled": (),
}
WORK_ORDER_STATUSES = tuple(WORK_ORDER_TRANSITIONS)
DELIVERY_STATUSES = ("pending", "dispatched", "delivered")


class ManufacturingService:
    """Service for production and dispatch"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)
        self.numbers = DocumentNumberService(db)
        self.workflow = CaseWorkflowService(db)

    def _case(self, case_id: int) -> Case:
        case = self.db.query(Case).filter(Case.id == case_id, Case.status != "deleted").first()
        if not case:
            raise NotFoundError(f"Case {case_id} not found")
        return case

    # Work orders

    def get_work_order(self, work_order_id: int) -> WorkOrder:
        work_order = self.db.query(WorkOrder).filter(WorkOrder.id == work_order_id).first()
        if not work_order:
            raise NotFoundError(f"Work order {work_order_id} not found")
        return work_order

    def list_work_orders(
        self,
        status: Optional[str] = None,
        case_id: Optional[int] = None,
        assigned_to: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[WorkOrder], int]:
        query = self.db.query(WorkOrder)
        if status:
            query = query.filter(WorkOrder.status == status)
        if case_id:
            query = query.filter(WorkOrder.case_id == case_id)
        if assigned_to:
            query = query.filter(WorkOrder.assigned_to == assigned_to)
        total = query.count()
        items = query.order_by(desc(WorkOrder.created_at), desc(WorkOrder.id)) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, total

    def create_work_order(self, data: Dict[str, Any], user: User) -> WorkOrder:
        """Raise a work order; a case still in order moves into production"""
        case = self._case(data.get("case_id"))
        if case.current_state not in ("order", "production"):
            raise BusinessLogicError(
                f"Work orders need a case in order or production (case {case.case_number} is {case.current_state})"
            )
        if not data.get("title"):
            raise ValidationError("A work order title is required")
        priority = data.get("priority") or case.priority
        if priority not in PRIORITIES:
            raise ValidationError(f"Priority must be one of: {', '.join(PRIORITIES)}")

        sales_order_id = data.get("sales_order_id")
        if sales_order_id is None:
            order = self.db.query(SalesOrder).filter(
                SalesOrder.case_id == case.id, SalesOrder.status != "archived"
            ).order_by(desc(SalesOrder.id)).first()
            sales_order_id = order.id if order else None
        elif not self.db.query(SalesOrder).filter(SalesOrder.id == sales_order_id).first():
            raise NotFoundError(f"Sales order {sales_order_id} not found")

        work_order = WorkOrder(
            work_order_number=self.numbers.next_number(DocumentType.WORK_ORDER),
            case_id=case.id,
            sales_order_id=sales_order_id,
            title=data["title"],
            description=data.get("description"),
            priority=priority,
            status="pending",
            planned_start_date=data.get("planned_start_date"),
            planned_end_date=data.get("planned_end_date"),
            created_by=user.id,
        )
        self.db.add(work_order)
        self.db.flush()

        if data.get("assigned_to"):
            self._assign(work_order, data["assigned_to"])

        if case.current_state == "order":
            self.workflow.transition_case(
                case.id, "production", user, notes=f"Work order {work_order.work_order_number} created",
                enforce_approval=False, commit=False
            )

        self.audit.log_audit(
            "work_orders", work_order.id, "CREATE",
            new_values={"work_order_number": work_order.work_order_number, "title": work_order.title},
            user=user, case_id=case.id, case_number=case.case_number
        )
        self.db.commit()
        self.db.refresh(work_order)
        logger.info(f"Work order {work_order.work_order_number} created for case {case.case_number}")
        return work_order

    def _assign(self, work_order: WorkOrder, technician_id: int):
        technician = self.db.query(User).filter(User.id == technician_id, User.is_active.is_(True)).first()
        if not technician:
            raise NotFoundError(f"User {technician_id} not found")
        if technician.role != "technician":
            raise ValidationError(f"{technician.username} is not a technician")
        work_order.assigned_to = technician.id

    def assign_technician(self, work_order_id: int, technician_id: int, user: User) -> WorkOrder:
        work_order = self.get_work_order(work_order_id)
        if work_order.status in ("completed", "cancelled"):
            raise BusinessLogicError(f"Work order {work_order.work_order_number} is {work_order.status}")
        previous = work_order.assigned_to
        self._assign(work_order, technician_id)
        self.audit.log_audit(
            "work_orders", work_order.id, "UPDATE",
            old_values={"assigned_to": previous}, new_values={"assigned_to": work_order.assigned_to},
            user=user, case_id=work_order.case_id
        )
        self.db.commit()
        self.db.refresh(work_order)
        return work_order

    def update_status(self, work_order_id: int, status: str, user: User) -> WorkOrder:
        work_order = self.get_work_order(work_order_id)
        allowed = WORK_ORDER_TRANSITIONS.get(work_order.status, ())
        if status not in allowed:
            raise BusinessLogicError(
                f"Cannot move work order from '{work_order.status}' to '{status}'. "
                f"Valid transitions: {', '.join(allowed) if allowed else 'none'}"
            )

        old_status = work_order.status
        work_order.status = status
        if status == "in_progress" and work_order.started_at is None:
            work_order.started_at = datetime.utcnow()
        if status == "completed":
            work_order.completed_at = datetime.utcnow()

        self.audit.log_audit(
            "work_orders", work_order.id, "UPDATE",
            old_values={"status": old_status}, new_values={"status": status},
            user=user, case_id=work_order.case_id
        )
        self.db.commit()
        self.db.refresh(work_order)
        return work_order

    # Delivery notes

    def get_delivery_note(self, note_id: int) -> DeliveryNote:
        note = self.db.query(DeliveryNote).filter(DeliveryNote.id == note_id).first()
        if not note:
            raise NotFoundError(f"Delivery note {note_id} not found")
        return note

    def list_delivery_notes(
        self, status: Optional[str] = None, case_id: Optional[int] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[DeliveryNote], int]:
        query = self.db.query(DeliveryNote)
        if status:
            query = query.filter(DeliveryNote.status == status)
        if case_id:
            query = query.filter(DeliveryNote.case_id == case_id)
        total = query.count()
        items = query.order_by(desc(DeliveryNote.created_at), desc(DeliveryNote.id)) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, total

    def create_delivery_note(self, data: Dict[str, Any], user: User) -> DeliveryNote:
        case = self._case(data.get("case_id"))
        if case.current_state not in ("production", "delivery"):
            raise BusinessLogicError(
                f"Delivery notes need a case in production or delivery (case {case.case_number} is {case.current_state})"
            )

        note = DeliveryNote(
            delivery_number=self.numbers.next_number(DocumentType.DELIVERY_CHALLAN),
            case_id=case.id,
            sales_order_id=data.get("sales_order_id"),
            delivery_address=data.get("delivery_address") or (case.client.address if case.client else None),
            transporter=data.get("transporter"),
            vehicle_number=data.get("vehicle_number"),
            status="pending",
            created_by=user.id,
        )
        self.db.add(note)
        self.db.flush()
        self.audit.log_audit(
            "delivery_notes", note.id, "CREATE",
            new_values={"delivery_number": note.delivery_number},
            user=user, case_id=case.id, case_number=case.case_number
        )
        self.db.commit()
        self.db.refresh(note)
        return note

    def dispatch(self, note_id: int, user: User) -> DeliveryNote:
        """Mark goods dispatched; a case still in production moves into delivery"""
        note = self.get_delivery_note(note_id)
        if note.status != "pending":
            raise BusinessLogicError(f"Only pending delivery notes can be dispatched (status: {note.status})")

        note.status = "dispatched"
        note.dispatched_at = datetime.utcnow()

        case = self._case(note.case_id)
        if case.current_state == "production":
            self.workflow.transition_case(
                case.id, "delivery", user, notes=f"Delivery {note.delivery_number} dispatched",
                enforce_approval=False, commit=False
            )
        self.audit.log_audit(
            "delivery_notes", note.id, "UPDATE",
            old_values={"status": "pending"}, new_values={"status": "dispatched"},
            user=user, case_id=case.id, case_number=case.case_number
        )
        self.db.commit()
        self.db.refresh(note)
        return note

    def mark_delivered(self, note_id: int, user: User) -> DeliveryNote:
        note = self.get_delivery_note(note_id)
        if note.status != "dispatched":
            raise BusinessLogicError(f"Only dispatched delivery notes can be delivered (status: {note.status})")
        note.status = "delivered"
        note.delivered_at = datetime.utcnow()
        self.audit.log_audit(
            "delivery_notes", note.id, "UPDATE",
            old_values={"status": "dispatched"}, new_values={"status": "delivered"},
            user=user, case_id=note.case_id
        )
        self.db.commit()
        self.db.refresh(note)
        return note

    def production_dashboard(self) -> Dict[str, Any]:
        work_orders = {status: 0 for status in WORK_ORDER_STATUSES}
        for status, count in self.db.query(WorkOrder.status, func.count(WorkOrder.id)).group_by(WorkOrder.status):
            work_orders[status] = count

        deliveries = {status: 0 for status in DELIVERY_STATUSES}
        for status, count in self.db.query(DeliveryNote.status, func.count(DeliveryNote.id)).group_by(DeliveryNote.status):
            deliveries[status] = count

        return {
            "work_orders": work_orders,
            "delivery_notes": deliveries,
            "cases_in_production": self.db.query(Case).filter(
                Case.current_state == "production", Case.status == "active"
            ).count(),
            "cases_in_delivery": self.db.query(Case).filter(
                Case.current_state == "delivery", Case.status == "active"
            ).count(),
        }

"""
Sales Services
Enquiries, estimations, quotations and sales orders along the case lifecycle
"""
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc, or_
from sqlalchemy.orm import Session

from vtria_erp.core.config import settings
from vtria_erp.core.exceptions import (
    BusinessLogicError, InsufficientPermissionsError, NotFoundError, ValidationError
)
from vtria_erp.models.case import Case
from vtria_erp.models.client import Client
from vtria_erp.models.inventory import Product
from vtria_erp.models.sales import (
    EnquiryStatusHistory, Estimation, EstimationItem, EstimationSection, Quotation,
    QuotationItem, SalesEnquiry, SalesOrder, SalesOrderItem
)
from vtria_erp.models.user import User
from vtria_erp.services.audit import AuditService
from vtria_erp.services.case_workflow import PRIORITIES, CaseWorkflowService
from vtria_erp.services.document_numbers import DocumentNumberService, DocumentType

logger = logging.getLogger(__name__)

ENQUIRY_STATUSES = ("new", "assigned", "for_estimation", "estimated", "quoted", "converted", "closed")
ESTIMATION_SECTIONS = ("Main Panel", "Generator", "UPS", "Incoming", "Outgoing")
APPROVER_ROLES = ("director", "admin")

DEFAULT_TERMS = {
    "terms_conditions": "Prices are valid for the period stated. Taxes extra as applicable.",
    "delivery_terms": "Delivery within 4-6 weeks from receipt of confirmed order and advance.",
    "payment_terms": "50% advance with order, balance before dispatch.",
    "warranty_terms": "12 months from the date of supply against manufacturing defects.",
}

SALES_ORDER_TRANSITIONS = {
    "draft": ("confirmed", "archived"),
    "confirmed": ("in_production", "archived"),
    "in_production": ("completed",),
    "completed": (),
    "archived": (),
}

CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


def require_approver(user: User, document: str):
    if user.role not in APPROVER_ROLES:
        raise InsufficientPermissionsError(f"Only directors and admins can approve {document}")


class EnquiryService:
    """Service for sales enquiries"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)
        self.numbers = DocumentNumberService(db)

    def get_enquiry(self, enquiry_id: int) -> SalesEnquiry:
        enquiry = self.db.query(SalesEnquiry).filter(
            SalesEnquiry.id == enquiry_id, SalesEnquiry.is_deleted.is_(False)
        ).first()
        if not enquiry:
            raise NotFoundError(f"Enquiry {enquiry_id} not found")
        return enquiry

    def list_enquiries(
        self,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[SalesEnquiry], int]:
        query = self.db.query(SalesEnquiry).filter(SalesEnquiry.is_deleted.is_(False))
        if status:
            query = query.filter(SalesEnquiry.status == status)
        if client_id:
            query = query.filter(SalesEnquiry.client_id == client_id)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(
                SalesEnquiry.enquiry_number.ilike(term),
                SalesEnquiry.project_name.ilike(term),
            ))
        total = query.count()
        items = query.order_by(desc(SalesEnquiry.created_at), desc(SalesEnquiry.id)) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, total

    def _record_status(self, enquiry: SalesEnquiry, new_status: str, user: User, comments: Optional[str] = None):
        self.db.add(EnquiryStatusHistory(
            enquiry_id=enquiry.id,
            previous_status=enquiry.status if enquiry.id else None,
            new_status=new_status,
            comments=comments,
            changed_by=user.id if user else None,
        ))
        enquiry.status = new_status

    def create_enquiry(self, data: Dict[str, Any], user: User) -> SalesEnquiry:
        """Create an enquiry together with the case that tracks it"""
        client_id = data.get("client_id")
        if not self.db.query(Client).filter(Client.id == client_id).first():
            raise NotFoundError(f"Client {client_id} not found")
        priority = data.get("priority") or "medium"
        if priority not in PRIORITIES:
            raise ValidationError(f"Priority must be one of: {', '.join(PRIORITIES)}")

        enquiry = SalesEnquiry(
            enquiry_number=self.numbers.next_number(DocumentType.ENQUIRY),
            enquiry_date=data.get("enquiry_date") or date.today(),
            client_id=client_id,
            project_name=data.get("project_name"),
            description=data.get("description"),
            requirements=data.get("requirements"),
            priority=priority,
            estimated_value=data.get("estimated_value"),
            assigned_to=data.get("assigned_to"),
            enquiry_by=user.id,
            status="new",
        )
        self.db.add(enquiry)
        self.db.flush()

        initial_status = "assigned" if enquiry.assigned_to else "new"
        self.db.add(EnquiryStatusHistory(
            enquiry_id=enquiry.id, previous_status=None, new_status=initial_status,
            comments="Enquiry created", changed_by=user.id
        ))
        enquiry.status = initial_status

        case = CaseWorkflowService(self.db).create_case(
            {
                "client_id": client_id,
                "project_name": enquiry.project_name,
                "requirements": enquiry.requirements,
                "estimated_value": enquiry.estimated_value,
                "priority": priority,
                "assigned_to": enquiry.assigned_to,
                "notes": enquiry.description,
            },
            user,
            enquiry_id=enquiry.id,
            commit=False,
        )
        self.audit.log_audit(
            "sales_enquiries", enquiry.id, "CREATE",
            new_values={"enquiry_number": enquiry.enquiry_number, "client_id": client_id,
                        "project_name": enquiry.project_name, "status": enquiry.status},
            user=user, case_id=case.id, case_number=case.case_number
        )
        self.db.commit()
        self.db.refresh(enquiry)
        logger.info(f"Enquiry {enquiry.enquiry_number} created with case {case.case_number}")
        return enquiry

    def update_enquiry(self, enquiry_id: int, data: Dict[str, Any], user: User) -> SalesEnquiry:
        enquiry = self.get_enquiry(enquiry_id)
        fields = ("project_name", "description", "requirements", "priority", "estimated_value")
        changes = {k: v for k, v in data.items() if k in fields}
        if "priority" in changes and changes["priority"] not in PRIORITIES:
            raise ValidationError(f"Priority must be one of: {', '.join(PRIORITIES)}")

        old_values = {k: getattr(enquiry, k) for k in changes}
        for field, value in changes.items():
            setattr(enquiry, field, value)
        self.audit.log_audit(
            "sales_enquiries", enquiry.id, "UPDATE",
            old_values=old_values, new_values=changes, user=user
        )
        self.db.commit()
        self.db.refresh(enquiry)
        return enquiry

    def update_status(
        self, enquiry_id: int, status: str, user: User, comments: Optional[str] = None
    ) -> SalesEnquiry:
        if status not in ENQUIRY_STATUSES:
            raise ValidationError(f"Status must be one of: {', '.join(ENQUIRY_STATUSES)}")
        enquiry = self.get_enquiry(enquiry_id)
        if enquiry.status == status:
            raise BusinessLogicError(f"Enquiry is already {status}")

        old_status = enquiry.status
        self._record_status(enquiry, status, user, comments)
        self.audit.log_audit(
            "sales_enquiries", enquiry.id, "UPDATE",
            old_values={"status": old_status}, new_values={"status": status},
            user=user, business_reason=comments
        )
        self.db.commit()
        self.db.refresh(enquiry)
        return enquiry

    def assign_enquiry(self, enquiry_id: int, assignee_id: int, user: User) -> SalesEnquiry:
        enquiry = self.get_enquiry(enquiry_id)
        if not self.db.query(User).filter(User.id == assignee_id, User.is_active.is_(True)).first():
            raise NotFoundError(f"User {assignee_id} not found")

        enquiry.assigned_to = assignee_id
        if enquiry.status == "new":
            self._record_status(enquiry, "assigned", user, f"Assigned to user {assignee_id}")
        self.audit.log_audit(
            "sales_enquiries", enquiry.id, "UPDATE",
            new_values={"assigned_to": assignee_id}, user=user
        )
        self.db.commit()
        self.db.refresh(enquiry)
        return enquiry

    def delete_enquiry(self, enquiry_id: int, user: User):
        enquiry = self.get_enquiry(enquiry_id)
        enquiry.is_deleted = True
        self.audit.log_audit(
            "sales_enquiries", enquiry.id, "DELETE",
            old_values={"is_deleted": False}, new_values={"is_deleted": True}, user=user
        )
        self.db.commit()


class EstimationService:
    """Service for cost estimations"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)
        self.numbers = DocumentNumberService(db)

    def get_estimation(self, estimation_id: int) -> Estimation:
        estimation = self.db.query(Estimation).filter(Estimation.id == estimation_id).first()
        if not estimation:
            raise NotFoundError(f"Estimation {estimation_id} not found")
        return estimation

    def list_estimations(
        self,
        status: Optional[str] = None,
        case_id: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Estimation], int]:
        query = self.db.query(Estimation)
        if status:
            query = query.filter(Estimation.status == status)
        if case_id:
            query = query.filter(Estimation.case_id == case_id)
        total = query.count()
        items = query.order_by(desc(Estimation.created_at), desc(Estimation.id)) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, total

    def create_for_case(self, case: Case, user: Optional[User], commit: bool = True) -> Estimation:
        """Create a draft estimation with the standard panel sections"""
        estimation = Estimation(
            estimation_number=self.numbers.next_number(DocumentType.ESTIMATION),
            enquiry_id=case.enquiry_id,
            case_id=case.id,
            estimation_date=date.today(),
            status="draft",
            created_by=user.id if user else None,
        )
        self.db.add(estimation)
        self.db.flush()

        for order, name in enumerate(ESTIMATION_SECTIONS, start=1):
            self.db.add(EstimationSection(estimation_id=estimation.id, section_name=name, section_order=order))
        self.db.flush()

        self.audit.log_audit(
            "estimations", estimation.id, "CREATE",
            new_values={"estimation_number": estimation.estimation_number, "status": "draft"},
            user=user, case_id=case.id, case_number=case.case_number
        )
        if commit:
            self.db.commit()
            self.db.refresh(estimation)
        logger.info(f"Estimation {estimation.estimation_number} created for case {case.case_number}")
        return estimation

    def create_estimation(self, data: Dict[str, Any], user: User) -> Estimation:
        """Start an estimation for an enquiry (or case) and move the case into estimation"""
        if data.get("enquiry_id"):
            enquiry = self.db.query(SalesEnquiry).filter(
                SalesEnquiry.id == data["enquiry_id"], SalesEnquiry.is_deleted.is_(False)
            ).first()
            if not enquiry:
                raise NotFoundError(f"Enquiry {data['enquiry_id']} not found")
            case = enquiry.case
            if case is None:
                raise BusinessLogicError(f"Enquiry {enquiry.enquiry_number} has no case")
        elif data.get("case_id"):
            case = self.db.query(Case).filter(Case.id == data["case_id"], Case.status != "deleted").first()
            if not case:
                raise NotFoundError(f"Case {data['case_id']} not found")
        else:
            raise ValidationError("An enquiry or case is required")

        if case.current_state not in ("enquiry", "estimation"):
            raise BusinessLogicError(f"Case {case.case_number} is in {case.current_state}; estimation not allowed")
        existing = self.db.query(Estimation).filter(
            Estimation.case_id == case.id, Estimation.status != "archived"
        ).first()
        if existing:
            raise BusinessLogicError(
                f"Case {case.case_number} already has estimation {existing.estimation_number}"
            )

        estimation = self.create_for_case(case, user, commit=False)
        estimation.notes = data.get("notes")

        if case.current_state == "enquiry":
            CaseWorkflowService(self.db).transition_case(
                case.id, "estimation", user, notes="Estimation started",
                enforce_approval=False, commit=False
            )
        if case.enquiry is not None and case.enquiry.status not in ("closed", "converted"):
            case.enquiry.status = "for_estimation"

        self.db.commit()
        self.db.refresh(estimation)
        return estimation

    def _recalculate(self, estimation: Estimation):
        items = self.db.query(EstimationItem).filter(EstimationItem.estimation_id == estimation.id).all()
        total_mrp = sum((to_money(i.mrp) * Decimal(str(i.quantity)) for i in items), Decimal("0"))
        total_final = sum((to_money(i.final_price) for i in items), Decimal("0"))
        estimation.total_mrp = total_mrp.quantize(CENT)
        estimation.total_final_price = total_final.quantize(CENT)
        estimation.total_discount = (total_mrp - total_final).quantize(CENT)

    def add_item(self, estimation_id: int, data: Dict[str, Any], user: User) -> EstimationItem:
        estimation = self.get_estimation(estimation_id)
        if estimation.status != "draft":
            raise BusinessLogicError(f"Items can only be added to a draft estimation (status: {estimation.status})")

        section = self.db.query(EstimationSection).filter(
            EstimationSection.id == data.get("section_id"),
            EstimationSection.estimation_id == estimation.id
        ).first()
        if not section:
            raise NotFoundError(f"Section {data.get('section_id')} not found on this estimation")
        product = self.db.query(Product).filter(Product.id == data.get("product_id")).first()
        if not product:
            raise NotFoundError(f"Product {data.get('product_id')} not found")

        quantity = Decimal(str(data.get("quantity") or 0))
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")
        discount = Decimal(str(data.get("discount_percentage") or 0))
        if discount < 0 or discount > 100:
            raise ValidationError("Discount percentage must be between 0 and 100")

        mrp = to_money(data["mrp"] if data.get("mrp") is not None else product.mrp)
        discounted_price = (mrp * (1 - discount / 100)).quantize(CENT)
        item = EstimationItem(
            estimation_id=estimation.id,
            section_id=section.id,
            product_id=product.id,
            quantity=quantity,
            mrp=mrp,
            discount_percentage=discount,
            discounted_price=discounted_price,
            final_price=(discounted_price * quantity).quantize(CENT),
        )
        self.db.add(item)
        self.db.flush()
        self._recalculate(estimation)
        self.db.commit()
        self.db.refresh(item)
        return item

    def remove_item(self, estimation_id: int, item_id: int, user: User):
        estimation = self.get_estimation(estimation_id)
        if estimation.status != "draft":
            raise BusinessLogicError("Items can only be removed from a draft estimation")
        item = self.db.query(EstimationItem).filter(
            EstimationItem.id == item_id, EstimationItem.estimation_id == estimation.id
        ).first()
        if not item:
            raise NotFoundError(f"Estimation item {item_id} not found")
        self.db.delete(item)
        self.db.flush()
        self._recalculate(estimation)
        self.db.commit()

    def submit(self, estimation_id: int, user: User) -> Estimation:
        estimation = self.get_estimation(estimation_id)
        if estimation.status != "draft":
            raise BusinessLogicError(f"Only draft estimations can be submitted (status: {estimation.status})")
        if not estimation.items:
            raise BusinessLogicError("Cannot submit an estimation without items")

        estimation.status = "submitted"
        self.audit.log_audit(
            "estimations", estimation.id, "UPDATE",
            old_values={"status": "draft"}, new_values={"status": "submitted"},
            user=user, case_id=estimation.case_id
        )
        self.db.commit()
        self.db.refresh(estimation)
        return estimation

    def approve(self, estimation_id: int, user: User, notes: Optional[str] = None) -> Estimation:
        require_approver(user, "estimations")
        estimation = self.get_estimation(estimation_id)
        if estimation.status != "submitted":
            raise BusinessLogicError(f"Only submitted estimations can be approved (status: {estimation.status})")

        estimation.status = "approved"
        estimation.approved_by = user.id
        estimation.approved_at = datetime.utcnow()
        if estimation.enquiry_id:
            enquiry = self.db.query(SalesEnquiry).filter(SalesEnquiry.id == estimation.enquiry_id).first()
            if enquiry and enquiry.status in ("new", "assigned", "for_estimation"):
                enquiry.status = "estimated"

        self.audit.log_audit(
            "estimations", estimation.id, "APPROVE",
            old_values={"status": "submitted"}, new_values={"status": "approved"},
            user=user, case_id=estimation.case_id, business_reason=notes
        )
        self.db.commit()
        self.db.refresh(estimation)
        return estimation

    def reject(self, estimation_id: int, user: User, reason: Optional[str] = None) -> Estimation:
        require_approver(user, "estimations")
        estimation = self.get_estimation(estimation_id)
        if estimation.status != "submitted":
            raise BusinessLogicError(f"Only submitted estimations can be rejected (status: {estimation.status})")

        estimation.status = "rejected"
        self.audit.log_audit(
            "estimations", estimation.id, "REJECT",
            old_values={"status": "submitted"}, new_values={"status": "rejected"},
            user=user, case_id=estimation.case_id, business_reason=reason
        )
        self.db.commit()
        self.db.refresh(estimation)
        return estimation


class QuotationService:
    """Service for customer quotations"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)
        self.numbers = DocumentNumberService(db)

    def get_quotation(self, quotation_id: int) -> Quotation:
        quotation = self.db.query(Quotation).filter(Quotation.id == quotation_id).first()
        if not quotation:
            raise NotFoundError(f"Quotation {quotation_id} not found")
        return quotation

    def list_quotations(
        self,
        status: Optional[str] = None,
        case_id: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Quotation], int]:
        query = self.db.query(Quotation)
        if status:
            query = query.filter(Quotation.status == status)
        if case_id:
            query = query.filter(Quotation.case_id == case_id)
        total = query.count()
        items = query.order_by(desc(Quotation.created_at), desc(Quotation.id)) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, total

    def create_from_estimation(self, estimation_id: int, data: Dict[str, Any], user: User) -> Quotation:
        estimation = self.db.query(Estimation).filter(Estimation.id == estimation_id).first()
        if not estimation:
            raise NotFoundError(f"Estimation {estimation_id} not found")
        if estimation.status != "approved":
            raise BusinessLogicError("Quotations can only be created from approved estimations")
        if self.db.query(Quotation).filter(Quotation.estimation_id == estimation.id).first():
            raise BusinessLogicError(f"Estimation {estimation.estimation_number} already has a quotation")

        today = date.today()
        tax_rate = Decimal(str(data.get("tax_rate") if data.get("tax_rate") is not None else settings.DEFAULT_TAX_RATE))
        total = to_money(estimation.total_final_price)
        tax = (total * tax_rate / 100).quantize(CENT)

        quotation = Quotation(
            quotation_number=self.numbers.next_number(DocumentType.QUOTATION),
            estimation_id=estimation.id,
            case_id=estimation.case_id,
            quotation_date=today,
            valid_until=data.get("valid_until") or today + timedelta(days=settings.QUOTATION_VALIDITY_DAYS),
            total_amount=total,
            tax_rate=tax_rate,
            total_tax=tax,
            grand_total=total + tax,
            status="draft",
            created_by=user.id,
        )
        for field, default in DEFAULT_TERMS.items():
            setattr(quotation, field, data.get(field) or default)
        self.db.add(quotation)
        self.db.flush()

        for item in estimation.items:
            self.db.add(QuotationItem(
                quotation_id=quotation.id,
                product_id=item.product_id,
                description=item.product.name if item.product else None,
                quantity=item.quantity,
                rate=item.discounted_price,
                amount=item.final_price,
            ))

        self.audit.log_audit(
            "quotations", quotation.id, "CREATE",
            new_values={"quotation_number": quotation.quotation_number, "grand_total": quotation.grand_total},
            user=user, case_id=quotation.case_id
        )
        self.db.commit()
        self.db.refresh(quotation)
        logger.info(f"Quotation {quotation.quotation_number} created from {estimation.estimation_number}")
        return quotation

    def update_quotation(
        self, quotation_id: int, data: Dict[str, Any], user: User, ip_address: Optional[str] = None
    ) -> Quotation:
        """Update terms or totals; a changed grand total is recorded as a scope change"""
        quotation = self.get_quotation(quotation_id)
        if quotation.status not in ("draft", "sent"):
            raise BusinessLogicError(f"Quotation {quotation.quotation_number} is {quotation.status}")

        fields = ("valid_until", "grand_total", "tax_rate") + tuple(DEFAULT_TERMS)
        changes = {k: v for k, v in data.items() if k in fields and v is not None}
        if not changes:
            raise ValidationError("No updatable fields supplied")

        old_values = {k: getattr(quotation, k) for k in changes}
        old_values["grand_total"] = quotation.grand_total

        if "tax_rate" in changes:
            quotation.tax_rate = Decimal(str(changes["tax_rate"]))
            quotation.total_tax = (to_money(quotation.total_amount) * quotation.tax_rate / 100).quantize(CENT)
            quotation.grand_total = to_money(quotation.total_amount) + quotation.total_tax
        if "grand_total" in changes:
            quotation.grand_total = to_money(changes["grand_total"])
        for field in ("valid_until",) + tuple(DEFAULT_TERMS):
            if field in changes:
                setattr(quotation, field, changes[field])

        new_values = {k: getattr(quotation, k) for k in old_values}
        case = self.db.query(Case).filter(Case.id == quotation.case_id).first()
        self.audit.log_audit(
            "quotations", quotation.id, "UPDATE",
            old_values=old_values, new_values=new_values, user=user, ip_address=ip_address,
            case_id=quotation.case_id, case_number=case.case_number if case else None,
            business_reason=data.get("reason")
        )
        self.db.commit()
        self.db.refresh(quotation)
        return quotation

    def send(self, quotation_id: int, user: User) -> Quotation:
        quotation = self.get_quotation(quotation_id)
        if quotation.status != "draft":
            raise BusinessLogicError(f"Only draft quotations can be sent (status: {quotation.status})")
        quotation.status = "sent"
        self.audit.log_audit(
            "quotations", quotation.id, "UPDATE",
            old_values={"status": "draft"}, new_values={"status": "sent"},
            user=user, case_id=quotation.case_id
        )
        self.db.commit()
        self.db.refresh(quotation)
        return quotation

    def approve(self, quotation_id: int, user: User, notes: Optional[str] = None) -> Quotation:
        require_approver(user, "quotations")
        quotation = self.get_quotation(quotation_id)
        if quotation.status not in ("draft", "sent"):
            raise BusinessLogicError(f"Quotation {quotation.quotation_number} is {quotation.status}")

        old_status = quotation.status
        quotation.status = "approved"
        quotation.approved_by = user.id
        quotation.approved_at = datetime.utcnow()

        case = self.db.query(Case).filter(Case.id == quotation.case_id).first()
        if case and case.current_state == "estimation":
            CaseWorkflowService(self.db).transition_case(
                case.id, "quotation", user, notes=f"Quotation {quotation.quotation_number} approved",
                enforce_approval=False, commit=False
            )
        if case and case.enquiry is not None and case.enquiry.status not in ("closed", "converted"):
            case.enquiry.status = "quoted"

        self.audit.log_audit(
            "quotations", quotation.id, "APPROVE",
            old_values={"status": old_status}, new_values={"status": "approved"},
            user=user, case_id=quotation.case_id, business_reason=notes
        )
        self.db.commit()
        self.db.refresh(quotation)
        return quotation

    def reject(self, quotation_id: int, user: User, reason: Optional[str] = None) -> Quotation:
        require_approver(user, "quotations")
        quotation = self.get_quotation(quotation_id)
        if quotation.status not in ("draft", "sent"):
            raise BusinessLogicError(f"Quotation {quotation.quotation_number} is {quotation.status}")

        old_status = quotation.status
        quotation.status = "rejected"
        self.audit.log_audit(
            "quotations", quotation.id, "REJECT",
            old_values={"status": old_status}, new_values={"status": "rejected"},
            user=user, case_id=quotation.case_id, business_reason=reason
        )
        self.db.commit()
        self.db.refresh(quotation)
        return quotation


class SalesOrderService:
    """Service for sales orders"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)
        self.numbers = DocumentNumberService(db)

    def get_sales_order(self, order_id: int) -> SalesOrder:
        order = self.db.query(SalesOrder).filter(SalesOrder.id == order_id).first()
        if not order:
            raise NotFoundError(f"Sales order {order_id} not found")
        return order

    def list_sales_orders(
        self,
        status: Optional[str] = None,
        case_id: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[SalesOrder], int]:
        query = self.db.query(SalesOrder)
        if status:
            query = query.filter(SalesOrder.status == status)
        if case_id:
            query = query.filter(SalesOrder.case_id == case_id)
        total = query.count()
        items = query.order_by(desc(SalesOrder.created_at), desc(SalesOrder.id)) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, total

    def create_from_quotation(self, quotation_id: int, data: Dict[str, Any], user: User) -> SalesOrder:
        quotation = self.db.query(Quotation).filter(Quotation.id == quotation_id).first()
        if not quotation:
            raise NotFoundError(f"Quotation {quotation_id} not found")
        if quotation.status != "approved":
            raise BusinessLogicError("Sales orders can only be created from approved quotations")
        existing = self.db.query(SalesOrder).filter(
            SalesOrder.quotation_id == quotation.id, SalesOrder.status != "archived"
        ).first()
        if existing:
            raise BusinessLogicError(
                f"Quotation {quotation.quotation_number} already has sales order {existing.sales_order_number}"
            )

        total = to_money(quotation.grand_total)
        advance = to_money(data.get("advance_amount"))
        if advance < 0 or advance > total:
            raise ValidationError("Advance amount must be between zero and the order total")

        case = self.db.query(Case).filter(Case.id == quotation.case_id).first()
        client_address = case.client.address if case and case.client else None

        order = SalesOrder(
            sales_order_number=self.numbers.next_number(DocumentType.SALES_ORDER),
            quotation_id=quotation.id,
            case_id=quotation.case_id,
            order_date=data.get("order_date") or date.today(),
            expected_delivery_date=data.get("expected_delivery_date"),
            customer_po_number=data.get("customer_po_number"),
            customer_po_date=data.get("customer_po_date"),
            billing_address=data.get("billing_address") or client_address,
            shipping_address=data.get("shipping_address") or client_address,
            total_amount=total,
            advance_amount=advance,
            balance_amount=total - advance,
            payment_terms=quotation.payment_terms,
            delivery_terms=quotation.delivery_terms,
            warranty_terms=quotation.warranty_terms,
            production_priority=data.get("production_priority") or (case.priority if case else "medium"),
            special_instructions=data.get("special_instructions"),
            status="draft",
            created_by=user.id,
        )
        self.db.add(order)
        self.db.flush()

        for item in quotation.items:
            self.db.add(SalesOrderItem(
                sales_order_id=order.id,
                product_id=item.product_id,
                description=item.description,
                quantity=item.quantity,
                rate=item.rate,
                amount=item.amount,
            ))

        self.audit.log_audit(
            "sales_orders", order.id, "CREATE",
            new_values={"sales_order_number": order.sales_order_number, "total_amount": total,
                        "advance_amount": advance},
            user=user, case_id=order.case_id, case_number=case.case_number if case else None
        )
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"Sales order {order.sales_order_number} created from {quotation.quotation_number}")
        return order

    def confirm(self, order_id: int, user: User) -> SalesOrder:
        order = self.get_sales_order(order_id)
        if order.status != "draft":
            raise BusinessLogicError(f"Only draft sales orders can be confirmed (status: {order.status})")

        order.status = "confirmed"
        order.confirmed_by = user.id
        order.confirmed_at = datetime.utcnow()

        case = self.db.query(Case).filter(Case.id == order.case_id).first()
        if case and case.current_state == "quotation":
            CaseWorkflowService(self.db).transition_case(
                case.id, "order", user, notes=f"Sales order {order.sales_order_number} confirmed",
                enforce_approval=False, commit=False
            )
        if case and case.enquiry is not None and case.enquiry.status != "closed":
            case.enquiry.status = "converted"

        self.audit.log_audit(
            "sales_orders", order.id, "UPDATE",
            old_values={"status": "draft"}, new_values={"status": "confirmed"},
            user=user, case_id=order.case_id
        )
        self.db.commit()
        self.db.refresh(order)
        return order

    def update_status(self, order_id: int, status: str, user: User) -> SalesOrder:
        order = self.get_sales_order(order_id)
        if status == "confirmed":
            return self.confirm(order_id, user)
        if status not in SALES_ORDER_TRANSITIONS.get(order.status, ()):
            raise BusinessLogicError(f"Cannot move sales order from '{order.status}' to '{status}'")

        old_status = order.status
        order.status = status
        self.audit.log_audit(
            "sales_orders", order.id, "UPDATE",
            old_values={"status": old_status}, new_values={"status": status},
            user=user, case_id=order.case_id
        )
        self.db.commit()
        self.db.refresh(order)
        return order

"""
Purchasing Services
Vendors, purchase requisitions, purchase orders and goods receipt notes
"""
import json
import logging
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc, or_
from sqlalchemy.orm import Session

from vtria_erp.core.config import settings
from vtria_erp.core.exceptions import (
    BusinessLogicError, InsufficientPermissionsError, NotFoundError, ValidationError
)
from vtria_erp.models.case import Case
from vtria_erp.models.inventory import Product, Warehouse
from vtria_erp.models.purchasing import (
    GoodsReceiptNote, GRNItem, PurchaseOrder, PurchaseOrderItem, PurchaseRequisition,
    PurchaseRequisitionItem, Vendor
)
from vtria_erp.models.user import User
from vtria_erp.services.audit import AuditService
from vtria_erp.services.document_numbers import DocumentNumberService, DocumentType
from vtria_erp.services.inventory import InventoryService

logger = logging.getLogger(__name__)

VENDOR_FIELDS = ("vendor_name", "contact_person", "email", "phone", "address", "gstin", "payment_terms", "status")

PR_TRANSITIONS = {
    "draft": ("submitted",),
    "submitted": ("approved", "rejected"),
    "rejected": ("draft",),
    "approved": (),
}

PO_APPROVER_ROLES = ("director", "admin", "accounts")
RECEIVABLE_PO_STATUSES = ("approved", "partially_received")
CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


def to_decimal(value: Any) -> Decimal:
    return Decimal(str(value or 0))


class VendorService:
    """Service for vendor master data"""

    def __init__(self, db: Session):
        self.db = db

    def list_vendors(
        self, search: Optional[str] = None, status: Optional[str] = "active", page: int = 1, limit: int = 50
    ) -> Tuple[List[Vendor], int]:
        query = self.db.query(Vendor)
        if status:
            query = query.filter(Vendor.status == status)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(Vendor.vendor_name.ilike(term), Vendor.contact_person.ilike(term)))
        total = query.count()
        items = query.order_by(Vendor.vendor_name).offset((page - 1) * limit).limit(limit).all()
        return items, total

    def get_vendor(self, vendor_id: int) -> Vendor:
        vendor = self.db.query(Vendor).filter(Vendor.id == vendor_id).first()
        if not vendor:
            raise NotFoundError(f"Vendor {vendor_id} not found")
        return vendor

    def create_vendor(self, data: Dict[str, Any]) -> Vendor:
        values = {k: v for k, v in data.items() if k in VENDOR_FIELDS and v is not None}
        if not values.get("vendor_name"):
            raise ValidationError("vendor_name is required")
        vendor = Vendor(**values)
        self.db.add(vendor)
        self.db.commit()
        self.db.refresh(vendor)
        return vendor

    def update_vendor(self, vendor_id: int, data: Dict[str, Any]) -> Vendor:
        vendor = self.get_vendor(vendor_id)
        for field, value in data.items():
            if field in VENDOR_FIELDS and value is not None:
                setattr(vendor, field, value)
        self.db.commit()
        self.db.refresh(vendor)
        return vendor

    def delete_vendor(self, vendor_id: int) -> Vendor:
        vendor = self.get_vendor(vendor_id)
        vendor.status = "inactive"
        self.db.commit()
        return vendor


class PurchaseRequisitionService:
    """Service for purchase requisitions"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)
        self.numbers = DocumentNumberService(db)

    def get_requisition(self, pr_id: int) -> PurchaseRequisition:
        requisition = self.db.query(PurchaseRequisition).filter(PurchaseRequisition.id == pr_id).first()
        if not requisition:
            raise NotFoundError(f"Purchase requisition {pr_id} not found")
        return requisition

    def list_requisitions(
        self, status: Optional[str] = None, case_id: Optional[int] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[PurchaseRequisition], int]:
        query = self.db.query(PurchaseRequisition)
        if status:
            query = query.filter(PurchaseRequisition.status == status)
        if case_id:
            query = query.filter(PurchaseRequisition.case_id == case_id)
        total = query.count()
        items = query.order_by(desc(PurchaseRequisition.created_at), desc(PurchaseRequisition.id)) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, total

    def _case_number(self, case_id: Optional[int]) -> Optional[str]:
        if not case_id:
            return None
        case = self.db.query(Case).filter(Case.id == case_id).first()
        return case.case_number if case else None

    def create_requisition(self, data: Dict[str, Any], user: User) -> PurchaseRequisition:
        items = data.get("items") or []
        if not items:
            raise ValidationError("A purchase requisition needs at least one item")
        if data.get("case_id") and not self.db.query(Case).filter(Case.id == data["case_id"]).first():
            raise NotFoundError(f"Case {data['case_id']} not found")
        if data.get("vendor_id"):
            VendorService(self.db).get_vendor(data["vendor_id"])

        requisition = PurchaseRequisition(
            pr_number=self.numbers.next_number(DocumentType.PURCHASE_REQUISITION),
            case_id=data.get("case_id"),
            vendor_id=data.get("vendor_id"),
            pr_date=data.get("pr_date") or date.today(),
            notes=data.get("notes"),
            status="draft",
            created_by=user.id,
        )
        self.db.add(requisition)
        self.db.flush()

        total = Decimal("0")
        for item in items:
            if not self.db.query(Product).filter(Product.id == item.get("product_id")).first():
                raise NotFoundError(f"Product {item.get('product_id')} not found")
            quantity = to_decimal(item.get("quantity"))
            if quantity <= 0:
                raise ValidationError("Quantity must be greater than zero")
            price = to_money(item.get("estimated_price"))
            self.db.add(PurchaseRequisitionItem(
                pr_id=requisition.id, product_id=item["product_id"], quantity=quantity,
                estimated_price=price, notes=item.get("notes"),
            ))
            total += quantity * price
        requisition.total_amount = total.quantize(CENT)

        self.audit.log_audit(
            "purchase_requisitions", requisition.id, "CREATE",
            new_values={"pr_number": requisition.pr_number, "total_amount": requisition.total_amount},
            user=user, case_id=requisition.case_id, case_number=self._case_number(requisition.case_id)
        )
        self.db.commit()
        self.db.refresh(requisition)
        return requisition

    def update_status(
        self, pr_id: int, status: str, user: User, notes: Optional[str] = None
    ) -> PurchaseRequisition:
        requisition = self.get_requisition(pr_id)
        allowed = PR_TRANSITIONS.get(requisition.status, ())
        if status not in allowed:
            raise BusinessLogicError(
                f"Cannot move requisition from '{requisition.status}' to '{status}'. "
                f"Valid transitions: {', '.join(allowed) if allowed else 'none'}"
            )
        if status in ("approved", "rejected") and user.role not in PO_APPROVER_ROLES:
            raise InsufficientPermissionsError("You are not allowed to approve purchase requisitions")

        old_status = requisition.status
        requisition.status = status
        if status == "approved":
            requisition.approved_by = user.id
            requisition.approved_at = datetime.utcnow()

        action = {"approved": "APPROVE", "rejected": "REJECT"}.get(status, "UPDATE")
        self.audit.log_audit(
            "purchase_requisitions", requisition.id, action,
            old_values={"status": old_status}, new_values={"status": status},
            user=user, case_id=requisition.case_id, business_reason=notes
        )
        self.db.commit()
        self.db.refresh(requisition)
        return requisition

    def update_total(
        self, pr_id: int, total_amount: Any, user: User, reason: Optional[str] = None,
        ip_address: Optional[str] = None
    ) -> PurchaseRequisition:
        """Change the requisition value; the audit trail records the scope change"""
        requisition = self.get_requisition(pr_id)
        if requisition.status == "approved":
            raise BusinessLogicError("Approved requisitions cannot be changed")

        old_total = requisition.total_amount
        requisition.total_amount = to_money(total_amount)
        self.audit.log_audit(
            "purchase_requisitions", requisition.id, "UPDATE",
            old_values={"total_amount": old_total}, new_values={"total_amount": requisition.total_amount},
            user=user, ip_address=ip_address, case_id=requisition.case_id,
            case_number=self._case_number(requisition.case_id), business_reason=reason
        )
        self.db.commit()
        self.db.refresh(requisition)
        return requisition


class PurchaseOrderService:
    """Service for purchase orders"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)
        self.numbers = DocumentNumberService(db)

    def get_purchase_order(self, po_id: int) -> PurchaseOrder:
        order = self.db.query(PurchaseOrder).filter(PurchaseOrder.id == po_id).first()
        if not order:
            raise NotFoundError(f"Purchase order {po_id} not found")
        return order

    def list_purchase_orders(
        self, status: Optional[str] = None, vendor_id: Optional[int] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[PurchaseOrder], int]:
        query = self.db.query(PurchaseOrder)
        if status:
            query = query.filter(PurchaseOrder.status == status)
        if vendor_id:
            query = query.filter(PurchaseOrder.vendor_id == vendor_id)
        total = query.count()
        items = query.order_by(desc(PurchaseOrder.created_at), desc(PurchaseOrder.id)) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, total

    def create_purchase_order(self, data: Dict[str, Any], user: User) -> PurchaseOrder:
        vendor = VendorService(self.db).get_vendor(data.get("vendor_id"))
        items = data.get("items") or []
        if not items:
            raise ValidationError("A purchase order needs at least one item")
        # Receipts are matched to order lines by product
        product_ids = [item.get("product_id") for item in items]
        duplicates = sorted({pid for pid in product_ids if product_ids.count(pid) > 1})
        if duplicates:
            raise ValidationError(
                "Each product may appear only once on a purchase order",
                {"duplicate_product_ids": duplicates}
            )

        requisition = None
        if data.get("requisition_id"):
            requisition = PurchaseRequisitionService(self.db).get_requisition(data["requisition_id"])
            if requisition.status != "approved":
                raise BusinessLogicError("Purchase orders can only be raised against approved requisitions")

        tax_rate = to_decimal(data.get("tax_rate") if data.get("tax_rate") is not None else settings.DEFAULT_TAX_RATE)
        order = PurchaseOrder(
            po_number=self.numbers.next_number(DocumentType.PURCHASE_ORDER),
            vendor_id=vendor.id,
            requisition_id=requisition.id if requisition else None,
            case_id=data.get("case_id") or (requisition.case_id if requisition else None),
            po_date=data.get("po_date") or date.today(),
            expected_delivery_date=data.get("expected_delivery_date"),
            tax_rate=tax_rate,
            notes=data.get("notes"),
            status="draft",
            created_by=user.id,
        )
        self.db.add(order)
        self.db.flush()

        subtotal = Decimal("0")
        for item in items:
            if not self.db.query(Product).filter(Product.id == item.get("product_id")).first():
                raise NotFoundError(f"Product {item.get('product_id')} not found")
            quantity = to_decimal(item.get("quantity"))
            if quantity <= 0:
                raise ValidationError("Quantity must be greater than zero")
            unit_price = to_money(item.get("unit_price"))
            amount = (quantity * unit_price).quantize(CENT)
            self.db.add(PurchaseOrderItem(
                po_id=order.id, product_id=item["product_id"], quantity=quantity,
                unit_price=unit_price, amount=amount,
            ))
            subtotal += amount

        order.subtotal = subtotal
        order.tax_amount = (subtotal * tax_rate / 100).quantize(CENT)
        order.total_amount = order.subtotal + order.tax_amount

        self.audit.log_audit(
            "purchase_orders", order.id, "CREATE",
            new_values={"po_number": order.po_number, "vendor_id": vendor.id, "total_amount": order.total_amount},
            user=user, case_id=order.case_id
        )
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"Purchase order {order.po_number} created for {vendor.vendor_name}")
        return order

    def approve(self, po_id: int, user: User) -> PurchaseOrder:
        if user.role not in PO_APPROVER_ROLES:
            raise InsufficientPermissionsError("You are not allowed to approve purchase orders")
        order = self.get_purchase_order(po_id)
        if order.status != "draft":
            raise BusinessLogicError(f"Only draft purchase orders can be approved (status: {order.status})")

        order.status = "approved"
        order.approved_by = user.id
        order.approved_at = datetime.utcnow()
        self.audit.log_audit(
            "purchase_orders", order.id, "APPROVE",
            old_values={"status": "draft"}, new_values={"status": "approved"},
            user=user, case_id=order.case_id
        )
        self.db.commit()
        self.db.refresh(order)
        return order

    def cancel(self, po_id: int, user: User, reason: Optional[str] = None) -> PurchaseOrder:
        order = self.get_purchase_order(po_id)
        if order.status not in ("draft", "approved"):
            raise BusinessLogicError(f"Purchase order {order.po_number} cannot be cancelled ({order.status})")
        old_status = order.status
        order.status = "cancelled"
        self.audit.log_audit(
            "purchase_orders", order.id, "UPDATE",
            old_values={"status": old_status}, new_values={"status": "cancelled"},
            user=user, case_id=order.case_id, business_reason=reason
        )
        self.db.commit()
        self.db.refresh(order)
        return order


class GRNService:
    """Service for goods receipt against purchase orders"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)
        self.numbers = DocumentNumberService(db)
        self.inventory = InventoryService(db)

    def _received_so_far(self, po_id: int) -> Dict[int, Decimal]:
        received: Dict[int, Decimal] = defaultdict(Decimal)
        rows = self.db.query(GRNItem.product_id, GRNItem.received_quantity).join(
            GoodsReceiptNote, GRNItem.grn_id == GoodsReceiptNote.id
        ).filter(
            GoodsReceiptNote.purchase_order_id == po_id,
            GoodsReceiptNote.status != "cancelled"
        ).all()
        for product_id, quantity in rows:
            received[product_id] += to_decimal(quantity)
        return received

    def validate_grn_against_po(self, po_id: int, vendor_id: int, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Check a proposed receipt against its purchase order; hard problems are errors, the rest warnings"""
        errors: List[str] = []
        warnings: List[str] = []

        order = self.db.query(PurchaseOrder).filter(PurchaseOrder.id == po_id).first()
        if not order:
            return {"is_valid": False, "errors": [f"Purchase order {po_id} not found"], "warnings": []}
        if order.status not in RECEIVABLE_PO_STATUSES:
            errors.append(f"Purchase order {order.po_number} is {order.status}; goods cannot be received")
        if order.vendor_id != vendor_id:
            errors.append("Vendor does not match the purchase order")
        if not items:
            errors.append("At least one item is required")

        po_items = {item.product_id: item for item in order.items}
        previously = self._received_so_far(order.id)
        variance_limit = Decimal(str(settings.PRICE_VARIANCE_PERCENT)) / 100

        for index, item in enumerate(items, start=1):
            product_id = item.get("product_id")
            po_item = po_items.get(product_id)
            if po_item is None:
                errors.append(f"Item {index}: product {product_id} is not on the purchase order")
                continue

            received = to_decimal(item.get("received_quantity"))
            if received <= 0:
                errors.append(f"Item {index}: received quantity must be greater than zero")
                continue

            ordered = to_decimal(po_item.quantity)
            if received + previously.get(product_id, Decimal("0")) > ordered:
                warnings.append(
                    f"Item {index}: over-receipt, {received + previously.get(product_id, Decimal('0'))} "
                    f"received against {ordered} ordered"
                )

            po_price = to_decimal(po_item.unit_price)
            if item.get("unit_price") is not None and po_price > 0:
                unit_price = to_decimal(item["unit_price"])
                if abs(unit_price - po_price) / po_price > variance_limit:
                    warnings.append(
                        f"Item {index}: price variance, {unit_price} against PO price {po_price}"
                    )

            accepted = to_decimal(item.get("accepted_quantity", received))
            rejected = to_decimal(item.get("rejected_quantity"))
            if accepted + rejected != received:
                warnings.append(
                    f"Item {index}: accepted ({accepted}) plus rejected ({rejected}) "
                    f"does not equal received ({received})"
                )

        return {"is_valid": not errors, "errors": errors, "warnings": warnings}

    def get_grn(self, grn_id: int) -> GoodsReceiptNote:
        grn = self.db.query(GoodsReceiptNote).filter(GoodsReceiptNote.id == grn_id).first()
        if not grn:
            raise NotFoundError(f"GRN {grn_id} not found")
        return grn

    def list_grns(
        self, po_id: Optional[int] = None, status: Optional[str] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[GoodsReceiptNote], int]:
        query = self.db.query(GoodsReceiptNote)
        if po_id:
            query = query.filter(GoodsReceiptNote.purchase_order_id == po_id)
        if status:
            query = query.filter(GoodsReceiptNote.status == status)
        total = query.count()
        items = query.order_by(desc(GoodsReceiptNote.created_at), desc(GoodsReceiptNote.id)) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, total

    def create_grn(self, data: Dict[str, Any], user: User) -> GoodsReceiptNote:
        po_id = data.get("purchase_order_id")
        vendor_id = data.get("vendor_id")
        items = data.get("items") or []

        validation = self.validate_grn_against_po(po_id, vendor_id, items)
        if not validation["is_valid"]:
            raise ValidationError("GRN validation failed", details={
                "errors": validation["errors"], "warnings": validation["warnings"]
            })

        for item in items:
            if not self.db.query(Warehouse).filter(Warehouse.id == item.get("warehouse_id")).first():
                raise NotFoundError(f"Warehouse {item.get('warehouse_id')} not found")

        order = self.db.query(PurchaseOrder).filter(PurchaseOrder.id == po_id).first()
        po_items = {item.product_id: item for item in order.items}

        grn = GoodsReceiptNote(
            grn_number=self.numbers.next_number(DocumentType.GOODS_RECEIPT_NOTE),
            purchase_order_id=order.id,
            vendor_id=vendor_id,
            grn_date=data.get("grn_date") or date.today(),
            lr_number=data.get("lr_number"),
            supplier_invoice_number=data.get("supplier_invoice_number"),
            supplier_invoice_date=data.get("supplier_invoice_date"),
            status="received",
            warnings=json.dumps(validation["warnings"]) if validation["warnings"] else None,
            received_by=user.id,
        )
        self.db.add(grn)
        self.db.flush()

        total = Decimal("0")
        for item in items:
            po_item = po_items[item["product_id"]]
            received = to_decimal(item["received_quantity"])
            accepted = to_decimal(item.get("accepted_quantity", received))
            rejected = to_decimal(item.get("rejected_quantity"))
            unit_price = to_money(item["unit_price"] if item.get("unit_price") is not None else po_item.unit_price)

            self.db.add(GRNItem(
                grn_id=grn.id,
                product_id=item["product_id"],
                warehouse_id=item["warehouse_id"],
                ordered_quantity=po_item.quantity,
                received_quantity=received,
                accepted_quantity=accepted,
                rejected_quantity=rejected,
                unit_price=unit_price,
                notes=item.get("notes"),
            ))
            total += accepted * unit_price

            if accepted > 0:
                self.inventory.add_stock(
                    item["product_id"], item["warehouse_id"], accepted, user=user,
                    reference_type="GRN", reference_id=grn.grn_number, commit=False
                )
        grn.total_amount = total.quantize(CENT)
        self.db.flush()

        order.status = self._po_receipt_status(order)
        self.audit.log_audit(
            "goods_receipt_notes", grn.id, "CREATE",
            new_values={"grn_number": grn.grn_number, "purchase_order_id": order.id,
                        "total_amount": grn.total_amount, "warnings": validation["warnings"]},
            user=user, case_id=order.case_id
        )
        self.db.commit()
        self.db.refresh(grn)
        logger.info(f"GRN {grn.grn_number} recorded against {order.po_number}; PO now {order.status}")
        return grn

    def _po_receipt_status(self, order: PurchaseOrder) -> str:
        received = self._received_so_far(order.id)
        complete = all(received.get(item.product_id, Decimal("0")) >= to_decimal(item.quantity) for item in order.items)
        return "completed" if complete else "partially_received"

    def verify(self, grn_id: int, user: User) -> GoodsReceiptNote:
        grn = self.get_grn(grn_id)
        if grn.status != "received":
            raise BusinessLogicError(f"Only received GRNs can be verified (status: {grn.status})")
        grn.status = "verified"
        grn.verified_by = user.id
        self.audit.log_audit(
            "goods_receipt_notes", grn.id, "UPDATE",
            old_values={"status": "received"}, new_values={"status": "verified"}, user=user
        )
        self.db.commit()
        self.db.refresh(grn)
        return grn

    def approve(self, grn_id: int, user: User) -> GoodsReceiptNote:
        if user.role not in PO_APPROVER_ROLES:
            raise InsufficientPermissionsError("You are not allowed to approve GRNs")
        grn = self.get_grn(grn_id)
        if grn.status != "verified":
            raise BusinessLogicError(f"Only verified GRNs can be approved (status: {grn.status})")
        grn.status = "approved"
        grn.approved_by = user.id
        self.audit.log_audit(
            "goods_receipt_notes", grn.id, "APPROVE",
            old_values={"status": "verified"}, new_values={"status": "approved"}, user=user
        )
        self.db.commit()
        self.db.refresh(grn)
        return grn

    def get_po_completion_status(self, po_id: int) -> Dict[str, Any]:
        order = self.db.query(PurchaseOrder).filter(PurchaseOrder.id == po_id).first()
        if not order:
            raise NotFoundError(f"Purchase order {po_id} not found")
        received = self._received_so_far(order.id)

        items = []
        total_ordered = Decimal("0")
        total_received = Decimal("0")
        counts = {"fully_received": 0, "partially_received": 0, "not_received": 0}
        for item in order.items:
            ordered = to_decimal(item.quantity)
            got = received.get(item.product_id, Decimal("0"))
            capped = min(got, ordered)
            total_ordered += ordered
            total_received += capped

            if got >= ordered:
                counts["fully_received"] += 1
            elif got > 0:
                counts["partially_received"] += 1
            else:
                counts["not_received"] += 1

            items.append({
                "product_id": item.product_id,
                "product_name": item.product.name if item.product else None,
                "ordered_quantity": float(ordered),
                "received_quantity": float(got),
                "pending_quantity": float(max(ordered - got, Decimal("0"))),
                "completion_percentage": round(float(capped / ordered * 100), 2) if ordered else 100.0,
            })

        return {
            "purchase_order_id": order.id,
            "po_number": order.po_number,
            "status": order.status,
            "items": items,
            "overall_percentage": round(float(total_received / total_ordered * 100), 2) if total_ordered else 100.0,
            **counts,
        }

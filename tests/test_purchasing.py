"""
Tests for purchasing, goods receipt and stock keeping
"""

import pytest
from decimal import Decimal

from vtria_erp.core.exceptions import (
    BusinessLogicError, InsufficientPermissionsError, NotFoundError, ValidationError
)
from vtria_erp.models.audit import AuditLog
from vtria_erp.models.inventory import StockLevel, StockMovement
from vtria_erp.models.purchasing import PurchaseOrder
from vtria_erp.services.inventory import InventoryService
from vtria_erp.services.purchasing import (
    GRNService, PurchaseOrderService, PurchaseRequisitionService, VendorService
)


@pytest.fixture
def vendor(db_session):
    return VendorService(db_session).create_vendor({"vendor_name": "Siemens Distributors", "gstin": "27AAACS0000A1Z5"})


@pytest.fixture
def draft_po(db_session, vendor, sample_product, admin):
    return PurchaseOrderService(db_session).create_purchase_order({
        "vendor_id": vendor.id,
        "items": [{"product_id": sample_product.id, "quantity": 10, "unit_price": 200000}],
    }, admin)


@pytest.fixture
def approved_po(db_session, draft_po, director):
    return PurchaseOrderService(db_session).approve(draft_po.id, director)


def grn_item(product, warehouse, received, **extra):
    item = {"product_id": product.id, "warehouse_id": warehouse.id, "received_quantity": received}
    item.update(extra)
    return item


def on_hand(db_session, product, warehouse):
    level = db_session.query(StockLevel).filter(
        StockLevel.product_id == product.id, StockLevel.warehouse_id == warehouse.id
    ).first()
    return float(level.quantity) if level else 0.0


class TestPurchaseOrders:
    """Purchase order creation and approval"""

    def test_totals_include_tax(self, draft_po):
        assert draft_po.status == "draft"
        assert draft_po.po_number.startswith("VESPL/PO/")
        assert float(draft_po.subtotal) == 2000000
        assert float(draft_po.tax_amount) == 360000
        assert float(draft_po.total_amount) == 2360000

    def test_needs_items(self, db_session, vendor, admin):
        with pytest.raises(ValidationError):
            PurchaseOrderService(db_session).create_purchase_order({"vendor_id": vendor.id, "items": []}, admin)

    def test_product_listed_twice_rejected(self, db_session, vendor, sample_product, admin):
        with pytest.raises(ValidationError) as exc_info:
            PurchaseOrderService(db_session).create_purchase_order({
                "vendor_id": vendor.id,
                "items": [
                    {"product_id": sample_product.id, "quantity": 5, "unit_price": 200000},
                    {"product_id": sample_product.id, "quantity": 5, "unit_price": 200000},
                ],
            }, admin)
        assert exc_info.value.details == {"duplicate_product_ids": [sample_product.id]}
        assert db_session.query(PurchaseOrder).count() == 0

    def test_unknown_vendor(self, db_session, sample_product, admin):
        with pytest.raises(NotFoundError):
            PurchaseOrderService(db_session).create_purchase_order(
                {"vendor_id": 999, "items": [{"product_id": sample_product.id, "quantity": 1, "unit_price": 1}]},
                admin
            )

    def test_technician_cannot_approve(self, db_session, draft_po, technician):
        with pytest.raises(InsufficientPermissionsError):
            PurchaseOrderService(db_session).approve(draft_po.id, technician)

    def test_approve_only_once(self, db_session, approved_po, director):
        assert approved_po.status == "approved"
        assert approved_po.approved_by == director.id
        with pytest.raises(BusinessLogicError):
            PurchaseOrderService(db_session).approve(approved_po.id, director)

    def test_po_against_unapproved_requisition(self, db_session, vendor, sample_product, admin):
        requisition = PurchaseRequisitionService(db_session).create_requisition(
            {"items": [{"product_id": sample_product.id, "quantity": 2, "estimated_price": 190000}]}, admin
        )
        with pytest.raises(BusinessLogicError):
            PurchaseOrderService(db_session).create_purchase_order({
                "vendor_id": vendor.id,
                "requisition_id": requisition.id,
                "items": [{"product_id": sample_product.id, "quantity": 2, "unit_price": 190000}],
            }, admin)


class TestRequisitions:
    """Requisition status flow and value changes"""

    def test_status_flow(self, db_session, sample_product, admin, director):
        service = PurchaseRequisitionService(db_session)
        requisition = service.create_requisition(
            {"items": [{"product_id": sample_product.id, "quantity": 2, "estimated_price": 190000}]}, admin
        )
        assert float(requisition.total_amount) == 380000

        with pytest.raises(BusinessLogicError):
            service.update_status(requisition.id, "approved", director)
        service.update_status(requisition.id, "submitted", admin)
        approved = service.update_status(requisition.id, "approved", director)

        assert approved.status == "approved"
        assert approved.approved_by == director.id

    def test_large_value_change_is_flagged(self, db_session, sample_product, admin):
        service = PurchaseRequisitionService(db_session)
        requisition = service.create_requisition(
            {"items": [{"product_id": sample_product.id, "quantity": 2, "estimated_price": 190000}]}, admin
        )

        service.update_total(requisition.id, 500000, admin, reason="Higher rated drive")

        entry = db_session.query(AuditLog).filter(
            AuditLog.table_name == "purchase_requisitions", AuditLog.action == "UPDATE"
        ).one()
        assert entry.approval_status == "pending"
        assert entry.business_reason == "Higher rated drive"


class TestGRNValidation:
    """Receipt checks against the purchase order"""

    def test_draft_po_cannot_receive(self, db_session, draft_po, vendor, sample_product, warehouses):
        result = GRNService(db_session).validate_grn_against_po(
            draft_po.id, vendor.id, [grn_item(sample_product, warehouses["main"], 1)]
        )
        assert result["is_valid"] is False
        assert "goods cannot be received" in result["errors"][0]

    def test_vendor_must_match(self, db_session, approved_po, sample_product, warehouses):
        result = GRNService(db_session).validate_grn_against_po(
            approved_po.id, 999, [grn_item(sample_product, warehouses["main"], 1)]
        )
        assert result["errors"] == ["Vendor does not match the purchase order"]

    def test_product_must_be_on_po(self, db_session, approved_po, vendor, warehouses):
        other = InventoryService(db_session).create_product({"product_code": "MCB-32", "name": "32A MCB"})
        result = GRNService(db_session).validate_grn_against_po(
            approved_po.id, vendor.id, [grn_item(other, warehouses["main"], 1)]
        )
        assert result["is_valid"] is False
        assert "not on the purchase order" in result["errors"][0]

    def test_received_quantity_must_be_positive(self, db_session, approved_po, vendor, sample_product, warehouses):
        result = GRNService(db_session).validate_grn_against_po(
            approved_po.id, vendor.id, [grn_item(sample_product, warehouses["main"], 0)]
        )
        assert result["is_valid"] is False

    def test_warnings_do_not_block(self, db_session, approved_po, vendor, sample_product, warehouses):
        result = GRNService(db_session).validate_grn_against_po(approved_po.id, vendor.id, [
            grn_item(sample_product, warehouses["main"], 12, unit_price=220000,
                     accepted_quantity=10, rejected_quantity=1)
        ])

        assert result["is_valid"] is True
        assert result["errors"] == []
        assert len(result["warnings"]) == 3
        assert "over-receipt" in result["warnings"][0]
        assert "price variance" in result["warnings"][1]
        assert "does not equal received" in result["warnings"][2]

    def test_price_within_tolerance(self, db_session, approved_po, vendor, sample_product, warehouses):
        result = GRNService(db_session).validate_grn_against_po(approved_po.id, vendor.id, [
            grn_item(sample_product, warehouses["main"], 5, unit_price=209000)
        ])
        assert result["warnings"] == []


class TestGoodsReceipt:
    """Recording receipts updates stock and the order"""

    def test_invalid_receipt_raises_with_details(self, db_session, draft_po, vendor, sample_product,
                                                 warehouses, admin):
        with pytest.raises(ValidationError) as exc_info:
            GRNService(db_session).create_grn({
                "purchase_order_id": draft_po.id,
                "vendor_id": vendor.id,
                "items": [grn_item(sample_product, warehouses["main"], 1)],
            }, admin)
        assert exc_info.value.details["errors"]
        assert on_hand(db_session, sample_product, warehouses["main"]) == 0

    def test_partial_then_complete_receipt(self, db_session, approved_po, vendor, sample_product, warehouses, admin):
        service = GRNService(db_session)

        first = service.create_grn({
            "purchase_order_id": approved_po.id, "vendor_id": vendor.id,
            "items": [grn_item(sample_product, warehouses["main"], 4)],
        }, admin)
        db_session.refresh(approved_po)
        assert first.status == "received"
        assert approved_po.status == "partially_received"
        assert on_hand(db_session, sample_product, warehouses["main"]) == 4

        completion = service.get_po_completion_status(approved_po.id)
        assert completion["overall_percentage"] == 40.0
        assert completion["partially_received"] == 1

        service.create_grn({
            "purchase_order_id": approved_po.id, "vendor_id": vendor.id,
            "items": [grn_item(sample_product, warehouses["main"], 6)],
        }, admin)
        db_session.refresh(approved_po)
        assert approved_po.status == "completed"
        assert on_hand(db_session, sample_product, warehouses["main"]) == 10
        assert service.get_po_completion_status(approved_po.id)["fully_received"] == 1

    def test_only_accepted_quantity_reaches_stock(self, db_session, approved_po, vendor, sample_product,
                                                  warehouses, admin):
        grn = GRNService(db_session).create_grn({
            "purchase_order_id": approved_po.id, "vendor_id": vendor.id,
            "items": [grn_item(sample_product, warehouses["site"], 5, accepted_quantity=3, rejected_quantity=2)],
        }, admin)

        assert on_hand(db_session, sample_product, warehouses["site"]) == 3
        assert float(grn.total_amount) == 600000
        movement = db_session.query(StockMovement).one()
        assert movement.reference_type == "GRN"
        assert movement.reference_id == grn.grn_number

    def test_verify_then_approve(self, db_session, approved_po, vendor, sample_product, warehouses, admin,
                                 technician):
        service = GRNService(db_session)
        grn = service.create_grn({
            "purchase_order_id": approved_po.id, "vendor_id": vendor.id,
            "items": [grn_item(sample_product, warehouses["main"], 1)],
        }, admin)

        with pytest.raises(BusinessLogicError):
            service.approve(grn.id, admin)
        service.verify(grn.id, technician)
        with pytest.raises(InsufficientPermissionsError):
            service.approve(grn.id, technician)
        assert service.approve(grn.id, admin).status == "approved"


class TestStock:
    """Stock levels and movements"""

    def test_add_stock_upserts_level(self, db_session, sample_product, warehouses):
        service = InventoryService(db_session)
        service.add_stock(sample_product.id, warehouses["main"].id, 2)
        service.add_stock(sample_product.id, warehouses["main"].id, Decimal("3.5"))

        levels = db_session.query(StockLevel).filter(StockLevel.product_id == sample_product.id).all()
        assert len(levels) == 1
        assert float(levels[0].quantity) == 5.5

    def test_issue_more_than_available(self, db_session, sample_product, warehouses):
        service = InventoryService(db_session)
        service.add_stock(sample_product.id, warehouses["main"].id, 2)
        with pytest.raises(BusinessLogicError) as exc_info:
            service.issue_stock(sample_product.id, warehouses["main"].id, 3)
        assert exc_info.value.message.startswith("Insufficient stock")

    def test_zero_quantity_rejected(self, db_session, sample_product, warehouses):
        with pytest.raises(ValidationError):
            InventoryService(db_session).add_stock(sample_product.id, warehouses["main"].id, 0)

    def test_transfer_between_warehouses(self, db_session, sample_product, warehouses):
        service = InventoryService(db_session)
        service.add_stock(sample_product.id, warehouses["main"].id, 5)

        levels = service.transfer_stock(sample_product.id, warehouses["main"].id, warehouses["site"].id, 2)

        assert float(levels["from"].quantity) == 3
        assert float(levels["to"].quantity) == 2
        items, total = service.get_movements(product_id=sample_product.id, movement_type="transfer")
        assert total == 1

    def test_transfer_to_same_warehouse_rejected(self, db_session, sample_product, warehouses):
        with pytest.raises(ValidationError):
            InventoryService(db_session).transfer_stock(
                sample_product.id, warehouses["main"].id, warehouses["main"].id, 1
            )

    def test_low_stock_uses_total_across_warehouses(self, db_session, sample_product, warehouses):
        service = InventoryService(db_session)
        assert [p["product_code"] for p in service.low_stock()] == ["VFD-75"]

        service.add_stock(sample_product.id, warehouses["main"].id, 2)
        service.add_stock(sample_product.id, warehouses["site"].id, 1)
        assert service.low_stock() == []

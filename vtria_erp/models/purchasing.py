"""
Purchasing Models
Vendors, purchase requisitions, purchase orders and goods receipt notes
"""
from sqlalchemy import Column, String, Integer, DateTime, Date, Text, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime

from vtria_erp.core.database import Base


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True)
    vendor_name = Column(String(150), nullable=False, index=True)
    contact_person = Column(String(100))
    email = Column(String(100))
    phone = Column(String(30))
    address = Column(Text)
    gstin = Column(String(20))
    payment_terms = Column(String(100))
    status = Column(String(20), default="active", index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PurchaseRequisition(Base):
    __tablename__ = "purchase_requisitions"

    id = Column(Integer, primary_key=True, index=True)
    pr_number = Column(String(40), unique=True, nullable=False, index=True)
    case_id = Column(Integer, ForeignKey("cases.id"), nullable=True, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True)
    pr_date = Column(Date, nullable=False)
    total_amount = Column(Numeric(15, 2), default=0)
    status = Column(String(20), default="draft", index=True)
    notes = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id"))
    approved_by = Column(Integer, ForeignKey("users.id"))
    approved_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    vendor = relationship("Vendor")
    items = relationship("PurchaseRequisitionItem", cascade="all, delete-orphan")


class PurchaseRequisitionItem(Base):
    __tablename__ = "purchase_requisition_items"

    id = Column(Integer, primary_key=True, index=True)
    pr_id = Column(Integer, ForeignKey("purchase_requisitions.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    estimated_price = Column(Numeric(15, 2), nullable=False)
    notes = Column(Text)


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id = Column(Integer, primary_key=True, index=True)
    po_number = Column(String(40), unique=True, nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False)
    requisition_id = Column(Integer, ForeignKey("purchase_requisitions.id"), nullable=True)
    case_id = Column(Integer, ForeignKey("cases.id"), nullable=True, index=True)
    po_date = Column(Date, nullable=False)
    expected_delivery_date = Column(Date)
    subtotal = Column(Numeric(15, 2), default=0)
    tax_rate = Column(Numeric(5, 2), default=18)
    tax_amount = Column(Numeric(15, 2), default=0)
    total_amount = Column(Numeric(15, 2), default=0)
    status = Column(String(20), default="draft", index=True)
    notes = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id"))
    approved_by = Column(Integer, ForeignKey("users.id"))
    approved_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    vendor = relationship("Vendor")
    items = relationship("PurchaseOrderItem", cascade="all, delete-orphan")


class PurchaseOrderItem(Base):
    __tablename__ = "purchase_order_items"

    id = Column(Integer, primary_key=True, index=True)
    po_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)

    product = relationship("Product")


class GoodsReceiptNote(Base):
    __tablename__ = "goods_receipt_notes"

    id = Column(Integer, primary_key=True, index=True)
    grn_number = Column(String(40), unique=True, nullable=False, index=True)
    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False)
    grn_date = Column(Date, nullable=False)
    lr_number = Column(String(60))
    supplier_invoice_number = Column(String(60))
    supplier_invoice_date = Column(Date)
    total_amount = Column(Numeric(15, 2), default=0)
    status = Column(String(20), default="received", index=True)
    warnings = Column(Text)
    received_by = Column(Integer, ForeignKey("users.id"))
    verified_by = Column(Integer, ForeignKey("users.id"))
    approved_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow)

    items = relationship("GRNItem", cascade="all, delete-orphan")
    purchase_order = relationship("PurchaseOrder")


class GRNItem(Base):
    __tablename__ = "grn_items"

    id = Column(Integer, primary_key=True, index=True)
    grn_id = Column(Integer, ForeignKey("goods_receipt_notes.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)
    ordered_quantity = Column(Numeric(12, 3), default=0)
    received_quantity = Column(Numeric(12, 3), nullable=False)
    accepted_quantity = Column(Numeric(12, 3), default=0)
    rejected_quantity = Column(Numeric(12, 3), default=0)
    unit_price = Column(Numeric(15, 2), nullable=False)
    notes = Column(Text)

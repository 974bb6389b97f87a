"""
Sales Models
Enquiries, estimations, quotations and sales orders
"""
from sqlalchemy import (
    Column, String, Integer, DateTime, Date, Text, Numeric, Boolean, ForeignKey
)
from sqlalchemy.orm import relationship
from datetime import datetime

from vtria_erp.core.database import Base


class SalesEnquiry(Base):
    __tablename__ = "sales_enquiries"

    id = Column(Integer, primary_key=True, index=True)
    enquiry_number = Column(String(40), unique=True, nullable=False, index=True)
    enquiry_date = Column(Date, nullable=False)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    project_name = Column(String(200), nullable=False)
    description = Column(Text)
    requirements = Column(Text)
    priority = Column(String(10), default="medium")
    estimated_value = Column(Numeric(15, 2))
    status = Column(String(20), default="new", index=True)
    assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True)
    enquiry_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    is_deleted = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = relationship("Client")
    history = relationship(
        "EnquiryStatusHistory", order_by="EnquiryStatusHistory.id", cascade="all, delete-orphan"
    )


class EnquiryStatusHistory(Base):
    __tablename__ = "enquiry_status_history"

    id = Column(Integer, primary_key=True, index=True)
    enquiry_id = Column(Integer, ForeignKey("sales_enquiries.id"), nullable=False, index=True)
    previous_status = Column(String(20))
    new_status = Column(String(20), nullable=False)
    comments = Column(Text)
    changed_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow)


class Estimation(Base):
    __tablename__ = "estimations"

    id = Column(Integer, primary_key=True, index=True)
    estimation_number = Column(String(40), unique=True, nullable=False, index=True)
    enquiry_id = Column(Integer, ForeignKey("sales_enquiries.id"), nullable=True)
    case_id = Column(Integer, ForeignKey("cases.id"), nullable=False, index=True)
    estimation_date = Column(Date, nullable=False)
    status = Column(String(20), default="draft", index=True)
    total_mrp = Column(Numeric(15, 2), default=0)
    total_discount = Column(Numeric(15, 2), default=0)
    total_final_price = Column(Numeric(15, 2), default=0)
    notes = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id"))
    approved_by = Column(Integer, ForeignKey("users.id"))
    approved_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    sections = relationship(
        "EstimationSection", order_by="EstimationSection.section_order", cascade="all, delete-orphan"
    )
    items = relationship("EstimationItem", cascade="all, delete-orphan")


class EstimationSection(Base):
    __tablename__ = "estimation_sections"

    id = Column(Integer, primary_key=True, index=True)
    estimation_id = Column(Integer, ForeignKey("estimations.id"), nullable=False, index=True)
    section_name = Column(String(100), nullable=False)
    section_order = Column(Integer, default=1)
    is_editable = Column(Boolean, default=True)


class EstimationItem(Base):
    __tablename__ = "estimation_items"

    id = Column(Integer, primary_key=True, index=True)
    estimation_id = Column(Integer, ForeignKey("estimations.id"), nullable=False, index=True)
    section_id = Column(Integer, ForeignKey("estimation_sections.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    mrp = Column(Numeric(15, 2), nullable=False)
    discount_percentage = Column(Numeric(5, 2), default=0)
    discounted_price = Column(Numeric(15, 2), nullable=False)
    final_price = Column(Numeric(15, 2), nullable=False)

    product = relationship("Product")


class Quotation(Base):
    __tablename__ = "quotations"

    id = Column(Integer, primary_key=True, index=True)
    quotation_number = Column(String(40), unique=True, nullable=False, index=True)
    estimation_id = Column(Integer, ForeignKey("estimations.id"), nullable=False, unique=True)
    case_id = Column(Integer, ForeignKey("cases.id"), nullable=False, index=True)
    quotation_date = Column(Date, nullable=False)
    valid_until = Column(Date)
    terms_conditions = Column(Text)
    delivery_terms = Column(Text)
    payment_terms = Column(Text)
    warranty_terms = Column(Text)
    total_amount = Column(Numeric(15, 2), default=0)
    tax_rate = Column(Numeric(5, 2), default=18)
    total_tax = Column(Numeric(15, 2), default=0)
    grand_total = Column(Numeric(15, 2), default=0)
    status = Column(String(20), default="draft", index=True)
    created_by = Column(Integer, ForeignKey("users.id"))
    approved_by = Column(Integer, ForeignKey("users.id"))
    approved_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship("QuotationItem", cascade="all, delete-orphan")


class QuotationItem(Base):
    __tablename__ = "quotation_items"

    id = Column(Integer, primary_key=True, index=True)
    quotation_id = Column(Integer, ForeignKey("quotations.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    description = Column(String(200))
    quantity = Column(Numeric(12, 3), nullable=False)
    rate = Column(Numeric(15, 2), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)


class SalesOrder(Base):
    __tablename__ = "sales_orders"

    id = Column(Integer, primary_key=True, index=True)
    sales_order_number = Column(String(40), unique=True, nullable=False, index=True)
    quotation_id = Column(Integer, ForeignKey("quotations.id"), nullable=False)
    case_id = Column(Integer, ForeignKey("cases.id"), nullable=False, index=True)
    order_date = Column(Date, nullable=False)
    expected_delivery_date = Column(Date)
    customer_po_number = Column(String(60))
    customer_po_date = Column(Date)
    billing_address = Column(Text)
    shipping_address = Column(Text)
    total_amount = Column(Numeric(15, 2), default=0)
    advance_amount = Column(Numeric(15, 2), default=0)
    balance_amount = Column(Numeric(15, 2), default=0)
    payment_terms = Column(Text)
    delivery_terms = Column(Text)
    warranty_terms = Column(Text)
    production_priority = Column(String(10), default="medium")
    special_instructions = Column(Text)
    status = Column(String(20), default="draft", index=True)
    created_by = Column(Integer, ForeignKey("users.id"))
    confirmed_by = Column(Integer, ForeignKey("users.id"))
    confirmed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship("SalesOrderItem", cascade="all, delete-orphan")


class SalesOrderItem(Base):
    __tablename__ = "sales_order_items"

    id = Column(Integer, primary_key=True, index=True)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    description = Column(String(200))
    quantity = Column(Numeric(12, 3), nullable=False)
    rate = Column(Numeric(15, 2), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)

"""
Purchasing schemas
"""
from typing import List, Optional
from decimal import Decimal
from pydantic import BaseModel, EmailStr, Field, ConfigDict
from datetime import date, datetime


class VendorBase(BaseModel):
    vendor_name: str = Field(..., min_length=1, max_length=150)
    contact_person: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    gstin: Optional[str] = Field(None, max_length=20)
    payment_terms: Optional[str] = None


class VendorCreate(VendorBase):
    pass


class VendorUpdate(BaseModel):
    vendor_name: Optional[str] = Field(None, min_length=1, max_length=150)
    contact_person: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    gstin: Optional[str] = None
    payment_terms: Optional[str] = None
    status: Optional[str] = Field(None, pattern="^(active|inactive)$")


class VendorResponse(VendorBase):
    id: int
    email: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RequisitionItemCreate(BaseModel):
    product_id: int
    quantity: Decimal = Field(..., gt=0)
    estimated_price: Decimal = Field(..., ge=0)
    notes: Optional[str] = None


class RequisitionCreate(BaseModel):
    case_id: Optional[int] = None
    vendor_id: Optional[int] = None
    pr_date: Optional[date] = None
    notes: Optional[str] = None
    items: List[RequisitionItemCreate] = Field(..., min_length=1)


class RequisitionStatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None


class RequisitionTotalUpdate(BaseModel):
    total_amount: Decimal = Field(..., ge=0)
    reason: Optional[str] = None


class RequisitionItemResponse(BaseModel):
    id: int
    product_id: int
    quantity: Decimal
    estimated_price: Decimal
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class RequisitionResponse(BaseModel):
    id: int
    pr_number: str
    case_id: Optional[int] = None
    vendor_id: Optional[int] = None
    pr_date: date
    total_amount: Decimal
    status: str
    notes: Optional[str] = None
    created_by: Optional[int] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: List[RequisitionItemResponse] = []

    model_config = ConfigDict(from_attributes=True)


class PurchaseOrderItemCreate(BaseModel):
    product_id: int
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)


class PurchaseOrderCreate(BaseModel):
    vendor_id: int
    requisition_id: Optional[int] = None
    case_id: Optional[int] = None
    po_date: Optional[date] = None
    expected_delivery_date: Optional[date] = None
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    notes: Optional[str] = None
    items: List[PurchaseOrderItemCreate] = Field(..., min_length=1)


class PurchaseOrderCancel(BaseModel):
    reason: Optional[str] = None


class PurchaseOrderItemResponse(BaseModel):
    id: int
    product_id: int
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class PurchaseOrderResponse(BaseModel):
    id: int
    po_number: str
    vendor_id: int
    requisition_id: Optional[int] = None
    case_id: Optional[int] = None
    po_date: date
    expected_delivery_date: Optional[date] = None
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    status: str
    notes: Optional[str] = None
    created_by: Optional[int] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: List[PurchaseOrderItemResponse] = []

    model_config = ConfigDict(from_attributes=True)


class GRNItemCreate(BaseModel):
    product_id: int
    warehouse_id: int
    received_quantity: Decimal = Field(..., gt=0)
    accepted_quantity: Optional[Decimal] = Field(None, ge=0)
    rejected_quantity: Optional[Decimal] = Field(None, ge=0)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None


class GRNCreate(BaseModel):
    purchase_order_id: int
    vendor_id: int
    grn_date: Optional[date] = None
    lr_number: Optional[str] = None
    supplier_invoice_number: Optional[str] = None
    supplier_invoice_date: Optional[date] = None
    items: List[GRNItemCreate] = Field(..., min_length=1)


class GRNValidationRequest(BaseModel):
    purchase_order_id: int
    vendor_id: int
    items: List[GRNItemCreate] = Field(..., min_length=1)


class GRNItemResponse(BaseModel):
    id: int
    product_id: int
    warehouse_id: int
    ordered_quantity: Decimal
    received_quantity: Decimal
    accepted_quantity: Decimal
    rejected_quantity: Decimal
    unit_price: Decimal
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class GRNResponse(BaseModel):
    id: int
    grn_number: str
    purchase_order_id: int
    vendor_id: int
    grn_date: date
    lr_number: Optional[str] = None
    supplier_invoice_number: Optional[str] = None
    supplier_invoice_date: Optional[date] = None
    total_amount: Decimal
    status: str
    warnings: Optional[str] = None
    received_by: Optional[int] = None
    verified_by: Optional[int] = None
    approved_by: Optional[int] = None
    created_at: Optional[datetime] = None
    items: List[GRNItemResponse] = []

    model_config = ConfigDict(from_attributes=True)

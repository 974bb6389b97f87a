"""
Sales schemas
Enquiries, estimations, quotations and sales orders
"""
from typing import List, Optional
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict
from datetime import date, datetime


class EnquiryCreate(BaseModel):
    client_id: int
    project_name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    requirements: Optional[str] = None
    priority: str = Field("medium", pattern="^(low|medium|high|urgent)$")
    estimated_value: Optional[Decimal] = Field(None, ge=0)
    assigned_to: Optional[int] = None
    enquiry_date: Optional[date] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "client_id": 1,
                "project_name": "MCC panel for water treatment plant",
                "requirements": "2 x 75kW VFD feeders",
                "priority": "high",
                "estimated_value": 1250000
            }
        }
    )


class EnquiryUpdate(BaseModel):
    project_name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    requirements: Optional[str] = None
    priority: Optional[str] = Field(None, pattern="^(low|medium|high|urgent)$")
    estimated_value: Optional[Decimal] = Field(None, ge=0)


class EnquiryStatusUpdate(BaseModel):
    status: str
    comments: Optional[str] = None


class EnquiryAssign(BaseModel):
    assigned_to: int


class EnquiryResponse(BaseModel):
    id: int
    enquiry_number: str
    enquiry_date: date
    client_id: int
    project_name: str
    description: Optional[str] = None
    requirements: Optional[str] = None
    priority: Optional[str] = None
    estimated_value: Optional[Decimal] = None
    status: str
    assigned_to: Optional[int] = None
    enquiry_by: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class EstimationCreate(BaseModel):
    enquiry_id: Optional[int] = None
    case_id: Optional[int] = None
    notes: Optional[str] = None


class EstimationItemCreate(BaseModel):
    section_id: int
    product_id: int
    quantity: Decimal = Field(..., gt=0)
    mrp: Optional[Decimal] = Field(None, ge=0)
    discount_percentage: Decimal = Field(Decimal("0"), ge=0, le=100)


class EstimationItemResponse(BaseModel):
    id: int
    section_id: int
    product_id: int
    quantity: Decimal
    mrp: Decimal
    discount_percentage: Decimal
    discounted_price: Decimal
    final_price: Decimal

    model_config = ConfigDict(from_attributes=True)


class EstimationSectionResponse(BaseModel):
    id: int
    section_name: str
    section_order: int
    is_editable: bool

    model_config = ConfigDict(from_attributes=True)


class EstimationResponse(BaseModel):
    id: int
    estimation_number: str
    enquiry_id: Optional[int] = None
    case_id: int
    estimation_date: date
    status: str
    total_mrp: Decimal
    total_discount: Decimal
    total_final_price: Decimal
    notes: Optional[str] = None
    created_by: Optional[int] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    sections: List[EstimationSectionResponse] = []
    items: List[EstimationItemResponse] = []

    model_config = ConfigDict(from_attributes=True)


class DecisionRequest(BaseModel):
    """Notes for approve; reason for reject"""
    notes: Optional[str] = None
    reason: Optional[str] = None


class QuotationCreate(BaseModel):
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    valid_until: Optional[date] = None
    terms_conditions: Optional[str] = None
    delivery_terms: Optional[str] = None
    payment_terms: Optional[str] = None
    warranty_terms: Optional[str] = None


class QuotationUpdate(QuotationCreate):
    grand_total: Optional[Decimal] = Field(None, ge=0)
    reason: Optional[str] = None


class QuotationItemResponse(BaseModel):
    id: int
    product_id: int
    description: Optional[str] = None
    quantity: Decimal
    rate: Decimal
    amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class QuotationResponse(BaseModel):
    id: int
    quotation_number: str
    estimation_id: int
    case_id: int
    quotation_date: date
    valid_until: Optional[date] = None
    terms_conditions: Optional[str] = None
    delivery_terms: Optional[str] = None
    payment_terms: Optional[str] = None
    warranty_terms: Optional[str] = None
    total_amount: Decimal
    tax_rate: Decimal
    total_tax: Decimal
    grand_total: Decimal
    status: str
    created_by: Optional[int] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: List[QuotationItemResponse] = []

    model_config = ConfigDict(from_attributes=True)


class SalesOrderCreate(BaseModel):
    order_date: Optional[date] = None
    expected_delivery_date: Optional[date] = None
    customer_po_number: Optional[str] = None
    customer_po_date: Optional[date] = None
    billing_address: Optional[str] = None
    shipping_address: Optional[str] = None
    advance_amount: Decimal = Field(Decimal("0"), ge=0)
    production_priority: Optional[str] = Field(None, pattern="^(low|medium|high|urgent)$")
    special_instructions: Optional[str] = None


class SalesOrderStatusUpdate(BaseModel):
    status: str


class SalesOrderItemResponse(QuotationItemResponse):
    pass


class SalesOrderResponse(BaseModel):
    id: int
    sales_order_number: str
    quotation_id: int
    case_id: int
    order_date: date
    expected_delivery_date: Optional[date] = None
    customer_po_number: Optional[str] = None
    customer_po_date: Optional[date] = None
    billing_address: Optional[str] = None
    shipping_address: Optional[str] = None
    total_amount: Decimal
    advance_amount: Decimal
    balance_amount: Decimal
    payment_terms: Optional[str] = None
    delivery_terms: Optional[str] = None
    warranty_terms: Optional[str] = None
    production_priority: Optional[str] = None
    special_instructions: Optional[str] = None
    status: str
    created_by: Optional[int] = None
    confirmed_by: Optional[int] = None
    confirmed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: List[SalesOrderItemResponse] = []

    model_config = ConfigDict(from_attributes=True)

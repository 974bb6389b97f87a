"""
Manufacturing schemas
"""
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict
from datetime import date, datetime


class WorkOrderCreate(BaseModel):
    case_id: int
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    sales_order_id: Optional[int] = None
    priority: Optional[str] = Field(None, pattern="^(low|medium|high|urgent)$")
    assigned_to: Optional[int] = None
    planned_start_date: Optional[date] = None
    planned_end_date: Optional[date] = None


class WorkOrderAssign(BaseModel):
    technician_id: int


class WorkOrderStatusUpdate(BaseModel):
    status: str


class WorkOrderResponse(BaseModel):
    id: int
    work_order_number: str
    case_id: int
    sales_order_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    priority: Optional[str] = None
    status: str
    assigned_to: Optional[int] = None
    planned_start_date: Optional[date] = None
    planned_end_date: Optional[date] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DeliveryNoteCreate(BaseModel):
    case_id: int
    sales_order_id: Optional[int] = None
    delivery_address: Optional[str] = None
    transporter: Optional[str] = None
    vehicle_number: Optional[str] = None


class DeliveryNoteResponse(DeliveryNoteCreate):
    id: int
    delivery_number: str
    status: str
    dispatched_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

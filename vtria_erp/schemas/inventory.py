"""
Inventory schemas
"""
from typing import Optional
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime


class ProductCreate(BaseModel):
    product_code: str = Field(..., min_length=1, max_length=40)
    name: str = Field(..., min_length=1, max_length=200)
    category: Optional[str] = None
    unit: str = "nos"
    mrp: Decimal = Field(Decimal("0"), ge=0)
    last_price: Decimal = Field(Decimal("0"), ge=0)
    reorder_level: Decimal = Field(Decimal("0"), ge=0)


class ProductUpdate(BaseModel):
    product_code: Optional[str] = Field(None, min_length=1, max_length=40)
    name: Optional[str] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    mrp: Optional[Decimal] = Field(None, ge=0)
    last_price: Optional[Decimal] = Field(None, ge=0)
    reorder_level: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None


class ProductResponse(ProductCreate):
    id: int
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class WarehouseCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=100)
    location_id: Optional[int] = None


class WarehouseResponse(WarehouseCreate):
    id: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class StockAdjustment(BaseModel):
    """Receive or issue stock in one warehouse"""
    product_id: int
    warehouse_id: int
    quantity: Decimal = Field(..., gt=0)
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    notes: Optional[str] = None


class StockTransfer(BaseModel):
    product_id: int
    from_warehouse_id: int
    to_warehouse_id: int
    quantity: Decimal = Field(..., gt=0)
    notes: Optional[str] = None


class StockLevelResponse(BaseModel):
    id: int
    product_id: int
    warehouse_id: int
    quantity: Decimal
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class StockMovementResponse(BaseModel):
    id: int
    product_id: int
    from_warehouse_id: Optional[int] = None
    to_warehouse_id: Optional[int] = None
    quantity: Decimal
    movement_type: str
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

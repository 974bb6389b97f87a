"""
Inventory Models
Products, warehouses, stock levels and stock movements
"""
from sqlalchemy import (
    Column, String, Integer, DateTime, Text, Numeric, Boolean, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime

from vtria_erp.core.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    product_code = Column(String(40), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    category = Column(String(60))
    unit = Column(String(20), default="nos")
    mrp = Column(Numeric(15, 2), default=0)
    last_price = Column(Numeric(15, 2), default=0)
    reorder_level = Column(Numeric(12, 3), default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Warehouse(Base):
    __tablename__ = "warehouses"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    location_id = Column(Integer, ForeignKey("office_locations.id"), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class StockLevel(Base):
    """On-hand quantity per product per warehouse"""
    __tablename__ = "stock_levels"
    __table_args__ = (UniqueConstraint("product_id", "warehouse_id"),)

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False, index=True)
    quantity = Column(Numeric(12, 3), nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = relationship("Product")
    warehouse = relationship("Warehouse")


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    from_warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=True)
    to_warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=True)
    quantity = Column(Numeric(12, 3), nullable=False)
    movement_type = Column(String(20), nullable=False, index=True)  # in, out, transfer
    reference_type = Column(String(20))
    reference_id = Column(String(40))
    notes = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

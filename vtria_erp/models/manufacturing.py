"""
Manufacturing Models
Work orders and delivery notes attached to cases
"""
from sqlalchemy import Column, String, Integer, DateTime, Date, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime

from vtria_erp.core.database import Base


class WorkOrder(Base):
    __tablename__ = "work_orders"

    id = Column(Integer, primary_key=True, index=True)
    work_order_number = Column(String(40), unique=True, nullable=False, index=True)
    case_id = Column(Integer, ForeignKey("cases.id"), nullable=False, index=True)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=True)
    title = Column(String(200), nullable=False)
    description = Column(Text)
    priority = Column(String(10), default="medium")
    status = Column(String(20), default="pending", index=True)
    assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True)
    planned_start_date = Column(Date)
    planned_end_date = Column(Date)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    technician = relationship("User", foreign_keys=[assigned_to])


class DeliveryNote(Base):
    __tablename__ = "delivery_notes"

    id = Column(Integer, primary_key=True, index=True)
    delivery_number = Column(String(40), unique=True, nullable=False, index=True)
    case_id = Column(Integer, ForeignKey("cases.id"), nullable=False, index=True)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=True)
    delivery_address = Column(Text)
    transporter = Column(String(100))
    vehicle_number = Column(String(30))
    status = Column(String(20), default="pending", index=True)
    dispatched_at = Column(DateTime)
    delivered_at = Column(DateTime)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

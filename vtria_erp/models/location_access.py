"""
Location and IP Access Control Models
Office geofences, employee location grants, IP rules and login attempts
"""
from sqlalchemy import (
    Column, String, Boolean, Integer, DateTime, Date, Text, Float, ForeignKey
)
from sqlalchemy.orm import relationship
from datetime import datetime

from vtria_erp.core.database import Base


class OfficeLocation(Base):
    __tablename__ = "office_locations"

    id = Column(Integer, primary_key=True, index=True)
    location_name = Column(String(100), nullable=False)
    address = Column(Text)
    city = Column(String(60))
    state = Column(String(60))
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    radius_meters = Column(Integer, nullable=False, default=100)
    location_type = Column(String(30), default="branch_office")
    timezone = Column(String(50), default="Asia/Kolkata")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class EmployeeLocationPermission(Base):
    """Grants an employee attendance and/or login rights at a location"""
    __tablename__ = "employee_location_permissions"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("office_locations.id"), nullable=False)
    permission_type = Column(String(20), nullable=False, default="both")  # attendance, login, both
    is_remote_work_authorized = Column(Boolean, default=False)
    remote_work_start_date = Column(Date)
    remote_work_end_date = Column(Date)
    granted_by = Column(Integer, ForeignKey("users.id"))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    location = relationship("OfficeLocation")
    employee = relationship("Employee")


class IPAccessRule(Base):
    __tablename__ = "ip_access_rules"

    id = Column(Integer, primary_key=True, index=True)
    rule_name = Column(String(100), nullable=False)
    ip_address = Column(String(45), nullable=False)
    subnet_mask = Column(String(45))  # prefix length ("24") or dotted mask
    access_type = Column(String(10), nullable=False, default="allow")
    location_id = Column(Integer, ForeignKey("office_locations.id"), nullable=True)
    description = Column(Text)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class LoginAttemptLog(Base):
    __tablename__ = "login_attempt_logs"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    ip_address = Column(String(45), index=True)
    user_agent = Column(String(255))
    latitude = Column(Float)
    longitude = Column(Float)
    location_id = Column(Integer, ForeignKey("office_locations.id"), nullable=True)
    attempt_status = Column(String(20), nullable=False, index=True)  # success, failed, blocked
    failure_reason = Column(String(200))
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

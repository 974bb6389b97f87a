"""
HR Models
Departments, employees, attendance and leave
"""
from sqlalchemy import (
    Column, String, Integer, DateTime, Date, Text, Numeric, Boolean, Float,
    ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime

from vtria_erp.core.database import Base


class Department(Base):
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    code = Column(String(20))
    description = Column(Text)
    head_employee_id = Column(Integer)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    employee_code = Column(String(20), unique=True, nullable=False, index=True)
    first_name = Column(String(60), nullable=False)
    last_name = Column(String(60), nullable=False)
    email = Column(String(100), unique=True, nullable=False)
    phone = Column(String(30))
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True)
    designation = Column(String(100))
    employee_type = Column(String(20), default="full_time")
    date_of_joining = Column(Date)
    reporting_manager_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    status = Column(String(20), default="active", index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    department = relationship("Department")
    reporting_manager = relationship("Employee", remote_side=[id])

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (UniqueConstraint("employee_id", "attendance_date"),)

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    attendance_date = Column(Date, nullable=False, index=True)
    check_in_time = Column(DateTime)
    check_in_location_id = Column(Integer, ForeignKey("office_locations.id"))
    check_in_latitude = Column(Float)
    check_in_longitude = Column(Float)
    check_in_distance_meters = Column(Float)
    check_out_time = Column(DateTime)
    check_out_location_id = Column(Integer, ForeignKey("office_locations.id"))
    check_out_latitude = Column(Float)
    check_out_longitude = Column(Float)
    check_out_distance_meters = Column(Float)
    total_hours = Column(Numeric(5, 2))
    is_late = Column(Boolean, default=False)
    late_minutes = Column(Integer, default=0)
    is_early_departure = Column(Boolean, default=False)
    early_departure_minutes = Column(Integer, default=0)
    validation_status = Column(String(20))
    attendance_status = Column(String(20), default="present")
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)


class LeaveType(Base):
    __tablename__ = "leave_types"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(10), unique=True, nullable=False)
    name = Column(String(60), nullable=False)
    annual_entitlement = Column(Numeric(5, 1), nullable=False, default=0)
    is_paid = Column(Boolean, default=True)
    is_active = Column(Boolean, default=True)


class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (UniqueConstraint("employee_id", "leave_type_id", "year"),)

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False)
    year = Column(Integer, nullable=False)
    entitled_days = Column(Numeric(5, 1), nullable=False, default=0)
    used_days = Column(Numeric(5, 1), nullable=False, default=0)
    pending_days = Column(Numeric(5, 1), nullable=False, default=0)

    leave_type = relationship("LeaveType")

    @property
    def available_days(self):
        return self.entitled_days - self.used_days - self.pending_days


class LeaveApplication(Base):
    __tablename__ = "leave_applications"

    id = Column(Integer, primary_key=True, index=True)
    application_number = Column(String(20), unique=True, nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_half_day = Column(Boolean, default=False)
    total_days = Column(Numeric(5, 1), nullable=False)
    reason = Column(Text)
    status = Column(String(20), default="pending", index=True)
    approved_by = Column(Integer, ForeignKey("users.id"))
    processed_at = Column(DateTime)
    approver_comments = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    leave_type = relationship("LeaveType")
    employee = relationship("Employee")

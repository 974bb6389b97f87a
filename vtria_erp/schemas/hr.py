"""
HR schemas
Departments, employees, attendance and leave
"""
from typing import Optional
from decimal import Decimal
from pydantic import BaseModel, EmailStr, Field, ConfigDict
from datetime import date, datetime


class DepartmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: Optional[str] = Field(None, max_length=20)
    description: Optional[str] = None
    head_employee_id: Optional[int] = None


class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    code: Optional[str] = None
    description: Optional[str] = None
    head_employee_id: Optional[int] = None
    is_active: Optional[bool] = None


class DepartmentResponse(DepartmentCreate):
    id: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class EmployeeBase(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=60)
    last_name: str = Field(..., min_length=1, max_length=60)
    email: EmailStr
    phone: Optional[str] = None
    department_id: Optional[int] = None
    designation: Optional[str] = None
    employee_type: str = Field("full_time", pattern="^(full_time|part_time|contract|intern)$")
    date_of_joining: Optional[date] = None
    reporting_manager_id: Optional[int] = None


class EmployeeCreate(EmployeeBase):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "first_name": "Asha",
                "last_name": "Rao",
                "email": "asha.rao@vtria.com",
                "department_id": 1,
                "designation": "Design Engineer",
                "date_of_joining": "2024-06-01"
            }
        }
    )


class EmployeeUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=60)
    last_name: Optional[str] = Field(None, min_length=1, max_length=60)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    department_id: Optional[int] = None
    designation: Optional[str] = None
    employee_type: Optional[str] = Field(None, pattern="^(full_time|part_time|contract|intern)$")
    date_of_joining: Optional[date] = None
    reporting_manager_id: Optional[int] = None
    status: Optional[str] = None


class EmployeeResponse(EmployeeBase):
    id: int
    employee_code: str
    email: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AttendanceRequest(BaseModel):
    employee_id: int
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    notes: Optional[str] = None


class AttendanceResponse(BaseModel):
    id: int
    employee_id: int
    attendance_date: date
    check_in_time: Optional[datetime] = None
    check_in_location_id: Optional[int] = None
    check_in_distance_meters: Optional[float] = None
    check_out_time: Optional[datetime] = None
    check_out_location_id: Optional[int] = None
    check_out_distance_meters: Optional[float] = None
    total_hours: Optional[Decimal] = None
    is_late: bool = False
    late_minutes: int = 0
    is_early_departure: bool = False
    early_departure_minutes: int = 0
    validation_status: Optional[str] = None
    attendance_status: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class LeaveTypeResponse(BaseModel):
    id: int
    code: str
    name: str
    annual_entitlement: Decimal
    is_paid: bool

    model_config = ConfigDict(from_attributes=True)


class LeaveBalanceResponse(BaseModel):
    id: int
    employee_id: int
    leave_type_id: int
    year: int
    entitled_days: Decimal
    used_days: Decimal
    pending_days: Decimal
    available_days: Decimal

    model_config = ConfigDict(from_attributes=True)


class LeaveApply(BaseModel):
    employee_id: int
    leave_type_id: int
    start_date: date
    end_date: date
    is_half_day: bool = False
    reason: Optional[str] = None


class LeaveProcess(BaseModel):
    action: str = Field(..., pattern="^(approve|reject)$")
    comments: Optional[str] = None


class LeaveCancel(BaseModel):
    employee_id: int


class LeaveApplicationResponse(BaseModel):
    id: int
    application_number: str
    employee_id: int
    leave_type_id: int
    start_date: date
    end_date: date
    is_half_day: bool
    total_days: Decimal
    reason: Optional[str] = None
    status: str
    approved_by: Optional[int] = None
    processed_at: Optional[datetime] = None
    approver_comments: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

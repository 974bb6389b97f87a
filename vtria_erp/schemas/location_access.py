"""
Location and IP access control schemas
"""
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator
from datetime import date, datetime


class OfficeLocationBase(BaseModel):
    location_name: str = Field(..., min_length=1, max_length=100)
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    radius_meters: int = Field(100, gt=0)
    location_type: str = Field("branch_office", pattern="^(head_office|branch_office|site|warehouse)$")
    timezone: str = "Asia/Kolkata"


class OfficeLocationCreate(OfficeLocationBase):
    pass


class OfficeLocationUpdate(BaseModel):
    location_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    radius_meters: Optional[int] = Field(None, gt=0)
    location_type: Optional[str] = Field(None, pattern="^(head_office|branch_office|site|warehouse)$")
    timezone: Optional[str] = None
    is_active: Optional[bool] = None


class OfficeLocationResponse(OfficeLocationBase):
    id: int
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LocationPermissionCreate(BaseModel):
    employee_id: int
    location_id: int
    permission_type: str = Field("both", pattern="^(attendance|login|both)$")
    is_remote_work_authorized: bool = False
    remote_work_start_date: Optional[date] = None
    remote_work_end_date: Optional[date] = None

    @model_validator(mode="after")
    def check_remote_dates(self):
        if self.remote_work_start_date and self.remote_work_end_date \
                and self.remote_work_end_date < self.remote_work_start_date:
            raise ValueError("Remote work end date must not be before its start date")
        return self


class LocationPermissionResponse(LocationPermissionCreate):
    id: int
    granted_by: Optional[int] = None
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LocationValidationRequest(BaseModel):
    employee_id: int
    latitude: float
    longitude: float
    purpose: str = Field("attendance", pattern="^(attendance|login)$")


class IPRuleCreate(BaseModel):
    rule_name: str = Field(..., min_length=1, max_length=100)
    ip_address: str = Field(..., min_length=2, max_length=45)
    subnet_mask: Optional[str] = None
    access_type: str = Field("allow", pattern="^(allow|deny)$")
    location_id: Optional[int] = None
    description: Optional[str] = None


class IPRuleUpdate(BaseModel):
    rule_name: Optional[str] = None
    ip_address: Optional[str] = None
    subnet_mask: Optional[str] = None
    access_type: Optional[str] = Field(None, pattern="^(allow|deny)$")
    location_id: Optional[int] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class IPRuleResponse(IPRuleCreate):
    id: int
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class IPValidationRequest(BaseModel):
    ip_address: str


class LoginAttemptResponse(BaseModel):
    id: int
    username: Optional[str] = None
    user_id: Optional[int] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_id: Optional[int] = None
    attempt_status: str
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

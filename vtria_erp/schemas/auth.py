"""
Authentication schemas for request/response validation
"""
from typing import Optional, Dict, Any
from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator
from datetime import datetime

from vtria_erp.core.security import ROLES


class Token(BaseModel):
    """JWT token response"""
    access_token: str
    token_type: str = "bearer"
    user: Optional[Dict[str, Any]] = None


class PasswordChange(BaseModel):
    """Password change request"""
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)

    model_config = {
        "json_schema_extra": {
            "example": {
                "current_password": "current_password",
                "new_password": "new_secure_password"
            }
        }
    }


class UserBase(BaseModel):
    """Base user properties"""
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=100)
    role: str = "technician"
    is_active: bool = True
    employee_id: Optional[int] = None

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v not in ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ROLES)}")
        return v


class UserCreate(UserBase):
    """User creation request"""
    password: str = Field(..., min_length=8)

    model_config = {
        "json_schema_extra": {
            "example": {
                "username": "priya.sales",
                "email": "priya@vtria.in",
                "full_name": "Priya Sharma",
                "password": "secure_password",
                "role": "sales-admin"
            }
        }
    }


class UserUpdate(BaseModel):
    """User update request"""
    email: Optional[EmailStr] = None
    full_name: Optional[str] = Field(None, min_length=1, max_length=100)
    role: Optional[str] = None
    is_active: Optional[bool] = None
    employee_id: Optional[int] = None
    password: Optional[str] = Field(None, min_length=8)

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v is not None and v not in ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ROLES)}")
        return v


class UserResponse(BaseModel):
    """User response"""
    id: int
    username: str
    email: str
    full_name: str
    role: str
    is_active: bool
    employee_id: Optional[int] = None
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CurrentUserResponse(UserResponse):
    """Authenticated user with resolved role permissions"""
    permissions: Dict[str, Any] = {}

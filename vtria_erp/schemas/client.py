"""
Client schemas
"""
from typing import Optional
from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator
from datetime import datetime

CLIENT_STATUSES = ("active", "inactive")


class ClientBase(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=150)
    contact_person: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=60)
    state: Optional[str] = Field(None, max_length=60)
    gstin: Optional[str] = Field(None, max_length=20, description="GST identification number")


class ClientCreate(ClientBase):
    pass


class ClientUpdate(BaseModel):
    company_name: Optional[str] = Field(None, min_length=1, max_length=150)
    contact_person: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    gstin: Optional[str] = None
    status: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in CLIENT_STATUSES:
            raise ValueError("Status must be active or inactive")
        return v


class ClientResponse(ClientBase):
    id: int
    email: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

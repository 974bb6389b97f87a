"""
Audit trail schemas
"""
from typing import Any, Dict, List, Optional
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime


class AuditLogResponse(BaseModel):
    id: int
    table_name: str
    record_id: str
    action: str
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    changed_fields: Optional[List[str]] = None
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    user_role: Optional[str] = None
    ip_address: Optional[str] = None
    case_id: Optional[int] = None
    case_number: Optional[str] = None
    business_reason: Optional[str] = None
    approval_required: bool = False
    approval_status: Optional[str] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    approval_notes: Optional[str] = None
    system_generated: bool = False
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ScopeChangeResponse(BaseModel):
    id: int
    audit_log_id: int
    case_id: Optional[int] = None
    table_name: str
    record_id: str
    field_name: str
    old_value: Optional[Decimal] = None
    new_value: Optional[Decimal] = None
    value_difference: Optional[Decimal] = None
    percentage_change: Optional[Decimal] = None
    status: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ApprovalDecision(BaseModel):
    """Approve or reject a pending audited change"""
    decision: str = Field(..., description="approve or reject")
    notes: Optional[str] = None

"""
Case workflow schemas
Request/response models for cases, transitions and workflow definitions
"""
from typing import Optional
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime


class CaseCreate(BaseModel):
    client_id: int
    project_name: str = Field(..., min_length=1, max_length=200)
    requirements: Optional[str] = None
    estimated_value: Optional[Decimal] = Field(None, ge=0)
    priority: str = Field("medium", pattern="^(low|medium|high|urgent)$")
    assigned_to: Optional[int] = None
    notes: Optional[str] = None
    expected_completion_date: Optional[datetime] = None


class CaseUpdate(BaseModel):
    project_name: Optional[str] = Field(None, min_length=1, max_length=200)
    requirements: Optional[str] = None
    priority: Optional[str] = Field(None, pattern="^(low|medium|high|urgent)$")
    assigned_to: Optional[int] = None
    notes: Optional[str] = None
    expected_completion_date: Optional[datetime] = None
    assignment_notes: Optional[str] = None


class CaseTransitionRequest(BaseModel):
    """Move a case to another workflow state"""
    to_state: str
    notes: Optional[str] = None
    reason: Optional[str] = None


class CaseNotesRequest(BaseModel):
    notes: Optional[str] = None


class CaseCancelRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class CaseResponse(BaseModel):
    id: int
    case_number: str
    enquiry_id: Optional[int] = None
    client_id: int
    project_name: str
    requirements: Optional[str] = None
    estimated_value: Optional[Decimal] = None
    current_state: str
    current_sub_state: Optional[str] = None
    status: str
    priority: str
    assigned_to: Optional[int] = None
    created_by: int
    state_entered_at: Optional[datetime] = None
    expected_state_completion: Optional[datetime] = None
    is_sla_breached: bool = False
    requires_approval: bool = False
    approval_pending_from: Optional[str] = None
    notes: Optional[str] = None
    expected_completion_date: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CaseTransitionResponse(BaseModel):
    id: int
    case_id: int
    from_state: Optional[str] = None
    to_state: Optional[str] = None
    from_sub_state: Optional[str] = None
    to_sub_state: Optional[str] = None
    transition_type: str
    notes: Optional[str] = None
    reason: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class WorkflowDefinitionResponse(BaseModel):
    id: int
    state_name: str
    sub_state_name: str
    step_order: int
    sla_hours: Optional[int] = None
    requires_approval: bool = False
    approval_role: Optional[str] = None
    escalation_hours: Optional[int] = None
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

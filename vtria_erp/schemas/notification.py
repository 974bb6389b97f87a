"""
Notification and escalation schemas
"""
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime


class NotificationTemplateResponse(BaseModel):
    id: int
    template_key: str
    subject: str
    body: str
    channel: str
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class NotificationResponse(BaseModel):
    id: int
    template_key: Optional[str] = None
    recipient_user_id: int
    case_id: Optional[int] = None
    subject: str
    message: str
    channel: Optional[str] = None
    priority: Optional[str] = None
    context: Optional[Dict[str, Any]] = None
    status: str
    error_message: Optional[str] = None
    is_read: bool = False
    sent_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ManualNotification(BaseModel):
    recipient_user_id: int
    subject: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)
    case_id: Optional[int] = None
    priority: str = Field("medium", pattern="^(low|medium|high|urgent)$")


class EscalationRuleCreate(BaseModel):
    rule_name: str = Field(..., min_length=1, max_length=100)
    state_name: Optional[str] = None
    priority: Optional[str] = Field(None, pattern="^(low|medium|high|urgent)$")
    hours_overdue: int = Field(0, ge=0)
    escalate_to_role: str
    escalate_after_hours: int = Field(24, gt=0)
    escalation_level: int = Field(1, ge=1)
    is_active: bool = True


class EscalationRuleResponse(EscalationRuleCreate):
    id: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ManualEscalation(BaseModel):
    case_id: int
    reason: str = Field(..., min_length=1)
    escalate_to_role: str = "director"
    escalation_level: int = Field(1, ge=1)


class EscalationResolve(BaseModel):
    resolution_notes: Optional[str] = None


class EscalationResponse(BaseModel):
    id: int
    case_id: int
    rule_id: Optional[int] = None
    escalation_level: int
    escalated_to_role: str
    state_name: Optional[str] = None
    reason: Optional[str] = None
    status: str
    escalated_by: Optional[int] = None
    resolved_by: Optional[int] = None
    resolved_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

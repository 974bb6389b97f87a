"""
Case Workflow Models
Maps to cases, case_state_transitions, case_workflow_definitions tables
"""
from sqlalchemy import (
    Column, String, Boolean, Integer, DateTime, Text, Numeric, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship, backref
from datetime import datetime

from vtria_erp.core.database import Base


class Case(Base):
    """A sales-to-delivery workflow instance"""
    __tablename__ = "cases"

    id = Column(Integer, primary_key=True, index=True)
    case_number = Column(String(40), unique=True, nullable=False, index=True)
    enquiry_id = Column(Integer, ForeignKey("sales_enquiries.id"), nullable=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    project_name = Column(String(200), nullable=False)
    requirements = Column(Text)
    estimated_value = Column(Numeric(15, 2))

    # Workflow position
    current_state = Column(String(20), nullable=False, default="enquiry", index=True)
    current_sub_state = Column(String(40))
    status = Column(String(20), nullable=False, default="active", index=True)
    priority = Column(String(10), nullable=False, default="medium")

    assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    # SLA tracking
    state_entered_at = Column(DateTime, default=datetime.utcnow)
    expected_state_completion = Column(DateTime)
    is_sla_breached = Column(Boolean, default=False, index=True)
    sla_breached_at = Column(DateTime)

    # Approval gating
    requires_approval = Column(Boolean, default=False)
    approval_pending_from = Column(String(30))

    notes = Column(Text)
    expected_completion_date = Column(DateTime)
    closed_at = Column(DateTime)
    cancellation_reason = Column(Text)
    deleted_at = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = relationship("Client")
    assignee = relationship("User", foreign_keys=[assigned_to])
    creator = relationship("User", foreign_keys=[created_by])
    enquiry = relationship("SalesEnquiry", foreign_keys=[enquiry_id], backref=backref("case", uselist=False))
    transitions = relationship(
        "CaseStateTransition",
        back_populates="case",
        order_by="CaseStateTransition.id",
        cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Case {self.case_number} {self.current_state}/{self.current_sub_state}>"


class CaseStateTransition(Base):
    """State, sub-state, assignment and approval history of a case"""
    __tablename__ = "case_state_transitions"

    id = Column(Integer, primary_key=True, index=True)
    case_id = Column(Integer, ForeignKey("cases.id"), nullable=False, index=True)
    from_state = Column(String(20))
    to_state = Column(String(20))
    from_sub_state = Column(String(40))
    to_sub_state = Column(String(40))
    transition_type = Column(String(20), nullable=False, default="state_change")
    notes = Column(Text)
    reason = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    case = relationship("Case", back_populates="transitions")
    user = relationship("User")


class CaseWorkflowDefinition(Base):
    """Sub-state steps, SLA hours and approval requirements per case state"""
    __tablename__ = "case_workflow_definitions"
    __table_args__ = (UniqueConstraint("state_name", "sub_state_name"),)

    id = Column(Integer, primary_key=True, index=True)
    state_name = Column(String(20), nullable=False, index=True)
    sub_state_name = Column(String(40), nullable=False)
    step_order = Column(Integer, nullable=False, default=1)
    sla_hours = Column(Integer, nullable=False, default=24)
    requires_approval = Column(Boolean, default=False)
    approval_role = Column(String(30))
    escalation_hours = Column(Integer)
    description = Column(String(200))
    is_active = Column(Boolean, default=True)

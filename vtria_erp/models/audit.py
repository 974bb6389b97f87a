"""
Audit Trail Models
Maps to audit_logs and scope_changes tables
"""
from sqlalchemy import Column, String, Boolean, Integer, DateTime, Text, JSON, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime

from vtria_erp.core.database import Base


class AuditLog(Base):
    """Immutable record of a data change or business action"""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    table_name = Column(String(60), nullable=False, index=True)
    record_id = Column(String(40), nullable=False, index=True)
    action = Column(String(20), nullable=False, index=True)
    old_values = Column(JSON)
    new_values = Column(JSON)
    changed_fields = Column(JSON)

    # Who
    user_id = Column(Integer, index=True)
    user_name = Column(String(100))
    user_role = Column(String(30))
    ip_address = Column(String(45))  # Support IPv6
    user_agent = Column(String(255))

    # Business context
    case_id = Column(Integer, index=True)
    case_number = Column(String(40))
    business_reason = Column(Text)

    # Approval
    approval_required = Column(Boolean, default=False)
    approval_status = Column(String(20), index=True)
    approved_by = Column(Integer)
    approved_at = Column(DateTime)
    approval_notes = Column(Text)

    system_generated = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    scope_changes = relationship("ScopeChange", back_populates="audit_log")


class ScopeChange(Base):
    """Monetary change to a quotation or purchase requisition"""
    __tablename__ = "scope_changes"

    id = Column(Integer, primary_key=True, index=True)
    audit_log_id = Column(Integer, ForeignKey("audit_logs.id"), nullable=False, index=True)
    case_id = Column(Integer, index=True)
    table_name = Column(String(60), nullable=False)
    record_id = Column(String(40), nullable=False)
    field_name = Column(String(60), nullable=False)
    old_value = Column(Numeric(15, 2))
    new_value = Column(Numeric(15, 2))
    value_difference = Column(Numeric(15, 2))
    percentage_change = Column(Numeric(9, 2))
    status = Column(String(20), default="pending", index=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    audit_log = relationship("AuditLog", back_populates="scope_changes")

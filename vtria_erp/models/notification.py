"""
Notification and Escalation Models
Maps to notification_templates, notification_queue, escalation_rules, case_escalations
"""
from sqlalchemy import Column, String, Boolean, Integer, DateTime, Text, JSON, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime

from vtria_erp.core.database import Base


class NotificationTemplate(Base):
    __tablename__ = "notification_templates"

    id = Column(Integer, primary_key=True, index=True)
    template_key = Column(String(50), unique=True, nullable=False)
    subject = Column(String(200), nullable=False)
    body = Column(Text, nullable=False)
    channel = Column(String(20), default="in_app")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class NotificationQueue(Base):
    """Rendered notifications waiting for delivery"""
    __tablename__ = "notification_queue"

    id = Column(Integer, primary_key=True, index=True)
    template_key = Column(String(50), index=True)
    recipient_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    case_id = Column(Integer, ForeignKey("cases.id"), nullable=True, index=True)
    subject = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    channel = Column(String(20), default="in_app")
    priority = Column(String(10), default="medium")
    context = Column(JSON, default=dict)
    status = Column(String(20), default="pending", index=True)
    error_message = Column(Text)
    is_read = Column(Boolean, default=False)
    sent_at = Column(DateTime)
    read_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    recipient = relationship("User")


class EscalationRule(Base):
    """Automatic escalation thresholds"""
    __tablename__ = "escalation_rules"

    id = Column(Integer, primary_key=True, index=True)
    rule_name = Column(String(100), nullable=False)
    state_name = Column(String(20))  # NULL matches any state
    priority = Column(String(10))  # NULL matches any priority
    hours_overdue = Column(Integer, nullable=False, default=0)
    escalate_to_role = Column(String(30), nullable=False)
    escalate_after_hours = Column(Integer, nullable=False, default=24)
    escalation_level = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class CaseEscalation(Base):
    __tablename__ = "case_escalations"

    id = Column(Integer, primary_key=True, index=True)
    case_id = Column(Integer, ForeignKey("cases.id"), nullable=False, index=True)
    rule_id = Column(Integer, ForeignKey("escalation_rules.id"), nullable=True)
    escalation_level = Column(Integer, default=1)
    escalated_to_role = Column(String(30), nullable=False)
    state_name = Column(String(20))
    reason = Column(Text)
    status = Column(String(20), default="open", index=True)
    escalated_by = Column(Integer, ForeignKey("users.id"), nullable=True)  # NULL = system
    resolved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    resolved_at = Column(DateTime)
    resolution_notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    case = relationship("Case")
    rule = relationship("EscalationRule")

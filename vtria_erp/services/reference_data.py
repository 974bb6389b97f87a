"""
Reference Data
Default workflow definitions, notification templates, escalation rules and leave types
"""
import logging
from sqlalchemy.orm import Session

from vtria_erp.models.case import CaseWorkflowDefinition
from vtria_erp.models.notification import NotificationTemplate, EscalationRule
from vtria_erp.models.hr import LeaveType

logger = logging.getLogger(__name__)

# (state, sub_state, sla_hours, requires_approval, approval_role, escalation_hours)
WORKFLOW_DEFINITIONS = [
    ("enquiry", "received", 4, False, None, 8),
    ("enquiry", "under_review", 24, False, None, 48),
    ("enquiry", "requirements_gathering", 48, False, None, 72),
    ("estimation", "assigned", 8, False, None, 16),
    ("estimation", "costing", 72, False, None, 96),
    ("estimation", "review", 24, True, "director", 48),
    ("quotation", "drafting", 24, False, None, 48),
    ("quotation", "internal_review", 24, True, "director", 48),
    ("quotation", "sent_to_client", 168, False, None, 240),
    ("order", "confirmation", 24, True, "accounts", 48),
    ("order", "advance_payment", 72, False, None, 120),
    ("production", "planning", 48, False, None, 72),
    ("production", "manufacturing", 240, False, None, 288),
    ("production", "quality_check", 24, True, "director", 48),
    ("delivery", "dispatch", 24, False, None, 48),
    ("delivery", "in_transit", 72, False, None, 96),
    ("delivery", "installation", 48, False, None, 72),
    ("closed", "completed", 0, False, None, None),
]

NOTIFICATION_TEMPLATES = {
    "sla_warning": (
        "SLA warning: {{case_number}}",
        "Case {{case_number}} ({{project_name}}) will breach its {{state}} SLA in {{hours_remaining}} hours.",
    ),
    "sla_breach": (
        "SLA breached: {{case_number}}",
        "Case {{case_number}} ({{project_name}}) has exceeded the SLA for state {{state}}.",
    ),
    "escalation": (
        "Case escalated: {{case_number}}",
        "Case {{case_number}} was escalated to {{role}} at level {{level}}. Reason: {{reason}}",
    ),
    "approval_required": (
        "Approval required: {{case_number}}",
        "Case {{case_number}} is waiting for {{role}} approval at step {{sub_state}}.",
    ),
    "case_assigned": (
        "Case assigned: {{case_number}}",
        "Case {{case_number}} ({{project_name}}) has been assigned to you.",
    ),
}

# (rule_name, state, priority, hours_overdue, role, after_hours, level)
ESCALATION_RULES = [
    ("Overdue any case", None, None, 4, "admin", 24, 1),
    ("Long overdue any case", None, None, 24, "director", 48, 2),
    ("Urgent case overdue", None, "urgent", 0, "director", 12, 2),
]

LEAVE_TYPES = [
    ("CL", "Casual Leave", 12, True),
    ("SL", "Sick Leave", 12, True),
    ("EL", "Earned Leave", 15, True),
    ("LOP", "Loss of Pay", 0, False),
]


def seed_reference_data(db: Session) -> dict:
    """Insert any missing reference rows, returning how many were created per table"""
    created = {"workflow_definitions": 0, "notification_templates": 0, "escalation_rules": 0, "leave_types": 0}

    existing = {
        (d.state_name, d.sub_state_name)
        for d in db.query(CaseWorkflowDefinition).all()
    }
    step_orders = {}
    for state, sub_state, sla, approval, role, escalation in WORKFLOW_DEFINITIONS:
        step_orders[state] = step_orders.get(state, 0) + 1
        if (state, sub_state) in existing:
            continue
        db.add(CaseWorkflowDefinition(
            state_name=state,
            sub_state_name=sub_state,
            step_order=step_orders[state],
            sla_hours=sla,
            requires_approval=approval,
            approval_role=role,
            escalation_hours=escalation,
            description=sub_state.replace("_", " ").title()
        ))
        created["workflow_definitions"] += 1

    keys = {t.template_key for t in db.query(NotificationTemplate).all()}
    for key, (subject, body) in NOTIFICATION_TEMPLATES.items():
        if key not in keys:
            db.add(NotificationTemplate(template_key=key, subject=subject, body=body))
            created["notification_templates"] += 1

    if db.query(EscalationRule).count() == 0:
        for name, state, priority, overdue, role, after, level in ESCALATION_RULES:
            db.add(EscalationRule(
                rule_name=name,
                state_name=state,
                priority=priority,
                hours_overdue=overdue,
                escalate_to_role=role,
                escalate_after_hours=after,
                escalation_level=level
            ))
            created["escalation_rules"] += 1

    codes = {t.code for t in db.query(LeaveType).all()}
    for code, name, entitlement, paid in LEAVE_TYPES:
        if code not in codes:
            db.add(LeaveType(code=code, name=name, annual_entitlement=entitlement, is_paid=paid))
            created["leave_types"] += 1

    db.commit()
    logger.info(f"Reference data seeded: {created}")
    return created

"""
Tests for the audit trail, scope changes and change approval
"""

import pytest
from decimal import Decimal

from vtria_erp.core.exceptions import (
    BusinessLogicError, InsufficientPermissionsError, NotFoundError, ValidationError
)
from vtria_erp.models.audit import AuditLog, ScopeChange
from vtria_erp.services.audit import (
    AuditService, find_changed_fields, monetary_change, requires_approval
)


class TestChangedFields:
    """Diffing of old and new snapshots"""

    def test_detects_changed_added_and_removed_keys(self):
        old = {"status": "draft", "notes": "x", "total": 10}
        new = {"status": "sent", "total": 10, "valid_until": "2025-05-01"}
        assert find_changed_fields(old, new) == ["notes", "status", "valid_until"]

    def test_none_snapshots(self):
        assert find_changed_fields(None, {"a": 1}) == ["a"]
        assert find_changed_fields({"a": 1}, None) == ["a"]
        assert find_changed_fields(None, None) == []

    def test_absent_equals_none(self):
        assert find_changed_fields({"a": None}, {}) == []


class TestApprovalRules:
    """When a change needs approval"""

    def test_decisions_always_flagged(self):
        assert requires_approval("cases", "APPROVE") is True
        assert requires_approval("anything", "REJECT") is True

    def test_create_and_delete_never_flagged(self):
        assert requires_approval("quotations", "CREATE", None, {"grand_total": 10 ** 7}) is False
        assert requires_approval("quotations", "DELETE", {"grand_total": 10 ** 7}, None) is False

    def test_absolute_threshold(self):
        # 60000 on 1,000,000 is 6%, but above the absolute limit
        assert requires_approval(
            "quotations", "UPDATE", {"grand_total": 1000000}, {"grand_total": 1060000}
        ) is True

    def test_percentage_threshold(self):
        # 15% of a small value
        assert requires_approval(
            "purchase_requisitions", "UPDATE", {"total_amount": 20000}, {"total_amount": 23000}
        ) is True

    def test_small_change_not_flagged(self):
        assert requires_approval(
            "quotations", "UPDATE", {"grand_total": 200000}, {"grand_total": 210000}
        ) is False

    def test_decreases_count_too(self):
        assert requires_approval(
            "quotations", "UPDATE", {"grand_total": 200000}, {"grand_total": 100000}
        ) is True

    def test_other_tables_ignored(self):
        assert requires_approval(
            "sales_orders", "UPDATE", {"grand_total": 100}, {"grand_total": 10 ** 6}
        ) is False

    def test_monetary_change_picks_changed_field(self):
        change = monetary_change("quotations", {"grand_total": "100.00"}, {"grand_total": 150})
        assert change == ("grand_total", Decimal("100.00"), Decimal("150"))
        assert monetary_change("quotations", {"grand_total": 5}, {"grand_total": 5}) is None


class TestAuditLogging:
    """Writing audit entries"""

    def test_log_records_user_and_diff(self, db_session, director):
        entry = AuditService(db_session).log_audit(
            "clients", 7, "update",
            old_values={"city": "Pune"}, new_values={"city": "Mumbai"},
            user=director, ip_address="10.0.0.5", commit=True
        )
        assert entry.action == "UPDATE"
        assert entry.record_id == "7"
        assert entry.changed_fields == ["city"]
        assert entry.user_role == "director"
        assert entry.approval_required is False
        assert entry.system_generated is False

    def test_entry_without_user_is_system_generated(self, db_session):
        entry = AuditService(db_session).log_audit("cases", 1, "UPDATE", commit=True)
        assert entry.user_name == "system"
        assert entry.system_generated is True

    def test_value_change_creates_scope_change(self, db_session, director):
        entry = AuditService(db_session).log_audit(
            "quotations", 3, "UPDATE",
            old_values={"grand_total": Decimal("100000")},
            new_values={"grand_total": Decimal("120000")},
            user=director, case_id=None, commit=True
        )
        change = db_session.query(ScopeChange).filter(ScopeChange.audit_log_id == entry.id).one()

        assert entry.approval_required is True
        assert entry.approval_status == "pending"
        assert change.field_name == "grand_total"
        assert float(change.value_difference) == 20000
        assert float(change.percentage_change) == 20.0
        assert change.status == "pending"

    def test_small_scope_change_auto_approved(self, db_session, director):
        entry = AuditService(db_session).log_audit(
            "quotations", 3, "UPDATE",
            old_values={"grand_total": 100000}, new_values={"grand_total": 101000},
            user=director, commit=True
        )
        assert entry.approval_status is None
        assert entry.scope_changes[0].status == "approved"

    def test_record_trail_in_order(self, db_session, director):
        service = AuditService(db_session)
        service.log_audit("clients", 1, "CREATE", new_values={"city": "Pune"}, user=director)
        service.log_audit("clients", 1, "UPDATE", {"city": "Pune"}, {"city": "Nashik"}, user=director)
        db_session.commit()

        assert [e.action for e in service.get_record_trail("clients", 1)] == ["CREATE", "UPDATE"]


class TestApprovalProcessing:
    """Approving and rejecting pending changes"""

    @pytest.fixture
    def pending_entry(self, db_session, director):
        return AuditService(db_session).log_audit(
            "quotations", 9, "UPDATE",
            old_values={"grand_total": 100000}, new_values={"grand_total": 200000},
            user=director, commit=True
        )

    def test_director_approves(self, db_session, pending_entry, director):
        entry = AuditService(db_session).process_approval(pending_entry.id, director, "approve", "Scope agreed")

        assert entry.approval_status == "approved"
        assert entry.approved_by == director.id
        assert entry.scope_changes[0].status == "approved"
        decision = db_session.query(AuditLog).filter(AuditLog.table_name == "audit_logs").one()
        assert decision.action == "APPROVE"
        assert decision.approval_status == "approved"

    def test_admin_rejects(self, db_session, pending_entry, admin):
        entry = AuditService(db_session).process_approval(pending_entry.id, admin, "Reject")
        assert entry.approval_status == "rejected"
        assert entry.scope_changes[0].status == "rejected"

    def test_technician_cannot_approve(self, db_session, pending_entry, technician):
        with pytest.raises(InsufficientPermissionsError):
            AuditService(db_session).process_approval(pending_entry.id, technician, "approve")

    def test_cannot_decide_twice(self, db_session, pending_entry, director):
        service = AuditService(db_session)
        service.process_approval(pending_entry.id, director, "approve")
        with pytest.raises(BusinessLogicError):
            service.process_approval(pending_entry.id, director, "reject")

    def test_invalid_decision(self, db_session, pending_entry, director):
        with pytest.raises(ValidationError):
            AuditService(db_session).process_approval(pending_entry.id, director, "maybe")

    def test_unknown_entry(self, db_session, director):
        with pytest.raises(NotFoundError):
            AuditService(db_session).process_approval(12345, director, "approve")

    def test_pending_list_and_export(self, db_session, pending_entry):
        service = AuditService(db_session)
        assert [e.id for e in service.get_pending_approvals()] == [pending_entry.id]

        csv_text = service.export_csv("scope_changes")
        assert csv_text.splitlines()[0].startswith("id,case_id,table_name")
        assert "grand_total" in csv_text

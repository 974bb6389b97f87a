"""
Tests for SLA monitoring, notifications and escalations
"""

import pytest
from datetime import datetime, timedelta
from sqlalchemy.orm import Session

from vtria_erp.core.exceptions import InsufficientPermissionsError, NotFoundError
from vtria_erp.models.notification import CaseEscalation, NotificationQueue
from vtria_erp.services.case_workflow import CaseWorkflowService
from vtria_erp.services.escalations import EscalationService
from vtria_erp.services.notifications import NotificationService, render_template
from vtria_erp.services.sla_monitor import SLAMonitorService, SLAScheduler


@pytest.fixture
def open_case(db_session: Session, sample_client, director, admin):
    return CaseWorkflowService(db_session).create_case(
        {"client_id": sample_client.id, "project_name": "Pump Controls", "priority": "high"},
        director
    )


def set_deadline(db_session, case, delta: timedelta):
    case.expected_state_completion = datetime.utcnow() + delta
    db_session.commit()


def queued(db_session, template_key, user_id=None):
    query = db_session.query(NotificationQueue).filter(NotificationQueue.template_key == template_key)
    if user_id is not None:
        query = query.filter(NotificationQueue.recipient_user_id == user_id)
    return query.count()


class TestTemplateRendering:
    """Placeholder substitution"""

    def test_render_replaces_placeholders(self):
        text = render_template("Case {{case_number}} is in {{ state }}", {"case_number": "C1", "state": "order"})
        assert text == "Case C1 is in order"

    def test_unknown_placeholders_render_empty(self):
        assert render_template("Hello {{name}}!", {}) == "Hello !"


class TestSLAWarnings:
    """Warnings ahead of the deadline"""

    def test_warning_queued_inside_window(self, db_session, open_case, director):
        set_deadline(db_session, open_case, timedelta(hours=1))

        assert SLAMonitorService(db_session).check_sla_warnings() == 1
        assert queued(db_session, "sla_warning", director.id) == 1

    def test_warning_is_not_repeated(self, db_session, open_case):
        set_deadline(db_session, open_case, timedelta(hours=1))

        SLAMonitorService(db_session).check_sla_warnings()
        assert SLAMonitorService(db_session).check_sla_warnings() == 0
        assert queued(db_session, "sla_warning") == 1

    def test_no_warning_outside_window(self, db_session, open_case):
        set_deadline(db_session, open_case, timedelta(hours=10))
        assert SLAMonitorService(db_session).check_sla_warnings() == 0

    def test_warning_uses_monitor_clock(self, db_session, open_case):
        # Created with a 4h deadline; six hours earlier it is outside the window
        monitor = SLAMonitorService(db_session, now=datetime.utcnow() - timedelta(hours=6))
        assert monitor.check_sla_warnings() == 0

    def test_warning_dedup_follows_monitor_clock(self, db_session, open_case):
        # Three hours ahead of the wall clock the 4h deadline is one hour away
        now = datetime.utcnow() + timedelta(hours=3)

        assert SLAMonitorService(db_session, now=now).check_sla_warnings() == 1
        assert SLAMonitorService(db_session, now=now).check_sla_warnings() == 0
        assert queued(db_session, "sla_warning") == 1
        warning = db_session.query(NotificationQueue).filter(NotificationQueue.template_key == "sla_warning").one()
        assert warning.created_at == now


class TestSLABreaches:
    """Breach detection and fan-out"""

    def test_breach_flags_case_and_notifies(self, db_session, open_case, director, admin):
        set_deadline(db_session, open_case, timedelta(hours=-1))

        assert SLAMonitorService(db_session).check_sla_breaches() == 1

        db_session.refresh(open_case)
        assert open_case.is_sla_breached is True
        assert open_case.sla_breached_at is not None
        # Owner and director role both reach the director; admin role once
        assert queued(db_session, "sla_breach", director.id) == 2
        assert queued(db_session, "sla_breach", admin.id) == 1

    def test_low_priority_breach_skips_directors(self, db_session, open_case, director, admin):
        open_case.priority = "low"
        set_deadline(db_session, open_case, timedelta(hours=-1))

        SLAMonitorService(db_session).check_sla_breaches()
        assert queued(db_session, "sla_breach", director.id) == 1

    def test_breach_reported_once(self, db_session, open_case):
        set_deadline(db_session, open_case, timedelta(hours=-1))

        SLAMonitorService(db_session).check_sla_breaches()
        assert SLAMonitorService(db_session).check_sla_breaches() == 0

    def test_new_state_clears_breach(self, db_session, open_case, director):
        set_deadline(db_session, open_case, timedelta(hours=-1))
        SLAMonitorService(db_session).check_sla_breaches()

        case = CaseWorkflowService(db_session).transition_case(open_case.id, "estimation", director)
        assert case.is_sla_breached is False
        assert case.expected_state_completion > datetime.utcnow()


class TestAutomaticEscalation:
    """Escalation rules against breached cases"""

    def test_escalations_follow_rules(self, db_session, open_case, director, admin):
        set_deadline(db_session, open_case, timedelta(hours=-30))

        result = SLAMonitorService(db_session).run_all()

        assert result["breaches"] == 1
        # Both overdue rules match; the urgent-only rule does not
        assert result["escalations"] == 2
        roles = sorted(e.escalated_to_role for e in db_session.query(CaseEscalation).all())
        assert roles == ["admin", "director"]
        assert queued(db_session, "escalation", admin.id) == 1

    def test_escalations_are_not_repeated(self, db_session, open_case, director, admin):
        set_deadline(db_session, open_case, timedelta(hours=-30))

        SLAMonitorService(db_session).run_all()
        again = SLAMonitorService(db_session).run_all()

        assert again == {"warnings": 0, "breaches": 0, "escalations": 0}
        assert db_session.query(CaseEscalation).count() == 2

    def test_escalation_dedup_follows_monitor_clock(self, db_session, open_case, director, admin):
        now = datetime.utcnow() + timedelta(hours=60)

        first = SLAMonitorService(db_session, now=now).run_all()
        second = SLAMonitorService(db_session, now=now).run_all()

        assert first["escalations"] == 2
        assert second["escalations"] == 0
        escalations = db_session.query(CaseEscalation).all()
        assert len(escalations) == 2
        assert all(e.created_at == now for e in escalations)

    def test_slightly_overdue_case_only_hits_first_rule(self, db_session, open_case, admin):
        set_deadline(db_session, open_case, timedelta(hours=-5))

        result = SLAMonitorService(db_session).run_all()
        assert result["escalations"] == 1
        assert db_session.query(CaseEscalation).one().escalation_level == 1

    def test_urgent_case_escalates_immediately(self, db_session, open_case, director):
        open_case.priority = "urgent"
        set_deadline(db_session, open_case, timedelta(minutes=-10))

        result = SLAMonitorService(db_session).run_all()
        assert result["escalations"] == 1
        assert db_session.query(CaseEscalation).one().escalated_to_role == "director"


class TestEscalationService:
    """Manual escalation and resolution"""

    def test_manual_escalation_and_resolve(self, db_session, open_case, director, admin):
        service = EscalationService(db_session)
        escalation = service.trigger_manual(open_case.id, admin, "Client unhappy with delay")
        assert escalation.status == "open"
        assert escalation.escalated_by == admin.id

        resolved = service.resolve(escalation.id, director, notes="Called client")
        assert resolved.status == "resolved"
        assert service.escalation_trends()["total"] == 1

    def test_manual_escalation_unknown_case(self, db_session, director):
        with pytest.raises(NotFoundError):
            EscalationService(db_session).trigger_manual(9999, director, "Missing")


class TestNotificationDelivery:
    """Queue processing and read receipts"""

    def test_process_queue_fails_inactive_recipients(self, db_session, open_case, director, admin):
        set_deadline(db_session, open_case, timedelta(hours=-1))
        SLAMonitorService(db_session).check_sla_breaches()
        admin.is_active = False
        db_session.commit()

        result = NotificationService(db_session).process_queue()
        assert result == {"processed": 3, "sent": 2, "failed": 1}

    def test_only_recipient_marks_read(self, db_session, director, admin):
        service = NotificationService(db_session)
        note = service.send_manual(director.id, "Site visit", "Visit on Friday")

        with pytest.raises(InsufficientPermissionsError):
            service.mark_read(note.id, admin)
        assert service.mark_read(note.id, director).is_read is True


class TestReports:
    """Compliance and performance summaries"""

    def test_compliance_report(self, db_session, open_case):
        set_deadline(db_session, open_case, timedelta(hours=-1))
        monitor = SLAMonitorService(db_session)
        monitor.check_sla_breaches()

        report = monitor.compliance_report(days=7)
        assert report["by_state"]["enquiry"]["breached"] == 1
        assert report["overall"]["compliance_percentage"] == 0.0

    def test_empty_compliance_report_is_fully_compliant(self, db_session):
        report = SLAMonitorService(db_session).compliance_report()
        assert report["overall"]["total"] == 0
        assert report["overall"]["compliance_percentage"] == 100.0

    def test_performance_metrics(self, db_session, open_case, director):
        CaseWorkflowService(db_session).transition_case(open_case.id, "estimation", director)
        metrics = SLAMonitorService(db_session).performance_metrics()
        assert metrics["cases_created"] == 1
        assert "enquiry" in metrics["average_hours_in_state"]


class TestScheduler:
    """Scheduler jobs run against fresh sessions"""

    def test_due_tracks_intervals(self, session_factory):
        scheduler = SLAScheduler(session_factory=session_factory)
        assert scheduler._due("sla_checks", 3600) is True
        assert scheduler._due("sla_checks", 3600) is False
        assert scheduler._due("sla_checks", 0) is True

    def test_run_sla_checks_commits_results(self, db_session, session_factory, open_case):
        set_deadline(db_session, open_case, timedelta(hours=-1))

        SLAScheduler(session_factory=session_factory).run_sla_checks()

        db_session.refresh(open_case)
        assert open_case.is_sla_breached is True

    def test_not_running_until_started(self, session_factory):
        scheduler = SLAScheduler(session_factory=session_factory)
        assert scheduler.running is False
        assert scheduler.stop() is False

"""
Tests for the unified dashboard, case analytics and SLA alerts
"""

import pytest
from datetime import datetime, timedelta
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from vtria_erp.services.case_workflow import CaseWorkflowService
from vtria_erp.services.dashboard import DashboardService


@pytest.fixture
def cases(db_session: Session, sample_client, director):
    """One breached high priority case and one medium case due within the warning window"""
    workflow = CaseWorkflowService(db_session)
    breached = workflow.create_case(
        {"client_id": sample_client.id, "project_name": "Pump Controls", "priority": "high"}, director
    )
    at_risk = workflow.create_case(
        {"client_id": sample_client.id, "project_name": "Lighting DB"}, director
    )

    now = datetime.utcnow()
    breached.expected_state_completion = now - timedelta(hours=2)
    breached.is_sla_breached = True
    breached.sla_breached_at = now - timedelta(hours=2)
    at_risk.expected_state_completion = now + timedelta(hours=1)
    db_session.commit()
    return {"breached": breached, "at_risk": at_risk}


class TestUnifiedDashboard:
    """One payload for management"""

    def test_sla_summary(self, db_session, cases, director):
        dashboard = DashboardService(db_session).get_unified_dashboard(director)

        assert dashboard["sla"] == {"breached": 1, "at_risk": 1, "open_escalations": 0}

    def test_case_figures_and_health(self, db_session, cases, director):
        dashboard = DashboardService(db_session).get_unified_dashboard(director)

        assert dashboard["cases"]["total"] == 2
        assert dashboard["cases"]["by_state"]["enquiry"] == 2
        assert dashboard["cases"]["sla_breached"] == 1
        assert dashboard["pending_approvals"] == {"audit": 0, "workflow": 0}
        assert dashboard["system_health"]["status"] == "healthy"
        assert dashboard["system_health"]["workflow"]["sla_breached_cases"] == 1

    def test_pending_workflow_approvals_counted(self, db_session, cases, director):
        workflow = CaseWorkflowService(db_session)
        case = cases["at_risk"]
        workflow.transition_case(case.id, "estimation", director)
        workflow.advance_sub_state(case.id, director)
        workflow.advance_sub_state(case.id, director)

        dashboard = DashboardService(db_session).get_unified_dashboard(director)
        assert dashboard["pending_approvals"]["workflow"] == 1

    def test_empty_dashboard(self, db_session, director):
        dashboard = DashboardService(db_session).get_unified_dashboard(director)

        assert dashboard["cases"]["total"] == 0
        assert dashboard["sla"] == {"breached": 0, "at_risk": 0, "open_escalations": 0}
        assert dashboard["high_value_changes"] == []


class TestCaseAnalytics:
    """Distribution and cycle time over a window"""

    def test_distribution_by_priority_and_state(self, db_session, cases, director):
        CaseWorkflowService(db_session).transition_case(cases["at_risk"].id, "closed", director)

        analytics = DashboardService(db_session).get_case_analytics(days=30)

        assert analytics["by_priority"] == {"low": 0, "medium": 1, "high": 1, "urgent": 0}
        assert analytics["by_state"] == {"enquiry": 1, "closed": 1}
        assert analytics["by_month"] == [{"month": datetime.utcnow().strftime("%Y-%m"), "count": 2}]
        assert analytics["average_cycle_days"] == 0.0

    def test_no_closed_cases_has_no_cycle_time(self, db_session, cases):
        assert DashboardService(db_session).get_case_analytics()["average_cycle_days"] is None


class TestSLAAlerts:
    """Breached and at-risk cases, most urgent first"""

    def test_alerts_ordered_by_deadline(self, db_session, cases, director):
        alerts = DashboardService(db_session).get_sla_alerts(director)

        assert [a["case_id"] for a in alerts] == [cases["breached"].id, cases["at_risk"].id]
        assert [a["alert_type"] for a in alerts] == ["breached", "at_risk"]
        assert alerts[0]["hours_until_breach"] < 0 < alerts[1]["hours_until_breach"]

    def test_cases_outside_window_are_not_alerts(self, db_session, cases, director):
        cases["at_risk"].expected_state_completion = datetime.utcnow() + timedelta(hours=10)
        db_session.commit()

        alerts = DashboardService(db_session).get_sla_alerts(director)
        assert [a["case_id"] for a in alerts] == [cases["breached"].id]

    def test_technician_sees_only_assigned_cases(self, db_session, cases, director, technician):
        service = DashboardService(db_session)
        assert service.get_sla_alerts(technician) == []

        CaseWorkflowService(db_session).update_case(cases["at_risk"].id, {"assigned_to": technician.id}, director)
        assert [a["case_id"] for a in service.get_sla_alerts(technician)] == [cases["at_risk"].id]


class TestDashboardEndpoints:
    """Dashboard routes and report permission"""

    def test_unified_dashboard(self, client: TestClient, cases, auth_headers_for):
        response = client.get("/api/dashboard/", headers=auth_headers_for("director"))

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["sla"]["breached"] == 1

    def test_reports_permission_required(self, client: TestClient, auth_headers_for):
        response = client.get("/api/dashboard/", headers=auth_headers_for("technician"))
        assert response.status_code == 403

    def test_analytics_window_validated(self, client: TestClient, auth_headers_for):
        headers = auth_headers_for("director")
        assert client.get("/api/dashboard/analytics?days=30", headers=headers).status_code == 200
        assert client.get("/api/dashboard/analytics?days=0", headers=headers).status_code == 422

    def test_sla_alerts_for_any_user(self, client: TestClient, cases, auth_headers_for):
        response = client.get("/api/dashboard/sla-alerts", headers=auth_headers_for("technician"))
        assert response.status_code == 200
        assert response.json()["data"] == []

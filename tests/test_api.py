"""
API Integration Tests
End-to-end tests for authentication, envelopes, role checks and the main workflows
"""

import pytest
from datetime import datetime, timedelta
from fastapi.testclient import TestClient

from vtria_erp.core.config import settings
from vtria_erp.main import app
from vtria_erp.services.location_access import LocationAccessService

PASSWORD = "testpassword123"


class TestSystemEndpoints:
    """Health and info endpoints"""

    def test_health_check(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["version"] == "1.0.0"
        assert body["sla_scheduler"] == "stopped"

    def test_info_lists_modules(self, client: TestClient):
        response = client.get("/info")
        assert response.status_code == 200
        assert "cases" in response.json()["business_modules"]


class TestAuthenticationFlow:
    """Login, token use and failures"""

    def test_login_returns_token_in_envelope(self, client: TestClient, director):
        response = client.post("/api/auth/login", data={"username": "director", "password": PASSWORD})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Login successful"
        assert body["token_type"] == "bearer"
        assert body["access_token"] == body["data"]["access_token"]
        assert body["data"]["user"]["role"] == "director"

    def test_token_authorizes_requests(self, client: TestClient, director):
        token = client.post(
            "/api/auth/login", data={"username": "director", "password": PASSWORD}
        ).json()["access_token"]

        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.json()["data"]["username"] == "director"

    def test_wrong_password(self, client: TestClient, director):
        response = client.post("/api/auth/login", data={"username": "director", "password": "wrong"})

        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Incorrect username or password"}
        assert response.headers["www-authenticate"] == "Bearer"

    def test_login_attempts_are_logged(self, client: TestClient, director, auth_headers_for):
        client.post("/api/auth/login", data={"username": "director", "password": "wrong"})
        client.post("/api/auth/login", data={"username": "director", "password": PASSWORD})

        response = client.get("/api/access/login-attempts", headers=auth_headers_for("director"))
        assert response.status_code == 200
        statuses = sorted(item["attempt_status"] for item in response.json()["data"])
        assert statuses == ["failed", "success"]

    def test_missing_token(self, client: TestClient):
        response = client.get("/api/cases/stats")
        assert response.status_code == 401
        assert response.json()["success"] is False


class TestRoleChecks:
    """Module access by role"""

    def test_technician_cannot_delete_client(self, client: TestClient, sample_client, auth_headers_for):
        response = client.delete(f"/api/clients/{sample_client.id}", headers=auth_headers_for("technician"))

        assert response.status_code == 403
        assert response.json()["success"] is False

    def test_admin_deletes_client_without_cases(self, client: TestClient, sample_client, auth_headers_for):
        response = client.delete(f"/api/clients/{sample_client.id}", headers=auth_headers_for("admin"))
        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_client_with_active_case_cannot_be_deleted(self, client: TestClient, sample_client, auth_headers_for):
        headers = auth_headers_for("director")
        client.post("/api/cases/", json={"client_id": sample_client.id, "project_name": "Panel"}, headers=headers)

        response = client.delete(f"/api/clients/{sample_client.id}", headers=headers)
        assert response.status_code == 400
        assert response.json()["errors"] == {"active_cases": 1}

    def test_technician_has_no_hr_access(self, client: TestClient, auth_headers_for):
        response = client.get("/api/hr/employees", headers=auth_headers_for("technician"))
        assert response.status_code == 403


class TestErrorEnvelopes:
    """Errors share the envelope shape"""

    def test_not_found(self, client: TestClient, auth_headers_for):
        response = client.get("/api/cases/9999", headers=auth_headers_for("director"))

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Case 9999 not found"}

    def test_request_validation(self, client: TestClient, auth_headers_for):
        response = client.post("/api/cases/", json={"project_name": "No client"}, headers=auth_headers_for("director"))

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Validation failed"
        assert body["errors"]

    def test_invalid_transition(self, client: TestClient, sample_client, auth_headers_for):
        headers = auth_headers_for("director")
        case = client.post(
            "/api/cases/", json={"client_id": sample_client.id, "project_name": "Panel"}, headers=headers
        ).json()["data"]

        response = client.post(f"/api/cases/{case['id']}/transition", json={"to_state": "order"}, headers=headers)
        assert response.status_code == 400
        assert response.json()["message"].startswith("Cannot transition case from 'enquiry' to 'order'")


class TestEmployeeEndpoints:
    """Employee CRUD through the API"""

    def test_create_and_get_employee(self, client: TestClient, auth_headers_for, sample_employee_data):
        headers = auth_headers_for("director")

        created = client.post("/api/hr/employees", json=sample_employee_data, headers=headers)
        assert created.status_code == 201
        employee = created.json()["data"]
        assert employee["employee_code"] == "EMP/0001"
        assert employee["status"] == "active"

        fetched = client.get(f"/api/hr/employees/{employee['id']}", headers=headers)
        assert fetched.status_code == 200
        assert fetched.json()["data"]["email"] == sample_employee_data["email"]
        assert fetched.json()["data"]["first_name"] == "Priya"

    def test_leave_balances_opened(self, client: TestClient, auth_headers_for, sample_employee_data):
        headers = auth_headers_for("director")
        employee = client.post("/api/hr/employees", json=sample_employee_data, headers=headers).json()["data"]

        response = client.get(f"/api/hr/leave/balances/{employee['id']}", headers=headers)
        assert response.status_code == 200
        assert len(response.json()["data"]) == 4

    def test_duplicate_employee_email(self, client: TestClient, auth_headers_for, sample_employee_data):
        headers = auth_headers_for("director")
        client.post("/api/hr/employees", json=sample_employee_data, headers=headers)

        response = client.post("/api/hr/employees", json=sample_employee_data, headers=headers)
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_delete_deactivates(self, client: TestClient, auth_headers_for, sample_employee_data):
        headers = auth_headers_for("director")
        employee = client.post("/api/hr/employees", json=sample_employee_data, headers=headers).json()["data"]

        assert client.delete(f"/api/hr/employees/{employee['id']}", headers=headers).status_code == 200
        fetched = client.get(f"/api/hr/employees/{employee['id']}", headers=headers).json()["data"]
        assert fetched["status"] == "inactive"


class TestCaseWorkflowEndpoints:
    """Enquiry to estimation through the API"""

    def test_enquiry_opens_case(self, client: TestClient, sample_client, auth_headers_for):
        headers = auth_headers_for("director")

        response = client.post("/api/sales/enquiries/", json={
            "client_id": sample_client.id,
            "project_name": "MCC panel for water treatment plant",
            "priority": "high",
        }, headers=headers)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["case_number"].startswith("VESPL/C/")

        case = client.get(f"/api/cases/{data['case_id']}", headers=headers).json()["data"]
        assert case["current_state"] == "enquiry"
        assert case["enquiry_id"] == data["id"]
        assert case["client_name"] == "Acme Water Works"

    def test_transition_and_listing_by_state(self, client: TestClient, sample_client, auth_headers_for):
        headers = auth_headers_for("director")
        case = client.post(
            "/api/cases/", json={"client_id": sample_client.id, "project_name": "Panel"}, headers=headers
        ).json()["data"]

        moved = client.post(
            f"/api/cases/{case['id']}/transition", json={"to_state": "estimation", "notes": "Scope clear"},
            headers=headers
        )
        assert moved.status_code == 200
        assert moved.json()["message"] == "Case moved to estimation"

        listing = client.get("/api/cases/state/estimation", headers=headers).json()
        assert listing["pagination"]["total"] == 1
        assert listing["data"][0]["id"] == case["id"]

    def test_approval_flow(self, client: TestClient, sample_client, auth_headers_for):
        director_headers = auth_headers_for("director")
        admin_headers = auth_headers_for("admin")
        case = client.post(
            "/api/cases/", json={"client_id": sample_client.id, "project_name": "Panel"}, headers=director_headers
        ).json()["data"]
        client.post(f"/api/cases/{case['id']}/transition", json={"to_state": "estimation"}, headers=director_headers)
        client.post(f"/api/cases/{case['id']}/advance", headers=director_headers)
        review = client.post(f"/api/cases/{case['id']}/advance", headers=director_headers).json()["data"]
        assert review["requires_approval"] is True

        assert client.post(f"/api/cases/{case['id']}/approve", headers=admin_headers).status_code == 403
        approved = client.post(
            f"/api/cases/{case['id']}/approve", json={"notes": "OK"}, headers=director_headers
        )
        assert approved.status_code == 200
        assert approved.json()["data"]["requires_approval"] is False

    @pytest.mark.parametrize("role, expected", [("director", 200), ("technician", 403)])
    def test_delete_case_roles(self, client: TestClient, sample_client, auth_headers_for, role, expected):
        case = client.post(
            "/api/cases/", json={"client_id": sample_client.id, "project_name": "Panel"},
            headers=auth_headers_for("director")
        ).json()["data"]

        response = client.delete(f"/api/cases/{case['id']}", headers=auth_headers_for(role))
        assert response.status_code == expected


@pytest.fixture
def client_from(client: TestClient):
    """Test client whose requests arrive from the given socket address"""
    def make(host: str) -> TestClient:
        return TestClient(app, client=(host, 5000))

    return make


@pytest.fixture
def blocked_network(db_session):
    LocationAccessService(db_session).create_ip_rule(
        {"rule_name": "Blocked host", "ip_address": "203.0.113.9", "access_type": "deny"}
    )


def login(client: TestClient, password: str = PASSWORD, **kwargs):
    return client.post("/api/auth/login", data={"username": "director", "password": password}, **kwargs)


class TestAccountLockout:
    """Repeated failures lock the account"""

    def test_five_failures_lock_the_account(self, client: TestClient, db_session, director):
        for _ in range(5):
            assert login(client, "wrong").status_code == 401

        response = login(client)
        assert response.status_code == 423
        assert response.json()["success"] is False

        db_session.refresh(director)
        assert director.failed_logins == 5
        remaining = director.locked_until - datetime.utcnow()
        assert timedelta(minutes=29) < remaining <= timedelta(minutes=30)

    def test_success_resets_failure_count(self, client: TestClient, db_session, director):
        for _ in range(4):
            login(client, "wrong")

        assert login(client).status_code == 200
        db_session.refresh(director)
        assert director.failed_logins == 0
        assert director.locked_until is None

    def test_lock_expires(self, client: TestClient, db_session, director):
        director.failed_logins = 5
        director.locked_until = datetime.utcnow() - timedelta(minutes=1)
        db_session.commit()

        assert login(client).status_code == 200


class TestLoginIPEnforcement:
    """IP access rules applied to the caller's address at login"""

    def test_denied_peer_is_blocked(self, client_from, db_session, director, blocked_network):
        response = login(client_from("203.0.113.9"))

        assert response.status_code == 403
        assert response.json()["success"] is False
        items, total = LocationAccessService(db_session).get_login_attempts(status="blocked")
        assert total == 1
        assert items[0].ip_address == "203.0.113.9"

    @pytest.mark.parametrize("forwarded", ["198.51.100.7", "not-an-ip"])
    def test_forwarded_header_from_untrusted_peer_is_ignored(self, client_from, director, blocked_network,
                                                             forwarded):
        response = login(client_from("203.0.113.9"), headers={"X-Forwarded-For": forwarded})
        assert response.status_code == 403

    def test_trusted_proxy_forwards_client_address(self, client_from, director, blocked_network, monkeypatch):
        monkeypatch.setattr(settings, "TRUSTED_PROXIES", ["10.0.0.5"])
        proxy = client_from("10.0.0.5")

        assert login(proxy, headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.5"}).status_code == 403
        assert login(proxy, headers={"X-Forwarded-For": "198.51.100.7"}).status_code == 200

    def test_unparsable_header_from_trusted_proxy_uses_proxy_address(self, client_from, db_session, director,
                                                                     blocked_network, monkeypatch):
        monkeypatch.setattr(settings, "TRUSTED_PROXIES", ["203.0.113.9"])

        response = login(client_from("203.0.113.9"), headers={"X-Forwarded-For": "garbage"})
        assert response.status_code == 403

    def test_allowed_peer_logs_address(self, client_from, db_session, director, blocked_network):
        assert login(client_from("198.51.100.7")).status_code == 200

        items, total = LocationAccessService(db_session).get_login_attempts(status="success")
        assert total == 1
        assert items[0].ip_address == "198.51.100.7"

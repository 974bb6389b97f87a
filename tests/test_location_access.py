"""
Tests for geofencing, location permissions and IP access rules
"""

import pytest
from datetime import date

from vtria_erp.core.exceptions import NotFoundError, ValidationError
from vtria_erp.services.location_access import LocationAccessService, haversine_distance

# 0.0005 degrees of latitude is roughly 56m, 0.01 degrees roughly 1.1km
NEARBY = (19.0765, 72.8777)
FAR_AWAY = (19.0860, 72.8777)


class TestHaversine:
    """Great-circle distance"""

    def test_same_point_is_zero(self):
        assert haversine_distance(19.076, 72.8777, 19.076, 72.8777) == 0

    def test_one_degree_of_latitude(self):
        assert haversine_distance(0, 0, 1, 0) == pytest.approx(111195, abs=1)

    def test_one_degree_of_longitude_at_equator(self):
        assert haversine_distance(0, 0, 0, 1) == pytest.approx(111195, abs=1)

    def test_symmetric(self):
        mumbai_pune = haversine_distance(19.0760, 72.8777, 18.5204, 73.8567)
        assert mumbai_pune == pytest.approx(haversine_distance(18.5204, 73.8567, 19.0760, 72.8777))
        assert 115000 < mumbai_pune < 125000


class TestOfficeLocations:
    """Location master validation"""

    def test_invalid_coordinates_rejected(self, db_session):
        with pytest.raises(ValidationError):
            LocationAccessService(db_session).create_location(
                {"location_name": "Nowhere", "latitude": 91, "longitude": 10}
            )

    def test_unknown_location_type_rejected(self, db_session):
        with pytest.raises(ValidationError):
            LocationAccessService(db_session).create_location(
                {"location_name": "Shed", "latitude": 1, "longitude": 1, "location_type": "garage"}
            )

    def test_default_radius(self, db_session):
        location = LocationAccessService(db_session).create_location(
            {"location_name": "Pune Branch", "latitude": 18.5204, "longitude": 73.8567}
        )
        assert location.radius_meters == 100
        assert location.timezone == "Asia/Kolkata"


class TestLocationValidation:
    """Geofence checks for an employee"""

    def test_no_permissions_is_invalid(self, db_session, employee, office):
        result = LocationAccessService(db_session).validate_location(employee.id, *NEARBY)
        assert result["is_valid"] is False
        assert result["message"] == "No permitted locations"

    def test_inside_permitted_office(self, db_session, employee, office, director):
        service = LocationAccessService(db_session)
        service.grant_permission({"employee_id": employee.id, "location_id": office.id}, director)

        result = service.validate_location(employee.id, *NEARBY)

        assert result["is_valid"] is True
        assert result["validation_status"] == "valid"
        assert result["valid_locations"][0]["location_id"] == office.id
        assert result["valid_locations"][0]["distance_meters"] < 100

    def test_outside_radius_reports_nearest(self, db_session, employee, office):
        service = LocationAccessService(db_session)
        service.grant_permission({"employee_id": employee.id, "location_id": office.id})

        result = service.validate_location(employee.id, *FAR_AWAY)

        assert result["is_valid"] is False
        assert result["validation_status"] == "invalid"
        assert result["nearest_location"]["distance_meters"] > 1000

    def test_permission_purpose_is_respected(self, db_session, employee, office):
        service = LocationAccessService(db_session)
        service.grant_permission({"employee_id": employee.id, "location_id": office.id, "permission_type": "login"})

        assert service.validate_location(employee.id, *NEARBY, purpose="login")["is_valid"] is True
        assert service.validate_location(employee.id, *NEARBY, purpose="attendance")["is_valid"] is False

    def test_remote_work_authorized_within_dates(self, db_session, employee, office):
        service = LocationAccessService(db_session)
        service.grant_permission({
            "employee_id": employee.id,
            "location_id": office.id,
            "is_remote_work_authorized": True,
            "remote_work_start_date": date(2025, 5, 1),
            "remote_work_end_date": date(2025, 5, 31),
        })

        inside = service.validate_location(employee.id, *FAR_AWAY, today=date(2025, 5, 15))
        after = service.validate_location(employee.id, *FAR_AWAY, today=date(2025, 6, 1))

        assert inside["validation_status"] == "remote_authorized"
        assert inside["is_valid"] is True
        assert after["is_valid"] is False

    def test_regrant_updates_existing_permission(self, db_session, employee, office):
        service = LocationAccessService(db_session)
        first = service.grant_permission({"employee_id": employee.id, "location_id": office.id})
        second = service.grant_permission(
            {"employee_id": employee.id, "location_id": office.id, "permission_type": "attendance"}
        )
        assert first.id == second.id
        assert len(service.list_permissions(employee.id)) == 1

    def test_revoked_permission_no_longer_counts(self, db_session, employee, office):
        service = LocationAccessService(db_session)
        permission = service.grant_permission({"employee_id": employee.id, "location_id": office.id})
        service.revoke_permission(permission.id)
        assert service.validate_location(employee.id, *NEARBY)["is_valid"] is False

    def test_grant_for_unknown_employee(self, db_session, office):
        with pytest.raises(NotFoundError):
            LocationAccessService(db_session).grant_permission({"employee_id": 999, "location_id": office.id})

    def test_remote_dates_must_be_ordered(self, db_session, employee, office):
        with pytest.raises(ValidationError):
            LocationAccessService(db_session).grant_permission({
                "employee_id": employee.id,
                "location_id": office.id,
                "remote_work_start_date": date(2025, 5, 31),
                "remote_work_end_date": date(2025, 5, 1),
            })


class TestIPRules:
    """Deny-first IP access evaluation"""

    @pytest.fixture
    def rules(self, db_session):
        service = LocationAccessService(db_session)
        service.create_ip_rule({
            "rule_name": "Office LAN", "ip_address": "192.168.0.0", "subnet_mask": "16", "access_type": "allow"
        })
        service.create_ip_rule({
            "rule_name": "Guest WiFi", "ip_address": "192.168.1.0", "subnet_mask": "255.255.255.0",
            "access_type": "deny"
        })
        return service

    def test_deny_rule_wins_over_broader_allow(self, rules):
        result = rules.validate_ip("192.168.1.25")
        assert result["allowed"] is False
        assert result["matched_rule"]["rule_name"] == "Guest WiFi"

    def test_allow_rule_matches(self, rules):
        result = rules.validate_ip("192.168.7.3")
        assert result["allowed"] is True
        assert result["matched_rule"]["rule_name"] == "Office LAN"

    def test_unmatched_address_allowed(self, rules):
        result = rules.validate_ip("10.20.30.40")
        assert result == {"allowed": True, "matched_rule": None, "reason": "No matching rule"}

    def test_single_address_rule(self, db_session):
        service = LocationAccessService(db_session)
        service.create_ip_rule({"rule_name": "Blocked host", "ip_address": "203.0.113.9", "access_type": "deny"})
        assert service.validate_ip("203.0.113.9")["allowed"] is False
        assert service.validate_ip("203.0.113.10")["allowed"] is True

    def test_inactive_rules_ignored(self, rules, db_session):
        deny = [r for r in rules.list_ip_rules() if r.access_type == "deny"][0]
        rules.update_ip_rule(deny.id, {"is_active": False})
        assert rules.validate_ip("192.168.1.25")["allowed"] is True

    def test_invalid_rule_rejected(self, db_session):
        with pytest.raises(ValidationError):
            LocationAccessService(db_session).create_ip_rule(
                {"rule_name": "Bad", "ip_address": "300.1.1.1", "access_type": "deny"}
            )
        with pytest.raises(ValidationError):
            LocationAccessService(db_session).create_ip_rule(
                {"rule_name": "Bad", "ip_address": "10.0.0.0", "access_type": "maybe"}
            )

    def test_invalid_address_rejected(self, db_session):
        with pytest.raises(ValidationError):
            LocationAccessService(db_session).validate_ip("not-an-ip")


class TestLoginAttempts:
    """Login attempt log"""

    def test_attempts_filtered_by_status(self, db_session):
        service = LocationAccessService(db_session)
        service.log_login_attempt("asha", "success", ip_address="10.0.0.2")
        service.log_login_attempt("asha", "failed", ip_address="10.0.0.2", failure_reason="Invalid password")

        items, total = service.get_login_attempts(status="failed")
        assert total == 1
        assert items[0].failure_reason == "Invalid password"

    def test_unknown_status_rejected(self, db_session):
        with pytest.raises(ValidationError):
            LocationAccessService(db_session).log_login_attempt("asha", "maybe")

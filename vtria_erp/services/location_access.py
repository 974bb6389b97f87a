"""
Location Access Service
Office geofences, employee location permissions, IP access rules and login attempt logging
"""
import ipaddress
import logging
import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc
from sqlalchemy.orm import Session

from vtria_erp.core.config import settings
from vtria_erp.core.exceptions import NotFoundError, ValidationError
from vtria_erp.core.logging import get_logger
from vtria_erp.models.hr import Employee
from vtria_erp.models.location_access import (
    EmployeeLocationPermission, IPAccessRule, LoginAttemptLog, OfficeLocation
)
from vtria_erp.models.user import User

logger = logging.getLogger(__name__)
security_logger = get_logger("security")

EARTH_RADIUS_METERS = 6371000
LOCATION_TYPES = ("head_office", "branch_office", "site", "warehouse")
PERMISSION_TYPES = ("attendance", "login", "both")
ACCESS_TYPES = ("allow", "deny")
ATTEMPT_STATUSES = ("success", "failed", "blocked")

LOCATION_FIELDS = (
    "location_name", "address", "city", "state", "latitude", "longitude",
    "radius_meters", "location_type", "timezone", "is_active"
)
IP_RULE_FIELDS = ("rule_name", "ip_address", "subnet_mask", "access_type", "location_id", "description", "is_active")


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates in metres"""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def validate_coordinates(latitude: float, longitude: float):
    if latitude is None or longitude is None:
        raise ValidationError("Latitude and longitude are required")
    if abs(latitude) > 90 or abs(longitude) > 180:
        raise ValidationError(f"Invalid coordinates ({latitude}, {longitude})")


def rule_network(rule: IPAccessRule):
    """Network covered by a rule; a rule without a mask covers only its own address"""
    if rule.subnet_mask:
        return ipaddress.ip_network(f"{rule.ip_address}/{rule.subnet_mask}", strict=False)
    return ipaddress.ip_network(rule.ip_address)


class LocationAccessService:
    """Service for geofenced attendance/login and IP access control"""

    def __init__(self, db: Session):
        self.db = db

    # Office locations

    def list_locations(self, active_only: bool = True) -> List[OfficeLocation]:
        query = self.db.query(OfficeLocation)
        if active_only:
            query = query.filter(OfficeLocation.is_active.is_(True))
        return query.order_by(OfficeLocation.location_name).all()

    def get_location(self, location_id: int) -> OfficeLocation:
        location = self.db.query(OfficeLocation).filter(OfficeLocation.id == location_id).first()
        if not location:
            raise NotFoundError(f"Office location {location_id} not found")
        return location

    def _check_location(self, data: Dict[str, Any]):
        if "latitude" in data or "longitude" in data:
            validate_coordinates(data.get("latitude"), data.get("longitude"))
        if data.get("location_type") and data["location_type"] not in LOCATION_TYPES:
            raise ValidationError(f"location_type must be one of: {', '.join(LOCATION_TYPES)}")
        if data.get("radius_meters") is not None and data["radius_meters"] <= 0:
            raise ValidationError("radius_meters must be positive")

    def create_location(self, data: Dict[str, Any]) -> OfficeLocation:
        values = {k: v for k, v in data.items() if k in LOCATION_FIELDS and v is not None}
        if not values.get("location_name"):
            raise ValidationError("location_name is required")
        validate_coordinates(values.get("latitude"), values.get("longitude"))
        self._check_location(values)
        values.setdefault("radius_meters", settings.DEFAULT_LOCATION_RADIUS_METERS)
        values.setdefault("timezone", settings.DEFAULT_TIMEZONE)

        location = OfficeLocation(**values)
        self.db.add(location)
        self.db.commit()
        self.db.refresh(location)
        logger.info(f"Office location created: {location.location_name}")
        return location

    def update_location(self, location_id: int, data: Dict[str, Any]) -> OfficeLocation:
        location = self.get_location(location_id)
        values = {k: v for k, v in data.items() if k in LOCATION_FIELDS}
        if "latitude" in values or "longitude" in values:
            values.setdefault("latitude", location.latitude)
            values.setdefault("longitude", location.longitude)
        self._check_location(values)
        for field, value in values.items():
            setattr(location, field, value)
        self.db.commit()
        self.db.refresh(location)
        return location

    def delete_location(self, location_id: int) -> OfficeLocation:
        location = self.get_location(location_id)
        location.is_active = False
        self.db.commit()
        return location

    # Employee permissions

    def grant_permission(self, data: Dict[str, Any], user: Optional[User] = None) -> EmployeeLocationPermission:
        """Create or update the active grant for an employee at a location"""
        employee_id = data.get("employee_id")
        location_id = data.get("location_id")
        if not self.db.query(Employee).filter(Employee.id == employee_id).first():
            raise NotFoundError(f"Employee {employee_id} not found")
        self.get_location(location_id)

        permission_type = data.get("permission_type") or "both"
        if permission_type not in PERMISSION_TYPES:
            raise ValidationError(f"permission_type must be one of: {', '.join(PERMISSION_TYPES)}")

        start, end = data.get("remote_work_start_date"), data.get("remote_work_end_date")
        if start and end and end < start:
            raise ValidationError("Remote work end date must not be before its start date")

        permission = self.db.query(EmployeeLocationPermission).filter(
            EmployeeLocationPermission.employee_id == employee_id,
            EmployeeLocationPermission.location_id == location_id,
            EmployeeLocationPermission.is_active.is_(True)
        ).first()
        if permission is None:
            permission = EmployeeLocationPermission(employee_id=employee_id, location_id=location_id)
            self.db.add(permission)

        permission.permission_type = permission_type
        permission.is_remote_work_authorized = bool(data.get("is_remote_work_authorized", False))
        permission.remote_work_start_date = start
        permission.remote_work_end_date = end
        permission.granted_by = user.id if user else None
        permission.is_active = True

        self.db.commit()
        self.db.refresh(permission)
        logger.info(f"Location {location_id} permission '{permission_type}' granted to employee {employee_id}")
        return permission

    def list_permissions(self, employee_id: Optional[int] = None) -> List[EmployeeLocationPermission]:
        query = self.db.query(EmployeeLocationPermission).filter(EmployeeLocationPermission.is_active.is_(True))
        if employee_id:
            query = query.filter(EmployeeLocationPermission.employee_id == employee_id)
        return query.order_by(EmployeeLocationPermission.employee_id, EmployeeLocationPermission.location_id).all()

    def revoke_permission(self, permission_id: int) -> EmployeeLocationPermission:
        permission = self.db.query(EmployeeLocationPermission).filter(
            EmployeeLocationPermission.id == permission_id
        ).first()
        if not permission:
            raise NotFoundError(f"Location permission {permission_id} not found")
        permission.is_active = False
        self.db.commit()
        return permission

    def validate_location(
        self,
        employee_id: int,
        latitude: float,
        longitude: float,
        purpose: str = "attendance",
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Check whether an employee stands inside any office they are permitted to use.

        Remote-work authorization valid for today makes the result valid even
        when no office is within range.
        """
        validate_coordinates(latitude, longitude)
        today = today or date.today()

        permissions = self.db.query(EmployeeLocationPermission).join(
            OfficeLocation, EmployeeLocationPermission.location_id == OfficeLocation.id
        ).filter(
            EmployeeLocationPermission.employee_id == employee_id,
            EmployeeLocationPermission.is_active.is_(True),
            EmployeeLocationPermission.permission_type.in_((purpose, "both")),
            OfficeLocation.is_active.is_(True)
        ).all()

        candidates = []
        remote_authorized = False
        for permission in permissions:
            location = permission.location
            distance = haversine_distance(latitude, longitude, location.latitude, location.longitude)
            candidates.append({
                "location_id": location.id,
                "location_name": location.location_name,
                "location_type": location.location_type,
                "distance_meters": round(distance, 2),
                "radius_meters": location.radius_meters,
            })
            if permission.is_remote_work_authorized:
                start = permission.remote_work_start_date
                end = permission.remote_work_end_date
                if (start is None or start <= today) and (end is None or today <= end):
                    remote_authorized = True

        candidates.sort(key=lambda c: c["distance_meters"])
        valid_locations = [c for c in candidates if c["distance_meters"] <= c["radius_meters"]]

        if valid_locations:
            result = {
                "is_valid": True,
                "validation_status": "valid",
                "valid_locations": valid_locations,
                "message": f"Within {valid_locations[0]['location_name']}",
            }
        elif remote_authorized:
            result = {
                "is_valid": True,
                "validation_status": "remote_authorized",
                "valid_locations": [],
                "message": "Remote work authorized",
            }
        else:
            nearest = candidates[0] if candidates else None
            message = (
                f"Outside permitted locations; nearest is {nearest['location_name']} "
                f"at {nearest['distance_meters']}m" if nearest else "No permitted locations"
            )
            result = {
                "is_valid": False,
                "validation_status": "invalid",
                "valid_locations": [],
                "nearest_location": nearest,
                "message": message,
            }
            security_logger.warning(
                f"Location validation failed for employee {employee_id} ({purpose}) at {latitude},{longitude}"
            )
        return result

    # IP rules

    def list_ip_rules(self, active_only: bool = False) -> List[IPAccessRule]:
        query = self.db.query(IPAccessRule)
        if active_only:
            query = query.filter(IPAccessRule.is_active.is_(True))
        return query.order_by(IPAccessRule.access_type.desc(), IPAccessRule.id).all()

    def get_ip_rule(self, rule_id: int) -> IPAccessRule:
        rule = self.db.query(IPAccessRule).filter(IPAccessRule.id == rule_id).first()
        if not rule:
            raise NotFoundError(f"IP rule {rule_id} not found")
        return rule

    def _check_ip_rule(self, rule: IPAccessRule):
        if rule.access_type not in ACCESS_TYPES:
            raise ValidationError("access_type must be 'allow' or 'deny'")
        try:
            rule_network(rule)
        except ValueError as e:
            raise ValidationError(f"Invalid IP address or subnet: {e}")

    def create_ip_rule(self, data: Dict[str, Any]) -> IPAccessRule:
        values = {k: v for k, v in data.items() if k in IP_RULE_FIELDS and v is not None}
        if not values.get("rule_name") or not values.get("ip_address"):
            raise ValidationError("rule_name and ip_address are required")
        rule = IPAccessRule(**values)
        rule.access_type = rule.access_type or "allow"
        self._check_ip_rule(rule)
        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def update_ip_rule(self, rule_id: int, data: Dict[str, Any]) -> IPAccessRule:
        rule = self.get_ip_rule(rule_id)
        for field, value in data.items():
            if field in IP_RULE_FIELDS:
                setattr(rule, field, value)
        self._check_ip_rule(rule)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def delete_ip_rule(self, rule_id: int):
        rule = self.get_ip_rule(rule_id)
        self.db.delete(rule)
        self.db.commit()

    def validate_ip(self, ip_address: str) -> Dict[str, Any]:
        """Deny rules are evaluated first; the first matching rule decides"""
        try:
            address = ipaddress.ip_address(ip_address)
        except ValueError:
            raise ValidationError(f"Invalid IP address '{ip_address}'")

        rules = self.db.query(IPAccessRule).filter(IPAccessRule.is_active.is_(True)).all()
        ordered = [r for r in rules if r.access_type == "deny"] + [r for r in rules if r.access_type == "allow"]
        for rule in ordered:
            try:
                network = rule_network(rule)
            except ValueError:
                logger.warning(f"Skipping malformed IP rule {rule.id} ({rule.rule_name})")
                continue
            if address.version == network.version and address in network:
                allowed = rule.access_type == "allow"
                if not allowed:
                    security_logger.warning(f"IP {ip_address} denied by rule '{rule.rule_name}'")
                return {
                    "allowed": allowed,
                    "matched_rule": {"id": rule.id, "rule_name": rule.rule_name, "access_type": rule.access_type},
                    "reason": f"Matched {rule.access_type} rule '{rule.rule_name}'",
                }

        return {"allowed": True, "matched_rule": None, "reason": "No matching rule"}

    # Login attempts

    def log_login_attempt(
        self,
        username: Optional[str],
        attempt_status: str,
        ip_address: Optional[str] = None,
        user_id: Optional[int] = None,
        user_agent: Optional[str] = None,
        failure_reason: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        location_id: Optional[int] = None,
        commit: bool = True,
    ) -> LoginAttemptLog:
        if attempt_status not in ATTEMPT_STATUSES:
            raise ValidationError(f"attempt_status must be one of: {', '.join(ATTEMPT_STATUSES)}")
        entry = LoginAttemptLog(
            username=username,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:255] or None,
            latitude=latitude,
            longitude=longitude,
            location_id=location_id,
            attempt_status=attempt_status,
            failure_reason=failure_reason,
        )
        self.db.add(entry)
        if commit:
            self.db.commit()
            self.db.refresh(entry)
        else:
            self.db.flush()

        message = f"Login {attempt_status} for '{username}' from {ip_address}"
        if attempt_status == "success":
            security_logger.info(message)
        else:
            security_logger.warning(f"{message}: {failure_reason}")
        return entry

    def get_login_attempts(
        self,
        status: Optional[str] = None,
        username: Optional[str] = None,
        ip_address: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[LoginAttemptLog], int]:
        query = self.db.query(LoginAttemptLog)
        if status:
            query = query.filter(LoginAttemptLog.attempt_status == status)
        if username:
            query = query.filter(LoginAttemptLog.username == username)
        if ip_address:
            query = query.filter(LoginAttemptLog.ip_address == ip_address)
        if date_from:
            query = query.filter(LoginAttemptLog.created_at >= date_from)
        if date_to:
            query = query.filter(LoginAttemptLog.created_at <= date_to)

        total = query.count()
        items = query.order_by(desc(LoginAttemptLog.created_at), desc(LoginAttemptLog.id)) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, total

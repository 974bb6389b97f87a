"""
Location and IP access control API endpoints
Office locations, employee location permissions, geofence checks, IP rules and login attempts
"""
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from vtria_erp.api.deps import get_current_active_user, get_db, get_pagination_params, require_module
from vtria_erp.core.responses import paginated_response, success_response
from vtria_erp.models.user import User
from vtria_erp.schemas.location_access import (
    IPRuleCreate, IPRuleResponse, IPRuleUpdate, IPValidationRequest, LocationPermissionCreate,
    LocationPermissionResponse, LocationValidationRequest, LoginAttemptResponse,
    OfficeLocationCreate, OfficeLocationResponse, OfficeLocationUpdate
)
from vtria_erp.services.location_access import LocationAccessService

router = APIRouter()


# Office locations

@router.get("/locations")
async def list_locations(
    active_only: bool = Query(True),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    locations = LocationAccessService(db).list_locations(active_only)
    return success_response(data=[OfficeLocationResponse.model_validate(l) for l in locations])


@router.get("/locations/{location_id}")
async def get_location(
    location_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    location = LocationAccessService(db).get_location(location_id)
    return success_response(data=OfficeLocationResponse.model_validate(location))


@router.post("/locations", status_code=status.HTTP_201_CREATED)
async def create_location(
    body: OfficeLocationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("settings"))
):
    location = LocationAccessService(db).create_location(body.model_dump())
    return success_response(data=OfficeLocationResponse.model_validate(location), message="Location created")


@router.put("/locations/{location_id}")
async def update_location(
    location_id: int,
    body: OfficeLocationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("settings"))
):
    location = LocationAccessService(db).update_location(location_id, body.model_dump(exclude_unset=True))
    return success_response(data=OfficeLocationResponse.model_validate(location), message="Location updated")


@router.delete("/locations/{location_id}")
async def delete_location(
    location_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("settings"))
):
    """Deactivates the location"""
    LocationAccessService(db).delete_location(location_id)
    return success_response(message="Location deactivated")


# Employee location permissions

@router.get("/permissions")
async def list_permissions(
    employee_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("hr"))
):
    permissions = LocationAccessService(db).list_permissions(employee_id)
    return success_response(data=[LocationPermissionResponse.model_validate(p) for p in permissions])


@router.post("/permissions", status_code=status.HTTP_201_CREATED)
async def grant_permission(
    body: LocationPermissionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("hr"))
):
    permission = LocationAccessService(db).grant_permission(body.model_dump(), current_user)
    return success_response(
        data=LocationPermissionResponse.model_validate(permission), message="Location permission granted"
    )


@router.delete("/permissions/{permission_id}")
async def revoke_permission(
    permission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("hr"))
):
    LocationAccessService(db).revoke_permission(permission_id)
    return success_response(message="Location permission revoked")


@router.post("/validate-location")
async def validate_location(
    body: LocationValidationRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    result = LocationAccessService(db).validate_location(
        body.employee_id, body.latitude, body.longitude, purpose=body.purpose
    )
    return success_response(data=result, message=result["message"])


# IP rules

@router.get("/ip-rules")
async def list_ip_rules(
    active_only: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("settings"))
):
    rules = LocationAccessService(db).list_ip_rules(active_only)
    return success_response(data=[IPRuleResponse.model_validate(r) for r in rules])


@router.post("/ip-rules", status_code=status.HTTP_201_CREATED)
async def create_ip_rule(
    body: IPRuleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("settings"))
):
    rule = LocationAccessService(db).create_ip_rule(body.model_dump())
    return success_response(data=IPRuleResponse.model_validate(rule), message="IP rule created")


@router.put("/ip-rules/{rule_id}")
async def update_ip_rule(
    rule_id: int,
    body: IPRuleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("settings"))
):
    rule = LocationAccessService(db).update_ip_rule(rule_id, body.model_dump(exclude_unset=True))
    return success_response(data=IPRuleResponse.model_validate(rule), message="IP rule updated")


@router.delete("/ip-rules/{rule_id}")
async def delete_ip_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("settings"))
):
    LocationAccessService(db).delete_ip_rule(rule_id)
    return success_response(message="IP rule deleted")


@router.post("/validate-ip")
async def validate_ip(
    body: IPValidationRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("settings"))
):
    return success_response(data=LocationAccessService(db).validate_ip(body.ip_address))


# Login attempts

@router.get("/login-attempts")
async def login_attempts(
    status_filter: Optional[str] = Query(None, alias="status"),
    username: Optional[str] = Query(None),
    ip_address: Optional[str] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    pagination: dict = Depends(get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("audit"))
):
    rows, total = LocationAccessService(db).get_login_attempts(
        status=status_filter, username=username, ip_address=ip_address,
        date_from=date_from, date_to=date_to, page=pagination["page"], limit=pagination["limit"]
    )
    return paginated_response(
        [LoginAttemptResponse.model_validate(r) for r in rows], pagination["page"], pagination["limit"], total
    )

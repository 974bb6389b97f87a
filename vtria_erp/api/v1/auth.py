"""
Authentication API endpoints
Login, current user and password change
"""
from datetime import timedelta
from typing import Any
from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from vtria_erp.api.deps import client_ip, get_current_active_user, get_db
from vtria_erp.core.config import settings
from vtria_erp.core.logging import get_logger
from vtria_erp.core.responses import success_response
from vtria_erp.core.security import create_access_token
from vtria_erp.models.user import User
from vtria_erp.schemas.auth import CurrentUserResponse, PasswordChange, UserResponse
from vtria_erp.services.audit import AuditService
from vtria_erp.services.auth_service import AuthService
from vtria_erp.services.location_access import LocationAccessService

router = APIRouter()
security_logger = get_logger("security")

FAILURE_MESSAGES = {
    "user_not_found": "Incorrect username or password",
    "incorrect_password": "Incorrect username or password",
}


@router.post("/login")
async def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
) -> Any:
    """
    OAuth2 compatible token login

    The client address is checked against the IP access rules first.
    Every attempt is written to the login attempt log.
    """
    ip_address = client_ip(request)
    user_agent = request.headers.get("user-agent")
    access = LocationAccessService(db)

    if ip_address:
        ip_check = access.validate_ip(ip_address)
        if not ip_check["allowed"]:
            access.log_login_attempt(
                form_data.username, "blocked", ip_address=ip_address,
                user_agent=user_agent, failure_reason=ip_check["reason"]
            )
            security_logger.warning(f"Login blocked for {form_data.username} from {ip_address}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied from this network location"
            )

    auth_service = AuthService(db)
    user, reason = auth_service.authenticate(form_data.username, form_data.password)

    if reason:
        access.log_login_attempt(
            form_data.username, "failed", ip_address=ip_address, user_id=user.id if user else None,
            user_agent=user_agent, failure_reason=reason
        )
        security_logger.warning(f"Login failed for {form_data.username} from {ip_address}: {reason}")

        if reason == "account_locked":
            raise HTTPException(
                status_code=status.HTTP_423_LOCKED,
                detail="Account is locked. Please contact administrator."
            )
        if reason == "inactive_user":
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Inactive user"
            )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=FAILURE_MESSAGES.get(reason, "Incorrect username or password"),
            headers={"WWW-Authenticate": "Bearer"},
        )

    access.log_login_attempt(
        user.username, "success", ip_address=ip_address, user_id=user.id, user_agent=user_agent
    )
    AuditService(db).log_audit(
        "users", user.id, "LOGIN", user=user, ip_address=ip_address,
        user_agent=user_agent, system_generated=True, commit=True
    )
    security_logger.info(f"Login successful: {user.username} from {ip_address}")

    access_token = create_access_token(
        data={"sub": str(user.id), "role": user.role},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    user_data = CurrentUserResponse.model_validate(user).model_copy(update={"permissions": user.permissions})

    return success_response(
        data={
            "access_token": access_token,
            "token_type": "bearer",
            "user": user_data,
        },
        message="Login successful",
        access_token=access_token,
        token_type="bearer",
    )


@router.get("/me")
async def read_current_user(current_user: User = Depends(get_current_active_user)):
    """Current user with resolved role permissions"""
    data = CurrentUserResponse.model_validate(current_user).model_copy(
        update={"permissions": current_user.permissions}
    )
    return success_response(data=data)


@router.post("/change-password")
async def change_password(
    password_data: PasswordChange,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    AuthService(db).change_password(current_user, password_data.current_password, password_data.new_password)
    return success_response(message="Password changed successfully")


@router.post("/logout")
async def logout(current_user: User = Depends(get_current_active_user)):
    """Tokens are stateless; the client discards its token"""
    security_logger.info(f"Logout: {current_user.username}")
    return success_response(data=UserResponse.model_validate(current_user), message="Logged out")

"""
API Dependencies
Common dependencies for API endpoints
"""

import ipaddress
from typing import Optional
from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from vtria_erp.core.config import settings
from vtria_erp.core.database import get_db
from vtria_erp.core.security import decode_access_token, has_module_access, has_permission
from vtria_erp.models.user import User

# Security scheme
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/login")

__all__ = [
    "get_db", "get_current_user", "get_current_active_user", "PermissionChecker",
    "ModuleChecker", "require_permission", "require_module", "get_pagination_params", "client_ip",
]


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    Get current authenticated user from JWT token.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_access_token(token)
    if not payload:
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception

    try:
        user = db.query(User).filter(User.id == int(user_id)).first()
    except ValueError:
        raise credentials_exception
    if not user:
        raise credentials_exception

    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Get current active user - checks if user is active.
    """
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inactive user"
        )
    return current_user


class PermissionChecker:
    """
    Permission checker dependency for a flag of the role table.
    """
    def __init__(self, permission: str):
        self.permission = permission

    def __call__(self, current_user: User = Depends(get_current_active_user)) -> User:
        if not has_permission(current_user.role, self.permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required permission: {self.permission}"
            )
        return current_user


class ModuleChecker:
    """
    Module checker dependency for the allowedModules list of the role table.
    Access to any one of the given modules is enough.
    """
    def __init__(self, modules: tuple):
        self.modules = modules

    def __call__(self, current_user: User = Depends(get_current_active_user)) -> User:
        if not any(has_module_access(current_user.role, module) for module in self.modules):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required module: {' or '.join(self.modules)}"
            )
        return current_user


def require_permission(permission: str) -> PermissionChecker:
    return PermissionChecker(permission)


def require_module(*modules: str) -> ModuleChecker:
    return ModuleChecker(modules)


def get_pagination_params(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100)
) -> dict:
    """
    Common pagination parameters.
    """
    return {"page": page, "limit": limit}


def client_ip(request: Request) -> Optional[str]:
    """
    Client IP address.

    X-Forwarded-For is honoured only when the peer is one of
    settings.TRUSTED_PROXIES; an unparsable header falls back to the peer.
    Returns None when the peer is not an IP address (test clients, unix sockets).
    """
    peer = _parse_ip(request.client.host if request.client else None)

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and peer and peer in _trusted_proxies():
        origin = _parse_ip(forwarded.split(",")[0].strip())
        if origin:
            return origin
    return peer


def _parse_ip(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        return None


def _trusted_proxies() -> set:
    return {ip for ip in (_parse_ip(p) for p in settings.TRUSTED_PROXIES) if ip}

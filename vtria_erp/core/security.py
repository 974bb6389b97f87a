"""
Security utilities for VTRIA
Password hashing, JWT tokens and the role permission table
"""
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from passlib.context import CryptContext

from vtria_erp.core.config import settings

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ROLES = ("director", "admin", "sales-admin", "designer", "accounts", "technician")

# Static role-to-permission lookup table
ROLE_PERMISSIONS: Dict[str, Dict[str, Any]] = {
    "director": {
        "canViewAll": True,
        "canApproveAll": True,
        "canAssignCases": True,
        "canManageUsers": True,
        "canViewReports": True,
        "canManageSettings": True,
        "allowedModules": ["all"],
    },
    "admin": {
        "canViewAll": True,
        "canApproveAll": False,
        "canAssignCases": True,
        "canManageUsers": False,
        "canViewReports": True,
        "canManageSettings": False,
        "allowedModules": [
            "users", "cases", "reports", "settings", "customers", "hr",
            "inventory", "purchasing", "sales", "audit",
        ],
    },
    "sales-admin": {
        "canViewAll": False,
        "canApproveAll": False,
        "canAssignCases": True,
        "canManageUsers": False,
        "canViewReports": True,
        "canManageSettings": False,
        "allowedModules": ["sales", "quotations", "customers", "reports", "cases"],
    },
    "designer": {
        "canViewAll": False,
        "canApproveAll": False,
        "canAssignCases": False,
        "canManageUsers": False,
        "canViewReports": False,
        "canManageSettings": False,
        "allowedModules": ["estimations", "products", "cases"],
    },
    "accounts": {
        "canViewAll": False,
        "canApproveAll": False,
        "canAssignCases": False,
        "canManageUsers": False,
        "canViewReports": True,
        "canManageSettings": False,
        "allowedModules": ["invoices", "payments", "reports", "suppliers", "purchasing"],
    },
    "technician": {
        "canViewAll": False,
        "canApproveAll": False,
        "canAssignCases": False,
        "canManageUsers": False,
        "canViewReports": False,
        "canManageSettings": False,
        "allowedModules": ["manufacturing", "cases", "inventory"],
    },
}

# Roles that may read every case without being creator or assignee
CASE_READ_ROLES = ("sales-admin", "designer", "accounts")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate password hash"""
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode a JWT, returning None when it is invalid or expired"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def get_role_permissions(role: Optional[str]) -> Dict[str, Any]:
    return ROLE_PERMISSIONS.get(role or "", {})


def has_permission(role: Optional[str], permission: str) -> bool:
    """Check a boolean flag from the role table"""
    return bool(get_role_permissions(role).get(permission, False))


def has_module_access(role: Optional[str], module: str) -> bool:
    """Check if a role may use a module"""
    modules = get_role_permissions(role).get("allowedModules", [])
    return "all" in modules or module in modules


def can_access_case(user, case) -> bool:
    """
    Case level access check

    Directors and admins see every case, creators and assignees see their own.
    Sales, design and accounts staff may read any case; technicians only when assigned.
    """
    if user.role in ("director", "admin"):
        return True
    if case.created_by == user.id or case.assigned_to == user.id:
        return True
    if user.role in CASE_READ_ROLES:
        return True
    return False

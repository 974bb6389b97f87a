"""
Users API endpoints
User management and the role permission table
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from vtria_erp.api.deps import get_db, get_pagination_params, require_permission
from vtria_erp.core.exceptions import NotFoundError
from vtria_erp.core.responses import paginated_response, success_response
from vtria_erp.core.security import ROLE_PERMISSIONS
from vtria_erp.models.user import User
from vtria_erp.schemas.auth import UserCreate, UserResponse, UserUpdate
from vtria_erp.services.auth_service import AuthService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/roles")
async def list_roles(current_user: User = Depends(require_permission("canManageUsers"))):
    """Role permission table"""
    return success_response(data=ROLE_PERMISSIONS)


@router.get("/")
async def list_users(
    pagination: dict = Depends(get_pagination_params),
    search: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("canManageUsers"))
):
    """
    List users with filtering and pagination
    Requires canManageUsers
    """
    users, total = AuthService(db).get_users(
        page=pagination["page"],
        limit=pagination["limit"],
        search=search,
        role=role,
        is_active=is_active
    )
    return paginated_response(
        [UserResponse.model_validate(u) for u in users], pagination["page"], pagination["limit"], total
    )


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("canManageUsers"))
):
    user = AuthService(db).get_user_by_id(user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    return success_response(data=UserResponse.model_validate(user))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("canManageUsers"))
):
    user = AuthService(db).create_user(user_data.model_dump())
    logger.info(f"User created: {user.username} by {current_user.username}")
    return success_response(data=UserResponse.model_validate(user), message="User created successfully")


@router.put("/{user_id}")
async def update_user(
    user_id: int,
    user_data: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("canManageUsers"))
):
    user = AuthService(db).update_user(user_id, user_data.model_dump(exclude_unset=True))
    return success_response(data=UserResponse.model_validate(user), message="User updated successfully")


@router.delete("/{user_id}")
async def deactivate_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("canManageUsers"))
):
    """Deactivate user (soft delete)"""
    user = AuthService(db).deactivate_user(user_id, current_user)
    logger.info(f"User deactivated: {user.username} by {current_user.username}")
    return success_response(message="User deactivated successfully")


@router.post("/{user_id}/activate")
async def activate_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("canManageUsers"))
):
    user = AuthService(db).activate_user(user_id)
    return success_response(data=UserResponse.model_validate(user), message="User activated successfully")

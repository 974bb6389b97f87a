"""
Authentication Service
User authentication, account locking and user management
"""

from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import or_
from datetime import datetime, timedelta
import logging

from vtria_erp.core.config import settings
from vtria_erp.core.exceptions import BusinessLogicError, NotFoundError, ValidationError
from vtria_erp.core.security import ROLES, get_password_hash, verify_password
from vtria_erp.models.hr import Employee
from vtria_erp.models.user import User

logger = logging.getLogger(__name__)

USER_FIELDS = ("username", "email", "full_name", "role", "is_active", "employee_id")


class AuthService:
    """Service for authentication and user management operations"""

    def __init__(self, db: Session):
        self.db = db

    # User Management Methods

    def get_users(
        self,
        page: int = 1,
        limit: int = 50,
        search: Optional[str] = None,
        role: Optional[str] = None,
        is_active: Optional[bool] = None
    ) -> Tuple[List[User], int]:
        """Get users with filtering"""
        query = self.db.query(User)

        if search:
            search_filter = f"%{search}%"
            query = query.filter(
                or_(
                    User.username.ilike(search_filter),
                    User.email.ilike(search_filter),
                    User.full_name.ilike(search_filter)
                )
            )

        if role:
            query = query.filter(User.role == role)

        if is_active is not None:
            query = query.filter(User.is_active == is_active)

        total = query.count()
        return query.order_by(User.username).offset((page - 1) * limit).limit(limit).all(), total

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return self.db.query(User).filter(User.id == user_id).first()

    def get_user_by_username(self, username: str) -> Optional[User]:
        """Get user by username"""
        return self.db.query(User).filter(User.username == username).first()

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email"""
        return self.db.query(User).filter(User.email == email).first()

    def _get_or_404(self, user_id: int) -> User:
        user = self.get_user_by_id(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def _validate(self, data: Dict[str, Any], user: Optional[User] = None):
        if "role" in data and data["role"] not in ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(ROLES)}")
        username = data.get("username")
        if username:
            existing = self.get_user_by_username(username)
            if existing and (user is None or existing.id != user.id):
                raise ValidationError(f"Username {username} already exists")
        email = data.get("email")
        if email:
            existing = self.get_user_by_email(email)
            if existing and (user is None or existing.id != user.id):
                raise ValidationError(f"Email {email} already registered")
        if data.get("employee_id") and \
                not self.db.query(Employee).filter(Employee.id == data["employee_id"]).first():
            raise NotFoundError(f"Employee {data['employee_id']} not found")

    def create_user(self, data: Dict[str, Any]) -> User:
        """Create new user"""
        password = data.get("password")
        if not password or len(password) < 8:
            raise ValidationError("Password must be at least 8 characters")
        values = {k: v for k, v in data.items() if k in USER_FIELDS and v is not None}
        values.setdefault("role", "technician")
        self._validate(values)

        db_user = User(hashed_password=get_password_hash(password), **values)
        self.db.add(db_user)
        self.db.commit()
        self.db.refresh(db_user)

        logger.info(f"User created: {db_user.username} ({db_user.role})")
        return db_user

    def update_user(self, user_id: int, data: Dict[str, Any]) -> User:
        """Update user information"""
        db_user = self._get_or_404(user_id)
        update_data = {k: v for k, v in data.items() if k in USER_FIELDS + ("password",) and v is not None}
        self._validate(update_data, db_user)

        # Hash password if provided
        if "password" in update_data:
            update_data["hashed_password"] = get_password_hash(update_data.pop("password"))

        for field, value in update_data.items():
            setattr(db_user, field, value)

        self.db.commit()
        self.db.refresh(db_user)

        logger.info(f"User updated: {db_user.username}")
        return db_user

    def deactivate_user(self, user_id: int, current_user: Optional[User] = None) -> User:
        """Deactivate user (soft delete)"""
        db_user = self._get_or_404(user_id)
        if current_user is not None and current_user.id == db_user.id:
            raise BusinessLogicError("You cannot deactivate your own account")

        db_user.is_active = False
        self.db.commit()

        logger.info(f"User deactivated: {db_user.username}")
        return db_user

    def activate_user(self, user_id: int) -> User:
        """Activate user and clear any lock"""
        db_user = self._get_or_404(user_id)
        db_user.is_active = True
        db_user.failed_logins = 0
        db_user.locked_until = None

        self.db.commit()
        self.db.refresh(db_user)

        logger.info(f"User activated: {db_user.username}")
        return db_user

    # Authentication Methods

    def authenticate(self, username: str, password: str) -> Tuple[Optional[User], Optional[str]]:
        """
        Verify credentials

        Returns the user and None on success, otherwise the user (when known)
        and a failure reason: user_not_found, account_locked, incorrect_password
        or inactive_user. Five consecutive failures lock the account.
        """
        user = self.get_user_by_username(username)
        if not user:
            return None, "user_not_found"

        if user.is_locked:
            return user, "account_locked"

        if not verify_password(password, user.hashed_password):
            user.failed_logins = (user.failed_logins or 0) + 1
            if user.failed_logins >= settings.MAX_FAILED_LOGINS:
                user.locked_until = datetime.utcnow() + timedelta(minutes=settings.ACCOUNT_LOCK_MINUTES)
                logger.warning(f"Account locked after {user.failed_logins} failed logins: {user.username}")
            self.db.commit()
            return user, "incorrect_password"

        if not user.is_active:
            return user, "inactive_user"

        user.failed_logins = 0
        user.locked_until = None
        user.last_login = datetime.utcnow()
        self.db.commit()
        return user, None

    def change_password(self, user: User, current_password: str, new_password: str) -> User:
        if not verify_password(current_password, user.hashed_password):
            raise ValidationError("Current password is incorrect")
        if len(new_password) < 8:
            raise ValidationError("Password must be at least 8 characters")
        user.hashed_password = get_password_hash(new_password)
        self.db.commit()
        logger.info(f"Password changed: {user.username}")
        return user

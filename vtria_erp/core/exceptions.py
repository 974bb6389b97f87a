"""
Custom Application Exceptions
"""
from typing import Any, Optional


class VTRIAException(Exception):
    """Base exception for VTRIA application"""
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(VTRIAException):
    """Raised when a requested record does not exist"""
    status_code = 404


class ValidationError(VTRIAException):
    """Raised when data validation fails"""
    status_code = 400


class BusinessLogicError(VTRIAException):
    """Raised when business rules are violated"""
    status_code = 400


class InvalidStateTransitionError(BusinessLogicError):
    """Raised when a case is moved to a state its workflow does not allow"""


class InsufficientPermissionsError(VTRIAException):
    """Raised when user lacks required permissions"""
    status_code = 403


class AccessDeniedError(VTRIAException):
    """Raised when location or IP validation refuses access"""
    status_code = 403

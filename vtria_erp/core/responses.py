"""
Standard JSON envelopes
Every endpoint answers with {success, message, data}
"""
import math
from typing import Any, List, Optional


def success_response(data: Any = None, message: str = "Success", **extra) -> dict:
    """Build a success envelope"""
    body = {"success": True, "message": message, "data": data}
    body.update(extra)
    return body


def error_response(message: str, errors: Optional[Any] = None) -> dict:
    """Build an error envelope"""
    body = {"success": False, "message": message}
    if errors is not None:
        body["errors"] = errors
    return body


def paginated_response(
    items: List[Any],
    page: int,
    limit: int,
    total: int,
    message: str = "Success"
) -> dict:
    """Build a success envelope carrying pagination metadata"""
    return success_response(
        data=items,
        message=message,
        pagination={
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        }
    )

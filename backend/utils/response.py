# backend/utils/response.py
"""
Helpers building the uniform response envelope:
{ "success": true, "data": ..., "message": ... } for successes and
{ "success": false, "error": { "code", "message", "details" } } for failures.
Routes return these dicts and declare the matching schemas.common model
as response_model.
"""
import math
from typing import Any, Optional


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    return {"success": True, "message": message, "data": data}


def paginated(items: list, total: int, skip: int, limit: int, message: Optional[str] = None) -> dict:
    page = skip // limit + 1 if limit else 1
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "success": True,
        "message": message,
        "data": items,
        "meta": {
            "total": total,
            "skip": skip,
            "limit": limit,
            "page": page,
            "total_pages": total_pages,
        },
    }


def error_body(code: str, message: str, details: Any = None) -> dict:
    error = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {"success": False, "error": error}

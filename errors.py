"""
Error taxonomy for the SkillHorizon API.

Every error a handler or guard raises is one of these. They subclass
HTTPException so FastAPI maps them to a status code in one place.
"""
from typing import Optional

from fastapi import HTTPException


class ApiError(HTTPException):
    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


class BadRequest(ApiError):
    status_code = 400
    default_detail = "Bad request"


class Unauthorized(ApiError):
    status_code = 401
    default_detail = "unauthorized access"


class Forbidden(ApiError):
    status_code = 403
    default_detail = "forbidden access"


class NotFound(ApiError):
    status_code = 404
    default_detail = "Not found"


class Internal(ApiError):
    status_code = 500

"""
Common schemas used across multiple endpoints.

Every response body is an envelope: {"success": true, "data": ...} or
{"success": false, "error": "...", "errors": [...]}.
"""
from typing import Any, List, Optional

from pydantic import BaseModel


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    """Error envelope."""
    success: bool = False
    error: str
    errors: Optional[List[FieldError]] = None

    class Config:
        json_schema_extra = {"example": {"success": False, "error": "An error occurred"}}


def success_response(data: Any = None) -> dict:
    """Wrap a payload in the success envelope."""
    return {"success": True, "data": data}


def message_response(message: str, **extra: Any) -> dict:
    return success_response({"message": message, **extra})


def error_body(message: str, errors: Optional[List[dict]] = None) -> dict:
    body = {"success": False, "error": message}
    if errors:
        body["errors"] = errors
    return body


# Documented on every router so the OpenAPI schema shows the error envelope
ERROR_RESPONSES = {
    code: {"model": ErrorResponse}
    for code in (400, 401, 403, 404, 409, 429)
}

"""
Error taxonomy for authorization, grants and catalog operations.

Every error carries the HTTP status code the controller layer responds with.
"""
from typing import Any, Dict, Optional


class AssetGuardError(Exception):
    """Base application exception"""

    def __init__(
        self,
        message: str,
        code: str = "assetguard_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class UnauthenticatedError(AssetGuardError):
    """No actor identity was presented."""

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="unauthenticated", status_code=401, details=details)


class ForbiddenError(AssetGuardError):
    """Actor is known but lacks the permission key."""

    def __init__(self, message: str = "Forbidden", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="forbidden", status_code=403, details=details)


class NotFoundError(AssetGuardError):
    def __init__(self, resource: str = "Resource", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=f"{resource} not found", code="not_found", status_code=404, details=details)


class ConflictError(AssetGuardError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="conflict", status_code=409, details=details)


class ValidationError(AssetGuardError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="validation_error", status_code=400, details=details)

"""SCIM error taxonomy (RFC 7644 Section 3.12).

Every failure raised by the provisioning core is a ScimError subclass. The
blueprint error handler renders them with ``to_dict()`` so callers always get
the same envelope:

    {
        "schemas": ["urn:ietf:params:scim:api:messages:2.0:Error"],
        "detail": "User not found",
        "status": "404"
    }
"""
from __future__ import annotations
from typing import Optional

SCIM_ERROR_SCHEMA = "urn:ietf:params:scim:api:messages:2.0:Error"


class ScimError(Exception):
    """SCIM protocol error with HTTP status and optional scimType."""

    status = 500
    default_detail = "Internal server error"
    default_scim_type: Optional[str] = None

    def __init__(self, detail: Optional[str] = None, scim_type: Optional[str] = None, status: Optional[int] = None):
        self.status = status or self.status
        self.detail = detail or self.default_detail
        self.scim_type = scim_type or self.default_scim_type
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        """Convert to SCIM error response format."""
        error_dict = {
            "schemas": [SCIM_ERROR_SCHEMA],
            "detail": self.detail,
            "status": str(self.status),
        }
        if self.scim_type:
            error_dict["scimType"] = self.scim_type
        return error_dict


class AuthenticationError(ScimError):
    status = 401
    default_detail = "Authorization header missing or invalid"


class ValidationError(ScimError):
    status = 400
    default_detail = "Invalid request data"
    default_scim_type = "invalidValue"


class NotFoundError(ScimError):
    status = 404
    default_detail = "User not found"


class ConflictError(ScimError):
    status = 409
    default_detail = "User already exists"
    default_scim_type = "uniqueness"


class InternalError(ScimError):
    """Store or unexpected failure. The detail is always generic."""

    status = 500
    default_detail = "Internal server error"

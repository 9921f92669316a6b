"""Input validation helpers for SCIM User payloads."""
from __future__ import annotations
import re
from typing import Any

from scim_provisioning.core.errors import ValidationError
from scim_provisioning.core.scim_transformer import VIP_EXTENSION_SCHEMA, join_name

EMAIL_MAX_LENGTH = 254
NAME_MAX_LENGTH = 255
VIP_LEVEL_MAX_LENGTH = 32

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def is_valid_email(value: Any) -> bool:
    """Basic RFC 5322 shape check, max 254 chars."""
    return (
        isinstance(value, str)
        and len(value) <= EMAIL_MAX_LENGTH
        and bool(EMAIL_PATTERN.match(value))
    )


def validate_email(value: Any, field: str) -> None:
    if not is_valid_email(value):
        raise ValidationError(f"{field} must be a valid email")


def validate_name(name: Any) -> None:
    """Validate the optional SCIM name object."""
    if name is None:
        return
    if not isinstance(name, dict):
        raise ValidationError("name must be an object")
    for part in ("givenName", "familyName", "formatted"):
        value = name.get(part)
        if value is None:
            continue
        if not isinstance(value, str):
            raise ValidationError(f"name.{part} must be a string")
        if len(value) > NAME_MAX_LENGTH:
            raise ValidationError(f"name.{part} must not exceed {NAME_MAX_LENGTH} characters")
    # givenName and familyName are stored joined in a single column
    if len(join_name(name)) > NAME_MAX_LENGTH:
        raise ValidationError(f"name must not exceed {NAME_MAX_LENGTH} characters")


def validate_emails(emails: Any) -> None:
    if not isinstance(emails, list):
        raise ValidationError("emails must be an array")
    for entry in emails:
        if not isinstance(entry, dict):
            raise ValidationError("emails entries must be objects")
        if "primary" in entry and not isinstance(entry["primary"], bool):
            raise ValidationError("emails.primary must be a boolean")


def validate_active(payload: dict) -> None:
    if "active" in payload and not isinstance(payload["active"], bool):
        raise ValidationError("active must be a boolean")


def validate_vip_extension(payload: dict) -> None:
    extension = payload.get(VIP_EXTENSION_SCHEMA)
    if extension is None:
        return
    if not isinstance(extension, dict):
        raise ValidationError(f"{VIP_EXTENSION_SCHEMA} must be an object")
    if "isVip" in extension and not isinstance(extension["isVip"], bool):
        raise ValidationError("isVip must be a boolean")
    level = extension.get("vipLevel")
    if level is not None and len(str(level)) > VIP_LEVEL_MAX_LENGTH:
        raise ValidationError(f"vipLevel must not exceed {VIP_LEVEL_MAX_LENGTH} characters")


def validate_scim_user_create(payload: Any) -> None:
    """Validate a POST /Users body.

    Raises:
        ValidationError: userName is not an email, emails is not an array,
            or an optional attribute has the wrong type
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    validate_email(payload.get("userName"), "userName")
    validate_emails(payload.get("emails"))
    validate_name(payload.get("name"))
    validate_active(payload)
    validate_vip_extension(payload)


def validate_scim_user_replace(payload: Any) -> None:
    """Validate a PUT /Users/{id} body. Every attribute is optional."""
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    if payload.get("userName") is not None:
        validate_email(payload["userName"], "userName")
    validate_name(payload.get("name"))
    validate_active(payload)
    validate_vip_extension(payload)

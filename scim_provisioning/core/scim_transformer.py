"""SCIM 2.0 ↔ user row data transformations.

This module provides bidirectional transformations between rows of the
``users`` table and SCIM 2.0 User resources as defined in RFC 7643.

Usage:
    # Row → SCIM
    scim_user = ScimTransformer.row_to_scim(user, base_url="/scim/v2")

    # SCIM → Row fields
    fields = ScimTransformer.scim_to_row(scim_user)

The store keeps a single display name. On the way out it is split into
givenName (first token) and familyName (the rest); this split is lossy and
not meant to round-trip.
"""
from __future__ import annotations
import datetime
from typing import Any, Dict, Optional

SCIM_USER_SCHEMA = "urn:ietf:params:scim:schemas:core:2.0:User"
VIP_EXTENSION_SCHEMA = "urn:nova:vip:1.0:User"


def format_timestamp(value: Optional[datetime.datetime]) -> Optional[str]:
    """Render a naive-UTC or aware datetime as ISO8601 with a Z suffix."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


def split_display_name(display_name: Optional[str]) -> Dict[str, str]:
    """Split a display name into SCIM givenName/familyName/formatted."""
    display_name = display_name or ""
    parts = display_name.split(" ")
    return {
        "givenName": parts[0],
        "familyName": " ".join(parts[1:]),
        "formatted": display_name,
    }


def primary_email(emails: Any) -> Optional[str]:
    """Return the primary entry's value, or the first entry's when none is flagged."""
    if not emails or not isinstance(emails, list):
        return None
    entries = [e for e in emails if isinstance(e, dict)]
    chosen = next((e for e in entries if e.get("primary") is True), None)
    if chosen is None and entries:
        chosen = entries[0]
    if chosen is None:
        return None
    return chosen.get("value") or None


def join_name(name: Any) -> str:
    """Join a SCIM name object into a single display string."""
    if not isinstance(name, dict):
        return ""
    parts = [name.get("givenName") or "", name.get("familyName") or ""]
    joined = " ".join(part for part in parts if part).strip()
    if not joined:
        joined = (name.get("formatted") or "").strip()
    return joined


class ScimTransformer:
    """Bidirectional transformer for SCIM/user row representations."""

    @staticmethod
    def row_to_scim(user: Any, base_url: str = "/scim/v2") -> Dict[str, Any]:
        """Convert a user row to a SCIM 2.0 User resource.

        Args:
            user: ``User`` row (or any object with the same attributes)
            base_url: SCIM API base URL for resource location

        Returns:
            SCIM 2.0 compliant User resource

        Example:
            >>> resource = ScimTransformer.row_to_scim(user)
            >>> resource["userName"] == user.email
            True
        """
        scim_resource: Dict[str, Any] = {
            "schemas": [SCIM_USER_SCHEMA, VIP_EXTENSION_SCHEMA],
            "id": user.id,
            "userName": user.email,
            "name": split_display_name(user.name),
            "emails": [
                {
                    "value": user.email,
                    "primary": True,
                }
            ],
            "active": bool(user.active),
            VIP_EXTENSION_SCHEMA: {
                "isVip": bool(getattr(user, "is_vip", False)),
                "vipLevel": getattr(user, "vip_level", None) or None,
            },
            "meta": {
                "resourceType": "User",
                "created": format_timestamp(user.created_at),
                "lastModified": format_timestamp(user.updated_at),
                "location": f"{base_url.rstrip('/')}/Users/{user.id}",
            },
        }

        role_names = getattr(user, "role_names", None) or []
        if role_names:
            scim_resource["roles"] = [{"value": role} for role in role_names]

        return scim_resource

    @staticmethod
    def scim_to_row(scim_user: Dict[str, Any]) -> Dict[str, Any]:
        """Convert a SCIM 2.0 User payload to user row fields for insertion.

        Args:
            scim_user: SCIM 2.0 User resource (already validated)

        Returns:
            Dict with email, name, active and, when supplied, is_vip/vip_level

        Example:
            >>> ScimTransformer.scim_to_row({
            ...     "userName": "bob@example.com",
            ...     "name": {"givenName": "Bob", "familyName": "Jones"},
            ...     "emails": [{"value": "bob@example.com", "primary": True}],
            ... })["name"]
            'Bob Jones'
        """
        user_name = scim_user.get("userName")
        email = primary_email(scim_user.get("emails")) or user_name

        display_name = join_name(scim_user.get("name")) or user_name

        row = {
            "email": email,
            "name": display_name,
            "active": scim_user.get("active", True),
        }
        row.update(ScimTransformer.vip_fields(scim_user))
        return row

    @staticmethod
    def replacement_fields(scim_user: Dict[str, Any]) -> Dict[str, Any]:
        """Extract only the attributes present in a PUT body.

        Omitted attributes are left untouched by the caller.
        """
        fields: Dict[str, Any] = {}
        if scim_user.get("userName"):
            fields["email"] = scim_user["userName"]
        display_name = join_name(scim_user.get("name"))
        if display_name:
            fields["name"] = display_name
        if isinstance(scim_user.get("active"), bool):
            fields["active"] = scim_user["active"]
        fields.update(ScimTransformer.vip_fields(scim_user))
        return fields

    @staticmethod
    def vip_fields(scim_user: Dict[str, Any]) -> Dict[str, Any]:
        """Read the VIP extension block, if any."""
        extension = scim_user.get(VIP_EXTENSION_SCHEMA)
        if not isinstance(extension, dict):
            return {}
        fields: Dict[str, Any] = {}
        if isinstance(extension.get("isVip"), bool):
            fields["is_vip"] = extension["isVip"]
        if "vipLevel" in extension:
            level = extension["vipLevel"]
            fields["vip_level"] = str(level) if level not in (None, "") else None
        return fields

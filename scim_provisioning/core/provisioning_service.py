"""
Provisioning Service Layer: SCIM User lifecycle

This module holds the business logic behind the SCIM 2.0 /Users endpoints.
It is framework-free: the Flask blueprint passes in the store, the SCIM base
URL and the parsed request body, and renders whatever ScimError is raised.

Architecture:
    SCIM API (/scim/v2/*) ──> provisioning_service.py ──> UserStore ──> users table

Lifecycle per user:
    absent ──POST──> active ──DELETE──> disabled (terminal, row kept)

Uniqueness:
    The email of a non-disabled user must be unique. create_user_scim() checks
    for an existing live user first, and the partial unique index on
    users(email) WHERE NOT disabled rejects a concurrent insert that raced past
    that check. Both paths surface as 409 uniqueness.
"""

from __future__ import annotations
import logging
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from scim_provisioning.core import audit
from scim_provisioning.core.errors import ConflictError, InternalError, NotFoundError
from scim_provisioning.core.filters import parse_filter
from scim_provisioning.core.pagination import parse_pagination
from scim_provisioning.core.scim_transformer import ScimTransformer
from scim_provisioning.core.store import UserStore
from scim_provisioning.core.validators import (
    validate_email,
    validate_scim_user_create,
    validate_scim_user_replace,
)

logger = logging.getLogger(__name__)

SCIM_LIST_RESPONSE_SCHEMA = "urn:ietf:params:scim:schemas:core:2.0:ListResponse"
SCIM_AUTH_METHOD = "scim"


def _store_failure(operation: str, exc: Exception) -> InternalError:
    logger.error("Store failure during %s: %s", operation, exc, exc_info=exc)
    return InternalError()


# ─────────────────────────────────────────────────────────────────────────────
# Read operations
# ─────────────────────────────────────────────────────────────────────────────

def list_users_scim(store: UserStore, query: Optional[dict] = None, base_url: str = "/scim/v2") -> dict:
    """List users with pagination and filtering.

    Args:
        store: User store
        query: Dict with optional keys:
            - startIndex: 1-based starting index (default: 1)
            - count: Max results per page (default: 50, capped at 200)
            - filter: SCIM filter string (e.g., 'userName eq "alice@example.com"')
        base_url: SCIM base URL used for meta.location

    Returns:
        SCIM ListResponse with schemas, totalResults, startIndex, itemsPerPage, Resources
    """
    query = query or {}
    page = parse_pagination(query.get("startIndex"), query.get("count"))
    criterion = parse_filter(query.get("filter")).to_criterion()

    try:
        total_results = store.count(criterion)
        if page.limit and page.offset < total_results:
            rows = store.list(criterion, offset=page.offset, limit=page.limit)
        else:
            rows = []
    except SQLAlchemyError as exc:
        raise _store_failure("list", exc)

    resources = [ScimTransformer.row_to_scim(row, base_url) for row in rows]

    return {
        "schemas": [SCIM_LIST_RESPONSE_SCHEMA],
        "totalResults": total_results,
        "startIndex": page.start_index,
        "itemsPerPage": len(resources),
        "Resources": resources,
    }


def get_user_scim(store: UserStore, user_id: str, base_url: str = "/scim/v2") -> dict:
    """Retrieve a non-disabled user by id.

    Raises:
        NotFoundError: if the id is unknown or the user is disabled
    """
    try:
        user = store.find_by_id(user_id)
    except SQLAlchemyError as exc:
        raise _store_failure("get", exc)

    if user is None:
        raise NotFoundError()

    return ScimTransformer.row_to_scim(user, base_url)


# ─────────────────────────────────────────────────────────────────────────────
# Write operations
# ─────────────────────────────────────────────────────────────────────────────

def create_user_scim(
    store: UserStore,
    payload: Any,
    base_url: str = "/scim/v2",
    correlation_id: Optional[str] = None,
) -> dict:
    """Create a new user from a SCIM User payload.

    Args:
        store: User store
        payload: SCIM User dict with userName, emails, name, active
        base_url: SCIM base URL used for meta.location
        correlation_id: Optional correlation ID for tracing

    Returns:
        SCIM User dict of the created user

    Raises:
        ValidationError: malformed payload (400)
        ConflictError: a live user already holds the resolved email (409)
    """
    validate_scim_user_create(payload)

    fields = ScimTransformer.scim_to_row(payload)
    validate_email(fields["email"], "emails.value")
    fields["auth_method"] = SCIM_AUTH_METHOD

    try:
        existing = store.find_by_email(fields["email"], exclude_disabled=True)
        if existing is not None:
            raise ConflictError()
        user = store.insert(fields)
    except IntegrityError:
        logger.info("Concurrent create lost the uniqueness race for %s", fields["email"])
        raise ConflictError()
    except SQLAlchemyError as exc:
        raise _store_failure("create", exc)

    logger.info("SCIM user created: id=%s correlation_id=%s", user.id, correlation_id)
    audit.safe_log_scim_event(
        "scim_create_user",
        user.id,
        details={
            "email": user.email,
            "active": user.active,
            "correlation_id": correlation_id,
        },
    )

    return ScimTransformer.row_to_scim(user, base_url)


def replace_user_scim(
    store: UserStore,
    user_id: str,
    payload: Any,
    base_url: str = "/scim/v2",
    correlation_id: Optional[str] = None,
) -> dict:
    """Update a user via PUT.

    Only attributes present in the payload are written (userName → email,
    name → display name, active → flag); everything else keeps its value.

    Raises:
        ValidationError: a present attribute has an invalid value (400)
        NotFoundError: unknown or disabled user (404)
        ConflictError: the new userName belongs to another live user (409)
    """
    validate_scim_user_replace(payload)
    fields = ScimTransformer.replacement_fields(payload)

    try:
        user = store.update(user_id, fields)
    except IntegrityError:
        raise ConflictError()
    except SQLAlchemyError as exc:
        raise _store_failure("replace", exc)

    if user is None:
        raise NotFoundError()

    logger.info("SCIM user replaced: id=%s fields=%s correlation_id=%s", user_id, sorted(fields), correlation_id)
    audit.safe_log_scim_event(
        "scim_replace_user",
        user_id,
        details={
            "fields": sorted(fields),
            "correlation_id": correlation_id,
        },
    )

    return ScimTransformer.row_to_scim(user, base_url)


def delete_user_scim(store: UserStore, user_id: str, correlation_id: Optional[str] = None) -> None:
    """Soft-delete a user by setting disabled=true. The row is kept.

    Raises:
        NotFoundError: unknown or already disabled user (404)
    """
    try:
        deleted = store.soft_delete(user_id)
    except SQLAlchemyError as exc:
        raise _store_failure("delete", exc)

    if not deleted:
        raise NotFoundError()

    logger.info("SCIM user disabled: id=%s correlation_id=%s", user_id, correlation_id)
    audit.safe_log_scim_event(
        "scim_delete_user",
        user_id,
        details={"correlation_id": correlation_id},
    )

"""SCIM 2.0 API endpoints (RFC 7644) for user provisioning.

This module exposes the /Users resource and delegates all business logic to
the provisioning_service layer.

Architecture:
    SCIM API (/scim/v2/*) -> core/provisioning_service.py -> core/store.py -> users table

Security:
    - Static Bearer Token authentication (RFC 6750) checked in before_request,
      before any store access
    - The token authenticates the calling integration, not an end user
    - Internal failures never leak their cause in the response body
"""

from __future__ import annotations
import hashlib
import hmac
import logging
from typing import Optional

from flask import Blueprint, Response, current_app, jsonify, request
from werkzeug.exceptions import RequestEntityTooLarge

from scim_provisioning.core import provisioning_service
from scim_provisioning.core.errors import AuthenticationError, InternalError, ScimError, ValidationError
from scim_provisioning.core.store import UserStore

# SCIM 2.0 Blueprint (url_prefix set at registration from SCIM_BASE_PATH)
bp = Blueprint("scim", __name__)

SCIM_CONTENT_TYPE = "application/scim+json"
STORE_EXTENSION_KEY = "scim_user_store"

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _store() -> UserStore:
    return current_app.extensions[STORE_EXTENSION_KEY]


def _base_path() -> str:
    cfg = current_app.config.get("APP_CONFIG")
    return cfg.scim_base_path if cfg else "/scim/v2"


def _correlation_id() -> Optional[str]:
    return request.headers.get("X-Correlation-Id")


def is_scim_path(path: str) -> bool:
    """True for the SCIM base path itself and anything below it."""
    base_path = _base_path().rstrip("/")
    return path == base_path or path.startswith(base_path + "/")


def scim_response(body: dict, status: int = 200) -> Response:
    """JSON response with the SCIM media type."""
    response = jsonify(body)
    response.status_code = status
    response.mimetype = SCIM_CONTENT_TYPE
    return response


def scim_error_response(error: ScimError) -> Response:
    """Render any ScimError as the standard SCIM error envelope."""
    response = scim_response(error.to_dict(), error.status)
    if error.status == 401:
        response.headers["WWW-Authenticate"] = 'Bearer realm="SCIM"'
    return response


def _json_body() -> dict:
    """Parse the request body, mapping unparseable JSON to invalidSyntax."""
    try:
        payload = request.get_json(force=True, silent=True)
    except RequestEntityTooLarge:
        raise _payload_too_large()
    if payload is None:
        if request.get_data(cache=True):
            raise ValidationError("Request body is not valid JSON", "invalidSyntax")
        raise ValidationError("Request body must be a JSON object")
    return payload


def _internal_error(operation: str, exc: Exception) -> Response:
    logger.error("Unhandled error in SCIM %s: %s", operation, exc, exc_info=exc)
    return scim_error_response(InternalError())


# ─────────────────────────────────────────────────────────────────────────────
# Authentication Gate
# ─────────────────────────────────────────────────────────────────────────────

def _validate_bearer_token(provided_token: str) -> bool:
    """Validate the SCIM bearer token with constant-time comparison.

    Returns:
        bool: True if token matches the configured secret

    Security:
        - Uses hmac.compare_digest for timing-attack resistance
        - Never logs the actual token value
    """
    cfg = current_app.config.get("APP_CONFIG")
    if not cfg or not cfg.scim_bearer_token:
        logger.error("SCIM bearer token is not configured; rejecting request")
        return False

    return hmac.compare_digest(provided_token.encode("utf-8"), cfg.scim_bearer_token.encode("utf-8"))


def _log_auth_attempt(token: Optional[str], success: bool) -> None:
    """Log authentication attempt without leaking secrets.

    Only a truncated SHA256 hash of the token is logged.
    """
    token_hash = hashlib.sha256(token.encode()).hexdigest()[:12] if token else "none"
    client_ip = request.headers.get("X-Forwarded-For", request.remote_addr)

    level = logging.DEBUG if success else logging.WARNING
    logger.log(
        level,
        "%s SCIM auth | token_hash=%s | method=%s | path=%s | correlation_id=%s | client_ip=%s",
        "SUCCESS" if success else "FAILED",
        token_hash,
        request.method,
        request.path,
        _correlation_id() or "none",
        client_ip,
    )


@bp.before_app_request
def authenticate_request():
    """Require ``Authorization: Bearer <token>`` on every request under the SCIM base path.

    Runs app-wide, so unmatched paths and methods under the base path also
    need the token.
    """
    if not is_scim_path(request.path):
        return None

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        _log_auth_attempt(None, success=False)
        return scim_error_response(AuthenticationError("Authorization header missing or invalid"))

    token = auth_header[7:].strip()
    if not token or not _validate_bearer_token(token):
        _log_auth_attempt(token, success=False)
        return scim_error_response(AuthenticationError("Invalid SCIM token"))

    _log_auth_attempt(token, success=True)

    limit = current_app.config.get("MAX_CONTENT_LENGTH")
    if limit and request.content_length and request.content_length > limit:
        return scim_error_response(_payload_too_large())
    return None


@bp.after_request
def add_correlation_id(response):
    """Echo the correlation ID for tracing."""
    correlation_id = _correlation_id()
    if correlation_id:
        response.headers["X-Correlation-Id"] = correlation_id
    return response


# ─────────────────────────────────────────────────────────────────────────────
# Error Handlers
# ─────────────────────────────────────────────────────────────────────────────

@bp.errorhandler(ScimError)
def handle_scim_error(error: ScimError):
    """Global error handler for ScimError exceptions."""
    if error.status >= 500:
        logger.error("SCIM request failed: %s %s -> %s", request.method, request.path, error.status)
    return scim_error_response(error)


def _payload_too_large() -> ScimError:
    limit = current_app.config.get("MAX_CONTENT_LENGTH") or 0
    return ScimError(f"Request payload exceeds maximum allowed size ({limit} bytes)", "invalidValue", status=413)


@bp.errorhandler(413)
def handle_request_too_large(error):
    """Handle payload too large errors."""
    return scim_error_response(_payload_too_large())


# ─────────────────────────────────────────────────────────────────────────────
# SCIM User CRUD Operations
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/Users", methods=["GET"])
def list_users():
    """List users with pagination and filtering.

    RFC 7644 Section 3.4.2: Listing Resources

    Query parameters:
        - startIndex: 1-based starting index (default: 1)
        - count: Max results per page (default: 50, max: 200)
        - filter: SCIM filter string (e.g., 'userName eq "alice@example.com"')

    Returns:
        200 OK with ListResponse
    """
    try:
        query = {
            "startIndex": request.args.get("startIndex"),
            "count": request.args.get("count"),
            "filter": request.args.get("filter", ""),
        }
        list_response = provisioning_service.list_users_scim(_store(), query, _base_path())
        return scim_response(list_response, 200)

    except ScimError:
        raise
    except Exception as exc:
        return _internal_error("list", exc)


@bp.route("/Users/<user_id>", methods=["GET"])
def get_user(user_id: str):
    """Retrieve a specific user by ID.

    RFC 7644 Section 3.4.1: Retrieving a Known Resource
    """
    try:
        scim_user = provisioning_service.get_user_scim(_store(), user_id, _base_path())
        return scim_response(scim_user, 200)

    except ScimError:
        raise
    except Exception as exc:
        return _internal_error("get", exc)


@bp.route("/Users", methods=["POST"])
def create_user():
    """Create a new user.

    RFC 7644 Section 3.3: Creating Resources

    Returns:
        201 Created with Location header and User resource
    """
    try:
        payload = _json_body()
        scim_user = provisioning_service.create_user_scim(
            _store(), payload, _base_path(), correlation_id=_correlation_id()
        )

        response = scim_response(scim_user, 201)
        response.headers["Location"] = f"{request.host_url.rstrip('/')}{_base_path()}/Users/{scim_user['id']}"
        return response

    except ScimError:
        raise
    except Exception as exc:
        return _internal_error("create", exc)


@bp.route("/Users/<user_id>", methods=["PUT"])
def replace_user(user_id: str):
    """Update a user with the attributes present in the body.

    RFC 7644 Section 3.5.1: Replacing with PUT. Omitted attributes are left
    unchanged rather than cleared.
    """
    try:
        payload = _json_body()
        scim_user = provisioning_service.replace_user_scim(
            _store(), user_id, payload, _base_path(), correlation_id=_correlation_id()
        )
        return scim_response(scim_user, 200)

    except ScimError:
        raise
    except Exception as exc:
        return _internal_error("replace", exc)


@bp.route("/Users/<user_id>", methods=["DELETE"])
def delete_user(user_id: str):
    """Soft-delete a user by disabling it.

    RFC 7644 Section 3.6: Deleting Resources

    Returns:
        204 No Content
    """
    try:
        provisioning_service.delete_user_scim(_store(), user_id, correlation_id=_correlation_id())
        return "", 204

    except ScimError:
        raise
    except Exception as exc:
        return _internal_error("delete", exc)

"""Application-level error handlers.

Blueprint handlers only see errors raised inside a matched SCIM route. These
cover the rest (unknown paths, wrong methods, uncaught exceptions) so that
anything under the SCIM base path still answers with the SCIM envelope.
"""
from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from scim_provisioning.api.scim import is_scim_path, scim_error_response
from scim_provisioning.core.errors import ScimError


def register_error_handlers(app):
    """Register error handlers with the Flask app."""

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        """Render HTTP errors as JSON (SCIM envelope under the SCIM base path)."""
        if is_scim_path(request.path):
            detail = "Resource not found" if error.code == 404 else (error.description or error.name)
            return scim_error_response(ScimError(detail, status=error.code))
        return jsonify({"error": error.name, "message": error.description}), error.code

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions without leaking details."""
        if isinstance(error, HTTPException):
            return handle_http_exception(error)

        # ALWAYS log the full error server-side
        app.logger.error("Unhandled exception: %s", error, exc_info=error)

        if is_scim_path(request.path):
            return scim_error_response(ScimError())
        return jsonify({"error": "Internal Server Error", "message": "An unexpected error occurred"}), 500

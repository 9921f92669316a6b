"""Health check endpoints."""
import logging

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

bp = Blueprint("health", __name__)

logger = logging.getLogger(__name__)


@bp.route("/health")
def health_check():
    """Basic liveness check endpoint."""
    return ("ok", 200, {"Content-Type": "text/plain"})


@bp.route("/ready")
def readiness_check():
    """Readiness check: the user store must answer."""
    store = current_app.extensions.get("scim_user_store")
    if store is None:
        return ("store not configured", 503, {"Content-Type": "text/plain"})
    try:
        store.ping()
    except SQLAlchemyError as exc:
        logger.warning("Readiness check failed: %s", exc)
        return ("store unavailable", 503, {"Content-Type": "text/plain"})
    return ("ready", 200, {"Content-Type": "text/plain"})

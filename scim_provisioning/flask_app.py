"""Flask application factory and bootstrap.

This module provides the create_app() factory function for initializing
the Flask application with all blueprints, the user store and configuration.
"""
from __future__ import annotations
import logging
from typing import Optional

from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix

from scim_provisioning.config import AppConfig, load_settings
from scim_provisioning.core.store import UserStore

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(config: Optional[AppConfig] = None, store: Optional[UserStore] = None) -> Flask:
    """Create and configure Flask application.

    Args:
        config: Settings to use instead of loading them from the environment
        store: Pre-built user store (tests); built from config.database_url otherwise
    """
    cfg = config or load_settings()
    _configure_logging(cfg.log_level)

    app = Flask(__name__)

    # Store config for easy access in routes
    app.config["APP_CONFIG"] = cfg
    app.config["MAX_CONTENT_LENGTH"] = cfg.max_content_length
    app.json.sort_keys = False

    # Trust X-Forwarded-* headers from proxy (nginx)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore

    # User store
    if store is None:
        store = UserStore.from_url(cfg.database_url, echo=cfg.database_echo)
    store.create_schema()

    from scim_provisioning.api import scim
    app.extensions[scim.STORE_EXTENSION_KEY] = store

    # Register blueprints
    from scim_provisioning.api import docs, errors, health

    app.register_blueprint(health.bp)
    app.register_blueprint(docs.bp)
    app.register_blueprint(scim.bp, url_prefix=cfg.scim_base_path)

    # Register error handlers
    errors.register_error_handlers(app)

    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    logger.info("Mode=%s; SCIM 2.0 API registered at %s", mode_label, cfg.scim_base_path)
    if cfg.demo_mode:
        logger.warning("Demo mode active - do not deploy with demo credentials")

    return app


def _configure_logging(level: str) -> None:
    """Configure root logging once; gunicorn/pytest handlers are left in place."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
    logging.getLogger("scim_provisioning").setLevel(level)


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000, debug=True)

"""Gunicorn configuration for the SCIM provisioning service.

Secrets (SCIM bearer token, database URL, audit signing key) are read by
scim_provisioning.config.settings from /run/secrets or the environment when
each worker builds the app, so nothing secret lives in this file.
"""
import os

wsgi_app = "scim_provisioning.flask_app:create_app()"

bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.environ.get("GUNICORN_WORKERS", "2"))
threads = int(os.environ.get("GUNICORN_THREADS", "4"))
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "30"))
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info").lower()


def post_fork(server, worker):
    """Called just after a worker has been forked."""
    demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"
    if demo_mode:
        worker.log.warning("DEMO_MODE=true: demo SCIM token and SQLite store may be in use")

    secrets_dir = "/run/secrets"
    if os.path.isdir(secrets_dir) and os.listdir(secrets_dir):
        worker.log.info(f"Found {len(os.listdir(secrets_dir))} secrets in {secrets_dir}")
    elif not os.environ.get("SCIM_BEARER_TOKEN") and not demo_mode:
        worker.log.error("SCIM_BEARER_TOKEN missing: the app will refuse to start outside DEMO_MODE")

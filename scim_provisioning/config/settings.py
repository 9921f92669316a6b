"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

SECRETS_DIR = Path("/run/secrets")

DEMO_SCIM_BEARER_TOKEN = "demo-scim-token"
DEMO_DATABASE_URL = "sqlite:///provisioning.db"
DEMO_AUDIT_LOG_SIGNING_KEY = "demo-audit-signing-key-change-in-production"


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """Read a secret, preferring the mounted file over the environment.

    ``SECRETS_DIR/<secret_name>`` wins when it exists and is non-blank;
    otherwise ``env_var`` is consulted. None when neither yields a value.
    """
    secret_file = SECRETS_DIR / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                logger.info("Loaded %s from %s", secret_name, SECRETS_DIR)
                return secret_value
        except OSError as exc:
            logger.warning("Failed to read %s/%s: %s", SECRETS_DIR, secret_name, exc)

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            return secret_value

    return None


def _env_flag(var_name: str, default: bool = False) -> bool:
    return os.environ.get(var_name, str(default)).strip().lower() == "true"


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # SCIM
    scim_bearer_token: str
    scim_base_path: str = "/scim/v2"
    max_content_length: int = 65536

    # Store
    database_url: str = DEMO_DATABASE_URL
    database_echo: bool = False

    # Audit
    audit_log_signing_key: str = ""

    # Logging
    log_level: str = "INFO"


def _get_or_default(var_name: str, demo_default: str, demo_mode: bool, secret_name: str | None = None) -> str:
    """Get a required setting, falling back to a demo default in demo mode only."""
    if secret_name:
        value = _load_secret_from_file(secret_name, var_name)
    else:
        value = os.environ.get(var_name)
    if value:
        return value

    if demo_mode:
        logger.warning("[demo-mode] Using default for %s", var_name)
        return demo_default

    raise RuntimeError(f"Environment variable {var_name} is required in production mode.")


def load_settings() -> AppConfig:
    """Load application settings from environment and /run/secrets."""
    demo_mode = _env_flag("DEMO_MODE")

    scim_bearer_token = _get_or_default(
        "SCIM_BEARER_TOKEN",
        demo_default=DEMO_SCIM_BEARER_TOKEN,
        demo_mode=demo_mode,
        secret_name="scim_bearer_token",
    )
    database_url = _get_or_default(
        "DATABASE_URL",
        demo_default=DEMO_DATABASE_URL,
        demo_mode=demo_mode,
        secret_name="database_url",
    )

    audit_log_signing_key = _load_secret_from_file("audit_log_signing_key", "AUDIT_LOG_SIGNING_KEY") or ""
    if not audit_log_signing_key and demo_mode:
        audit_log_signing_key = DEMO_AUDIT_LOG_SIGNING_KEY
    if audit_log_signing_key:
        # The audit module reads the key lazily from the environment
        os.environ["AUDIT_LOG_SIGNING_KEY"] = audit_log_signing_key
    else:
        logger.warning("AUDIT_LOG_SIGNING_KEY not set; audit events will be unsigned")

    scim_base_path = "/" + os.environ.get("SCIM_BASE_PATH", "/scim/v2").strip().strip("/")

    try:
        max_content_length = int(os.environ.get("SCIM_MAX_PAYLOAD_BYTES", "65536"))
    except ValueError:
        raise RuntimeError("SCIM_MAX_PAYLOAD_BYTES must be an integer")

    log_level = os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO"

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    logger.info("Mode=%s; scim_base_path=%s", mode_label, scim_base_path)
    if demo_mode:
        logger.warning("Demo credentials in use. Do not deploy with these defaults.")

    return AppConfig(
        demo_mode=demo_mode,
        scim_bearer_token=scim_bearer_token,
        scim_base_path=scim_base_path,
        max_content_length=max_content_length,
        database_url=database_url,
        database_echo=_env_flag("DATABASE_ECHO"),
        audit_log_signing_key=audit_log_signing_key,
        log_level=log_level,
    )

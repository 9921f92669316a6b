"""Audit trail for SCIM provisioning events.

Each successful mutation is appended to a JSONL file as one HMAC-SHA256
signed event. ``verify_audit_log()`` recomputes the signatures.
"""
from __future__ import annotations
import datetime
import hashlib
import hmac
import json
import logging
import os
from pathlib import Path
from typing import Any, Literal

logger = logging.getLogger(__name__)

AUDIT_LOG_DIR = Path(os.environ.get("AUDIT_LOG_DIR", ".runtime/audit"))
AUDIT_LOG_FILE = AUDIT_LOG_DIR / "scim-events.jsonl"

EventType = Literal["scim_create_user", "scim_replace_user", "scim_delete_user"]


def _get_signing_key() -> bytes:
    """Signing key from the environment, read lazily so secrets loaded at startup apply."""
    key = os.environ.get("AUDIT_LOG_SIGNING_KEY", "").strip()
    return key.encode("utf-8")


def _ensure_audit_dir() -> None:
    """Create audit directory with restricted permissions."""
    AUDIT_LOG_DIR.mkdir(parents=True, exist_ok=True)
    AUDIT_LOG_DIR.chmod(0o700)


def _sign_event(event: dict[str, Any]) -> str:
    """Generate HMAC-SHA256 signature for audit event."""
    signing_key = _get_signing_key()
    if not signing_key:
        return ""
    canonical = json.dumps(event, sort_keys=True, separators=(",", ":"))
    return hmac.new(signing_key, canonical.encode("utf-8"), hashlib.sha256).hexdigest()


def log_scim_event(
    event_type: EventType,
    user_id: str,
    *,
    operator: str = "scim-api",
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """Append a provisioning event to the audit trail.

    Args:
        event_type: Type of SCIM operation
        user_id: Target user id
        operator: Who performed the operation
        details: Additional context (email, changed fields, correlation id)
        success: Whether the operation succeeded
    """
    _ensure_audit_dir()

    event = {
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "event_type": event_type,
        "user_id": user_id,
        "operator": operator,
        "success": success,
        "details": details or {},
    }

    signature = _sign_event(event)
    if signature:
        event["signature"] = signature

    with AUDIT_LOG_FILE.open("a", encoding="utf-8") as f:
        f.write(json.dumps(event, ensure_ascii=False) + "\n")

    AUDIT_LOG_FILE.chmod(0o600)


def safe_log_scim_event(
    event_type: EventType,
    user_id: str,
    *,
    operator: str = "scim-api",
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> bool:
    """Log a SCIM event without ever raising.

    Returns:
        True if event was logged successfully, False if logging failed
    """
    try:
        log_scim_event(event_type, user_id, operator=operator, details=details, success=success)
        return True
    except Exception as exc:
        logger.warning("Failed to log %s audit event for %s: %s", event_type, user_id, exc)
        return False


def verify_audit_log() -> tuple[int, int]:
    """Verify all signatures in the audit log.

    Returns:
        Tuple of (total_events, valid_signatures)
    """
    if not AUDIT_LOG_FILE.exists():
        return 0, 0

    total = 0
    valid = 0

    with AUDIT_LOG_FILE.open("r", encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            total += 1
            try:
                event = json.loads(line)
                stored_sig = event.pop("signature", "")
                if not stored_sig:
                    continue
                computed_sig = _sign_event(event)
                if hmac.compare_digest(stored_sig, computed_sig):
                    valid += 1
            except (json.JSONDecodeError, KeyError):
                continue

    return total, valid

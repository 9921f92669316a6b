"""Pytest shared fixtures for the SCIM provisioning service."""
import os
import pathlib
import sys

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

TEST_SCIM_TOKEN = "test-scim-token-12345"

# Configure test environment BEFORE any app imports
os.environ["DEMO_MODE"] = "false"
os.environ["SCIM_BEARER_TOKEN"] = TEST_SCIM_TOKEN
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUDIT_LOG_SIGNING_KEY"] = "test-signing-key-for-audit-trail"
os.environ.pop("SCIM_BASE_PATH", None)

import pytest

from scim_provisioning.core import audit
from scim_provisioning.core.store import UserStore
from scim_provisioning.flask_app import create_app


# ─────────────────────────────────────────────────────────────────────────────
# Isolation
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def audit_log(monkeypatch, tmp_path):
    """Redirect the audit trail to a per-test directory."""
    audit_dir = tmp_path / "audit"
    audit_file = audit_dir / "scim-events.jsonl"
    monkeypatch.setattr(audit, "AUDIT_LOG_DIR", audit_dir)
    monkeypatch.setattr(audit, "AUDIT_LOG_FILE", audit_file)
    return audit_file


# ─────────────────────────────────────────────────────────────────────────────
# Store and Flask Test Client
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def store():
    """Fresh in-memory SQLite user store."""
    user_store = UserStore.from_url("sqlite://")
    user_store.create_schema()
    yield user_store
    user_store.engine.dispose()


@pytest.fixture()
def app(store):
    flask_app = create_app(store=store)
    flask_app.config.update(TESTING=True)
    return flask_app


@pytest.fixture()
def client(app):
    with app.test_client() as client:
        yield client


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────
def make_auth_headers(token: str = TEST_SCIM_TOKEN) -> dict:
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/scim+json",
    }


def make_user_payload(email: str = "jdoe@example.com", given: str = "Jane", family: str = "Doe", **extra) -> dict:
    payload = {
        "schemas": ["urn:ietf:params:scim:schemas:core:2.0:User"],
        "userName": email,
        "name": {"givenName": given, "familyName": family},
        "emails": [{"value": email, "primary": True}],
        "active": True,
    }
    payload.update(extra)
    return payload


@pytest.fixture()
def create_user(client):
    """POST a user through the API and return the response body."""
    def _create(email: str = "jdoe@example.com", **kwargs) -> dict:
        response = client.post("/scim/v2/Users", headers=make_auth_headers(), json=make_user_payload(email, **kwargs))
        assert response.status_code == 201, response.get_json()
        return response.get_json()
    return _create


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "critical: marks tests as critical security tests (P0 priority)"
    )


@pytest.fixture()
def auth_headers():
    return make_auth_headers()


@pytest.fixture()
def user_payload():
    return make_user_payload

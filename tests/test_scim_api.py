"""
End-to-end tests for the SCIM 2.0 /Users API through the Flask test client.
"""

import pytest

from scim_provisioning.core.scim_transformer import SCIM_USER_SCHEMA, VIP_EXTENSION_SCHEMA

USERS = "/scim/v2/Users"


# ============================================================================
# Lifecycle
# ============================================================================

@pytest.mark.critical
def test_full_lifecycle(client, auth_headers, user_payload):
    """Create, deactivate, delete, then confirm the user is gone."""
    created = client.post(USERS, headers=auth_headers, json=user_payload())
    assert created.status_code == 201
    user = created.get_json()
    assert user["name"]["formatted"] == "Jane Doe"
    assert user["meta"]["location"].endswith(user["id"])
    assert user["meta"]["resourceType"] == "User"

    updated = client.put(f"{USERS}/{user['id']}", headers=auth_headers, json={"active": False})
    assert updated.status_code == 200
    assert updated.get_json()["active"] is False

    deleted = client.delete(f"{USERS}/{user['id']}", headers=auth_headers)
    assert deleted.status_code == 204
    assert deleted.get_data() == b""

    fetched = client.get(f"{USERS}/{user['id']}", headers=auth_headers)
    assert fetched.status_code == 404


def test_create_response_shape(client, auth_headers, user_payload):
    response = client.post(USERS, headers=auth_headers, json=user_payload())
    user = response.get_json()

    assert response.mimetype == "application/scim+json"
    assert response.headers["Location"] == f"http://localhost/scim/v2/Users/{user['id']}"
    assert user["schemas"][0] == SCIM_USER_SCHEMA
    assert user["userName"] == "jdoe@example.com"
    assert user["emails"] == [{"value": "jdoe@example.com", "primary": True}]
    assert user["name"] == {"givenName": "Jane", "familyName": "Doe", "formatted": "Jane Doe"}
    assert user["active"] is True
    assert user["meta"]["created"].endswith("Z")
    assert user["meta"]["lastModified"].endswith("Z")
    assert user["meta"]["location"] == f"/scim/v2/Users/{user['id']}"
    assert "roles" not in user


def test_get_returns_same_resource(client, auth_headers, create_user):
    user = create_user()
    response = client.get(f"{USERS}/{user['id']}", headers=auth_headers)
    assert response.status_code == 200
    assert response.get_json() == user


def test_vip_extension_round_trip(client, auth_headers, user_payload):
    payload = user_payload(**{VIP_EXTENSION_SCHEMA: {"isVip": True, "vipLevel": "gold"}})
    user = client.post(USERS, headers=auth_headers, json=payload).get_json()
    assert user[VIP_EXTENSION_SCHEMA] == {"isVip": True, "vipLevel": "gold"}

    updated = client.put(
        f"{USERS}/{user['id']}",
        headers=auth_headers,
        json={VIP_EXTENSION_SCHEMA: {"isVip": False}},
    ).get_json()
    assert updated[VIP_EXTENSION_SCHEMA]["isVip"] is False


def test_vip_extension_uses_nova_urn(client, auth_headers, user_payload):
    payload = user_payload(**{"urn:nova:vip:1.0:User": {"isVip": True, "vipLevel": "gold"}})
    user = client.post(USERS, headers=auth_headers, json=payload).get_json()
    assert "urn:nova:vip:1.0:User" in user["schemas"]
    assert user["urn:nova:vip:1.0:User"] == {"isVip": True, "vipLevel": "gold"}
    assert not any(key.startswith("urn:ietf:params:scim:schemas:extension") for key in user)


def test_roles_are_exposed_when_assigned(client, store, auth_headers, create_user):
    user = create_user()
    store.assign_role(user["id"], "agent")
    body = client.get(f"{USERS}/{user['id']}", headers=auth_headers).get_json()
    assert body["roles"] == [{"value": "agent"}]


# ============================================================================
# Uniqueness
# ============================================================================

@pytest.mark.critical
def test_duplicate_email_is_409(client, auth_headers, user_payload, create_user):
    create_user()
    response = client.post(USERS, headers=auth_headers, json=user_payload())
    assert response.status_code == 409
    body = response.get_json()
    assert body["detail"] == "User already exists"
    assert body["scimType"] == "uniqueness"
    assert body["status"] == "409"


def test_email_can_be_reused_after_delete(client, auth_headers, user_payload, create_user):
    first = create_user()
    client.delete(f"{USERS}/{first['id']}", headers=auth_headers)

    response = client.post(USERS, headers=auth_headers, json=user_payload())
    assert response.status_code == 201
    assert response.get_json()["id"] != first["id"]


def test_put_to_existing_email_is_409(client, auth_headers, create_user):
    create_user("a@example.com")
    other = create_user("b@example.com")
    response = client.put(f"{USERS}/{other['id']}", headers=auth_headers, json={"userName": "a@example.com"})
    assert response.status_code == 409


# ============================================================================
# Listing
# ============================================================================

def test_empty_list(client, auth_headers):
    response = client.get(USERS, headers=auth_headers)
    assert response.status_code == 200
    body = response.get_json()
    assert body["schemas"] == ["urn:ietf:params:scim:schemas:core:2.0:ListResponse"]
    assert body["totalResults"] == 0
    assert body["itemsPerPage"] == 0
    assert body["startIndex"] == 1
    assert body["Resources"] == []


def test_list_orders_newest_first(client, auth_headers, create_user):
    first = create_user("first@example.com")
    second = create_user("second@example.com")
    ids = [r["id"] for r in client.get(USERS, headers=auth_headers).get_json()["Resources"]]
    assert set(ids) == {first["id"], second["id"]}
    if first["meta"]["created"] != second["meta"]["created"]:
        assert ids == [second["id"], first["id"]]


def test_list_pagination(client, auth_headers, create_user):
    for i in range(3):
        create_user(f"user{i}@example.com")

    body = client.get(f"{USERS}?startIndex=2&count=1", headers=auth_headers).get_json()
    assert body["totalResults"] == 3
    assert body["startIndex"] == 2
    assert body["itemsPerPage"] == 1
    assert len(body["Resources"]) == 1


def test_list_count_is_capped(client, auth_headers, create_user):
    create_user()
    body = client.get(f"{USERS}?count=10000", headers=auth_headers).get_json()
    assert body["itemsPerPage"] == 1


def test_list_bad_pagination_uses_defaults(client, auth_headers, create_user):
    create_user()
    body = client.get(f"{USERS}?startIndex=abc&count=xyz", headers=auth_headers).get_json()
    assert body["startIndex"] == 1
    assert body["itemsPerPage"] == 1


@pytest.mark.parametrize("start_index", ["2", "5000", "2147483648", "99999999999999999999"])
def test_start_index_past_the_end_is_empty_page(client, auth_headers, create_user, start_index):
    create_user()
    response = client.get(f"{USERS}?startIndex={start_index}", headers=auth_headers)
    assert response.status_code == 200
    body = response.get_json()
    assert body["totalResults"] == 1
    assert body["startIndex"] == int(start_index)
    assert body["itemsPerPage"] == 0
    assert body["Resources"] == []


def test_filter_eq(client, auth_headers, create_user):
    create_user("a@example.com")
    create_user("b@example.com")
    response = client.get(USERS, headers=auth_headers, query_string={"filter": 'userName eq "a@example.com"'})
    body = response.get_json()
    assert body["totalResults"] == 1
    assert body["Resources"][0]["userName"] == "a@example.com"


def test_filter_co(client, auth_headers, create_user):
    create_user("alice@example.com")
    create_user("bob@example.com")
    create_user("alicia@other.org")
    body = client.get(USERS, headers=auth_headers, query_string={"filter": 'userName co "ali"'}).get_json()
    assert sorted(r["userName"] for r in body["Resources"]) == ["alice@example.com", "alicia@other.org"]


def test_filter_active(client, auth_headers, create_user):
    create_user("on@example.com")
    create_user("off@example.com", active=False)
    body = client.get(USERS, headers=auth_headers, query_string={"filter": 'active eq "false"'}).get_json()
    assert [r["userName"] for r in body["Resources"]] == ["off@example.com"]


def test_unsupported_filter_returns_all(client, auth_headers, create_user):
    create_user("a@example.com")
    create_user("b@example.com")
    body = client.get(USERS, headers=auth_headers, query_string={"filter": "displayName pr"}).get_json()
    assert body["totalResults"] == 2


def test_deleted_users_are_not_listed(client, auth_headers, create_user):
    keep = create_user("keep@example.com")
    gone = create_user("gone@example.com")
    client.delete(f"{USERS}/{gone['id']}", headers=auth_headers)

    body = client.get(USERS, headers=auth_headers).get_json()
    assert body["totalResults"] == 1
    assert body["Resources"][0]["id"] == keep["id"]


# ============================================================================
# Replace / Delete
# ============================================================================

def test_put_active_only_preserves_other_fields(client, auth_headers, create_user):
    user = create_user()
    body = client.put(f"{USERS}/{user['id']}", headers=auth_headers, json={"active": False}).get_json()
    assert body["userName"] == user["userName"]
    assert body["name"] == user["name"]
    assert body["active"] is False
    assert body["meta"]["created"] == user["meta"]["created"]


def test_put_updates_name(client, auth_headers, create_user):
    user = create_user()
    body = client.put(
        f"{USERS}/{user['id']}",
        headers=auth_headers,
        json={"name": {"givenName": "Janet", "familyName": "Smith"}},
    ).get_json()
    assert body["name"]["formatted"] == "Janet Smith"


def test_put_unknown_user_is_404(client, auth_headers):
    response = client.put(f"{USERS}/missing", headers=auth_headers, json={"active": False})
    assert response.status_code == 404
    assert response.get_json()["detail"] == "User not found"


def test_delete_twice(client, auth_headers, create_user):
    user = create_user()
    assert client.delete(f"{USERS}/{user['id']}", headers=auth_headers).status_code == 204
    second = client.delete(f"{USERS}/{user['id']}", headers=auth_headers)
    assert second.status_code == 404
    assert second.get_json()["detail"] == "User not found"


def test_deleted_row_is_kept_disabled(client, store, auth_headers, create_user):
    user = create_user()
    client.delete(f"{USERS}/{user['id']}", headers=auth_headers)
    row = store.find_by_email(user["userName"], exclude_disabled=False)
    assert row.id == user["id"]
    assert row.disabled is True


# ============================================================================
# Headers
# ============================================================================

def test_correlation_id_is_echoed(client, auth_headers):
    headers = dict(auth_headers, **{"X-Correlation-Id": "req-42"})
    response = client.get(USERS, headers=headers)
    assert response.headers["X-Correlation-Id"] == "req-42"


def test_correlation_id_reaches_audit_log(client, auth_headers, user_payload, audit_log):
    import json

    headers = dict(auth_headers, **{"X-Correlation-Id": "req-99"})
    client.post(USERS, headers=headers, json=user_payload())
    event = json.loads(audit_log.read_text().splitlines()[-1])
    assert event["event_type"] == "scim_create_user"
    assert event["details"]["correlation_id"] == "req-99"


def test_custom_base_path(store, monkeypatch, user_payload, auth_headers):
    from scim_provisioning.flask_app import create_app

    monkeypatch.setenv("SCIM_BASE_PATH", "/api/scim/v2/")
    app = create_app(store=store)
    client = app.test_client()

    user = client.post("/api/scim/v2/Users", headers=auth_headers, json=user_payload()).get_json()
    assert user["meta"]["location"] == f"/api/scim/v2/Users/{user['id']}"
    assert client.get("/scim/v2/Users", headers=auth_headers).status_code == 404

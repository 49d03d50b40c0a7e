from __future__ import annotations

import io

from openpyxl import load_workbook

from models.audit_log import AuditLog
from models.property_object import PropertyObject

from conftest import DEFAULT_PASSWORD


def test_admin_routes_require_admin_role(client, alice_headers) -> None:
    res = client.get("/admin/users", headers=alice_headers)
    assert res.status_code == 403
    assert res.json()["kind"] == "role_required"


def test_admin_routes_require_session(client) -> None:
    assert client.get("/admin/users").status_code == 401


def test_create_user_starts_inactive_with_temp_password(client, admin_headers) -> None:
    res = client.post(
        "/admin/users",
        json={"email": " New@Example.com ", "temp_password": "temp-pw"},
        headers=admin_headers,
    )
    assert res.status_code == 201
    data = res.json()
    assert data["email"] == "new@example.com"
    assert data["is_active"] is False
    assert data["is_temp_password"] is True
    assert data["role"] == "user"
    assert data["name"] == ""


def test_create_user_rejects_duplicate_email(client, admin_headers, alice) -> None:
    res = client.post(
        "/admin/users",
        json={"email": alice.email, "temp_password": "temp-pw"},
        headers=admin_headers,
    )
    assert res.status_code == 409
    assert res.json()["kind"] == "conflict"


def test_list_users_with_search(client, admin_headers, alice, bob) -> None:
    users = client.get("/admin/users", headers=admin_headers).json()["users"]
    assert {u["email"] for u in users} == {"admin@example.com", alice.email, bob.email}

    found = client.get("/admin/users", params={"search": "ALI"}, headers=admin_headers).json()["users"]
    assert [u["email"] for u in found] == [alice.email]

    # Too short to filter
    short = client.get("/admin/users", params={"search": "al"}, headers=admin_headers).json()["users"]
    assert len(short) == 3


def test_update_user(client, admin_headers, alice) -> None:
    res = client.put(
        f"/admin/users/{alice.id}",
        json={"email": "alice@example.org", "name": "Alice A.", "role": "admin", "active": True},
        headers=admin_headers,
    )
    assert res.status_code == 200
    data = res.json()
    assert data["email"] == "alice@example.org"
    assert data["role"] == "admin"


def test_update_user_email_clash(client, admin_headers, alice, bob) -> None:
    res = client.put(
        f"/admin/users/{alice.id}",
        json={"email": bob.email, "name": "Alice", "role": "user", "active": True},
        headers=admin_headers,
    )
    assert res.status_code == 409


def test_admin_cannot_demote_or_deactivate_self(client, admin, admin_headers) -> None:
    res = client.put(
        f"/admin/users/{admin.id}",
        json={"email": admin.email, "name": "Admin", "role": "user", "active": True},
        headers=admin_headers,
    )
    assert res.status_code == 400
    assert res.json()["kind"] == "invalid_request"


def test_deactivation_revokes_sessions(client, admin_headers, alice, alice_headers) -> None:
    res = client.put(
        f"/admin/users/{alice.id}",
        json={"email": alice.email, "name": "Alice", "role": "user", "active": False},
        headers=admin_headers,
    )
    assert res.status_code == 200
    assert client.get("/auth/me", headers=alice_headers).status_code == 401


def test_reset_password_revokes_sessions_and_reprovisions(client, admin_headers, alice, alice_headers) -> None:
    res = client.put(
        f"/admin/users/{alice.id}/reset-password",
        json={"new_temp_password": "reset-me"},
        headers=admin_headers,
    )
    assert res.status_code == 200
    assert client.get("/auth/session", headers=alice_headers).json() is None

    # Back to the provisioned state: login refused until the user signs up again
    res = client.post("/auth/login", json={"email": alice.email, "password": "reset-me"})
    assert res.status_code == 403
    assert res.json()["kind"] == "inactive_account"

    res = client.post("/auth/signup", json={"email": alice.email, "password": "brand-new", "name": "Alice"})
    assert res.status_code == 200


def test_delete_user_revokes_sessions_and_keeps_objects(
    client, db, admin_headers, alice, alice_headers, create_object
) -> None:
    obj = create_object(alice_headers)

    res = client.delete(f"/admin/users/{alice.id}", headers=admin_headers)
    assert res.status_code == 200
    assert client.get("/auth/session", headers=alice_headers).json() is None
    assert client.post("/auth/login", json={"email": alice.email, "password": DEFAULT_PASSWORD}).status_code == 401

    db.expire_all()
    assert db.get(PropertyObject, obj["id"]).created_by is None
    res = client.get(f"/objects/{obj['id']}", headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["creator_name"] == "Unknown"


def test_admin_cannot_delete_self(client, admin, admin_headers) -> None:
    res = client.delete(f"/admin/users/{admin.id}", headers=admin_headers)
    assert res.status_code == 400


def test_delete_unknown_user(client, admin_headers) -> None:
    res = client.delete("/admin/users/9999", headers=admin_headers)
    assert res.status_code == 404
    assert res.json()["kind"] == "not_found"


def test_audit_log_records_object_events(client, db, admin_headers, alice_headers, create_object) -> None:
    obj = create_object(alice_headers)
    client.put(f"/objects/{obj['id']}/status", json={"status": "freigegeben"}, headers=alice_headers)

    res = client.get("/admin/audit-logs", params={"object_id": obj["id"]}, headers=admin_headers)
    assert res.status_code == 200
    actions = [row["action"] for row in res.json()["logs"]]
    assert actions == ["object_status", "object_create"]
    assert res.json()["logs"][0]["actor_email"] == "alice@example.com"

    by_email = client.get("/admin/audit-logs", params={"emails": "alice@example.com"}, headers=admin_headers)
    assert "user_login" in {row["action"] for row in by_email.json()["logs"]}
    assert db.query(AuditLog).count() >= 4


def test_audit_log_export_is_xlsx(client, admin_headers, alice_headers, create_object) -> None:
    create_object(alice_headers)
    res = client.get("/admin/audit-logs/export", headers=admin_headers)
    assert res.status_code == 200
    assert res.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )

    wb = load_workbook(io.BytesIO(res.content))
    ws = wb.active
    assert [c.value for c in ws[1]] == ["ID", "Time", "User", "Target", "Object", "Action", "Request IP", "Details"]
    assert "object_create" in [row[5] for row in ws.iter_rows(min_row=2, values_only=True)]

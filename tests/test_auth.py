from __future__ import annotations

from datetime import datetime, timedelta, timezone

from core.config import settings
from models.session import AuthSession
from models.user import User

from conftest import DEFAULT_PASSWORD


def test_login_returns_token_and_user(client, alice) -> None:
    res = client.post("/auth/login", json={"email": "Alice@Example.com", "password": DEFAULT_PASSWORD})
    assert res.status_code == 200
    data = res.json()
    assert len(data["token"]) >= 32
    assert data["token_type"] == "bearer"
    assert data["user"]["email"] == "alice@example.com"
    assert data["needs_password_change"] is False
    assert "password_hash" not in data["user"]


def test_login_failures_do_not_reveal_which_part_was_wrong(client, alice) -> None:
    unknown = client.post("/auth/login", json={"email": "nobody@example.com", "password": DEFAULT_PASSWORD})
    wrong = client.post("/auth/login", json={"email": alice.email, "password": "not-it"})
    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json()
    assert unknown.json()["kind"] == "invalid_credentials"


def test_inactive_account_cannot_log_in(client, make_user) -> None:
    make_user("idle@example.com", active=False, temp=True)
    res = client.post("/auth/login", json={"email": "idle@example.com", "password": DEFAULT_PASSWORD})
    assert res.status_code == 403
    assert res.json()["kind"] == "inactive_account"


def test_temp_password_login_asks_for_change(client, make_user) -> None:
    make_user("fresh@example.com", temp=True)
    res = client.post("/auth/login", json={"email": "fresh@example.com", "password": DEFAULT_PASSWORD})
    assert res.status_code == 200
    assert res.json()["needs_password_change"] is True


def test_signup_activates_provisioned_account(client, admin_headers) -> None:
    res = client.post(
        "/admin/users",
        json={"email": "new@example.com", "temp_password": "temp-pw", "role": "user"},
        headers=admin_headers,
    )
    assert res.status_code == 201
    assert res.json()["is_active"] is False

    res = client.post("/auth/signup", json={"email": "new@example.com", "password": "mypassword", "name": "Neu"})
    assert res.status_code == 200
    data = res.json()
    assert data["user"]["is_active"] is True
    assert data["user"]["is_temp_password"] is False
    assert data["user"]["name"] == "Neu"

    session = client.get("/auth/session", headers={"Authorization": f"Bearer {data['token']}"})
    assert session.json()["user"]["email"] == "new@example.com"

    # The temp password is gone
    res = client.post("/auth/login", json={"email": "new@example.com", "password": "temp-pw"})
    assert res.status_code == 401


def test_signup_refused_for_unknown_or_active_account(client, alice) -> None:
    res = client.post("/auth/signup", json={"email": "stranger@example.com", "password": "whatever", "name": "X"})
    assert res.status_code == 403
    assert res.json()["kind"] == "registration_not_allowed"

    res = client.post("/auth/signup", json={"email": alice.email, "password": "whatever", "name": "X"})
    assert res.status_code == 403
    assert res.json()["kind"] == "registration_not_allowed"


def test_session_is_null_without_valid_token(client) -> None:
    assert client.get("/auth/session").json() is None
    res = client.get("/auth/session", headers={"Authorization": "Bearer not-a-real-token"})
    assert res.status_code == 200
    assert res.json() is None


def test_logout_invalidates_token_and_is_idempotent(client, alice_headers) -> None:
    assert client.get("/auth/me", headers=alice_headers).status_code == 200

    assert client.post("/auth/logout", headers=alice_headers).json() == {"success": True}
    assert client.post("/auth/logout", headers=alice_headers).json() == {"success": True}

    res = client.get("/auth/me", headers=alice_headers)
    assert res.status_code == 401
    assert res.json()["kind"] == "invalid_session"
    assert res.headers["www-authenticate"] == "Bearer"
    assert client.get("/auth/session", headers=alice_headers).json() is None


def test_expired_session_is_rejected(client, db, alice) -> None:
    db.add(AuthSession(
        user_id=alice.id,
        token="expired-token",
        expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
    ))
    db.commit()

    headers = {"Authorization": "Bearer expired-token"}
    assert client.get("/auth/session", headers=headers).json() is None
    assert client.get("/objects", headers=headers).status_code == 401


def test_session_dies_with_its_user(client, db, alice, alice_headers) -> None:
    db.query(AuthSession).filter(AuthSession.user_id == alice.id).delete()
    db.delete(db.get(User, alice.id))
    db.commit()
    assert client.get("/auth/session", headers=alice_headers).json() is None


def test_change_password(client, alice, alice_headers) -> None:
    res = client.put(
        "/auth/change-password",
        json={"old_password": "wrong", "new_password": "newpass"},
        headers=alice_headers,
    )
    assert res.status_code == 401
    assert res.json()["kind"] == "invalid_credentials"

    res = client.put(
        "/auth/change-password",
        json={"old_password": DEFAULT_PASSWORD, "new_password": "abc"},
        headers=alice_headers,
    )
    assert res.status_code == 400
    assert res.json()["kind"] == "invalid_request"

    res = client.put(
        "/auth/change-password",
        json={"old_password": DEFAULT_PASSWORD, "new_password": "newpass"},
        headers=alice_headers,
    )
    assert res.status_code == 200

    # Current session survives, the new password works, the old one doesn't
    assert client.get("/auth/me", headers=alice_headers).status_code == 200
    assert client.post("/auth/login", json={"email": alice.email, "password": "newpass"}).status_code == 200
    assert client.post("/auth/login", json={"email": alice.email, "password": DEFAULT_PASSWORD}).status_code == 401


def test_change_password_clears_temp_flag(client, make_user, login) -> None:
    user = make_user("temp@example.com", temp=True)
    headers = login(user.email)
    client.put(
        "/auth/change-password",
        json={"old_password": DEFAULT_PASSWORD, "new_password": "permanent"},
        headers=headers,
    )
    session = client.get("/auth/session", headers=headers).json()
    assert session["needs_password_change"] is False


def test_change_password_can_revoke_other_sessions(client, alice, login, monkeypatch) -> None:
    monkeypatch.setattr(settings, "revoke_sessions_on_password_change", True)
    laptop = login(alice.email)
    phone = login(alice.email)

    res = client.put(
        "/auth/change-password",
        json={"old_password": DEFAULT_PASSWORD, "new_password": "newpass"},
        headers=laptop,
    )
    assert res.status_code == 200
    assert client.get("/auth/me", headers=laptop).status_code == 200
    assert client.get("/auth/me", headers=phone).status_code == 401


def test_other_sessions_survive_password_change_by_default(client, alice, login) -> None:
    laptop = login(alice.email)
    phone = login(alice.email)
    client.put(
        "/auth/change-password",
        json={"old_password": DEFAULT_PASSWORD, "new_password": "newpass"},
        headers=laptop,
    )
    assert client.get("/auth/me", headers=phone).status_code == 200


def test_update_profile(client, alice_headers) -> None:
    res = client.put("/auth/profile", json={"name": "  Alice Liddell "}, headers=alice_headers)
    assert res.status_code == 200
    assert res.json()["name"] == "Alice Liddell"
    assert client.get("/auth/me", headers=alice_headers).json()["name"] == "Alice Liddell"


def test_provisioned_user_signs_up_and_session_is_valid(client, admin_headers) -> None:
    res = client.post(
        "/admin/users",
        json={"email": "u@example.com", "temp_password": "temp123"},
        headers=admin_headers,
    )
    assert res.status_code == 201

    res = client.post("/auth/signup", json={"email": "u@example.com", "password": "newpass", "name": "Name"})
    assert res.status_code == 200
    token = res.json()["token"]

    session = client.get("/auth/session", headers={"Authorization": f"Bearer {token}"}).json()
    assert session["user"]["email"] == "u@example.com"
    assert session["user"]["is_active"] is True
    assert session["needs_password_change"] is False


def test_signup_refused_for_inactive_account_without_temp_password(client, make_user) -> None:
    make_user("halfway@example.com", active=False, temp=False)
    res = client.post("/auth/signup", json={"email": "halfway@example.com", "password": "newpass", "name": "X"})
    assert res.status_code == 403
    assert res.json()["kind"] == "registration_not_allowed"


def test_signup_enforces_password_length(client, make_user) -> None:
    make_user("short@example.com", active=False, temp=True)
    res = client.post("/auth/signup", json={"email": "short@example.com", "password": "abc", "name": "X"})
    assert res.status_code == 400
    assert res.json()["kind"] == "invalid_request"

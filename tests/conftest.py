from __future__ import annotations

import os
import tempfile
from typing import Callable

import pytest

# Settings are read once at import time, so the test configuration has to be
# in the environment before anything under backend/ is imported.
_TMP_DIR = tempfile.mkdtemp(prefix="objektverwaltung-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["PASSWORD_HASH_ROUNDS"] = "1000"
os.environ["BLOB_BACKEND"] = "local"
os.environ["STORAGE_DIR"] = os.path.join(_TMP_DIR, "storage")
os.environ["PUBLIC_BASE_URL"] = "http://testserver"

from fastapi.testclient import TestClient  # noqa: E402

from core.security import hash_password  # noqa: E402
from database import Base, SessionLocal, engine  # noqa: E402
from main import app  # noqa: E402
from models.property_object import PropertyObject  # noqa: E402
from models.user import ROLE_ADMIN, ROLE_USER, User  # noqa: E402

DEFAULT_PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture()
def make_user(db) -> Callable[..., User]:
    """Insert a user row directly.  Active with a permanent password unless told otherwise."""

    def _make(
        email: str,
        *,
        role: str = ROLE_USER,
        password: str = DEFAULT_PASSWORD,
        name: str = "",
        active: bool = True,
        temp: bool = False,
    ) -> User:
        user = User(
            email=email,
            name=name or email.split("@")[0].capitalize(),
            password_hash=hash_password(password),
            role=role,
            is_active=active,
            is_temp_password=temp,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture()
def login(client) -> Callable[..., dict]:
    """Log in through the API and return ready-to-use auth headers."""

    def _login(email: str, password: str = DEFAULT_PASSWORD) -> dict:
        res = client.post("/auth/login", json={"email": email, "password": password})
        assert res.status_code == 200, res.text
        return {"Authorization": f"Bearer {res.json()['token']}"}

    return _login


@pytest.fixture()
def admin(make_user) -> User:
    return make_user("admin@example.com", role=ROLE_ADMIN, name="Admin")


@pytest.fixture()
def admin_headers(admin, login) -> dict:
    return login(admin.email)


@pytest.fixture()
def alice(make_user) -> User:
    return make_user("alice@example.com", name="Alice")


@pytest.fixture()
def alice_headers(alice, login) -> dict:
    return login(alice.email)


@pytest.fixture()
def bob(make_user) -> User:
    return make_user("bob@example.com", name="Bob")


@pytest.fixture()
def bob_headers(bob, login) -> dict:
    return login(bob.email)


@pytest.fixture()
def create_object(client) -> Callable[..., dict]:
    """Create an object through the API as the given user."""

    def _create(headers: dict, title: str = "Wohnung 3B", assigned_to: list[int] | None = None, **address) -> dict:
        body = {
            "title": title,
            "address": {
                "street": address.get("street", "Hauptstraße 5"),
                "zip_code": address.get("zip_code", "10115"),
                "city": address.get("city", "Berlin"),
            },
            "floor": 3,
            "assigned_to": assigned_to or [],
        }
        res = client.post("/objects", json=body, headers=headers)
        assert res.status_code == 201, res.text
        return res.json()

    return _create


@pytest.fixture()
def force_status(db) -> Callable[[int, str], None]:
    """Put an object into a status directly, bypassing the workflow."""

    def _force(object_id: int, status: str) -> None:
        db.expire_all()
        obj = db.get(PropertyObject, object_id)
        obj.status = status
        db.commit()

    return _force

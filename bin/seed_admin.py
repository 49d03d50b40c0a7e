# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Bootstrap script – creates the first admin user.

Run once after the initial migration:
    python bin/seed_admin.py [--with-sample]

The script reads FIRST_ADMIN_EMAIL, FIRST_ADMIN_PASSWORD and FIRST_ADMIN_NAME
from etc/app.conf.  After the row is inserted those settings are no longer
used by the application.

The admin account is created active, so it can log in straight away.  It
keeps ``is_temp_password = True`` so the login response asks the operator
to set a permanent password.

``--with-sample`` additionally creates an inactive demo user (temp password
"changeme") and one draft object assigned to it, for local demos.
"""

import argparse
import sys
import os

# ---------------------------------------------------------------------------
# Path setup so backend modules are importable
# ---------------------------------------------------------------------------
# bin/seed_admin.py  →  ../  →  project root
_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
_BACKEND_DIR  = os.path.join(_PROJECT_ROOT, "backend")
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

from core.config import settings          # noqa: E402
from core.security import hash_password   # noqa: E402
from database import SessionLocal         # noqa: E402
from models.property_object import STATUS_DRAFT, PropertyObject  # noqa: E402
from models.user import ROLE_ADMIN, ROLE_USER, User               # noqa: E402

SAMPLE_USER_EMAIL = "demo@example.com"
SAMPLE_USER_PASSWORD = "changeme"


def seed_sample(db, admin):
    if db.query(User).filter(User.email == SAMPLE_USER_EMAIL).first():
        print(f"[seed_admin] Sample user '{SAMPLE_USER_EMAIL}' already exists – skipping sample data.")
        return

    demo = User(
        email=SAMPLE_USER_EMAIL,
        name="",
        password_hash=hash_password(SAMPLE_USER_PASSWORD),
        role=ROLE_USER,
        is_active=False,
        is_temp_password=True,
    )
    db.add(demo)
    db.flush()

    sample = PropertyObject(
        title="Musterwohnung",
        street="Musterstraße 1",
        zip_code="10115",
        city="Berlin",
        floor=2,
        created_by=admin.id,
        status=STATUS_DRAFT,
    )
    sample.assignees = [demo]
    db.add(sample)
    db.commit()
    print(f"[seed_admin] Sample user '{SAMPLE_USER_EMAIL}' (temp password '{SAMPLE_USER_PASSWORD}') "
          f"and object '{sample.title}' created.")


def seed(with_sample: bool = False):
    if not settings.first_admin_email or not settings.first_admin_password:
        print("[seed_admin] FIRST_ADMIN_EMAIL or FIRST_ADMIN_PASSWORD not set in etc/app.conf – nothing to do.")
        return

    email = settings.first_admin_email.strip().lower()

    db = SessionLocal()
    try:
        admin = db.query(User).filter(User.email == email).first()
        if admin:
            print(f"[seed_admin] Admin '{email}' already exists – skipping.")
        else:
            admin = User(
                email=email,
                name=settings.first_admin_name,
                password_hash=hash_password(settings.first_admin_password),
                role=ROLE_ADMIN,
                is_active=True,
                is_temp_password=True,
            )
            db.add(admin)
            db.commit()
            print(f"[seed_admin] Admin '{email}' created successfully.")

        if with_sample:
            seed_sample(db, admin)
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the first admin user.")
    parser.add_argument("--with-sample", action="store_true", help="also create a demo user and object")
    seed(parser.parse_args().with_sample)

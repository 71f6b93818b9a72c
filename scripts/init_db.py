import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.ims.models import Permission, Role, User
from app.ims.rbac import CAPABILITIES, permission_key
from app.ims.registry import load_families
from scripts._db_utils import script_session


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed capability permissions, the admin role and an admin user. Idempotent:
    existing rows are reused, never duplicated.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@example.com").strip().lower()
    admin_name = (os.environ.get("ADMIN_NAME") or "Administrator").strip()

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///ims.db").strip()
    families = load_families()

    # Direct engine/session so release can seed without importing app.wsgi.
    with script_session(db_url) as s:
        def ensure_perm(key: str, name: str) -> Permission:
            p = s.query(Permission).filter(Permission.key == key).one_or_none()
            if not p:
                p = Permission(key=key, name=name)
                s.add(p)
            return p

        perms = [
            ensure_perm(permission_key(f.key, action), f"{f.label}: {action}")
            for f in families
            for action in CAPABILITIES
        ]

        role_admin = s.query(Role).filter(Role.key == "admin").one_or_none()
        if not role_admin:
            role_admin = Role(key="admin", name="Administrator")
            s.add(role_admin)
        for p in perms:
            if p not in role_admin.permissions:
                role_admin.permissions.append(p)

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(email=admin_email, name=admin_name, is_active=True)
            s.add(user)
        if role_admin not in user.roles:
            user.roles.append(role_admin)

    print("Initialized database (seed_only).")
    print(f"Families: {', '.join(f.key for f in families)}")
    print(f"Admin email: {admin_email}")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()

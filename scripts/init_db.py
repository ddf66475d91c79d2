"""
Create tables (sqlite dev convenience) and seed the demo directory.

Usage:
  python scripts/init_db.py
"""
import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy import select  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from app.doctrack.models import User  # noqa: E402
from app.doctrack.modules.routing.domain import Role  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402

DEMO_USERS: tuple[tuple[str, Role, str | None], ...] = (
    ("admin@company.com", Role.ADMIN, None),
    ("mail@company.com", Role.MAIL, None),
    ("manager@company.com", Role.APPROVER, "Operations office, room 204"),
    ("finance@company.com", Role.APPROVER, "Finance, 3rd floor"),
    ("recipient@company.com", Role.RECIPIENT, "Front desk, building A"),
)


def ensure_user(s: Session, email: str, role: Role, drop_off: str | None) -> User:
    """Idempotent: existing users keep their role and drop-off location."""
    u = s.scalars(select(User).where(User.email == email)).one_or_none()
    if not u:
        u = User(email=email, role=role.value, drop_off_location=drop_off, is_active=True)
        s.add(u)
    return u


def seed_only(*, database_url: str | None = None) -> None:
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///doctrack.db").strip()
    with script_session(db_url) as s:
        for email, role, drop_off in DEMO_USERS:
            ensure_user(s, email, role, drop_off)
    print(f"Seeded {len(DEMO_USERS)} demo users.", flush=True)


def main() -> None:
    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///doctrack.db").strip()
    if db_url.startswith("sqlite"):
        # Dev shortcut; Postgres goes through alembic (scripts/release.py).
        from app.doctrack.models import Base
        from scripts._db_utils import create_script_engine

        engine = create_script_engine(db_url)
        Base.metadata.create_all(engine)
        engine.dispose()
    seed_only(database_url=db_url)


if __name__ == "__main__":
    main()

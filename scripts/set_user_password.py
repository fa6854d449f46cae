"""Create a profile or reset its password for local development."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure the project root is on sys.path so ``salonbook`` can be imported when the script is executed directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from salonbook import create_app
from salonbook.extensions import db
from salonbook.models import AuthAccount, Profile

ROLES = ["client", "professional", "admin"]


def set_password(email: str, password: str, role: str = "client",
                 first_name: str | None = None, last_name: str | None = None) -> None:
    app = create_app()

    with app.app_context():
        profile = Profile.query.filter_by(email=email).first()
        if profile is None:
            profile = Profile(
                first_name=first_name or role.capitalize(),
                last_name=last_name or "User",
                email=email,
                role=role,
            )
            db.session.add(profile)
            db.session.flush()
            print(f"Created new {role} profile: {email}")
        elif profile.role != role:
            print(f"Updating role from '{profile.role}' to '{role}'")
            profile.role = role

        account = db.session.get(AuthAccount, profile.profile_id)
        if account is None:
            account = AuthAccount(profile_id=profile.profile_id)
            db.session.add(account)
            print(f"Created auth account for: {email}")

        account.password_hash = generate_password_hash(password)
        db.session.commit()

        print(f"Password for {role} '{email}' has been set successfully.")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Set a profile password for local testing.")
    parser.add_argument("email", help="Profile email address")
    parser.add_argument("password", help="Plain-text password to hash and store")
    parser.add_argument("--role", choices=ROLES, default="client", help="Profile role (default: client)")
    parser.add_argument("--first-name")
    parser.add_argument("--last-name")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    set_password(args.email, args.password, args.role, args.first_name, args.last_name)


if __name__ == "__main__":
    main()

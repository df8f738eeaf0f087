# scripts/seed_admin.py
r"""
Create the first admin user (or re-key an existing one).

- Grants admin, finance and member through role_assignment rows.
- Stores only the API key hash; prints the plaintext key once.

Usage:
  python scripts/seed_admin.py --email admin@example.com --name "Admin"
  python scripts/seed_admin.py --email admin@example.com --rotate

Then test:
  curl -s -H "X-API-Key: <PRINTED_API_KEY>" http://127.0.0.1:8000/rbac/whoami
"""
from __future__ import annotations

import argparse
import sys

from sqlalchemy import select

import expense_desk.models  # noqa: F401
from expense_desk.db import SessionLocal
from expense_desk.models.rbac import User
from expense_desk.services.roles import BOOTSTRAP_ADMIN_ROLES, assign_roles
from expense_desk.services.users import create_user, generate_api_key, hash_api_key


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed an admin user for Expense Desk")
    parser.add_argument("--email", required=True, help="Admin user email")
    parser.add_argument("--name", default="Admin", help="Admin display name")
    parser.add_argument("--rotate", action="store_true", help="Issue a new API key if the user exists")
    args = parser.parse_args()

    email = args.email.strip().lower()
    db = SessionLocal()
    try:
        user = db.execute(select(User).where(User.email == email)).scalars().first()
        if user is None:
            user, api_key_plain = create_user(db, email=email, display_name=args.name)
            print(f"Created user '{email}'.")
        elif args.rotate:
            api_key_plain = generate_api_key()
            user.api_key_hash = hash_api_key(api_key_plain)
            db.commit()
            print(f"Rotated API key for '{email}'.")
        else:
            assign_roles(db, user.id, BOOTSTRAP_ADMIN_ROLES)
            print(f"User '{email}' already exists (id={user.id}); roles ensured.")
            print("NOTE: API key is stored hashed; use --rotate to issue a new one.")
            return 0

        assign_roles(db, user.id, BOOTSTRAP_ADMIN_ROLES)
        print(f"   id:       {user.id}")
        print(f"   roles:    {', '.join(BOOTSTRAP_ADMIN_ROLES)}")
        print(f"   API key:  {api_key_plain}")
        print("Store this key now; it will not be shown again.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Create or promote a superAdmin account.

Usage:
    python backend/scripts/create_superadmin.py --email admin@example.com --user-name admin --password secret123
"""

from __future__ import annotations

import argparse
import json

from sqlmodel import Session, select

from creator_platform.database import engine, init_db
from creator_platform.models import Role, User, default_opp_verification, utcnow
from creator_platform.services.security import hash_password


def main() -> None:
    parser = argparse.ArgumentParser(description="Create or promote a superAdmin account.")
    parser.add_argument("--email", required=True, help="Account e-mail address")
    parser.add_argument("--user-name", required=True, help="Unique user name")
    parser.add_argument("--password", required=True, help="Password (min 6 characters)")
    parser.add_argument("--first-name", default="Super")
    parser.add_argument("--last-name", default="Admin")
    args = parser.parse_args()

    if len(args.password) < 6:
        print(json.dumps({"status": "failed", "error": "password must be at least 6 characters"}))
        raise SystemExit(1)

    init_db()

    email = args.email.strip().lower()
    with Session(engine) as session:
        user = session.exec(select(User).where(User.email == email)).first()
        action = "promoted" if user else "created"
        if user is None:
            taken = session.exec(select(User).where(User.user_name == args.user_name)).first()
            if taken:
                print(json.dumps({"status": "failed", "error": "user name already exists"}))
                raise SystemExit(1)
            user = User(
                user_name=args.user_name,
                first_name=args.first_name,
                last_name=args.last_name,
                email=email,
                password=hash_password(args.password),
                opp_verification=default_opp_verification(),
            )
        user.role = Role.super_admin
        user.is_active = True
        user.is_email_verified = True
        user.email_verification_expiry = None
        user.updated_at = utcnow()
        session.add(user)
        session.commit()
        session.refresh(user)
        user_id = user.id

    print(json.dumps({"status": "ok", "action": action, "id": user_id, "email": email}))


if __name__ == "__main__":
    main()

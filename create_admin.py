#!/usr/bin/env python3
"""
Crea (o actualiza) el usuario administrador del taller.
Uso: ADMIN_EMAIL=... ADMIN_PASSWORD=... python create_admin.py
"""
import os
import sys

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from perrino.core.database import SessionLocal, init_db
from perrino.core.roles import Role
from perrino.core.security import hash_password
from perrino.models.user import User


def create_admin() -> int:
    email = os.getenv("ADMIN_EMAIL", "admin@perrino.local").strip().lower()
    password = os.getenv("ADMIN_PASSWORD", "admin123")
    first_name = os.getenv("ADMIN_FIRST_NAME", "Admin")

    init_db()
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
        if user:
            user.role = Role.admin.value
            user.hashed_password = hash_password(password)
            action = "updated"
        else:
            user = User(
                email=email,
                hashed_password=hash_password(password),
                role=Role.admin.value,
                first_name=first_name,
            )
            db.add(user)
            action = "created"
        db.commit()
        db.refresh(user)
    except Exception as e:
        db.rollback()
        print(f"\n✗ Error creating admin user: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()

    print(f"\n✓ Admin user {action}")
    print(f"{'='*50}")
    print(f"Email: {user.email}")
    print(f"Role: {user.role}")
    print(f"{'='*50}")
    return 0


if __name__ == '__main__':
    sys.exit(create_admin())

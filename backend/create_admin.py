#!/usr/bin/env python3
"""
Script para crear (o restablecer) un usuario administrador.
Uso: docker-compose exec backend python create_admin.py [email] [password]
"""
import sys
import os

# Add the app directory to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app.core.config import settings
from app.core.database import SessionLocal
from app.core.roles import Role
from app.core.security import hash_password
from app.models.user import User


def create_admin(email: str, password: str):
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
        if user:
            user.role = Role.admin.value
            user.hashed_password = hash_password(password)
            user.is_active = True
            action = "actualizado"
        else:
            user = User(
                email=email,
                name="Administrador",
                hashed_password=hash_password(password),
                role=Role.admin.value,
            )
            db.add(user)
            action = "creado"
        db.commit()
        db.refresh(user)

        print(f"\n✓ Administrador {action}")
        print(f"\n{'='*50}")
        print("CREDENCIALES:")
        print(f"{'='*50}")
        print(f"Email: {user.email}")
        print(f"Password: {password}")
        print(f"Rol: {user.role}")
        print(f"{'='*50}")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == '__main__':
    email = sys.argv[1] if len(sys.argv) > 1 else settings.seed_admin_email
    password = sys.argv[2] if len(sys.argv) > 2 else settings.seed_admin_password
    create_admin(email, password)

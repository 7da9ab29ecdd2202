import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import commit_or_rollback
from app.core.roles import Role
from app.core.security import hash_password
from app.models.branch import Branch
from app.models.user import User
from app.services.cash_express_config_service import get_or_create_config


logger = logging.getLogger(__name__)

DEMO_CLIENT_EMAIL = "cliente@demo.com"
DEMO_CLIENT_PASSWORD = "secret123"
DEMO_BRANCH_NAME = "Sucursal Centro"


def _ensure_user(db: Session, email: str, password: str, role: Role, name: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user
    user = User(email=email, name=name, hashed_password=hash_password(password), role=role.value)
    db.add(user)
    logger.info("seed: user %s (%s) created", email, role.value)
    return user


def seed_demo(db: Session):
    """Datos mínimos para desarrollo: admin, cliente demo, sucursal y configuración."""
    _ensure_user(db, settings.seed_admin_email, settings.seed_admin_password, Role.admin, "Administrador")
    _ensure_user(db, DEMO_CLIENT_EMAIL, DEMO_CLIENT_PASSWORD, Role.cliente, "Cliente Demo")

    if not db.query(Branch).filter(Branch.name == DEMO_BRANCH_NAME).first():
        db.add(Branch(name=DEMO_BRANCH_NAME, address="Av. Principal 100"))

    get_or_create_config(db)
    commit_or_rollback(db)

from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.roles import is_admin_role
from app.core.security import ACCESS_TOKEN, decode_token
from app.models.user import User
from app.services.notification_service import DbNotificationEmitter, NotificationEmitter


def get_current_user(
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(None),
) -> User:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token de autenticación requerido")
    token = authorization.split(" ", 1)[1]
    payload = decode_token(token, expected_type=ACCESS_TOKEN)
    if not payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token inválido")
    user_id = payload.get("sub")
    user = db.query(User).filter(User.id == int(user_id)).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuario no válido o inactivo")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not is_admin_role(user.role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acceso denegado. Se requiere rol de administrador",
        )
    return user


def get_notifier(db: Session = Depends(get_db)) -> NotificationEmitter:
    return DbNotificationEmitter(db)

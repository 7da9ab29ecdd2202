"""
Bandeja de notificaciones del usuario autenticado.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import get_current_user
from app.core.serialization_helpers import serialize_columns
from app.models.notification import Notification
from app.models.user import User
from app.services import notification_service

router = APIRouter()


class NotificationOut(BaseModel):
    id: int
    type: str
    entity_id: int
    title: str
    message: str
    action: Optional[str]
    status: str
    previous_status: Optional[str]
    read: bool
    read_at: Optional[str]
    expires_at: Optional[str]
    created_at: Optional[str]


NOTIFICATION_FIELDS = (
    "id", "type", "entity_id", "title", "message", "action", "status",
    "previous_status", "read", "read_at", "expires_at", "created_at",
)


def serialize_notification(notification: Notification) -> dict:
    return serialize_columns(notification, NOTIFICATION_FIELDS)


@router.get("/", response_model=List[NotificationOut])
def list_notifications(
    read: Optional[bool] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Notificaciones vigentes, las más recientes primero. Purga las vencidas."""
    notifications = notification_service.list_notifications(db, user.id, read=read, limit=limit)
    return [serialize_notification(n) for n in notifications]


@router.get("/unread-count")
def unread_count(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"count": notification_service.unread_count(db, user.id)}


@router.patch("/read-all")
def mark_all_as_read(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    updated = notification_service.mark_all_as_read(db, user.id)
    return {"updated": updated}


@router.patch("/{notification_id}/read", response_model=NotificationOut)
def mark_as_read(notification_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    notification = notification_service.mark_as_read(db, notification_id, user.id)
    return serialize_notification(notification)


@router.delete("/{notification_id}", status_code=204)
def delete_notification(notification_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    notification_service.delete_notification(db, notification_id, user.id)

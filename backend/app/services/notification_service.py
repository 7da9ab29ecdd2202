"""
Notificaciones de cambio de estado.

Los motores de pedidos y de Efectivo Express llaman a `emit_status_change`
después de confirmar su transacción. El emisor es un puerto: la implementación
por defecto guarda la notificación en la BD para que el cliente la consulte
(no hay push en tiempo real).
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Protocol

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import commit_or_rollback
from app.core.errors import Forbidden, NotFound
from app.models.notification import Notification


logger = logging.getLogger(__name__)

ORDER_DOMAIN = "order"
CASH_EXPRESS_DOMAIN = "cash_express"

STATUS_MESSAGES = {
    # Pedidos
    (ORDER_DOMAIN, "UNDER_REVIEW"): {
        "title": "Pedido en Revisión",
        "message": "Estamos revisando la disponibilidad de tu pedido.",
        "action": "Te avisaremos cuando confirmemos los productos.",
    },
    (ORDER_DOMAIN, "PARTIALLY_AVAILABLE"): {
        "title": "Pedido Parcialmente Disponible",
        "message": "Algunos productos de tu pedido no están disponibles o cambiaron de cantidad.",
        "action": "Revisa el pedido actualizado y acéptalo o cancélalo.",
    },
    (ORDER_DOMAIN, "AVAILABLE"): {
        "title": "Pedido Disponible",
        "message": "Todos los productos de tu pedido están disponibles.",
        "action": "Confirma tu pedido para que lo preparemos.",
    },
    (ORDER_DOMAIN, "IN_PREPARATION"): {
        "title": "Pedido en Preparación",
        "message": "Tu pedido está siendo preparado.",
        "action": "Pronto estará listo para recoger.",
    },
    (ORDER_DOMAIN, "READY_FOR_PICKUP"): {
        "title": "Pedido Listo",
        "message": "Tu pedido está listo para recoger.",
        "action": "Ve a la sucursal a recoger tu pedido.",
    },
    (ORDER_DOMAIN, "COMPLETED"): {
        "title": "Pedido Entregado",
        "message": "Tu pedido ha sido entregado exitosamente.",
        "action": "Gracias por tu compra.",
    },
    (ORDER_DOMAIN, "CANCELLED"): {
        "title": "Pedido Cancelado",
        "message": "Tu pedido ha sido cancelado.",
        "action": "Contacta con soporte si tienes dudas.",
    },
    # Efectivo Express
    (CASH_EXPRESS_DOMAIN, "PENDIENTE"): {
        "title": "Solicitud Pendiente",
        "message": "Tu solicitud de Efectivo Express está pendiente de depósito.",
        "action": "Realiza el depósito y sube tu comprobante.",
    },
    (CASH_EXPRESS_DOMAIN, "EN_ESPERA_CONFIRMACION"): {
        "title": "En Espera de Confirmación",
        "message": "Tu depósito está siendo validado.",
        "action": "Espera la confirmación de tu depósito.",
    },
    (CASH_EXPRESS_DOMAIN, "REBOTADO"): {
        "title": "Depósito Rechazado",
        "message": "Tu depósito fue rechazado. Verifica los datos.",
        "action": "Revisa el motivo y sube un nuevo comprobante.",
    },
    (CASH_EXPRESS_DOMAIN, "DEPOSITO_VALIDADO"): {
        "title": "Depósito Validado",
        "message": "Tu depósito ha sido validado exitosamente.",
        "action": "Completa los datos del remitente y destinatario.",
    },
    (CASH_EXPRESS_DOMAIN, "ENTREGADO"): {
        "title": "Solicitud Entregada",
        "message": "Tu solicitud ha sido entregada exitosamente.",
        "action": "Gracias por usar Efectivo Express.",
    },
    (CASH_EXPRESS_DOMAIN, "CANCELADO"): {
        "title": "Solicitud Cancelada",
        "message": "Tu solicitud ha sido cancelada.",
        "action": "Contacta con soporte si tienes dudas.",
    },
}


class NotificationEmitter(Protocol):
    def notify(
        self,
        user_id: int,
        domain: str,
        entity_id: int,
        new_status: str,
        previous_status: Optional[str] = None,
    ) -> None:
        ...


class DbNotificationEmitter:
    """Guarda la notificación en la tabla `notifications`."""

    def __init__(self, db: Session):
        self.db = db

    def notify(
        self,
        user_id: int,
        domain: str,
        entity_id: int,
        new_status: str,
        previous_status: Optional[str] = None,
    ) -> None:
        content = STATUS_MESSAGES.get((domain, new_status))
        if not content:
            logger.warning("no message for %s status %s", domain, new_status)
            return

        self.db.add(Notification(
            user_id=user_id,
            type=domain,
            entity_id=entity_id,
            title=content["title"],
            message=content["message"],
            action=content["action"],
            status=new_status,
            previous_status=previous_status,
            read=False,
            expires_at=datetime.utcnow() + timedelta(days=settings.notification_ttl_days),
        ))
        commit_or_rollback(self.db)


def emit_status_change(
    notifier: Optional[NotificationEmitter],
    user_id: int,
    domain: str,
    entity_id: int,
    new_status: str,
    previous_status: Optional[str] = None,
) -> None:
    """
    Dispara la notificación sin afectar la operación que la originó:
    cualquier error del emisor se registra en el log y se descarta.
    """
    if notifier is None:
        return
    try:
        notifier.notify(user_id, domain, entity_id, new_status, previous_status)
    except Exception:
        logger.exception(
            "notification failed user=%s %s#%s %s -> %s",
            user_id, domain, entity_id, previous_status, new_status,
        )


# --- Bandeja del usuario -----------------------------------------------------

def purge_expired(db: Session) -> int:
    deleted = (
        db.query(Notification)
        .filter(Notification.expires_at <= datetime.utcnow())
        .delete(synchronize_session=False)
    )
    commit_or_rollback(db)
    return deleted


def list_notifications(
    db: Session,
    user_id: int,
    read: Optional[bool] = None,
    limit: int = 50,
) -> List[Notification]:
    purge_expired(db)
    query = db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.expires_at > datetime.utcnow(),
    )
    if read is not None:
        query = query.filter(Notification.read == read)
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(db: Session, user_id: int) -> int:
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read == False,  # noqa: E712
        Notification.expires_at > datetime.utcnow(),
    ).count()


def _get_own_notification(db: Session, notification_id: int, user_id: int) -> Notification:
    notification = db.query(Notification).filter(Notification.id == notification_id).first()
    if not notification:
        raise NotFound("Notificación no encontrada", notification_id=notification_id)
    if notification.user_id != user_id:
        raise Forbidden("No tienes permiso para esta notificación")
    return notification


def mark_as_read(db: Session, notification_id: int, user_id: int) -> Notification:
    """Marca como leída y acorta la vigencia a un día."""
    notification = _get_own_notification(db, notification_id, user_id)
    if not notification.read:
        now = datetime.utcnow()
        notification.read = True
        notification.read_at = now
        notification.expires_at = now + timedelta(days=settings.notification_read_ttl_days)
        commit_or_rollback(db)
        db.refresh(notification)
    return notification


def mark_all_as_read(db: Session, user_id: int) -> int:
    now = datetime.utcnow()
    count = (
        db.query(Notification)
        .filter(
            Notification.user_id == user_id,
            Notification.read == False,  # noqa: E712
            Notification.expires_at > now,
        )
        .update(
            {
                Notification.read: True,
                Notification.read_at: now,
                Notification.expires_at: now + timedelta(days=settings.notification_read_ttl_days),
            },
            synchronize_session=False,
        )
    )
    commit_or_rollback(db)
    return count


def delete_notification(db: Session, notification_id: int, user_id: int) -> None:
    notification = _get_own_notification(db, notification_id, user_id)
    db.delete(notification)
    commit_or_rollback(db)

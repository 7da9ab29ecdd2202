from datetime import datetime, timedelta

import pytest

from app.core.errors import Forbidden, NotFound
from app.models.notification import Notification
from app.services import notification_service
from app.services.notification_service import DbNotificationEmitter, emit_status_change


def _emit(db, user, status="READY_FOR_PICKUP", domain="order", entity_id=1):
    DbNotificationEmitter(db).notify(user.id, domain, entity_id, status, "IN_PREPARATION")


def test_emitter_persists_message(db, customer):
    _emit(db, customer)

    notification = db.query(Notification).one()
    assert notification.user_id == customer.id
    assert notification.type == "order"
    assert notification.status == "READY_FOR_PICKUP"
    assert notification.previous_status == "IN_PREPARATION"
    assert notification.title
    assert notification.read is False
    assert notification.expires_at > datetime.utcnow() + timedelta(days=4)


def test_emitter_skips_statuses_without_message(db, customer):
    DbNotificationEmitter(db).notify(customer.id, "order", 1, "CREATED")
    assert db.query(Notification).count() == 0


def test_every_status_change_has_a_message():
    keys = set(notification_service.STATUS_MESSAGES)
    for status in ("PARTIALLY_AVAILABLE", "AVAILABLE", "IN_PREPARATION", "READY_FOR_PICKUP", "COMPLETED", "CANCELLED"):
        assert ("order", status) in keys
    for status in ("EN_ESPERA_CONFIRMACION", "REBOTADO", "DEPOSITO_VALIDADO", "ENTREGADO", "CANCELADO"):
        assert ("cash_express", status) in keys


def test_emit_status_change_swallows_failures(failing_notifier):
    emit_status_change(failing_notifier, 1, "order", 1, "COMPLETED", "READY_FOR_PICKUP")
    emit_status_change(None, 1, "order", 1, "COMPLETED")


def test_inbox_flow(db, customer, other_customer):
    _emit(db, customer, entity_id=1)
    _emit(db, customer, status="COMPLETED", entity_id=2)
    _emit(db, other_customer, entity_id=3)

    notifications = notification_service.list_notifications(db, customer.id)
    assert [n.entity_id for n in notifications] == [2, 1]
    assert notification_service.unread_count(db, customer.id) == 2

    read = notification_service.mark_as_read(db, notifications[0].id, customer.id)
    assert read.read is True
    assert read.read_at is not None
    assert read.expires_at <= datetime.utcnow() + timedelta(days=1)
    assert notification_service.unread_count(db, customer.id) == 1
    assert [n.entity_id for n in notification_service.list_notifications(db, customer.id, read=False)] == [1]

    assert notification_service.mark_all_as_read(db, customer.id) == 1
    assert notification_service.unread_count(db, customer.id) == 0
    assert notification_service.unread_count(db, other_customer.id) == 1


def test_cannot_touch_someone_elses_notification(db, customer, other_customer):
    _emit(db, other_customer)
    notification = db.query(Notification).one()

    with pytest.raises(Forbidden):
        notification_service.mark_as_read(db, notification.id, customer.id)
    with pytest.raises(Forbidden):
        notification_service.delete_notification(db, notification.id, customer.id)
    with pytest.raises(NotFound):
        notification_service.delete_notification(db, 999, customer.id)

    notification_service.delete_notification(db, notification.id, other_customer.id)
    assert db.query(Notification).count() == 0


def test_expired_notifications_are_purged(db, customer):
    _emit(db, customer)
    notification = db.query(Notification).one()
    notification.expires_at = datetime.utcnow() - timedelta(minutes=1)
    db.commit()

    assert notification_service.unread_count(db, customer.id) == 0
    assert notification_service.list_notifications(db, customer.id) == []
    assert db.query(Notification).count() == 0

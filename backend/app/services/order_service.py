"""
Servicio de negocio para pedidos de recoger en tienda.

Flujo: el cliente crea el pedido (queda en revisión), el admin confirma la
disponibilidad de cada producto, el cliente acepta el pedido ajustado, el admin
lo marca como listo y finalmente como entregado. Cada cambio de estado se valida
contra ORDER_STATUS_TRANSITIONS antes de escribir nada y, una vez confirmado,
se notifica al dueño del pedido.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.clock import now_local
from app.core.database import commit_or_rollback
from app.core.errors import Forbidden, InvalidState, InvalidTransition, NotFound, ValidationError
from app.core.folio_service import generate_folio
from app.core.statuses import (
    OrderStatus,
    can_transition_order,
    parse_enum,
    path_is_legal,
)
from app.models.branch import Branch
from app.models.order import Order, OrderItem
from app.services.notification_service import ORDER_DOMAIN, NotificationEmitter, emit_status_change


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _to_money(value: Any, field: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Monto inválido en {field}", field=field)
    if not amount.is_finite():
        raise ValidationError(f"Monto inválido en {field}", field=field)
    return amount.quantize(CENT)


def _to_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Cantidad inválida en {field}", field=field)
    try:
        return int(value)
    except (ValueError, TypeError):
        raise ValidationError(f"Cantidad inválida en {field}", field=field)


def get_order(db: Session, order_id: int, lock: bool = False) -> Order:
    """Con `lock=True` la fila queda bloqueada hasta el commit del caller."""
    query = db.query(Order).filter(Order.id == order_id)
    if lock:
        query = query.with_for_update()
    order = query.first()
    if not order:
        raise NotFound("Pedido no encontrado", order_id=order_id)
    return order


def _require_transition(order: Order, new_status: OrderStatus, message: str) -> None:
    if not can_transition_order(order.status, new_status):
        raise InvalidTransition(
            f"{message} Estado actual: {order.status}",
            from_status=order.status,
            to_status=new_status.value,
        )


def _apply_status(
    db: Session,
    order: Order,
    new_status: OrderStatus,
    notifier: Optional[NotificationEmitter],
    **stamps: datetime,
) -> Order:
    """Escribe el nuevo estado (y timestamps), confirma y notifica."""
    previous_status = order.status
    order.status = new_status.value
    for field, value in stamps.items():
        setattr(order, field, value)
    commit_or_rollback(db)
    db.refresh(order)
    logger.info("order %s %s -> %s", order.folio, previous_status, order.status)

    emit_status_change(notifier, order.user_id, ORDER_DOMAIN, order.id, order.status, previous_status)
    return order


def create_order(
    db: Session,
    user_id: int,
    items: Sequence[Dict[str, Any]],
    notes: Optional[str] = None,
    branch_id: Optional[int] = None,
) -> Order:
    """
    Crea un pedido en estado UNDER_REVIEW con un folio nuevo.

    Cada item guarda nombre y precio tal como estaban al momento del pedido
    (cambios posteriores al catálogo no afectan al pedido). El total es la suma
    de los subtotales; si un item no trae subtotal se usa precio × cantidad.

    No genera notificación.
    """
    if not items:
        raise ValidationError("El pedido debe contener al menos un producto", field="items")

    if branch_id is not None:
        branch = db.query(Branch).filter(Branch.id == branch_id, Branch.is_active == True).first()  # noqa: E712
        if not branch:
            raise NotFound("Sucursal no encontrada", branch_id=branch_id)

    lines: List[OrderItem] = []
    total = Decimal("0")
    for index, item in enumerate(items):
        name = (item.get("product_name") or "").strip()
        if not name:
            raise ValidationError("Cada producto debe tener nombre", field=f"items[{index}].product_name")
        quantity = _to_int(item.get("quantity"), f"items[{index}].quantity")
        if quantity <= 0:
            raise ValidationError("La cantidad debe ser mayor a 0", field=f"items[{index}].quantity")
        unit_price = _to_money(item.get("unit_price"), f"items[{index}].unit_price")
        if unit_price < 0:
            raise ValidationError("El precio no puede ser negativo", field=f"items[{index}].unit_price")

        if item.get("subtotal") is not None:
            subtotal = _to_money(item["subtotal"], f"items[{index}].subtotal")
        else:
            subtotal = (unit_price * quantity).quantize(CENT)

        total += subtotal
        lines.append(OrderItem(
            product_id=item.get("product_id"),
            product_name=name,
            quantity=quantity,
            unit_price=unit_price,
            subtotal=subtotal,
        ))

    order = Order(
        folio=generate_folio(db, "ORDER"),
        status=OrderStatus.UNDER_REVIEW.value,
        total=total,
        notes=notes or None,
        user_id=user_id,
        branch_id=branch_id,
        items=lines,
    )
    db.add(order)
    commit_or_rollback(db)
    db.refresh(order)
    logger.info("order %s created user=%s items=%s total=%s", order.folio, user_id, len(lines), order.total)
    return order


def list_orders(db: Session, user_id: int, is_admin: bool, status: Optional[str] = None) -> List[Order]:
    """Clientes solo ven sus pedidos; el admin ve todos."""
    query = db.query(Order)
    if not is_admin:
        query = query.filter(Order.user_id == user_id)
    if status:
        parsed = parse_enum(OrderStatus, status)
        if parsed is None:
            raise ValidationError("Estado inválido", field="status", value=status)
        query = query.filter(Order.status == parsed.value)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


def get_order_for_user(db: Session, order_id: int, user_id: int, is_admin: bool) -> Order:
    order = get_order(db, order_id)
    if not is_admin and order.user_id != user_id:
        raise Forbidden("No tienes permiso para ver este pedido")
    return order


def count_orders_by_status(db: Session) -> Dict[str, int]:
    counts = {status.value: 0 for status in OrderStatus}
    for status, in db.query(Order.status).all():
        counts[status] = counts.get(status, 0) + 1
    counts["total"] = sum(counts.values())
    return counts


def review_availability(
    db: Session,
    order_id: int,
    decisions: Sequence[Dict[str, Any]],
    notifier: Optional[NotificationEmitter] = None,
) -> Order:
    """
    El admin confirma la disponibilidad de cada producto del pedido.

    - Solo válido en UNDER_REVIEW.
    - `decisions` debe cubrir exactamente los items del pedido
      (`item_id`, `is_available`, `confirmed_quantity` opcional).
    - Producto no disponible: cantidad confirmada y subtotal en 0.
    - Producto disponible: cantidad confirmada acotada a [0, cantidad pedida]
      (por defecto la cantidad pedida); subtotal = cantidad × precio.
    - El total se recalcula como la suma de subtotales.
    - Si todo quedó completo pasa directo a IN_PREPARATION (no hubo cambios
      que el cliente deba aceptar); si no, a PARTIALLY_AVAILABLE.

    Todo se escribe en una sola transacción y se notifica una sola vez.
    """
    order = get_order(db, order_id, lock=True)

    if order.status != OrderStatus.UNDER_REVIEW.value:
        raise InvalidState(
            "Solo se puede confirmar disponibilidad cuando el pedido está en revisión. "
            f"Estado actual: {order.status}",
            status=order.status,
        )

    if not decisions:
        raise ValidationError(
            "Se requiere la lista de productos con item_id e is_available",
            field="items",
        )

    decision_by_item: Dict[int, Dict[str, Any]] = {}
    for decision in decisions:
        item_id = decision.get("item_id")
        if item_id in decision_by_item:
            raise ValidationError("Cada producto debe aparecer una sola vez", field="items", item_id=item_id)
        decision_by_item[item_id] = decision

    order_item_ids = {item.id for item in order.items}
    if set(decision_by_item) != order_item_ids:
        raise ValidationError(
            "Debe enviar la disponibilidad de todos los productos del pedido",
            field="items",
            missing=sorted(order_item_ids - set(decision_by_item)),
            unexpected=sorted(str(i) for i in set(decision_by_item) - order_item_ids),
        )

    # Calcular todo antes de tocar el pedido
    resolved = []
    for item in order.items:
        decision = decision_by_item[item.id]
        available = decision.get("is_available") is True
        if available:
            requested = decision.get("confirmed_quantity")
            qty = item.quantity if requested is None else _to_int(requested, f"items[{item.id}].confirmed_quantity")
            qty = min(max(0, qty), item.quantity)
        else:
            qty = 0
        resolved.append((item, available, qty))

    all_available = all(available and qty >= item.quantity for item, available, qty in resolved)
    if all_available:
        # UNDER_REVIEW -> AVAILABLE -> IN_PREPARATION en un solo paso
        path = [OrderStatus.UNDER_REVIEW, OrderStatus.AVAILABLE, OrderStatus.IN_PREPARATION]
    else:
        path = [OrderStatus.UNDER_REVIEW, OrderStatus.PARTIALLY_AVAILABLE]
    if not path_is_legal(path, can_transition_order):
        raise InvalidTransition(
            "Transición no permitida",
            from_status=order.status,
            to_status=path[-1].value,
        )

    total = Decimal("0")
    for item, available, qty in resolved:
        item.is_available = available
        item.confirmed_quantity = qty
        item.subtotal = (Decimal(str(item.unit_price)) * qty).quantize(CENT)
        total += item.subtotal
    order.total = total

    return _apply_status(db, order, path[-1], notifier)


def confirm_by_customer(
    db: Session,
    order_id: int,
    user_id: int,
    notifier: Optional[NotificationEmitter] = None,
) -> Order:
    """El cliente acepta el pedido ajustado. Solo desde PARTIALLY_AVAILABLE o AVAILABLE."""
    order = get_order(db, order_id, lock=True)
    if order.user_id != user_id:
        raise Forbidden("No tienes permiso para confirmar este pedido")

    _require_transition(
        order,
        OrderStatus.IN_PREPARATION,
        "No se puede aceptar el pedido. Debe estar en Disponible o Parcialmente disponible.",
    )
    return _apply_status(db, order, OrderStatus.IN_PREPARATION, notifier, confirmed_at=now_local())


def mark_as_ready(db: Session, order_id: int, notifier: Optional[NotificationEmitter] = None) -> Order:
    order = get_order(db, order_id, lock=True)
    _require_transition(
        order,
        OrderStatus.READY_FOR_PICKUP,
        "No se puede marcar como listo. El pedido debe estar en preparación.",
    )
    return _apply_status(db, order, OrderStatus.READY_FOR_PICKUP, notifier, ready_at=now_local())


def complete_order(db: Session, order_id: int, notifier: Optional[NotificationEmitter] = None) -> Order:
    """El cliente recogió su pedido."""
    order = get_order(db, order_id, lock=True)
    _require_transition(
        order,
        OrderStatus.COMPLETED,
        "Solo se puede entregar un pedido listo para recoger.",
    )
    return _apply_status(db, order, OrderStatus.COMPLETED, notifier, completed_at=now_local())


def cancel_order(
    db: Session,
    order_id: int,
    user_id: int,
    is_admin: bool,
    notifier: Optional[NotificationEmitter] = None,
) -> Order:
    order = get_order(db, order_id, lock=True)
    if not is_admin and order.user_id != user_id:
        raise Forbidden("No tienes permiso para cancelar este pedido")

    _require_transition(order, OrderStatus.CANCELLED, "No se puede cancelar el pedido.")
    return _apply_status(db, order, OrderStatus.CANCELLED, notifier)


def update_order_status(
    db: Session,
    order_id: int,
    status: str,
    notifier: Optional[NotificationEmitter] = None,
) -> Order:
    """
    Cambio manual de estado por el admin. Solo valida que el estado exista;
    no aplica la tabla de transiciones. Notifica si el estado cambió.
    """
    new_status = parse_enum(OrderStatus, status)
    if new_status is None:
        raise ValidationError("Estado inválido", field="status", value=status)

    order = get_order(db, order_id, lock=True)
    if order.status == new_status.value:
        return order
    logger.warning("order %s manual status override %s -> %s", order.folio, order.status, new_status.value)
    return _apply_status(db, order, new_status, notifier)

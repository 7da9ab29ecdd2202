"""
Rutas para pedidos de recoger en tienda.
"""
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import get_current_user, get_notifier, require_admin
from app.core.roles import is_admin_role
from app.core.serialization_helpers import serialize_columns
from app.models.order import Order
from app.models.user import User
from app.services import order_service
from app.services.notification_service import NotificationEmitter

router = APIRouter()


# Pydantic Models
class OrderItemCreate(BaseModel):
    product_id: Optional[int] = None
    product_name: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(..., gt=0)
    unit_price: float = Field(..., ge=0)
    subtotal: Optional[float] = Field(None, ge=0)


class OrderCreate(BaseModel):
    items: List[OrderItemCreate]
    notes: Optional[str] = None
    branch_id: Optional[int] = None


class ItemAvailability(BaseModel):
    item_id: int
    is_available: bool
    confirmed_quantity: Optional[int] = None


class ReviewAvailabilityRequest(BaseModel):
    items: List[ItemAvailability]


class OrderStatusUpdate(BaseModel):
    status: str


class OrderItemOut(BaseModel):
    id: int
    product_id: Optional[int]
    product_name: str
    quantity: int
    unit_price: float
    is_available: Optional[bool]
    confirmed_quantity: Optional[int]
    subtotal: float


class OrderOut(BaseModel):
    id: int
    folio: str
    status: str
    total: float
    notes: Optional[str]
    user_id: int
    branch_id: Optional[int]
    created_at: Optional[str]
    confirmed_at: Optional[str]
    ready_at: Optional[str]
    completed_at: Optional[str]
    items: List[OrderItemOut]


ORDER_FIELDS = (
    "id", "folio", "status", "total", "notes", "user_id", "branch_id",
    "created_at", "confirmed_at", "ready_at", "completed_at",
)
ITEM_FIELDS = (
    "id", "product_id", "product_name", "quantity", "unit_price",
    "is_available", "confirmed_quantity", "subtotal",
)


def serialize_order(order: Order) -> dict:
    data = serialize_columns(order, ORDER_FIELDS)
    data["items"] = [serialize_columns(item, ITEM_FIELDS) for item in order.items]
    return data


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Crear un pedido; queda en revisión de disponibilidad"""
    order = order_service.create_order(
        db,
        user_id=user.id,
        items=[item.dict() for item in payload.items],
        notes=payload.notes,
        branch_id=payload.branch_id,
    )
    return serialize_order(order)


@router.get("/", response_model=List[OrderOut])
def list_orders(
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Pedidos del cliente (o todos si es admin)"""
    orders = order_service.list_orders(db, user.id, is_admin_role(user.role), status)
    return [serialize_order(o) for o in orders]


@router.get("/counts", response_model=Dict[str, int])
def order_counts(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return order_service.count_orders_by_status(db)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    order = order_service.get_order_for_user(db, order_id, user.id, is_admin_role(user.role))
    return serialize_order(order)


@router.patch("/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    notifier: NotificationEmitter = Depends(get_notifier),
):
    """Cambio manual de estado (admin). No aplica reglas de transición."""
    order = order_service.update_order_status(db, order_id, payload.status, notifier)
    return serialize_order(order)


@router.post("/{order_id}/review-availability", response_model=OrderOut)
def review_availability(
    order_id: int,
    payload: ReviewAvailabilityRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    notifier: NotificationEmitter = Depends(get_notifier),
):
    order = order_service.review_availability(
        db, order_id, [item.dict() for item in payload.items], notifier
    )
    return serialize_order(order)


@router.post("/{order_id}/confirm-by-customer", response_model=OrderOut)
def confirm_by_customer(
    order_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notifier: NotificationEmitter = Depends(get_notifier),
):
    """El cliente acepta el pedido actualizado"""
    order = order_service.confirm_by_customer(db, order_id, user.id, notifier)
    return serialize_order(order)


@router.post("/{order_id}/mark-ready", response_model=OrderOut)
def mark_ready(
    order_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    notifier: NotificationEmitter = Depends(get_notifier),
):
    order = order_service.mark_as_ready(db, order_id, notifier)
    return serialize_order(order)


@router.post("/{order_id}/complete", response_model=OrderOut)
def complete_order(
    order_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    notifier: NotificationEmitter = Depends(get_notifier),
):
    order = order_service.complete_order(db, order_id, notifier)
    return serialize_order(order)


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notifier: NotificationEmitter = Depends(get_notifier),
):
    order = order_service.cancel_order(db, order_id, user.id, is_admin_role(user.role), notifier)
    return serialize_order(order)

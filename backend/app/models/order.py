from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from app.models.branch import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    folio = Column(String(50), nullable=False, unique=True, index=True)
    status = Column(String(30), nullable=False, default="UNDER_REVIEW", index=True)
    # Siempre calculado en el servidor a partir de los items
    total = Column(Numeric(10, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)
    confirmed_at = Column(DateTime, nullable=True)  # aceptado por el cliente
    ready_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    user = relationship("User")
    branch = relationship("Branch")


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint(
            "confirmed_quantity IS NULL OR (confirmed_quantity >= 0 AND confirmed_quantity <= quantity)",
            name="ck_order_items_confirmed_quantity",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    # Snapshot del catálogo al momento del pedido
    product_id = Column(Integer, nullable=True, index=True)
    product_name = Column(String(255), nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)

    quantity = Column(Integer, nullable=False)
    # None = sin revisar
    is_available = Column(Boolean, nullable=True)
    confirmed_quantity = Column(Integer, nullable=True)
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)

    order = relationship("Order", back_populates="items")

from datetime import datetime

from sqlalchemy import (
    JSON,
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


# La configuración es una sola fila con id fijo
CONFIG_ID = 1


class CashExpressConfig(Base):
    __tablename__ = "cash_express_config"
    __table_args__ = (
        CheckConstraint(f"id = {CONFIG_ID}", name="ck_cash_express_config_singleton"),
        CheckConstraint("available_balance >= 0", name="ck_cash_express_config_balance_non_negative"),
    )

    id = Column(Integer, primary_key=True, default=CONFIG_ID)
    service_days = Column(JSON, nullable=False)  # índices 0=domingo .. 6=sábado
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)
    holidays = Column(JSON, nullable=False)  # ["YYYY-MM-DD", ...]
    non_working_day_message = Column(Text, nullable=True)

    available_balance = Column(Numeric(12, 2), nullable=False, default=0)
    daily_minimum_deposit = Column(Numeric(12, 2), nullable=False)
    max_amount = Column(Numeric(10, 2), nullable=False)
    commission_percentage = Column(Numeric(5, 2), nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    bank_accounts = relationship(
        "BankAccount",
        back_populates="config",
        cascade="all, delete-orphan",
        order_by="BankAccount.display_order",
    )


class BankAccount(Base):
    __tablename__ = "cash_express_bank_accounts"

    id = Column(Integer, primary_key=True, index=True)
    config_id = Column(Integer, ForeignKey("cash_express_config.id", ondelete="CASCADE"), nullable=False)
    beneficiary_name = Column(String(255), nullable=False)
    bank_name = Column(String(100), nullable=False)
    account_number = Column(String(50), nullable=False)
    clabe = Column(String(18), nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    config = relationship("CashExpressConfig", back_populates="bank_accounts")


class CashExpressRequest(Base):
    __tablename__ = "cash_express_requests"

    id = Column(Integer, primary_key=True, index=True)
    folio = Column(String(50), nullable=False, unique=True, index=True)
    status = Column(String(30), nullable=False, default="PENDIENTE", index=True)

    amount = Column(Numeric(10, 2), nullable=False)
    commission = Column(Numeric(10, 2), nullable=False)
    total_to_deposit = Column(Numeric(10, 2), nullable=False)  # siempre entero (redondeo hacia arriba)

    # Datos de identidad: opcionales al crear, requeridos antes de entregar
    sender_name = Column(String(255), nullable=True)
    sender_phone = Column(String(20), nullable=True)
    recipient_name = Column(String(255), nullable=True)
    recipient_phone = Column(String(20), nullable=True)
    recipient_relationship = Column("relationship", String(50), nullable=True)

    # URLs externas, no se interpretan
    deposit_receipt = Column(Text, nullable=True)
    signed_receipt = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    estimated_delivery_date = Column(DateTime, nullable=True)
    receipt_sent_at = Column(DateTime, nullable=True)
    deposit_validated_at = Column(DateTime, nullable=True)
    available_from = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    user = relationship("User")
    balance_entries = relationship("BalanceHistory", back_populates="request")


class BalanceHistory(Base):
    """Bitácora de movimientos del saldo. Solo se agregan filas."""
    __tablename__ = "cash_express_balance_history"

    id = Column(Integer, primary_key=True, index=True)
    amount = Column(Numeric(12, 2), nullable=False)  # positivo = abono, negativo = entrega
    previous_balance = Column(Numeric(12, 2), nullable=False)
    new_balance = Column(Numeric(12, 2), nullable=False)
    description = Column(String(255), nullable=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    config_id = Column(Integer, ForeignKey("cash_express_config.id"), nullable=False)
    request_id = Column(
        Integer,
        ForeignKey("cash_express_requests.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    user = relationship("User")
    request = relationship("CashExpressRequest", back_populates="balance_entries")

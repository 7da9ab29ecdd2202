"""
Servicio de negocio para Efectivo Express.

El cliente solicita un monto, deposita monto + comisión y sube su comprobante;
el admin valida el depósito y entrega el efectivo. La entrega es la única
operación que mueve dinero: descuenta el monto (no la comisión) del saldo
disponible y deja registro en la bitácora, todo en la misma transacción que el
cambio de estado.
"""
import logging
from datetime import datetime
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.clock import now_local, to_local_naive
from app.core.database import commit_or_rollback
from app.core.errors import (
    Forbidden,
    InsufficientFunds,
    InvalidState,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from app.core.folio_service import generate_folio
from app.core.statuses import (
    RECEIPT_UPLOAD_STATUSES,
    CashExpressStatus,
    can_transition_cash_express,
    is_terminal_cash_express,
    parse_enum,
)
from app.models.cash_express import BalanceHistory, CashExpressRequest
from app.services.availability_service import calculate_availability_date
from app.services.cash_express_config_service import get_or_create_config
from app.services.notification_service import CASH_EXPRESS_DOMAIN, NotificationEmitter, emit_status_change


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

IDENTITY_FIELDS = (
    "sender_name",
    "sender_phone",
    "recipient_name",
    "recipient_phone",
    "recipient_relationship",
)


def _to_amount(value: Any, field: str = "amount") -> Decimal:
    """Monto redondeado a centavos; los límites se validan sobre este valor."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("Monto inválido", field=field)
    if not amount.is_finite():
        raise ValidationError("Monto inválido", field=field)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_deposit(amount: Decimal, commission_percentage: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Devuelve (comisión, total a depositar).

    El total se redondea hacia arriba al entero: no se le pide al cliente
    depositar centavos.
    """
    commission = Decimal(str(amount)) * Decimal(str(commission_percentage)) / Decimal("100")
    total = (Decimal(str(amount)) + commission).to_integral_value(rounding=ROUND_CEILING)
    return commission.quantize(CENT, rounding=ROUND_HALF_UP), total


def get_request(db: Session, request_id: int, lock: bool = False) -> CashExpressRequest:
    query = db.query(CashExpressRequest).filter(CashExpressRequest.id == request_id)
    if lock:
        query = query.with_for_update()
    request = query.first()
    if not request:
        raise NotFound("Solicitud no encontrada", request_id=request_id)
    return request


def _get_owned_request(db: Session, request_id: int, user_id: int) -> CashExpressRequest:
    request = get_request(db, request_id, lock=True)
    if request.user_id != user_id:
        raise Forbidden("No tienes permiso para actualizar esta solicitud")
    return request


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _commit_transition(
    db: Session,
    request: CashExpressRequest,
    previous_status: str,
    notifier: Optional[NotificationEmitter],
) -> CashExpressRequest:
    commit_or_rollback(db)
    db.refresh(request)
    if request.status != previous_status:
        logger.info("cash express %s %s -> %s", request.folio, previous_status, request.status)
        emit_status_change(
            notifier, request.user_id, CASH_EXPRESS_DOMAIN, request.id, request.status, previous_status
        )
    return request


def create_request(
    db: Session,
    user_id: int,
    amount,
    identity: Optional[Dict[str, Optional[str]]] = None,
    now: Optional[datetime] = None,
) -> CashExpressRequest:
    """
    Crea una solicitud PENDIENTE.

    Valida 0 < monto <= monto máximo, calcula comisión y total a depositar y
    guarda la fecha estimada de entrega. Los datos de remitente/destinatario
    son opcionales en este punto.
    """
    amount = _to_amount(amount)
    config = get_or_create_config(db)
    max_amount = Decimal(str(config.max_amount))
    if amount <= 0 or amount > max_amount:
        raise ValidationError(
            f"El monto debe ser mayor a $0 y hasta ${max_amount:,.2f}",
            field="amount",
            max_amount=float(max_amount),
        )

    commission, total_to_deposit = compute_deposit(amount, config.commission_percentage)
    estimate = calculate_availability_date(db, amount, now=now)

    identity = identity or {}
    request = CashExpressRequest(
        folio=generate_folio(db, "CASH_EXPRESS"),
        status=CashExpressStatus.PENDIENTE.value,
        amount=amount,
        commission=commission,
        total_to_deposit=total_to_deposit,
        estimated_delivery_date=estimate.date,
        user_id=user_id,
        **{field: _clean(identity.get(field)) for field in IDENTITY_FIELDS},
    )
    db.add(request)
    commit_or_rollback(db)
    db.refresh(request)
    logger.info(
        "cash express %s created user=%s amount=%s deposit=%s eta=%s",
        request.folio, user_id, request.amount, request.total_to_deposit, request.estimated_delivery_date,
    )
    return request


def list_requests(db: Session, user_id: int, is_admin: bool, status: Optional[str] = None) -> List[CashExpressRequest]:
    query = db.query(CashExpressRequest)
    if not is_admin:
        query = query.filter(CashExpressRequest.user_id == user_id)
    if status:
        parsed = parse_enum(CashExpressStatus, status)
        if parsed is None:
            raise ValidationError("Estado inválido", field="status", value=status)
        query = query.filter(CashExpressRequest.status == parsed.value)
    return query.order_by(CashExpressRequest.created_at.desc(), CashExpressRequest.id.desc()).all()


def get_request_for_user(db: Session, request_id: int, user_id: int, is_admin: bool) -> CashExpressRequest:
    request = get_request(db, request_id)
    if not is_admin and request.user_id != user_id:
        raise Forbidden("No tienes permiso para ver esta solicitud")
    return request


def upload_deposit_receipt(db: Session, request_id: int, user_id: int, receipt_url: str) -> CashExpressRequest:
    """
    Guarda o reemplaza el comprobante de depósito sin cambiar el estado.
    El envío a revisión es una acción aparte (confirm_deposit_receipt).
    """
    receipt_url = _clean(receipt_url)
    if not receipt_url:
        raise ValidationError("Se requiere el comprobante de depósito", field="deposit_receipt")

    request = _get_owned_request(db, request_id, user_id)
    if request.status not in {s.value for s in RECEIPT_UPLOAD_STATUSES}:
        raise InvalidState(
            "Solo se puede subir o reemplazar el comprobante en solicitudes pendientes, "
            "rechazadas o en revisión",
            status=request.status,
        )

    request.deposit_receipt = receipt_url
    request.rejection_reason = None
    commit_or_rollback(db)
    db.refresh(request)
    return request


def confirm_deposit_receipt(
    db: Session,
    request_id: int,
    user_id: int,
    notifier: Optional[NotificationEmitter] = None,
    now: Optional[datetime] = None,
) -> CashExpressRequest:
    """El cliente envía su comprobante a revisión (PENDIENTE/REBOTADO -> EN_ESPERA_CONFIRMACION)."""
    request = _get_owned_request(db, request_id, user_id)

    if not request.deposit_receipt:
        raise ValidationError(
            "No hay comprobante para confirmar. Por favor, sube un comprobante primero.",
            field="deposit_receipt",
        )

    target = CashExpressStatus.EN_ESPERA_CONFIRMACION
    if request.status not in {CashExpressStatus.PENDIENTE.value, CashExpressStatus.REBOTADO.value} \
            or not can_transition_cash_express(request.status, target):
        raise InvalidTransition(
            "Solo se puede confirmar comprobante en solicitudes pendientes o rebotadas",
            from_status=request.status,
            to_status=target.value,
        )

    previous_status = request.status
    request.status = target.value
    request.receipt_sent_at = now or now_local()
    request.rejection_reason = None
    return _commit_transition(db, request, previous_status, notifier)


def update_recipient_data(db: Session, request_id: int, user_id: int, data: Dict[str, Optional[str]]) -> CashExpressRequest:
    """Datos de remitente y destinatario; solo con el depósito validado y todos requeridos."""
    request = _get_owned_request(db, request_id, user_id)
    if request.status != CashExpressStatus.DEPOSITO_VALIDADO.value:
        raise InvalidState(
            "Solo se pueden actualizar los datos cuando el depósito está validado",
            status=request.status,
        )

    cleaned = {field: _clean(data.get(field)) for field in IDENTITY_FIELDS}
    missing = [field for field, value in cleaned.items() if not value]
    if missing:
        raise ValidationError("Todos los campos son requeridos", fields=missing)

    for field, value in cleaned.items():
        setattr(request, field, value)
    commit_or_rollback(db)
    db.refresh(request)
    return request


def upload_signed_receipt(db: Session, request_id: int, signed_receipt: str) -> CashExpressRequest:
    """Comprobante firmado por quien recibe el efectivo (admin)."""
    signed_receipt = _clean(signed_receipt)
    if not signed_receipt:
        raise ValidationError("Se requiere el comprobante firmado", field="signed_receipt")

    request = get_request(db, request_id, lock=True)
    if request.status != CashExpressStatus.DEPOSITO_VALIDADO.value:
        raise InvalidState(
            "Solo se puede subir comprobante firmado cuando el depósito está validado",
            status=request.status,
        )
    request.signed_receipt = signed_receipt
    commit_or_rollback(db)
    db.refresh(request)
    return request


def _debit_for_delivery(db: Session, request: CashExpressRequest, actor_id: int) -> BalanceHistory:
    """
    Descuenta el monto de la solicitud del saldo. La fila de configuración
    queda bloqueada hasta el commit del caller. NO hace commit.
    """
    config = get_or_create_config(db, lock=True)
    previous_balance = Decimal(str(config.available_balance or 0))
    amount = Decimal(str(request.amount))
    if previous_balance < amount:
        raise InsufficientFunds(
            "Saldo insuficiente para entregar la solicitud",
            available_balance=float(previous_balance),
            amount=float(amount),
        )

    new_balance = previous_balance - amount
    config.available_balance = new_balance
    entry = BalanceHistory(
        amount=-amount,
        previous_balance=previous_balance,
        new_balance=new_balance,
        description=f"Entrega de efectivo {request.folio}",
        user_id=actor_id,
        config_id=config.id,
        request_id=request.id,
    )
    db.add(entry)
    return entry


def update_request_status(
    db: Session,
    request_id: int,
    status: str,
    actor_id: int,
    rejection_reason: Optional[str] = None,
    available_from: Optional[datetime] = None,
    notifier: Optional[NotificationEmitter] = None,
    now: Optional[datetime] = None,
) -> CashExpressRequest:
    """
    Cambio de estado por el admin.

    - REBOTADO requiere motivo.
    - DEPOSITO_VALIDADO usa `available_from`, o la fecha estimada de la
      solicitud, o ahora.
    - ENTREGADO descuenta el monto del saldo (InsufficientFunds si no alcanza)
      y agrega una fila a la bitácora en la misma transacción.

    Todas las validaciones ocurren antes de modificar cualquier fila.
    """
    new_status = parse_enum(CashExpressStatus, status)
    if new_status is None:
        raise ValidationError("Estado inválido", field="status", value=status)

    now = now or now_local()
    request = get_request(db, request_id, lock=True)
    previous_status = request.status

    if new_status.value != previous_status:
        if not can_transition_cash_express(previous_status, new_status):
            raise InvalidTransition(
                f"No se puede pasar de {previous_status} a {new_status.value}",
                from_status=previous_status,
                to_status=new_status.value,
            )
    elif is_terminal_cash_express(previous_status):
        raise InvalidState("La solicitud ya está cerrada", status=previous_status)

    rejection_reason = _clean(rejection_reason)
    if new_status == CashExpressStatus.REBOTADO and not rejection_reason:
        raise ValidationError("Se requiere un motivo de rechazo", field="rejection_reason")

    if new_status == CashExpressStatus.ENTREGADO:
        missing = [field for field in IDENTITY_FIELDS if not getattr(request, field)]
        if missing:
            raise ValidationError(
                "Faltan los datos de remitente y destinatario para entregar",
                fields=missing,
            )
        _debit_for_delivery(db, request, actor_id)
        request.delivered_at = now

    if new_status == CashExpressStatus.REBOTADO:
        # El comprobante se conserva para que el cliente vea qué subió
        request.rejection_reason = rejection_reason

    if new_status == CashExpressStatus.DEPOSITO_VALIDADO:
        if available_from is not None:
            request.available_from = to_local_naive(available_from)
        elif request.available_from is None:
            request.available_from = request.estimated_delivery_date or now
        if previous_status != new_status.value:
            request.deposit_validated_at = now

    if new_status == CashExpressStatus.CANCELADO:
        request.cancelled_at = now

    request.status = new_status.value
    return _commit_transition(db, request, previous_status, notifier)


def cancel_request(
    db: Session,
    request_id: int,
    user_id: int,
    is_admin: bool,
    notifier: Optional[NotificationEmitter] = None,
    now: Optional[datetime] = None,
) -> CashExpressRequest:
    request = get_request(db, request_id, lock=True)
    if not is_admin and request.user_id != user_id:
        raise Forbidden("No tienes permiso para cancelar esta solicitud")
    if not can_transition_cash_express(request.status, CashExpressStatus.CANCELADO):
        raise InvalidTransition(
            f"No se puede cancelar la solicitud en estado {request.status}",
            from_status=request.status,
            to_status=CashExpressStatus.CANCELADO.value,
        )

    previous_status = request.status
    request.status = CashExpressStatus.CANCELADO.value
    request.cancelled_at = now or now_local()
    return _commit_transition(db, request, previous_status, notifier)


# --- Saldo -------------------------------------------------------------------

def add_balance(db: Session, user_id: int, amount, description: Optional[str] = None) -> Dict[str, Decimal]:
    """Abono de efectivo al saldo disponible (admin). Saldo y bitácora se guardan juntos."""
    amount = _to_amount(amount)
    if amount <= 0:
        raise ValidationError("El monto debe ser mayor a 0", field="amount")

    config = get_or_create_config(db, lock=True)
    previous_balance = Decimal(str(config.available_balance or 0))
    new_balance = previous_balance + amount
    config.available_balance = new_balance
    db.add(BalanceHistory(
        amount=amount,
        previous_balance=previous_balance,
        new_balance=new_balance,
        description=_clean(description) or "Abono de saldo",
        user_id=user_id,
        config_id=config.id,
    ))
    commit_or_rollback(db)
    logger.info("cash express balance %s -> %s (+%s) by user=%s", previous_balance, new_balance, amount, user_id)
    return {"previous_balance": previous_balance, "amount": amount, "new_balance": new_balance}


def get_balance_history(db: Session, limit: int = 50, offset: int = 0) -> Tuple[List[BalanceHistory], int]:
    query = db.query(BalanceHistory)
    total = query.count()
    history = (
        query.order_by(BalanceHistory.created_at.desc(), BalanceHistory.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return history, total


def get_current_balance(db: Session) -> Dict[str, Decimal]:
    config = get_or_create_config(db)
    commit_or_rollback(db)
    return {
        "available_balance": Decimal(str(config.available_balance or 0)),
        "daily_minimum_deposit": Decimal(str(config.daily_minimum_deposit or 0)),
    }

"""
Rutas de Efectivo Express: solicitudes, comprobantes, saldo y configuración.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import get_current_user, get_notifier, require_admin
from app.core.roles import is_admin_role
from app.core.serialization_helpers import serialize_columns, serialize_decimal
from app.models.cash_express import CashExpressRequest
from app.models.user import User
from app.services import cash_express_config_service as config_service
from app.services import cash_express_service
from app.services.availability_service import calculate_availability_date, describe_availability
from app.services.notification_service import NotificationEmitter

router = APIRouter()


# Pydantic Models
class IdentityData(BaseModel):
    sender_name: Optional[str] = None
    sender_phone: Optional[str] = None
    recipient_name: Optional[str] = None
    recipient_phone: Optional[str] = None
    recipient_relationship: Optional[str] = None


class CashExpressCreate(IdentityData):
    amount: float


class DepositReceiptUpload(BaseModel):
    deposit_receipt: str


class SignedReceiptUpload(BaseModel):
    signed_receipt: str


class RequestStatusUpdate(BaseModel):
    status: str
    rejection_reason: Optional[str] = None
    available_from: Optional[datetime] = None


class BalanceDeposit(BaseModel):
    amount: float
    description: Optional[str] = None


class ConfigUpdate(BaseModel):
    service_days: Optional[List[int]] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    holidays: Optional[List[str]] = None
    non_working_day_message: Optional[str] = None
    daily_minimum_deposit: Optional[float] = None
    max_amount: Optional[float] = None
    commission_percentage: Optional[float] = None


class BankAccountCreate(BaseModel):
    beneficiary_name: str
    bank_name: str
    account_number: str
    clabe: Optional[str] = None
    display_order: int = 0
    is_active: bool = True


class BankAccountUpdate(BaseModel):
    beneficiary_name: Optional[str] = None
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    clabe: Optional[str] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None


class CashExpressOut(BaseModel):
    id: int
    folio: str
    status: str
    amount: float
    commission: float
    total_to_deposit: float
    sender_name: Optional[str]
    sender_phone: Optional[str]
    recipient_name: Optional[str]
    recipient_phone: Optional[str]
    recipient_relationship: Optional[str]
    deposit_receipt: Optional[str]
    signed_receipt: Optional[str]
    rejection_reason: Optional[str]
    estimated_delivery_date: Optional[str]
    receipt_sent_at: Optional[str]
    deposit_validated_at: Optional[str]
    available_from: Optional[str]
    delivered_at: Optional[str]
    cancelled_at: Optional[str]
    user_id: int
    created_at: Optional[str]


REQUEST_FIELDS = (
    "id", "folio", "status", "amount", "commission", "total_to_deposit",
    "sender_name", "sender_phone", "recipient_name", "recipient_phone", "recipient_relationship",
    "deposit_receipt", "signed_receipt", "rejection_reason", "estimated_delivery_date",
    "receipt_sent_at", "deposit_validated_at", "available_from", "delivered_at", "cancelled_at",
    "user_id", "created_at",
)


def serialize_request(request: CashExpressRequest) -> dict:
    return serialize_columns(request, REQUEST_FIELDS)


# --- Público -----------------------------------------------------------------

@router.get("/suggested-availability")
def suggested_availability(amount: float = Query(..., gt=0), db: Session = Depends(get_db)):
    """Fecha estimada de entrega para un monto"""
    estimate = calculate_availability_date(db, amount)
    return describe_availability(estimate)


@router.get("/balance")
def current_balance(db: Session = Depends(get_db)):
    balance = cash_express_service.get_current_balance(db)
    return {key: serialize_decimal(value) for key, value in balance.items()}


@router.get("/config/public")
def public_config(db: Session = Depends(get_db)):
    return config_service.get_public_config(db)


# --- Admin: saldo y configuración --------------------------------------------

@router.post("/balance")
def add_balance(payload: BalanceDeposit, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    """Abono de saldo"""
    result = cash_express_service.add_balance(db, admin.id, payload.amount, payload.description)
    return {"balance": {key: serialize_decimal(value) for key, value in result.items()}}


@router.get("/balance/history")
def balance_history(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    history, total = cash_express_service.get_balance_history(db, limit, offset)
    return {
        "history": [
            serialize_columns(
                h,
                ("id", "amount", "previous_balance", "new_balance", "description", "user_id", "request_id", "created_at"),
            )
            for h in history
        ],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/config")
def get_config(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    config = config_service.get_or_create_config(db)
    db.commit()
    return config_service.serialize_config(config)


@router.put("/config")
def update_config(payload: ConfigUpdate, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    config = config_service.update_config(db, payload.dict(exclude_unset=True))
    return config_service.serialize_config(config)


@router.get("/bank-accounts")
def list_bank_accounts(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    accounts = config_service.list_bank_accounts(db, include_inactive)
    return [config_service.serialize_bank_account(a) for a in accounts]


@router.post("/bank-accounts", status_code=201)
def create_bank_account(payload: BankAccountCreate, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    account = config_service.create_bank_account(db, payload.dict())
    return config_service.serialize_bank_account(account)


@router.put("/bank-accounts/{account_id}")
def update_bank_account(
    account_id: int,
    payload: BankAccountUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    account = config_service.update_bank_account(db, account_id, payload.dict(exclude_unset=True))
    return config_service.serialize_bank_account(account)


@router.delete("/bank-accounts/{account_id}", status_code=204)
def delete_bank_account(account_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    config_service.delete_bank_account(db, account_id)


# --- Solicitudes -------------------------------------------------------------

@router.post("/", response_model=CashExpressOut, status_code=201)
def create_request(
    payload: CashExpressCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    identity = payload.dict(exclude={"amount"})
    request = cash_express_service.create_request(db, user.id, payload.amount, identity)
    return serialize_request(request)


@router.get("/", response_model=List[CashExpressOut])
def list_requests(
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    requests = cash_express_service.list_requests(db, user.id, is_admin_role(user.role), status)
    return [serialize_request(r) for r in requests]


@router.get("/{request_id}", response_model=CashExpressOut)
def get_request(request_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    request = cash_express_service.get_request_for_user(db, request_id, user.id, is_admin_role(user.role))
    return serialize_request(request)


@router.put("/{request_id}/deposit-receipt", response_model=CashExpressOut)
def upload_deposit_receipt(
    request_id: int,
    payload: DepositReceiptUpload,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    request = cash_express_service.upload_deposit_receipt(db, request_id, user.id, payload.deposit_receipt)
    return serialize_request(request)


@router.post("/{request_id}/deposit-receipt/confirm", response_model=CashExpressOut)
def confirm_deposit_receipt(
    request_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notifier: NotificationEmitter = Depends(get_notifier),
):
    """Enviar comprobante a revisión"""
    request = cash_express_service.confirm_deposit_receipt(db, request_id, user.id, notifier)
    return serialize_request(request)


@router.put("/{request_id}/recipient", response_model=CashExpressOut)
def update_recipient_data(
    request_id: int,
    payload: IdentityData,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    request = cash_express_service.update_recipient_data(db, request_id, user.id, payload.dict())
    return serialize_request(request)


@router.patch("/{request_id}/status", response_model=CashExpressOut)
def update_request_status(
    request_id: int,
    payload: RequestStatusUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    notifier: NotificationEmitter = Depends(get_notifier),
):
    request = cash_express_service.update_request_status(
        db,
        request_id,
        payload.status,
        actor_id=admin.id,
        rejection_reason=payload.rejection_reason,
        available_from=payload.available_from,
        notifier=notifier,
    )
    return serialize_request(request)


@router.put("/{request_id}/signed-receipt", response_model=CashExpressOut)
def upload_signed_receipt(
    request_id: int,
    payload: SignedReceiptUpload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    request = cash_express_service.upload_signed_receipt(db, request_id, payload.signed_receipt)
    return serialize_request(request)


@router.post("/{request_id}/cancel", response_model=CashExpressOut)
def cancel_request(
    request_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notifier: NotificationEmitter = Depends(get_notifier),
):
    request = cash_express_service.cancel_request(db, request_id, user.id, is_admin_role(user.role), notifier)
    return serialize_request(request)

"""
Configuración de Efectivo Express: horario de servicio, festivos, comisión,
monto máximo, saldo disponible y cuentas bancarias para depósito.

Existe una sola fila (id fijo). Se crea con los valores por defecto de
`settings` la primera vez que se lee.
"""
import logging
import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import commit_or_rollback
from app.core.errors import NotFound, ValidationError
from app.core.serialization_helpers import serialize_decimal
from app.models.cash_express import CONFIG_ID, BankAccount, CashExpressConfig


logger = logging.getLogger(__name__)

TIME_RE = re.compile(r"^([0-1][0-9]|2[0-3]):[0-5][0-9]$")
CLABE_RE = re.compile(r"^\d{18}$")


def _default_config() -> CashExpressConfig:
    return CashExpressConfig(
        id=CONFIG_ID,
        service_days=list(settings.cash_express_service_days),
        start_time=settings.cash_express_start_time,
        end_time=settings.cash_express_end_time,
        holidays=[],
        non_working_day_message=settings.cash_express_non_working_day_message,
        available_balance=Decimal("0"),
        daily_minimum_deposit=Decimal(str(settings.cash_express_daily_minimum_deposit)),
        max_amount=Decimal(str(settings.cash_express_max_amount)),
        commission_percentage=Decimal(str(settings.cash_express_commission_percentage)),
    )


def get_or_create_config(db: Session, lock: bool = False) -> CashExpressConfig:
    """
    Devuelve la configuración, creándola si no existe.

    Con `lock=True` la fila queda bloqueada (SELECT ... FOR UPDATE) hasta el
    commit del caller: así se serializan los movimientos de saldo.
    NO hace commit.
    """
    query = db.query(CashExpressConfig).filter(CashExpressConfig.id == CONFIG_ID)
    if lock:
        query = query.with_for_update()
    config = query.first()
    if config:
        return config

    try:
        # Savepoint: si otra petición la creó primero, solo se descarta este insert
        with db.begin_nested():
            config = _default_config()
            db.add(config)
        logger.info("cash express config created with defaults")
    except IntegrityError:
        config = query.first()
    return config


def _parse_time(value: str, field: str) -> int:
    if not isinstance(value, str) or not TIME_RE.match(value):
        raise ValidationError("Formato de hora inválido. Use HH:MM (24 horas)", field=field)
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def _positive_decimal(value: Any, field: str, allow_zero: bool = False) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Valor inválido para {field}", field=field)
    if not amount.is_finite():
        raise ValidationError(f"Valor inválido para {field}", field=field)
    if allow_zero and amount < 0:
        raise ValidationError(f"{field} no puede ser negativo", field=field)
    if not allow_zero and amount <= 0:
        raise ValidationError(f"{field} debe ser mayor a 0", field=field)
    return amount


def update_config(db: Session, data: Dict[str, Any]) -> CashExpressConfig:
    """
    Actualiza solo los campos enviados. El saldo no se modifica aquí
    (ver cash_express_service.add_balance).
    """
    config = get_or_create_config(db, lock=True)
    changes: Dict[str, Any] = {}

    if data.get("service_days") is not None:
        days = data["service_days"]
        if not isinstance(days, (list, tuple)) or len(days) == 0:
            raise ValidationError("Debe seleccionar al menos un día de servicio", field="service_days")
        if any(isinstance(d, bool) or not isinstance(d, int) or d < 0 or d > 6 for d in days):
            raise ValidationError("Los días de servicio deben estar entre 0 (domingo) y 6 (sábado)", field="service_days")
        changes["service_days"] = sorted(set(days))

    start_time = data.get("start_time") or config.start_time
    end_time = data.get("end_time") or config.end_time
    if _parse_time(start_time, "start_time") >= _parse_time(end_time, "end_time"):
        raise ValidationError("El horario de inicio debe ser anterior al horario de fin", field="start_time")
    changes["start_time"] = start_time
    changes["end_time"] = end_time

    if data.get("holidays") is not None:
        holidays = data["holidays"]
        if not isinstance(holidays, (list, tuple)):
            raise ValidationError("Los días festivos deben ser una lista", field="holidays")
        normalized = set()
        for raw in holidays:
            try:
                normalized.add(date.fromisoformat(str(raw)).isoformat())
            except ValueError:
                raise ValidationError(f"Fecha festiva inválida: {raw}", field="holidays")
        changes["holidays"] = sorted(normalized)

    if "non_working_day_message" in data:
        changes["non_working_day_message"] = (
            data["non_working_day_message"] or settings.cash_express_non_working_day_message
        )

    if data.get("daily_minimum_deposit") is not None:
        changes["daily_minimum_deposit"] = _positive_decimal(data["daily_minimum_deposit"], "daily_minimum_deposit")

    if data.get("max_amount") is not None:
        changes["max_amount"] = _positive_decimal(data["max_amount"], "max_amount")

    if data.get("commission_percentage") is not None:
        pct = _positive_decimal(data["commission_percentage"], "commission_percentage", allow_zero=True)
        if pct > 100:
            raise ValidationError("La comisión debe estar entre 0 y 100", field="commission_percentage")
        changes["commission_percentage"] = pct

    # Nada se escribe hasta que todos los campos son válidos
    for field, value in changes.items():
        setattr(config, field, value)
    commit_or_rollback(db)
    db.refresh(config)
    logger.info("cash express config updated fields=%s", sorted(data))
    return config


def serialize_bank_account(account: BankAccount) -> Dict[str, Any]:
    return {
        "id": account.id,
        "beneficiary_name": account.beneficiary_name,
        "bank_name": account.bank_name,
        "account_number": account.account_number,
        "clabe": account.clabe,
        "display_order": account.display_order,
        "is_active": account.is_active,
    }


def serialize_config(config: CashExpressConfig) -> Dict[str, Any]:
    """Vista completa (admin)."""
    return {
        "id": config.id,
        "service_days": list(config.service_days or []),
        "start_time": config.start_time,
        "end_time": config.end_time,
        "holidays": list(config.holidays or []),
        "non_working_day_message": config.non_working_day_message,
        "available_balance": serialize_decimal(config.available_balance),
        "daily_minimum_deposit": serialize_decimal(config.daily_minimum_deposit),
        "max_amount": serialize_decimal(config.max_amount),
        "commission_percentage": serialize_decimal(config.commission_percentage),
        "bank_accounts": [serialize_bank_account(a) for a in config.bank_accounts],
    }


def get_public_config(db: Session) -> Dict[str, Any]:
    """Vista para clientes: sin saldo y solo cuentas activas."""
    config = get_or_create_config(db)
    commit_or_rollback(db)
    return {
        "service_days": list(config.service_days or []),
        "start_time": config.start_time,
        "end_time": config.end_time,
        "holidays": list(config.holidays or []),
        "non_working_day_message": config.non_working_day_message,
        "max_amount": serialize_decimal(config.max_amount),
        "commission_percentage": serialize_decimal(config.commission_percentage),
        "bank_accounts": [serialize_bank_account(a) for a in config.bank_accounts if a.is_active],
    }


# --- Cuentas bancarias -------------------------------------------------------

def _clean_required(data: Dict[str, Any], field: str) -> str:
    value = (data.get(field) or "").strip()
    if not value:
        raise ValidationError(f"El campo {field} es requerido", field=field)
    return value


def _clean_clabe(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if not CLABE_RE.match(value):
        raise ValidationError("La CLABE debe tener 18 dígitos", field="clabe")
    return value


def list_bank_accounts(db: Session, include_inactive: bool = False) -> List[BankAccount]:
    config = get_or_create_config(db)
    commit_or_rollback(db)
    query = db.query(BankAccount).filter(BankAccount.config_id == config.id)
    if not include_inactive:
        query = query.filter(BankAccount.is_active == True)  # noqa: E712
    return query.order_by(BankAccount.display_order, BankAccount.id).all()


def create_bank_account(db: Session, data: Dict[str, Any]) -> BankAccount:
    config = get_or_create_config(db)
    account = BankAccount(
        config_id=config.id,
        beneficiary_name=_clean_required(data, "beneficiary_name"),
        bank_name=_clean_required(data, "bank_name"),
        account_number=_clean_required(data, "account_number"),
        clabe=_clean_clabe(data.get("clabe")),
        display_order=int(data.get("display_order") or 0),
        is_active=data.get("is_active", True) is not False,
    )
    db.add(account)
    commit_or_rollback(db)
    db.refresh(account)
    return account


def _get_bank_account(db: Session, account_id: int) -> BankAccount:
    account = db.query(BankAccount).filter(BankAccount.id == account_id).first()
    if not account:
        raise NotFound("Cuenta bancaria no encontrada", bank_account_id=account_id)
    return account


def update_bank_account(db: Session, account_id: int, data: Dict[str, Any]) -> BankAccount:
    account = _get_bank_account(db, account_id)
    for field in ("beneficiary_name", "bank_name", "account_number"):
        if field in data and data[field] is not None:
            setattr(account, field, _clean_required(data, field))
    if "clabe" in data:
        account.clabe = _clean_clabe(data["clabe"])
    if data.get("display_order") is not None:
        account.display_order = int(data["display_order"])
    if data.get("is_active") is not None:
        account.is_active = bool(data["is_active"])
    commit_or_rollback(db)
    db.refresh(account)
    return account


def delete_bank_account(db: Session, account_id: int) -> None:
    account = _get_bank_account(db, account_id)
    db.delete(account)
    commit_or_rollback(db)

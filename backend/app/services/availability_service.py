"""
Estimación de la fecha de entrega de Efectivo Express.

El negocio solo puede entregar efectivo al ritmo en que el efectivo llega:
se toma el saldo disponible, se resta lo ya comprometido con las solicitudes
que van antes en la fila y, si no alcanza, se proyecta cuántos días hábiles de
abonos (al mínimo diario) hacen falta para cubrir la diferencia.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.clock import now_local
from app.core.errors import ValidationError
from app.core.statuses import CASH_EXPRESS_PENDING_STATUSES
from app.models.cash_express import CashExpressRequest
from app.services.cash_express_config_service import get_or_create_config


DAY_NAMES = ["domingo", "lunes", "martes", "miércoles", "jueves", "viernes", "sábado"]
MONTH_NAMES = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]


@dataclass
class AvailabilityEstimate:
    date: datetime
    is_available_now: bool
    pending_requests: int


def service_weekday(moment: datetime) -> int:
    """Índice de día con 0=domingo .. 6=sábado (el que usa la configuración)."""
    return (moment.weekday() + 1) % 7


def is_service_day(moment: datetime, service_days: Iterable[int], holidays: Iterable[str]) -> bool:
    return service_weekday(moment) in set(service_days) and moment.date().isoformat() not in set(holidays)


def add_service_days(start: datetime, days_needed: int, service_days: Iterable[int], holidays: Iterable[str]) -> datetime:
    """
    Avanza día por día desde `start` (sin contarlo) hasta juntar `days_needed`
    días de servicio que no sean festivos. Conserva la hora de `start`.
    """
    service_days = set(service_days)
    holidays = set(holidays)
    if not service_days:
        raise ValidationError("No hay días de servicio configurados", field="service_days")

    days_added = 0
    working_days = 0
    while working_days < days_needed:
        days_added += 1
        if is_service_day(start + timedelta(days=days_added), service_days, holidays):
            working_days += 1
    return start + timedelta(days=days_added)


def pending_totals(db: Session) -> tuple[Decimal, int]:
    """Suma y número de solicitudes que ya comprometen efectivo."""
    statuses = [s.value for s in CASH_EXPRESS_PENDING_STATUSES]
    total, count = (
        db.query(func.coalesce(func.sum(CashExpressRequest.amount), 0), func.count(CashExpressRequest.id))
        .filter(CashExpressRequest.status.in_(statuses))
        .one()
    )
    return Decimal(str(total)), int(count)


def calculate_availability_date(db: Session, amount, now: Optional[datetime] = None) -> AvailabilityEstimate:
    amount = Decimal(str(amount))
    now = now or now_local()
    config = get_or_create_config(db)

    available_balance = Decimal(str(config.available_balance or 0))
    pending_total, pending_count = pending_totals(db)

    if available_balance >= amount + pending_total:
        return AvailabilityEstimate(date=now, is_available_now=True, pending_requests=pending_count)

    daily_minimum = Decimal(str(config.daily_minimum_deposit or 0))
    if daily_minimum <= 0:
        raise ValidationError("El abono mínimo diario debe ser mayor a 0", field="daily_minimum_deposit")

    needed = (amount + pending_total) - available_balance
    days_needed = math.ceil(needed / daily_minimum)

    estimated = add_service_days(now, days_needed, config.service_days or [], config.holidays or [])
    return AvailabilityEstimate(date=estimated, is_available_now=False, pending_requests=pending_count)


def format_long_date(moment: datetime) -> str:
    """Ej. 'martes, 20 de octubre de 2026, 09:30'."""
    return (
        f"{DAY_NAMES[service_weekday(moment)]}, {moment.day} de {MONTH_NAMES[moment.month - 1]} "
        f"de {moment.year}, {moment:%H:%M}"
    )


def describe_availability(estimate: AvailabilityEstimate) -> dict:
    formatted = format_long_date(estimate.date)
    if estimate.is_available_now:
        message = (
            "Tu solicitud puede ser procesada y entregada inmediatamente. El efectivo estará "
            "disponible de forma instantánea una vez validado el depósito."
        )
    elif estimate.pending_requests > 0:
        plural = estimate.pending_requests > 1
        message = (
            f"Fecha estimada de entrega: {formatted}. Esta estimación considera el volumen actual "
            f"de solicitudes en proceso ({estimate.pending_requests} "
            f"solicitud{'es' if plural else ''} pendiente{'s' if plural else ''}) y los tiempos "
            "de procesamiento del servicio."
        )
    else:
        message = (
            f"Fecha estimada de entrega: {formatted}. Esta estimación se basa en los tiempos de "
            "procesamiento y la capacidad operativa del servicio."
        )

    return {
        "estimated_delivery_date": estimate.date.isoformat(),
        "is_available_now": estimate.is_available_now,
        "pending_requests": estimate.pending_requests,
        "message": message,
        "formatted_date": formatted,
    }

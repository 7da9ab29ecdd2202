"""
Estados de pedidos y de solicitudes de Efectivo Express.

Las tablas de transiciones son la única fuente de verdad: ningún servicio
compara strings de estado sueltos para decidir si un cambio es válido.
"""
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional


class OrderStatus(str, Enum):
    """Flujo de pedidos para recoger en tienda."""
    CREATED = "CREATED"
    UNDER_REVIEW = "UNDER_REVIEW"
    PARTIALLY_AVAILABLE = "PARTIALLY_AVAILABLE"
    AVAILABLE = "AVAILABLE"
    IN_PREPARATION = "IN_PREPARATION"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.CREATED: frozenset({OrderStatus.UNDER_REVIEW, OrderStatus.CANCELLED}),
    OrderStatus.UNDER_REVIEW: frozenset({
        OrderStatus.PARTIALLY_AVAILABLE,
        OrderStatus.AVAILABLE,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.PARTIALLY_AVAILABLE: frozenset({OrderStatus.IN_PREPARATION, OrderStatus.CANCELLED}),
    OrderStatus.AVAILABLE: frozenset({OrderStatus.IN_PREPARATION, OrderStatus.CANCELLED}),
    OrderStatus.IN_PREPARATION: frozenset({OrderStatus.READY_FOR_PICKUP, OrderStatus.CANCELLED}),
    OrderStatus.READY_FOR_PICKUP: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


class CashExpressStatus(str, Enum):
    PENDIENTE = "PENDIENTE"
    EN_ESPERA_CONFIRMACION = "EN_ESPERA_CONFIRMACION"
    REBOTADO = "REBOTADO"
    DEPOSITO_VALIDADO = "DEPOSITO_VALIDADO"
    ENTREGADO = "ENTREGADO"
    CANCELADO = "CANCELADO"


CASH_EXPRESS_STATUS_TRANSITIONS: Dict[CashExpressStatus, FrozenSet[CashExpressStatus]] = {
    CashExpressStatus.PENDIENTE: frozenset({
        CashExpressStatus.EN_ESPERA_CONFIRMACION,
        CashExpressStatus.CANCELADO,
    }),
    CashExpressStatus.EN_ESPERA_CONFIRMACION: frozenset({
        CashExpressStatus.REBOTADO,
        CashExpressStatus.DEPOSITO_VALIDADO,
        CashExpressStatus.CANCELADO,
    }),
    CashExpressStatus.REBOTADO: frozenset({
        CashExpressStatus.EN_ESPERA_CONFIRMACION,
        CashExpressStatus.CANCELADO,
    }),
    CashExpressStatus.DEPOSITO_VALIDADO: frozenset({CashExpressStatus.ENTREGADO}),
    CashExpressStatus.ENTREGADO: frozenset(),
    CashExpressStatus.CANCELADO: frozenset(),
}

# Solicitudes que ya comprometen efectivo y van antes en la fila
CASH_EXPRESS_PENDING_STATUSES: FrozenSet[CashExpressStatus] = frozenset({
    CashExpressStatus.PENDIENTE,
    CashExpressStatus.EN_ESPERA_CONFIRMACION,
    CashExpressStatus.DEPOSITO_VALIDADO,
})

# Estados en los que el cliente puede subir o reemplazar su comprobante
RECEIPT_UPLOAD_STATUSES: FrozenSet[CashExpressStatus] = frozenset({
    CashExpressStatus.PENDIENTE,
    CashExpressStatus.REBOTADO,
    CashExpressStatus.EN_ESPERA_CONFIRMACION,
})


def _allowed(table: Dict, from_status) -> FrozenSet:
    return table.get(from_status, frozenset())


def can_transition_order(from_status, to_status) -> bool:
    try:
        return OrderStatus(to_status) in _allowed(ORDER_STATUS_TRANSITIONS, OrderStatus(from_status))
    except ValueError:
        return False


def can_transition_cash_express(from_status, to_status) -> bool:
    try:
        return CashExpressStatus(to_status) in _allowed(
            CASH_EXPRESS_STATUS_TRANSITIONS, CashExpressStatus(from_status)
        )
    except ValueError:
        return False


def is_terminal_order(status) -> bool:
    return not ORDER_STATUS_TRANSITIONS[OrderStatus(status)]


def is_terminal_cash_express(status) -> bool:
    return not CASH_EXPRESS_STATUS_TRANSITIONS[CashExpressStatus(status)]


def path_is_legal(path: Iterable, can_transition) -> bool:
    """True si cada paso consecutivo de `path` está en la tabla."""
    steps = list(path)
    return all(can_transition(a, b) for a, b in zip(steps, steps[1:]))


def parse_enum(enum_cls, value) -> Optional[Enum]:
    """Convierte un string al miembro del enum, o None si no pertenece."""
    try:
        return enum_cls(value)
    except ValueError:
        return None

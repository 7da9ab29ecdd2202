"""
Errores de negocio.

Los servicios lanzan estas excepciones; main.py las convierte en respuestas
JSON con el status HTTP correspondiente. Ninguna se reintenta: representan
violaciones de reglas de negocio o de datos del cliente.
"""
from typing import Any, Dict, Optional


class ServiceError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.details}


class ValidationError(ServiceError):
    """Entrada faltante, mal formada o fuera de rango."""
    status_code = 400
    code = "validation_error"


class NotFound(ServiceError):
    status_code = 404
    code = "not_found"


class Forbidden(ServiceError):
    status_code = 403
    code = "forbidden"


class InvalidState(ServiceError):
    """La operación no es válida para el estado actual de la entidad."""
    status_code = 400
    code = "invalid_state"


class InvalidTransition(InvalidState):
    code = "invalid_transition"

    def __init__(self, message: str, from_status: Optional[str] = None, to_status: Optional[str] = None, **details: Any):
        super().__init__(message, from_status=from_status, to_status=to_status, **details)


class InsufficientFunds(ServiceError):
    status_code = 400
    code = "insufficient_funds"


class Conflict(ServiceError):
    status_code = 409
    code = "conflict"

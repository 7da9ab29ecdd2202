"""
Helpers genéricos de serialización.
NO contiene lógica de negocio, solo utilidades de formato.
"""
from decimal import Decimal
from typing import Any, Dict, Iterable


def serialize_decimal(value):
    """Convierte Decimal a float para serialización JSON"""
    if value is None:
        return None
    return float(value)


def serialize_datetime(value):
    """Convierte datetime a string ISO para serialización JSON"""
    if value is None:
        return None
    return value.isoformat()


def serialize_columns(obj: Any, fields: Iterable[str]) -> Dict[str, Any]:
    """Copia atributos de un modelo convirtiendo Decimal y datetime."""
    data = {}
    for field in fields:
        value = getattr(obj, field)
        if isinstance(value, Decimal):
            value = serialize_decimal(value)
        elif hasattr(value, "isoformat"):
            value = serialize_datetime(value)
        data[field] = value
    return data

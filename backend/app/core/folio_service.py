"""
Folios legibles para pedidos y solicitudes de Efectivo Express.

Cada tipo tiene su propio contador en `folio_counters`; el folio es
`{PREFIJO}-{secuencia a 6 dígitos}`, p. ej. ORD-000001 o CE-000042.
"""
from sqlalchemy.orm import Session

from app.models.folio_counter import FolioCounter


PREFIX_MAP = {
    "ORDER": "ORD",
    "CASH_EXPRESS": "CE",
}
SEQ_DIGITS = 6


def get_next_folio_seq(db: Session, tipo: str) -> int:
    """
    Toma el número actual del contador y lo avanza.

    La fila queda bloqueada (with_for_update) hasta el commit del caller, así
    dos peticiones simultáneas nunca reciben el mismo número. NO hace commit.
    """
    counter = (
        db.query(FolioCounter)
        .filter(FolioCounter.tipo == tipo)
        .with_for_update()
        .first()
    )
    if counter is None:
        counter = FolioCounter(tipo=tipo, next_seq=1)
        db.add(counter)
        db.flush()

    seq = counter.next_seq
    counter.next_seq = seq + 1
    return seq


def generate_folio(db: Session, tipo: str) -> str:
    prefix = PREFIX_MAP.get(tipo)
    if prefix is None:
        raise ValueError(f"Tipo de folio inválido: {tipo}")
    return f"{prefix}-{get_next_folio_seq(db, tipo):0{SEQ_DIGITS}d}"

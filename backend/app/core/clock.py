from datetime import datetime
from zoneinfo import ZoneInfo

from app.core.config import settings


def now_local() -> datetime:
    """Hora actual en la zona del negocio, sin tzinfo (así se guarda en la BD)."""
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def to_local_naive(moment: datetime) -> datetime:
    """Lleva una fecha con zona a la hora del negocio sin tzinfo; las naive se toman como locales."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(ZoneInfo(settings.timezone)).replace(tzinfo=None)

import logging

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.core.errors import Conflict
from app.models.branch import Base


logger = logging.getLogger(__name__)

connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine = create_engine(settings.database_url, pool_pre_ping=True, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit_or_rollback(db: Session) -> None:
    """
    Confirma la transacción actual. Si falla, hace rollback completo para que
    no quede ningún paso intermedio persistido.

    Raises:
        Conflict: si se viola una restricción de unicidad/integridad
        SQLAlchemyError: cualquier otro error de la capa de persistencia
    """
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("integrity error on commit: %s", exc.orig)
        raise Conflict("El registro entra en conflicto con uno existente") from exc
    except SQLAlchemyError:
        db.rollback()
        raise


def init_db() -> None:
    # Create tables in dev/test without running Alembic
    if settings.env in {"dev", "test"}:
        import app.models  # noqa: F401  registra todos los modelos en Base.metadata

        Base.metadata.create_all(bind=engine)

# app/db/utils.py
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InternalError

logger = logging.getLogger(__name__)


async def commit_or_raise(db: AsyncSession, message: str = "Error interno del servidor") -> None:
    """Confirma la transacción; un fallo de persistencia se registra y sale como InternalError."""
    try:
        await db.commit()
    except SQLAlchemyError:
        logger.exception("commit fallido: %s", message)
        await db.rollback()
        raise InternalError(message)

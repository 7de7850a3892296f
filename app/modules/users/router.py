import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.core.dependencies import get_db, get_current_user
from app.core.errors import InvalidState, NotFound
from app.db.utils import commit_or_raise
from .crud import soft_delete_user
from .models import User
from .schemas import UserOut, AccountDeletedOut

logger = logging.getLogger(__name__)

router = APIRouter()


async def delete_account(db: AsyncSession, user_id: int) -> int:
    res = await db.execute(select(User).where(User.id == user_id))
    user = res.scalar_one_or_none()
    if not user:
        raise NotFound("Usuario no encontrado")
    if user.is_deleted:
        raise InvalidState("La cuenta del usuario ya fue eliminada.")

    # usuario y ofertas en el mismo commit
    deleted_offers = await soft_delete_user(db, user)
    await commit_or_raise(db, "Error al eliminar la cuenta")
    logger.info("cuenta eliminada user_id=%s ofertas=%s", user_id, deleted_offers)
    return deleted_offers


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)):
    return user


@router.delete("/me", response_model=AccountDeletedOut)
async def delete_me(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    deleted_offers = await delete_account(db, user.id)
    return AccountDeletedOut(message="Cuenta eliminada correctamente", deleted_offers=deleted_offers)

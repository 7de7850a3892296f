# app/modules/users/crud.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from app.modules.class_offers.crud import soft_delete_offers_of_author
from .models import User


async def get_user_with_mercadopago(db: AsyncSession, user_id: int) -> User | None:
    res = await db.execute(
        select(User).where(User.id == user_id).options(selectinload(User.mercadopago_info))
    )
    return res.scalar_one_or_none()


async def soft_delete_user(db: AsyncSession, user: User) -> int:
    """Marca la cuenta como eliminada junto con sus ofertas; confirma el llamador."""
    user.is_deleted = True
    return await soft_delete_offers_of_author(db, user.id)

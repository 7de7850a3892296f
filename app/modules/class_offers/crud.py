# app/modules/class_offers/crud.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.orm import selectinload
from app.modules.users.models import User
from .models import ClassOffer


async def get_active_offer(db: AsyncSession, offer_id: int) -> ClassOffer | None:
    q = await db.execute(
        select(ClassOffer).where(ClassOffer.id == offer_id, ClassOffer.is_deleted == False)  # noqa: E712
    )
    return q.scalar_one_or_none()


async def get_offer_with_author(db: AsyncSession, offer_id: int) -> ClassOffer | None:
    # incluye el autor y su vínculo de MercadoPago (ruta de pago)
    q = await db.execute(
        select(ClassOffer)
        .where(ClassOffer.id == offer_id)
        .options(selectinload(ClassOffer.author).selectinload(User.mercadopago_info))
    )
    return q.scalar_one_or_none()


async def soft_delete_offers_of_author(db: AsyncSession, author_id: int) -> int:
    res = await db.execute(
        update(ClassOffer).where(ClassOffer.author_id == author_id).values(is_deleted=True)
    )
    return res.rowcount or 0

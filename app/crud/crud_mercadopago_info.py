# app/crud/crud_mercadopago_info.py
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.modules.transactions.models import MercadopagoInfo


async def get_mercadopago_info_by_user(db: AsyncSession, user_id: int, *, for_update: bool = False) -> MercadopagoInfo | None:
    q = select(MercadopagoInfo).where(MercadopagoInfo.user_id == user_id)
    if for_update:
        q = q.with_for_update().execution_options(populate_existing=True)
    res = await db.execute(q)
    return res.scalar_one_or_none()


async def list_mercadopago_info_expiring_before(db: AsyncSession, limit_date: datetime) -> list[MercadopagoInfo]:
    q = select(MercadopagoInfo).where(MercadopagoInfo.access_token_expiration <= limit_date)
    res = await db.execute(q)
    return list(res.scalars().all())


async def upsert_mercadopago_info(
    db: AsyncSession,
    user_id: int,
    *,
    access_token: str,
    access_token_expiration: datetime,
    refresh_token: str,
    refresh_token_expiration: datetime,
) -> MercadopagoInfo:
    info = await get_mercadopago_info_by_user(db, user_id, for_update=True)
    if info is None:
        info = MercadopagoInfo(user_id=user_id)
        db.add(info)
    info.access_token = access_token
    info.access_token_expiration = access_token_expiration
    info.refresh_token = refresh_token
    info.refresh_token_expiration = refresh_token_expiration
    await db.flush()
    return info

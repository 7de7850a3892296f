# app/modules/transactions/crud.py
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from .models import Transaction


async def get_latest_transaction(
    db: AsyncSession,
    class_request_id: int,
    *,
    statuses: Optional[Iterable[str]] = None,
    for_update: bool = False,
) -> Transaction | None:
    # puede haber varias por reserva (reintentos); la más reciente manda
    stmt = select(Transaction).where(Transaction.class_request_id == class_request_id)
    if statuses is not None:
        stmt = stmt.where(Transaction.status.in_(list(statuses)))
    stmt = stmt.order_by(Transaction.created_at.desc(), Transaction.id.desc()).limit(1)
    if for_update:
        stmt = stmt.with_for_update()
    res = await db.execute(stmt)
    return res.scalar_one_or_none()


async def create_transaction(db: AsyncSession, class_request_id: int, preference_id: str) -> Transaction:
    tx = Transaction(class_request_id=class_request_id, preference_id=preference_id)
    db.add(tx)
    await db.flush()
    return tx

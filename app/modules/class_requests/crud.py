# app/modules/class_requests/crud.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload

from app.modules.class_offers.models import ClassOffer
from .models import ClassRequest


def _with_relations(stmt):
    return stmt.options(
        selectinload(ClassRequest.class_offer).selectinload(ClassOffer.author),
        selectinload(ClassRequest.user),
        selectinload(ClassRequest.transactions),
    )


async def get_class_request(db: AsyncSession, class_request_id: int, *, for_update: bool = False) -> ClassRequest | None:
    stmt = _with_relations(select(ClassRequest).where(ClassRequest.id == class_request_id))
    stmt = stmt.execution_options(populate_existing=True)
    if for_update:
        # bloquea la fila de la reserva durante lectura-decisión-escritura
        stmt = stmt.with_for_update(of=ClassRequest)
    res = await db.execute(stmt)
    return res.scalar_one_or_none()


async def find_same_slot(db: AsyncSession, class_offer_id: int, user_id: int, day: int, slot: int) -> int | None:
    res = await db.execute(
        select(ClassRequest.id).where(
            ClassRequest.class_offer_id == class_offer_id,
            ClassRequest.user_id == user_id,
            ClassRequest.day == day,
            ClassRequest.slot == slot,
        )
    )
    return res.scalar_one_or_none()


async def paginate(db: AsyncSession, where: list, page: int, limit: int) -> tuple[list[ClassRequest], int]:
    base = select(ClassRequest).join(ClassRequest.class_offer).where(*where)
    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
    stmt = (
        _with_relations(base)
        .order_by(ClassRequest.created_at.desc(), ClassRequest.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    res = await db.execute(stmt)
    return list(res.scalars().all()), total


def student_filter(user_id: int) -> list:
    return [ClassRequest.user_id == user_id]


def tutor_filter(tutor_id: int) -> list:
    return [ClassOffer.author_id == tutor_id, ClassOffer.is_deleted == False]  # noqa: E712


def offer_filter(class_offer_id: int) -> list:
    return [ClassRequest.class_offer_id == class_offer_id]


async def list_for_student_in_offer(db: AsyncSession, user_id: int, class_offer_id: int) -> list[ClassRequest]:
    stmt = _with_relations(
        select(ClassRequest).where(
            ClassRequest.user_id == user_id, ClassRequest.class_offer_id == class_offer_id
        )
    ).order_by(ClassRequest.created_at.desc(), ClassRequest.id.desc())
    res = await db.execute(stmt)
    return list(res.scalars().all())

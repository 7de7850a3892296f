# app/modules/class_requests/service.py
"""
Ciclo de vida de las reservas: creación, decisión del profesor,
confirmación con código y consultas paginadas.

Cada secuencia lectura-decisión-escritura bloquea la fila de la reserva
(`get_class_request(..., for_update=True)`) y confirma una sola vez.
"""
from __future__ import annotations

import logging
import math
import secrets
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, Forbidden, HttpError, InvalidInput, InvalidState, NotFound
from app.db.utils import commit_or_raise
from app.integrations.mercadopago_client import MercadoPagoClient
from app.modules.class_offers.crud import get_active_offer
from app.modules.transactions import service as payments
from app.modules.transactions.crud import get_latest_transaction
from app.modules.transactions.models import Transaction, TX_APPROVED, TX_PENDING
from app.utils.dates import as_utc
from . import crud
from .models import ClassRequest, ClassRequestState
from .schemas import (
    ClassRequestCreate,
    ClassRequestDetailOut,
    ClassRequestOut,
    Page,
    Pagination,
    PreferenceSummary,
    StudentClassRequestOut,
    TransactionOut,
    TutorClassRequestOut,
)
from .state import TEACHER_SETTABLE_STATES, apply_transition

logger = logging.getLogger(__name__)

# lo que el estudiante ve de una transacción en su listado
_VISIBLE_TX = (TX_PENDING, TX_APPROVED)


def _newest(transactions: Iterable[Transaction], statuses: Iterable[str] | None = None) -> Optional[Transaction]:
    rows = [t for t in transactions if statuses is None or t.status in statuses]
    if not rows:
        return None
    return max(rows, key=lambda t: (as_utc(t.created_at), t.id))


def _tx_out(tx: Optional[Transaction], *, with_code: bool) -> Optional[TransactionOut]:
    if tx is None:
        return None
    out = TransactionOut.model_validate(tx)
    if not with_code:
        out.confirm_code = None
    return out


def _page(model, items: list, page: int, limit: int, total: int) -> Page:
    return Page[model](
        data=items,
        pagination=Pagination(
            page=page,
            limit=limit,
            total_items=total,
            total_pages=math.ceil(total / limit) if limit else 0,
        ),
    )


def _not_found(class_request_id: int) -> NotFound:
    return NotFound(f"La solicitud de clase {class_request_id} no existe")


async def _load_for_tutor(db: AsyncSession, tutor_id: int, class_request_id: int) -> ClassRequest:
    cr = await crud.get_class_request(db, class_request_id, for_update=True)
    if not cr or cr.class_offer.is_deleted:
        raise _not_found(class_request_id)
    if cr.class_offer.author_id != tutor_id:
        raise Forbidden("No tienes permisos para modificar esta solicitud")
    return cr


# ---------- escritura ----------

async def create_class_request(db: AsyncSession, user_id: int, payload: ClassRequestCreate) -> ClassRequestOut:
    offer = await get_active_offer(db, payload.class_offer_id)
    if not offer:
        raise NotFound("La clase especificada no existe")
    if offer.author_id == user_id:
        raise Forbidden("No puedes hacer una reserva en tu propia clase")

    duplicated = Conflict("Ya existe una reserva para esta clase en ese horario")
    if await crud.find_same_slot(db, offer.id, user_id, payload.day, payload.slot):
        raise duplicated

    cr = ClassRequest(
        class_offer_id=offer.id,
        user_id=user_id,
        day=payload.day,
        slot=payload.slot,
        state=ClassRequestState.CREATED,
        price_created_at=offer.price,
    )
    db.add(cr)
    try:
        await db.flush()
    except IntegrityError:
        # carrera con otra reserva del mismo bloque: la restricción única manda
        await db.rollback()
        raise duplicated
    await commit_or_raise(db, "Error al crear la reserva")
    logger.info("class_request %s creada user_id=%s offer_id=%s", cr.id, user_id, offer.id)

    cr = await crud.get_class_request(db, cr.id)
    return ClassRequestOut.model_validate(cr)


async def accept_or_reject(db: AsyncSession, tutor_id: int, class_request_id: int, accept: bool) -> TutorClassRequestOut:
    cr = await _load_for_tutor(db, tutor_id, class_request_id)
    if cr.state != ClassRequestState.CREATED:
        raise InvalidState("La solicitud ya fue respondida")

    apply_transition(cr, ClassRequestState.PAYMENT_PENDING if accept else ClassRequestState.REJECTED)
    await commit_or_raise(db, "Error al actualizar la solicitud")
    return TutorClassRequestOut.model_validate(cr)


async def update_state(
    db: AsyncSession, tutor_id: int, class_request_id: int, new_state: ClassRequestState
) -> TutorClassRequestOut:
    cr = await _load_for_tutor(db, tutor_id, class_request_id)
    if new_state not in TEACHER_SETTABLE_STATES:
        raise InvalidInput(f"El profesor no puede fijar el estado {new_state.value}")

    apply_transition(cr, new_state)
    await commit_or_raise(db, "Error al actualizar la solicitud")
    return TutorClassRequestOut.model_validate(cr)


async def confirm(db: AsyncSession, user_id: int, class_request_id: int, code: str) -> ClassRequestOut:
    """
    Handshake final: el código generado al pagar pasa la reserva a Approved.
    Un código incorrecto no cambia nada.
    """
    cr = await crud.get_class_request(db, class_request_id, for_update=True)
    if not cr:
        raise _not_found(class_request_id)
    if user_id not in (cr.user_id, cr.class_offer.author_id):
        raise Forbidden("No tienes permiso para confirmar esta clase")

    tx = await get_latest_transaction(db, class_request_id)
    if not tx:
        raise NotFound(f"No se encontro transaccion para la class request con id {class_request_id}")
    if cr.state != ClassRequestState.PAID:
        raise InvalidState("La clase no está pagada o ya fue confirmada")
    if not tx.confirm_code or not secrets.compare_digest(code.strip().encode(), tx.confirm_code.encode()):
        raise InvalidInput("Código de confirmación incorrecto")

    apply_transition(cr, ClassRequestState.APPROVED)
    await commit_or_raise(db, "Error al confirmar la clase")
    return ClassRequestOut.model_validate(cr)


async def delete_class_request(db: AsyncSession, user_id: int, class_request_id: int) -> None:
    cr = await crud.get_class_request(db, class_request_id, for_update=True)
    if not cr:
        raise _not_found(class_request_id)
    if cr.user_id != user_id:
        raise Forbidden("No tienes permiso para eliminar esta solicitud")
    if cr.state not in (ClassRequestState.CREATED, ClassRequestState.REJECTED):
        raise InvalidState("Solo se pueden eliminar solicitudes sin pago en curso")

    await db.delete(cr)
    await commit_or_raise(db, "Error al eliminar la solicitud")
    logger.info("class_request %s eliminada por user_id=%s", class_request_id, user_id)


# ---------- lectura ----------

async def get_class_request(db: AsyncSession, user_id: int, class_request_id: int) -> ClassRequestDetailOut:
    cr = await crud.get_class_request(db, class_request_id)
    if not cr:
        raise _not_found(class_request_id)
    is_student = cr.user_id == user_id
    if not is_student and cr.class_offer.author_id != user_id:
        raise Forbidden("No tienes permiso para ver esta solicitud")

    out = ClassRequestDetailOut.model_validate(cr)
    out.transaction = _tx_out(_newest(cr.transactions), with_code=is_student)
    return out


async def _preference_for(db: AsyncSession, mp: MercadoPagoClient, cr: ClassRequest, user_id: int):
    try:
        return await payments.get_preference(db, mp, cr.id, user_id)
    except HttpError as e:
        # el listado no falla por MercadoPago; la preferencia queda en None
        logger.warning("preferencia no disponible class_request=%s: %s", cr.id, e.message)
        return None


async def list_student_requests(
    db: AsyncSession, mp: MercadoPagoClient, user_id: int, page: int, limit: int
) -> Page:
    rows, total = await crud.paginate(db, crud.student_filter(user_id), page, limit)

    items = []
    for cr in rows:
        tx = _newest(cr.transactions, _VISIBLE_TX)
        preference = None
        if cr.state == ClassRequestState.PAYMENT_PENDING:
            result = await _preference_for(db, mp, cr, user_id)
            if result is not None:
                tx = result.transaction
                preference = PreferenceSummary.model_validate(result.preference)

        out = StudentClassRequestOut.model_validate(cr)
        out.transaction = _tx_out(tx, with_code=True)
        out.preference = preference
        items.append(out)

    return _page(StudentClassRequestOut, items, page, limit, total)


async def list_tutor_requests(db: AsyncSession, tutor_id: int, page: int, limit: int) -> Page:
    rows, total = await crud.paginate(db, crud.tutor_filter(tutor_id), page, limit)
    return _page(TutorClassRequestOut, [TutorClassRequestOut.model_validate(cr) for cr in rows], page, limit, total)


async def list_offer_requests(db: AsyncSession, tutor_id: int, class_offer_id: int, page: int, limit: int) -> Page:
    offer = await get_active_offer(db, class_offer_id)
    if not offer:
        raise NotFound("La clase especificada no existe")
    if offer.author_id != tutor_id:
        raise Forbidden("No tienes permiso para ver las solicitudes de esta clase")

    rows, total = await crud.paginate(db, crud.offer_filter(class_offer_id), page, limit)
    return _page(TutorClassRequestOut, [TutorClassRequestOut.model_validate(cr) for cr in rows], page, limit, total)


async def list_student_requests_for_offer(
    db: AsyncSession, user_id: int, class_offer_id: int
) -> list[StudentClassRequestOut]:
    items = []
    for cr in await crud.list_for_student_in_offer(db, user_id, class_offer_id):
        out = StudentClassRequestOut.model_validate(cr)
        out.transaction = _tx_out(_newest(cr.transactions, _VISIBLE_TX), with_code=True)
        items.append(out)
    return items

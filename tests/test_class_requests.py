# -*- coding: utf-8 -*-
"""Máquina de estados de las reservas y sus reglas de propiedad."""
import pytest

from app.core.errors import Conflict, Forbidden, InvalidInput, InvalidState, NotFound
from app.modules.class_requests import service
from app.modules.class_requests.models import ClassRequest, ClassRequestState as S
from app.modules.class_requests.schemas import ClassRequestCreate
from app.modules.class_requests.state import (
    ALLOWED_TRANSITIONS,
    TEACHER_SETTABLE_STATES,
    apply_transition,
    can_transition,
)


# ---------- tabla de transiciones ----------

@pytest.mark.parametrize(
    "current,target",
    [
        (S.CREATED, S.PAYMENT_PENDING),
        (S.CREATED, S.REJECTED),
        (S.PAYMENT_PENDING, S.PAID),
        (S.PAID, S.APPROVED),
        (S.PAID, S.PAYMENT_REFUNDED),
    ],
)
def test_allowed_transitions(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize("terminal", [S.APPROVED, S.REJECTED, S.PAYMENT_REFUNDED])
def test_terminal_states_have_no_exit(terminal):
    assert ALLOWED_TRANSITIONS[terminal] == frozenset()


def test_every_state_has_an_entry():
    assert set(ALLOWED_TRANSITIONS) == set(S)


def test_paid_only_reachable_from_payment_pending():
    sources = {state for state, targets in ALLOWED_TRANSITIONS.items() if S.PAID in targets}
    assert sources == {S.PAYMENT_PENDING}


def test_apply_transition_rejects_and_keeps_state():
    cr = ClassRequest(id=1, state=S.APPROVED)

    with pytest.raises(InvalidState):
        apply_transition(cr, S.PAYMENT_REFUNDED)

    assert cr.state == S.APPROVED


def test_teacher_can_only_accept_or_reject():
    assert TEACHER_SETTABLE_STATES == {S.PAYMENT_PENDING, S.REJECTED}


# ---------- creación ----------

@pytest.mark.asyncio
async def test_create_snapshots_price(db, factory):
    teacher = await factory.teacher()
    student = await factory.student()
    offer = await factory.offer(teacher, price=20000)

    out = await service.create_class_request(
        db, student.id, ClassRequestCreate(class_offer_id=offer.id, day=3, slot=10)
    )

    assert out.state == S.CREATED
    assert out.price_created_at == 20000
    assert out.class_offer.id == offer.id


@pytest.mark.asyncio
async def test_duplicate_slot_is_conflict(db, factory):
    teacher = await factory.teacher()
    student = await factory.student()
    offer = await factory.offer(teacher)
    payload = ClassRequestCreate(class_offer_id=offer.id, day=3, slot=10)

    await service.create_class_request(db, student.id, payload)
    with pytest.raises(Conflict):
        await service.create_class_request(db, student.id, payload)


@pytest.mark.asyncio
async def test_same_slot_for_another_student_is_allowed(db, factory):
    teacher = await factory.teacher()
    offer = await factory.offer(teacher)
    payload = ClassRequestCreate(class_offer_id=offer.id, day=1, slot=2)

    first = await service.create_class_request(db, (await factory.student()).id, payload)
    second = await service.create_class_request(db, (await factory.student()).id, payload)

    assert first.id != second.id


@pytest.mark.asyncio
async def test_self_booking_is_forbidden(db, factory):
    teacher = await factory.teacher()
    offer = await factory.offer(teacher)

    with pytest.raises(Forbidden):
        await service.create_class_request(
            db, teacher.id, ClassRequestCreate(class_offer_id=offer.id, day=0, slot=0)
        )


@pytest.mark.asyncio
async def test_booking_deleted_offer_is_not_found(db, factory):
    teacher = await factory.teacher()
    student = await factory.student()
    offer = await factory.offer(teacher, is_deleted=True)

    with pytest.raises(NotFound):
        await service.create_class_request(
            db, student.id, ClassRequestCreate(class_offer_id=offer.id, day=0, slot=0)
        )


# ---------- decisión del profesor ----------

@pytest.mark.asyncio
@pytest.mark.parametrize("accept,expected", [(True, S.PAYMENT_PENDING), (False, S.REJECTED)])
async def test_accept_or_reject(db, factory, fresh, accept, expected):
    teacher = await factory.teacher()
    student = await factory.student()
    cr = await factory.class_request(student, await factory.offer(teacher))

    out = await service.accept_or_reject(db, teacher.id, cr.id, accept)

    assert out.state == expected
    assert (await fresh(ClassRequest, cr.id)).state == expected


@pytest.mark.asyncio
async def test_second_decision_is_invalid_state(db, factory):
    teacher = await factory.teacher()
    student = await factory.student()
    cr = await factory.class_request(student, await factory.offer(teacher))

    await service.accept_or_reject(db, teacher.id, cr.id, False)
    with pytest.raises(InvalidState):
        await service.accept_or_reject(db, teacher.id, cr.id, True)


@pytest.mark.asyncio
async def test_other_teacher_cannot_decide(db, factory):
    teacher = await factory.teacher()
    intruder = await factory.teacher()
    student = await factory.student()
    cr = await factory.class_request(student, await factory.offer(teacher))

    with pytest.raises(Forbidden):
        await service.accept_or_reject(db, intruder.id, cr.id, True)


@pytest.mark.asyncio
async def test_decision_on_missing_request_is_not_found(db, factory):
    teacher = await factory.teacher()

    with pytest.raises(NotFound):
        await service.accept_or_reject(db, teacher.id, 404, True)


@pytest.mark.asyncio
async def test_update_state_refuses_non_teacher_states(db, factory, fresh):
    teacher = await factory.teacher()
    student = await factory.student()
    cr = await factory.class_request(student, await factory.offer(teacher), state=S.PAYMENT_PENDING)

    with pytest.raises(InvalidInput):
        await service.update_state(db, teacher.id, cr.id, S.PAID)

    assert (await fresh(ClassRequest, cr.id)).state == S.PAYMENT_PENDING


@pytest.mark.asyncio
async def test_update_state_follows_transition_table(db, factory):
    teacher = await factory.teacher()
    student = await factory.student()
    cr = await factory.class_request(student, await factory.offer(teacher), state=S.PAYMENT_PENDING)

    with pytest.raises(InvalidState):
        await service.update_state(db, teacher.id, cr.id, S.REJECTED)


@pytest.mark.asyncio
async def test_update_state_accepts(db, factory):
    teacher = await factory.teacher()
    student = await factory.student()
    cr = await factory.class_request(student, await factory.offer(teacher))

    out = await service.update_state(db, teacher.id, cr.id, S.PAYMENT_PENDING)

    assert out.state == S.PAYMENT_PENDING
    assert out.user.id == student.id


# ---------- confirmación ----------

async def _paid_request(factory, code="4321"):
    teacher = await factory.teacher()
    student = await factory.student()
    cr = await factory.class_request(student, await factory.offer(teacher), state=S.PAID)
    await factory.transaction(cr, payment_id="PAY1", status="approved", confirm_code=code)
    return teacher, student, cr


@pytest.mark.asyncio
async def test_confirm_with_correct_code_approves(db, factory, fresh):
    _, student, cr = await _paid_request(factory)

    out = await service.confirm(db, student.id, cr.id, "4321")

    assert out.state == S.APPROVED
    assert (await fresh(ClassRequest, cr.id)).state == S.APPROVED


@pytest.mark.asyncio
async def test_teacher_can_confirm_in_person(db, factory):
    teacher, _, cr = await _paid_request(factory)

    out = await service.confirm(db, teacher.id, cr.id, "4321")

    assert out.state == S.APPROVED


@pytest.mark.asyncio
async def test_confirm_with_wrong_code_keeps_paid(db, factory, fresh):
    _, student, cr = await _paid_request(factory)

    with pytest.raises(InvalidInput):
        await service.confirm(db, student.id, cr.id, "0000")

    assert (await fresh(ClassRequest, cr.id)).state == S.PAID


@pytest.mark.asyncio
async def test_confirm_uses_newest_transaction(db, factory):
    _, student, cr = await _paid_request(factory, code="1111")
    await factory.transaction(cr, payment_id="PAY2", status="approved", confirm_code="2222")

    with pytest.raises(InvalidInput):
        await service.confirm(db, student.id, cr.id, "1111")
    out = await service.confirm(db, student.id, cr.id, "2222")

    assert out.state == S.APPROVED


@pytest.mark.asyncio
async def test_confirm_by_stranger_is_forbidden(db, factory):
    _, _, cr = await _paid_request(factory)
    stranger = await factory.student()

    with pytest.raises(Forbidden):
        await service.confirm(db, stranger.id, cr.id, "4321")


@pytest.mark.asyncio
async def test_confirm_without_transaction_is_not_found(db, factory):
    teacher = await factory.teacher()
    student = await factory.student()
    cr = await factory.class_request(student, await factory.offer(teacher), state=S.PAYMENT_PENDING)

    with pytest.raises(NotFound):
        await service.confirm(db, student.id, cr.id, "1234")


@pytest.mark.asyncio
async def test_confirm_twice_is_invalid_state(db, factory):
    _, student, cr = await _paid_request(factory)

    await service.confirm(db, student.id, cr.id, "4321")
    with pytest.raises(InvalidState):
        await service.confirm(db, student.id, cr.id, "4321")


# ---------- lectura y borrado ----------

@pytest.mark.asyncio
async def test_detail_hides_code_from_teacher(db, factory):
    teacher, student, cr = await _paid_request(factory)

    as_student = await service.get_class_request(db, student.id, cr.id)
    as_teacher = await service.get_class_request(db, teacher.id, cr.id)

    assert as_student.transaction.confirm_code == "4321"
    assert as_teacher.transaction.confirm_code is None
    assert as_teacher.transaction.payment_id == "PAY1"


@pytest.mark.asyncio
async def test_detail_for_stranger_is_forbidden(db, factory):
    _, _, cr = await _paid_request(factory)
    stranger = await factory.student()

    with pytest.raises(Forbidden):
        await service.get_class_request(db, stranger.id, cr.id)


@pytest.mark.asyncio
async def test_tutor_listing_is_paginated_newest_first(db, factory):
    teacher = await factory.teacher()
    offer = await factory.offer(teacher)
    student = await factory.student()
    ids = [(await factory.class_request(student, offer, slot=slot)).id for slot in range(3)]

    page1 = await service.list_tutor_requests(db, teacher.id, page=1, limit=2)
    page2 = await service.list_tutor_requests(db, teacher.id, page=2, limit=2)

    assert [r.id for r in page1.data] == [ids[2], ids[1]]
    assert [r.id for r in page2.data] == [ids[0]]
    assert page1.pagination.total_items == 3
    assert page1.pagination.total_pages == 2


@pytest.mark.asyncio
async def test_tutor_listing_skips_deleted_offers(db, factory):
    teacher = await factory.teacher()
    student = await factory.student()
    await factory.class_request(student, await factory.offer(teacher, is_deleted=True))

    page = await service.list_tutor_requests(db, teacher.id, page=1, limit=10)

    assert page.data == []


@pytest.mark.asyncio
async def test_offer_listing_requires_ownership(db, factory):
    teacher = await factory.teacher()
    other = await factory.teacher()
    offer = await factory.offer(teacher)

    with pytest.raises(Forbidden):
        await service.list_offer_requests(db, other.id, offer.id, page=1, limit=10)
    with pytest.raises(NotFound):
        await service.list_offer_requests(db, teacher.id, 999, page=1, limit=10)


@pytest.mark.asyncio
async def test_student_requests_for_offer(db, factory):
    teacher = await factory.teacher()
    offer = await factory.offer(teacher)
    student = await factory.student()
    await factory.class_request(student, offer, slot=1)
    await factory.class_request(student, offer, slot=2)
    await factory.class_request(await factory.student(), offer, slot=1)

    items = await service.list_student_requests_for_offer(db, student.id, offer.id)

    assert {i.slot for i in items} == {1, 2}


@pytest.mark.asyncio
@pytest.mark.parametrize("state", [S.CREATED, S.REJECTED])
async def test_delete_allowed_before_payment(db, factory, fresh, state):
    teacher = await factory.teacher()
    student = await factory.student()
    cr = await factory.class_request(student, await factory.offer(teacher), state=state)

    await service.delete_class_request(db, student.id, cr.id)

    assert await fresh(ClassRequest, cr.id) is None


@pytest.mark.asyncio
async def test_delete_after_payment_is_invalid_state(db, factory):
    _, student, cr = await _paid_request(factory)

    with pytest.raises(InvalidState):
        await service.delete_class_request(db, student.id, cr.id)


@pytest.mark.asyncio
async def test_delete_by_other_user_is_forbidden(db, factory):
    teacher = await factory.teacher()
    student = await factory.student()
    cr = await factory.class_request(student, await factory.offer(teacher))

    with pytest.raises(Forbidden):
        await service.delete_class_request(db, teacher.id, cr.id)

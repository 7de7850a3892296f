from typing import List

from fastapi import APIRouter, Depends, Path, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_current_user, get_db, get_mercadopago_client, require_role
from app.integrations.mercadopago_client import MercadoPagoClient
from app.modules.users.models import User, UserRole
from . import service
from .schemas import (
    AcceptIn,
    ClassRequestCreate,
    ClassRequestDetailOut,
    ClassRequestOut,
    ConfirmIn,
    Page,
    StudentClassRequestOut,
    TutorClassRequestOut,
    UpdateStateIn,
)

router = APIRouter()

student_only = require_role(UserRole.STUDENT.value)
teacher_only = require_role(UserRole.TEACHER.value)


@router.post("", response_model=ClassRequestOut, status_code=status.HTTP_201_CREATED)
async def create_class_request(
    payload: ClassRequestCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(student_only),
):
    return await service.create_class_request(db, user.id, payload)


@router.get("/me", response_model=Page[StudentClassRequestOut])
async def my_class_requests(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    mp: MercadoPagoClient = Depends(get_mercadopago_client),
    user: User = Depends(student_only),
):
    return await service.list_student_requests(db, mp, user.id, page, limit)


@router.get("/tutor", response_model=Page[TutorClassRequestOut])
async def tutor_class_requests(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(teacher_only),
):
    return await service.list_tutor_requests(db, user.id, page, limit)


@router.get("/class/{class_offer_id}", response_model=Page[TutorClassRequestOut])
async def offer_class_requests(
    class_offer_id: int = Path(gt=0),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(teacher_only),
):
    return await service.list_offer_requests(db, user.id, class_offer_id, page, limit)


@router.get("/offer/{class_offer_id}/me", response_model=List[StudentClassRequestOut])
async def my_requests_for_offer(
    class_offer_id: int = Path(gt=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(student_only),
):
    return await service.list_student_requests_for_offer(db, user.id, class_offer_id)


@router.patch("/update-state", response_model=TutorClassRequestOut)
async def update_class_request_state(
    payload: UpdateStateIn,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(teacher_only),
):
    return await service.update_state(db, user.id, payload.class_request_id, payload.state)


@router.patch("/{class_request_id}/accept", response_model=TutorClassRequestOut)
async def accept_class_request(
    payload: AcceptIn,
    class_request_id: int = Path(gt=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(teacher_only),
):
    return await service.accept_or_reject(db, user.id, class_request_id, payload.accept)


@router.post("/{class_request_id}/confirm", response_model=ClassRequestOut)
async def confirm_class_request(
    payload: ConfirmIn,
    class_request_id: int = Path(gt=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await service.confirm(db, user.id, class_request_id, payload.code)


@router.get("/{class_request_id}", response_model=ClassRequestDetailOut)
async def get_class_request(
    class_request_id: int = Path(gt=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await service.get_class_request(db, user.id, class_request_id)


@router.delete("/{class_request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_class_request(
    class_request_id: int = Path(gt=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await service.delete_class_request(db, user.id, class_request_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

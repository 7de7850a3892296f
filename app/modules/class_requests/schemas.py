from __future__ import annotations
from datetime import datetime
from typing import Any, Generic, List, Optional, TypeVar
from pydantic import BaseModel, Field

from .models import ClassRequestState

T = TypeVar("T")


class ClassRequestCreate(BaseModel):
    class_offer_id: int = Field(gt=0)
    day: int = Field(ge=0, le=6)        # 0 = lunes
    slot: int = Field(ge=0)


class AcceptIn(BaseModel):
    accept: bool


class UpdateStateIn(BaseModel):
    class_request_id: int = Field(gt=0)
    state: ClassRequestState


class ConfirmIn(BaseModel):
    code: str = Field(min_length=1, max_length=8)


class UserBrief(BaseModel):
    id: int
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_deleted: bool

    class Config:
        from_attributes = True


class OfferBrief(BaseModel):
    id: int
    author_id: int
    title: str
    category: Optional[str] = None
    price: int
    is_deleted: bool

    class Config:
        from_attributes = True


class TransactionOut(BaseModel):
    id: int
    preference_id: str
    payment_id: Optional[str] = None
    status: str
    # solo en vistas del estudiante
    confirm_code: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PreferenceSummary(BaseModel):
    id: Optional[str] = None
    init_point: Optional[str] = None
    items: List[Any] = []
    date_created: Optional[str] = None
    client_id: Optional[str] = None


class ClassRequestOut(BaseModel):
    id: int
    class_offer_id: int
    user_id: int
    day: int
    slot: int
    state: ClassRequestState
    price_created_at: int
    created_at: datetime
    class_offer: OfferBrief

    class Config:
        from_attributes = True


class StudentClassRequestOut(ClassRequestOut):
    transaction: Optional[TransactionOut] = None
    preference: Optional[PreferenceSummary] = None


class TutorClassRequestOut(ClassRequestOut):
    user: UserBrief


class ClassRequestDetailOut(ClassRequestOut):
    user: UserBrief
    transaction: Optional[TransactionOut] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total_items: int
    total_pages: int


class Page(BaseModel, Generic[T]):
    data: List[T]
    pagination: Pagination

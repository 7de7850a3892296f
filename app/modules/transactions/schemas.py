from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from app.modules.class_requests.schemas import TransactionOut


class OAuthTokenIn(BaseModel):
    code: str = Field(min_length=1)


class OAuthStatusOut(BaseModel):
    has_oauth: bool
    message: str


class OAuthCredentialOut(BaseModel):
    # nunca exponemos los tokens, solo sus vencimientos
    user_id: int
    access_token_expiration: datetime
    refresh_token_expiration: datetime

    class Config:
        from_attributes = True


class PreferenceOut(BaseModel):
    preference: Dict[str, Any]
    transaction: TransactionOut
    status: str


class TransactionStatusIn(BaseModel):
    status: str = Field(min_length=1, max_length=32)


class RefundOut(BaseModel):
    refund_id: Optional[str] = None
    status: Optional[str] = None
    amount: Optional[float] = None

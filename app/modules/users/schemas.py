from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class UserOut(BaseModel):
    id: int
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str               # "Student" | "Teacher" | "Admin"
    is_deleted: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AccountDeletedOut(BaseModel):
    message: str
    deleted_offers: int

import enum
from typing import Optional

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Boolean
from app.db.base import Base, TimestampMixin


class UserRole(str, enum.Enum):
    STUDENT = "Student"
    TEACHER = "Teacher"
    ADMIN = "Admin"


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.STUDENT.value)  # Student | Teacher | Admin
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # solo profesores vinculan su cuenta de MercadoPago (1:1)
    mercadopago_info: Mapped[Optional["MercadopagoInfo"]] = relationship(
        "MercadopagoInfo", back_populates="user", uselist=False
    )

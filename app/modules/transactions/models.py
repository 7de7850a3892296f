from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Integer, ForeignKey, DateTime, UniqueConstraint, func
from app.utils.dates import utcnow
from app.db.base import Base, TimestampMixin
from app.modules.users.models import User
from app.modules.class_requests.models import ClassRequest

# status que reporta MercadoPago y que seguimos considerando "vivos"
TX_PENDING = "pending"
TX_APPROVED = "approved"
TX_REFUNDED = "refunded"


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    class_request_id: Mapped[int] = mapped_column(
        ForeignKey("class_requests.id", ondelete="CASCADE"), index=True, nullable=False
    )

    preference_id: Mapped[str] = mapped_column(String(128), nullable=False)
    payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)   # llega con el webhook
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=TX_PENDING)
    confirm_code: Mapped[str | None] = mapped_column(String(8), nullable=True)  # se genera al pagar

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    class_request: Mapped[ClassRequest] = relationship(ClassRequest, back_populates="transactions")


class MercadopagoInfo(Base, TimestampMixin):
    __tablename__ = "mercadopago_info"
    __table_args__ = (UniqueConstraint("user_id", name="uq_mercadopago_info_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)

    access_token: Mapped[str] = mapped_column(String(512), nullable=False)
    access_token_expiration: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    refresh_token: Mapped[str] = mapped_column(String(512), nullable=False)
    refresh_token_expiration: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    user: Mapped[User] = relationship(User, back_populates="mercadopago_info")

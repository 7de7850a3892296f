import enum
from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, ForeignKey, DateTime, Enum, UniqueConstraint, func
from app.utils.dates import utcnow
from app.db.base import Base
from app.modules.users.models import User
from app.modules.class_offers.models import ClassOffer


class ClassRequestState(str, enum.Enum):
    CREATED = "Created"
    PAYMENT_PENDING = "PaymentPending"
    PAID = "Paid"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PAYMENT_REFUNDED = "PaymentRefunded"


class ClassRequest(Base):
    __tablename__ = "class_requests"
    __table_args__ = (
        UniqueConstraint("class_offer_id", "user_id", "day", "slot", name="uq_class_request_slot"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    class_offer_id: Mapped[int] = mapped_column(ForeignKey("class_offers.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)

    day: Mapped[int] = mapped_column(Integer, nullable=False)    # 0..6
    slot: Mapped[int] = mapped_column(Integer, nullable=False)   # bloque horario del día

    state: Mapped[ClassRequestState] = mapped_column(
        Enum(ClassRequestState, name="class_request_state", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ClassRequestState.CREATED,
    )
    # snapshot del precio al reservar; cambios posteriores de la oferta no afectan
    price_created_at: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    class_offer: Mapped[ClassOffer] = relationship(ClassOffer)
    user: Mapped[User] = relationship(User)
    transactions: Mapped[list["Transaction"]] = relationship("Transaction", back_populates="class_request")

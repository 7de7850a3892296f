# app/modules/transactions/service.py
"""
Preferencias de pago, reembolsos y el handler de redirección/webhook de
MercadoPago para las reservas (ClassRequest).
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import ExternalServiceError, Forbidden, InvalidInput, InvalidState, NotFound
from app.db.utils import commit_or_raise
from app.integrations.mercadopago_client import MercadoPagoClient, MPFailure
from app.modules.class_offers.crud import get_offer_with_author
from app.modules.class_offers.models import ClassOffer
from app.modules.class_requests.crud import get_class_request
from app.modules.class_requests.models import ClassRequest, ClassRequestState
from app.modules.class_requests.state import apply_transition
from .crud import create_transaction, get_latest_transaction
from .models import Transaction, TX_APPROVED, TX_PENDING, TX_REFUNDED
from .oauth import MSG_NOT_LINKED, ensure_access_token

logger = logging.getLogger(__name__)


@dataclass
class PreferenceResult:
    transaction: Transaction
    preference: Dict[str, Any]

    @property
    def status(self) -> str:
        return self.transaction.status


@dataclass(frozen=True)
class RedirectPayload:
    payment_id: Optional[str] = None
    status: Optional[str] = None
    external_reference: Optional[str] = None
    merchant_order_id: Optional[str] = None


@dataclass(frozen=True)
class RefundResult:
    refund_id: Optional[str]
    status: Optional[str]
    amount: Optional[float]


def generate_confirm_code() -> str:
    # 4 dígitos (1000-9999); secreto compartido estudiante/profesor
    return str(secrets.randbelow(9000) + 1000)


def _not_found_request(class_request_id: int) -> NotFound:
    return NotFound(f"Class Request con id {class_request_id} no encontrada")


def _not_found_transaction(class_request_id: int) -> NotFound:
    return NotFound(f"No se encontro transaccion para la class request con id {class_request_id}")


def _check_payer(class_request: ClassRequest | None, class_request_id: int, user_id: int) -> ClassRequest:
    if not class_request:
        raise _not_found_request(class_request_id)
    if class_request.user_id != user_id:
        raise Forbidden("No tienes permiso para acceder a esta class request")
    if class_request.state != ClassRequestState.PAYMENT_PENDING:
        raise InvalidState("La class request no está pendiente de pago")
    return class_request


def _back_url(status: str, class_request_id: int) -> str:
    base = settings.BACKEND_URL.rstrip("/")
    return f"{base}{settings.API_V1_PREFIX}/transactions/wh/{status}/{class_request_id}"


def build_preference_body(class_request: ClassRequest, offer: ClassOffer) -> Dict[str, Any]:
    return {
        "items": [
            {
                "id": str(class_request.id),
                "title": offer.title,
                "description": offer.description or offer.title,
                "quantity": 1,
                "currency_id": "CLP",
                "unit_price": offer.price,
            }
        ],
        "back_urls": {
            "success": _back_url("success", class_request.id),
            "failure": _back_url("failure", class_request.id),
            "pending": _back_url("pending", class_request.id),
        },
        "auto_return": "approved",
        "external_reference": str(class_request.id),
        "marketplace_fee": 0,  # sin comisión para la plataforma
    }


async def _payment_context(
    db: AsyncSession, mp: MercadoPagoClient, class_request_id: int, user_id: int
) -> tuple[ClassRequest, ClassOffer, str]:
    """
    Valida la reserva y devuelve (reserva bloqueada, oferta, token del profesor).

    El token se asegura antes de bloquear la fila: un refresco confirma su
    propia transacción para no perder el refresh token rotado por MP.
    """
    class_request = _check_payer(await get_class_request(db, class_request_id), class_request_id, user_id)

    offer = await get_offer_with_author(db, class_request.class_offer_id)
    if not offer:
        raise NotFound(f"Class Offer con id {class_request.class_offer_id} no encontrada")

    author = offer.author
    if author.id == user_id:
        raise InvalidState("No puedes solicitar una clase propia")
    if not author.mercadopago_info:
        raise InvalidState(f"El autor de la clase no ha vinculado su cuenta de MercadoPago ({MSG_NOT_LINKED})")

    access_token = await ensure_access_token(db, mp, author.mercadopago_info)

    class_request = _check_payer(
        await get_class_request(db, class_request_id, for_update=True), class_request_id, user_id
    )
    return class_request, offer, access_token


async def _new_preference(
    db: AsyncSession, mp: MercadoPagoClient, class_request: ClassRequest, offer: ClassOffer, access_token: str
) -> PreferenceResult:
    # con el token del profesor: el dinero entra a su cuenta
    result = await mp.create_preference(access_token, build_preference_body(class_request, offer))
    if isinstance(result, MPFailure) or not result.data.get("id"):
        raise ExternalServiceError("No se pudo crear la preferencia de pago")

    preference = result.data
    transaction = await create_transaction(db, class_request.id, str(preference["id"]))
    await commit_or_raise(db, "Error al crear la preferencia de pago")
    logger.info("preferencia %s creada para class_request %s", preference["id"], class_request.id)
    return PreferenceResult(transaction=transaction, preference=preference)


async def create_preference(
    db: AsyncSession, mp: MercadoPagoClient, class_request_id: int, user_id: int
) -> PreferenceResult:
    class_request, offer, access_token = await _payment_context(db, mp, class_request_id, user_id)
    return await _new_preference(db, mp, class_request, offer, access_token)


async def get_preference(
    db: AsyncSession, mp: MercadoPagoClient, class_request_id: int, user_id: int
) -> PreferenceResult:
    """
    Idempotente por reserva pendiente: reutiliza la última transacción
    `pending` y solo crea preferencia si todavía no existe ninguna.
    """
    class_request, offer, access_token = await _payment_context(db, mp, class_request_id, user_id)

    transaction = await get_latest_transaction(db, class_request.id, statuses=[TX_PENDING])
    if transaction is None:
        return await _new_preference(db, mp, class_request, offer, access_token)

    # se relee desde MP con el token del profesor para que monto y links sigan siendo los de MP
    result = await mp.get_preference(access_token, transaction.preference_id)
    await db.commit()  # libera el bloqueo; no hubo escrituras
    if isinstance(result, MPFailure):
        raise ExternalServiceError("Error al obtener la preferencia de pago")
    return PreferenceResult(transaction=transaction, preference=result.data)


async def update_transaction(db: AsyncSession, class_request_id: int, user_id: int, status: str) -> Transaction:
    class_request = await get_class_request(db, class_request_id)
    if not class_request:
        raise _not_found_request(class_request_id)
    transaction = await get_latest_transaction(db, class_request_id, for_update=True)
    if not transaction:
        raise _not_found_transaction(class_request_id)
    if class_request.user_id != user_id:
        raise Forbidden("No tienes permiso para actualizar esta transaccion")

    transaction.status = status
    await commit_or_raise(db, "Error al actualizar la transaccion")
    return transaction


_REFUND_BLOCKED = {
    ClassRequestState.CREATED: "La class request aun no ha sido pagada",
    ClassRequestState.PAYMENT_PENDING: "La class request aun no ha sido pagada",
    ClassRequestState.REJECTED: "La class request fue rechazada",
    ClassRequestState.APPROVED: "No se puede reembolsar una clase aprobada",
    ClassRequestState.PAYMENT_REFUNDED: "La class request ya ha sido reembolsada",
}


async def refund(db: AsyncSession, mp: MercadoPagoClient, class_request_id: int, user_id: int) -> RefundResult:
    class_request = await get_class_request(db, class_request_id, for_update=True)
    if not class_request:
        raise _not_found_request(class_request_id)
    if class_request.user_id != user_id:
        raise Forbidden("No tienes permiso para solicitar este reembolso")
    if class_request.state in _REFUND_BLOCKED:
        raise InvalidState(_REFUND_BLOCKED[class_request.state])

    transaction = await get_latest_transaction(db, class_request_id, for_update=True)
    if not transaction or not transaction.payment_id:
        raise InvalidState("La transaccion no tiene un pago asociado")

    # con la credencial de la plataforma, no la del profesor
    result = await mp.refund_payment(transaction.payment_id)
    if isinstance(result, MPFailure):
        raise ExternalServiceError("Error al solicitar el reembolso")

    transaction.status = TX_REFUNDED
    apply_transition(class_request, ClassRequestState.PAYMENT_REFUNDED)
    await commit_or_raise(db, "Error al registrar el reembolso")

    data = result.data
    refund_id = data.get("id")
    return RefundResult(
        refund_id=str(refund_id) if refund_id is not None else None,
        status=data.get("status"),
        amount=data.get("amount"),
    )


async def handle_redirect(db: AsyncSession, class_request_id: int, payload: RedirectPayload) -> Transaction:
    """
    Redirección de MercadoPago tras el checkout.

    Con status "approved" genera el código de confirmación y deja la reserva
    en Paid (único camino a ese estado); exige payment_id para poder
    reembolsar después. Otros status solo se registran en la transacción y
    únicamente mientras la reserva sigue en PaymentPending.
    """
    class_request = await get_class_request(db, class_request_id, for_update=True)
    if not class_request:
        raise _not_found_request(class_request_id)
    transaction = await get_latest_transaction(db, class_request_id, for_update=True)
    if not transaction:
        raise _not_found_transaction(class_request_id)

    if payload.status != TX_APPROVED:
        if class_request.state != ClassRequestState.PAYMENT_PENDING:
            # un pago ya registrado no se pisa con un redirect posterior
            logger.warning(
                "redirect ignorado class_request=%s state=%s status=%s",
                class_request_id, class_request.state.value, payload.status,
            )
            await db.commit()
            return transaction
        if payload.payment_id:
            transaction.payment_id = payload.payment_id
        if payload.status:
            transaction.status = payload.status
        await commit_or_raise(db, "Error al actualizar la transaccion")
        logger.warning(
            "redirect sin aprobar class_request=%s status=%s", class_request_id, payload.status
        )
        return transaction

    if not payload.payment_id:
        raise InvalidInput("El pago aprobado no trae payment_id")

    if (
        class_request.state == ClassRequestState.PAID
        and transaction.payment_id == payload.payment_id
        and transaction.confirm_code
    ):
        # reintento de la misma notificación: no se regenera el código
        await db.commit()
        return transaction

    apply_transition(class_request, ClassRequestState.PAID)
    transaction.payment_id = payload.payment_id
    transaction.status = payload.status
    transaction.confirm_code = generate_confirm_code()
    await commit_or_raise(db, "Error al registrar el pago")
    return transaction

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.dependencies import (
    get_current_user,
    get_db,
    get_mercadopago_client,
    require_internal_key,
    require_role,
)
from app.core.errors import HttpError
from app.integrations.mercadopago_client import MercadoPagoClient
from app.modules.class_requests.schemas import TransactionOut
from app.modules.users.models import User, UserRole
from . import oauth, service
from .schemas import (
    OAuthCredentialOut,
    OAuthStatusOut,
    OAuthTokenIn,
    PreferenceOut,
    RefundOut,
    TransactionStatusIn,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# rutas estáticas antes de /{class_request_id}


@router.get("/oauth/check", response_model=OAuthStatusOut)
async def check_oauth(
    db: AsyncSession = Depends(get_db),
    mp: MercadoPagoClient = Depends(get_mercadopago_client),
    user: User = Depends(get_current_user),
):
    result = await oauth.check_oauth_status(db, mp, user.id)
    return OAuthStatusOut(has_oauth=result.has_oauth, message=result.message)


@router.post("/oauth/token", response_model=OAuthCredentialOut, status_code=status.HTTP_201_CREATED)
async def link_mercadopago(
    payload: OAuthTokenIn,
    db: AsyncSession = Depends(get_db),
    mp: MercadoPagoClient = Depends(get_mercadopago_client),
    user: User = Depends(require_role(UserRole.TEACHER.value)),
):
    return await oauth.create_oauth_token(db, mp, payload.code, user.id)


@router.post(
    "/oauth/refresh/{user_id}",
    response_model=OAuthCredentialOut,
    dependencies=[Depends(require_internal_key)],
)
async def refresh_mercadopago(
    user_id: int = Path(gt=0),
    db: AsyncSession = Depends(get_db),
    mp: MercadoPagoClient = Depends(get_mercadopago_client),
):
    # disparador para el cron externo
    return await oauth.refresh_oauth_token(db, mp, user_id)


@router.post("/refund/{class_request_id}", response_model=RefundOut)
async def refund_class_request(
    class_request_id: int = Path(gt=0),
    db: AsyncSession = Depends(get_db),
    mp: MercadoPagoClient = Depends(get_mercadopago_client),
    user: User = Depends(get_current_user),
):
    result = await service.refund(db, mp, class_request_id, user.id)
    return RefundOut(refund_id=result.refund_id, status=result.status, amount=result.amount)


@router.get("/wh/{redirect_status}/{class_request_id}", status_code=status.HTTP_303_SEE_OTHER)
async def mercadopago_redirect(
    redirect_status: str = Path(pattern="^(success|failure|pending)$"),
    class_request_id: int = Path(gt=0),
    payment_id: Optional[str] = Query(None),
    mp_status: Optional[str] = Query(None, alias="status"),
    external_reference: Optional[str] = Query(None),
    merchant_order_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    payload = service.RedirectPayload(
        payment_id=payment_id,
        status=mp_status,
        external_reference=external_reference,
        merchant_order_id=merchant_order_id,
    )
    try:
        await service.handle_redirect(db, class_request_id, payload)
    except HttpError as e:
        # lo abre el navegador del comprador: siempre vuelve al frontend
        logger.warning(
            "redirect de MercadoPago rechazado class_request=%s: %s", class_request_id, e.message
        )
        redirect_status = "failure"
    target = f"{settings.FRONTEND_URL.rstrip('/')}/trans/{redirect_status}?class_request={class_request_id}"
    return RedirectResponse(target, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/{class_request_id}", response_model=PreferenceOut)
async def get_preference(
    class_request_id: int = Path(gt=0),
    db: AsyncSession = Depends(get_db),
    mp: MercadoPagoClient = Depends(get_mercadopago_client),
    user: User = Depends(get_current_user),
):
    result = await service.get_preference(db, mp, class_request_id, user.id)
    return PreferenceOut(
        preference=result.preference,
        transaction=TransactionOut.model_validate(result.transaction),
        status=result.status,
    )


@router.post("/{class_request_id}", response_model=TransactionOut)
async def update_transaction(
    payload: TransactionStatusIn,
    class_request_id: int = Path(gt=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    tx = await service.update_transaction(db, class_request_id, user.id, payload.status)
    return TransactionOut.model_validate(tx)

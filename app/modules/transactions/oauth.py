# app/modules/transactions/oauth.py
"""
Ciclo de vida de las credenciales OAuth de MercadoPago de cada profesor.

Cada profesor cobra en su propia cuenta, así que toda operación de pago
necesita un access token vigente de *ese* profesor. El refresco es perezoso:
se hace en línea justo antes de usar el token (o desde el cron interno).

Reglas de expiración:
  - access token usable mientras now < access_token_expiration
  - vencido pero con refresh token vigente -> se refresca antes de usarlo
  - refresh token vencido -> el profesor debe volver a vincular su cuenta
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import ExternalServiceError, HttpError, InvalidState, NotFound
from app.crud.crud_mercadopago_info import (
    get_mercadopago_info_by_user,
    list_mercadopago_info_expiring_before,
    upsert_mercadopago_info,
)
from app.db.utils import commit_or_raise
from app.integrations.mercadopago_client import MercadoPagoClient, MPFailure, MPResult
from app.modules.transactions.models import MercadopagoInfo
from app.modules.users.crud import get_user_with_mercadopago
from app.utils.dates import utcnow, is_expired

logger = logging.getLogger(__name__)

MSG_NOT_LINKED = "El usuario no ha vinculado su cuenta de MercadoPago"
MSG_REFRESH_EXPIRED = (
    "El token de refresco ha expirado, el usuario debe volver a vincular su cuenta de MercadoPago"
)


@dataclass(frozen=True)
class OAuthStatus:
    has_oauth: bool
    message: str


@dataclass(frozen=True)
class _TokenPair:
    access_token: str
    refresh_token: str
    access_token_expiration: datetime
    refresh_token_expiration: datetime


def _token_pair(result: MPResult, error_message: str) -> _TokenPair:
    if isinstance(result, MPFailure):
        raise ExternalServiceError(error_message)

    data = result.data
    access_token = data.get("access_token")
    refresh_token = data.get("refresh_token")
    try:
        expires_in = int(data.get("expires_in") or 0)
    except (TypeError, ValueError):
        expires_in = 0

    if not access_token or not refresh_token or expires_in <= 0:
        raise ExternalServiceError(error_message)

    now = utcnow()
    return _TokenPair(
        access_token=access_token,
        refresh_token=refresh_token,
        access_token_expiration=now + timedelta(seconds=expires_in),
        # MP no informa el TTL del refresh token: ventana fija conservadora
        refresh_token_expiration=now + timedelta(days=settings.MP_REFRESH_TOKEN_TTL_DAYS),
    )


async def _persist(db: AsyncSession, user_id: int, pair: _TokenPair) -> MercadopagoInfo:
    info = await upsert_mercadopago_info(
        db,
        user_id,
        access_token=pair.access_token,
        access_token_expiration=pair.access_token_expiration,
        refresh_token=pair.refresh_token,
        refresh_token_expiration=pair.refresh_token_expiration,
    )
    await commit_or_raise(db, "Error al guardar los tokens de OAuth")
    logger.info(
        "tokens MercadoPago guardados user_id=%s access_exp=%s",
        user_id, pair.access_token_expiration.isoformat(),
    )
    return info


async def create_oauth_token(db: AsyncSession, mp: MercadoPagoClient, code: str, user_id: int) -> MercadopagoInfo:
    """Canjea el código de autorización y hace upsert de la credencial del usuario."""
    result = await mp.create_oauth_token(code)
    pair = _token_pair(result, "Error en el proceso de OAuth con MercadoPago")
    return await _persist(db, user_id, pair)


async def _refresh(
    db: AsyncSession, mp: MercadoPagoClient, info: MercadopagoInfo, *, only_if_expired: bool = False
) -> MercadopagoInfo:
    # MP rota el refresh token: se relee la fila bloqueada antes de gastarlo
    info = await get_mercadopago_info_by_user(db, info.user_id, for_update=True)
    if info is None:
        raise InvalidState(MSG_NOT_LINKED)
    if only_if_expired and not is_expired(info.access_token_expiration):
        logger.info("access token ya refrescado user_id=%s", info.user_id)
        await db.commit()  # libera el bloqueo; no hubo escrituras
        return info

    if is_expired(info.refresh_token_expiration):
        # sin recuperación automática; la credencial queda intacta
        raise InvalidState(MSG_REFRESH_EXPIRED)

    result = await mp.refresh_oauth_token(info.refresh_token)
    pair = _token_pair(result, "No se pudieron refrescar los tokens de OAuth")
    return await _persist(db, info.user_id, pair)


async def refresh_oauth_token(db: AsyncSession, mp: MercadoPagoClient, user_id: int) -> MercadopagoInfo:
    user = await get_user_with_mercadopago(db, user_id)
    if not user:
        raise NotFound("Usuario no encontrado")
    if not user.mercadopago_info:
        raise InvalidState(MSG_NOT_LINKED)
    return await _refresh(db, mp, user.mercadopago_info)


async def ensure_access_token(db: AsyncSession, mp: MercadoPagoClient, info: MercadopagoInfo) -> str:
    """Devuelve un access token usable, refrescándolo antes si venció."""
    if is_expired(info.access_token_expiration):
        logger.info("access token vencido user_id=%s; refrescando", info.user_id)
        info = await _refresh(db, mp, info, only_if_expired=True)
    return info.access_token


async def check_oauth_status(db: AsyncSession, mp: MercadoPagoClient, user_id: int) -> OAuthStatus:
    """
    Chequeo de estado, no una acción: los casos "no vinculado" o "refresh
    vencido" se informan con has_oauth=False en vez de lanzar.
    """
    user = await get_user_with_mercadopago(db, user_id)
    if not user:
        return OAuthStatus(False, "Usuario no encontrado")

    info = user.mercadopago_info
    if not info:
        return OAuthStatus(False, MSG_NOT_LINKED)

    if is_expired(info.access_token_expiration):
        if is_expired(info.refresh_token_expiration):
            return OAuthStatus(False, MSG_REFRESH_EXPIRED)
        await _refresh(db, mp, info, only_if_expired=True)

    return OAuthStatus(True, "Usuario tiene OAuth con MercadoPago")


async def refresh_expiring_tokens(
    db: AsyncSession, mp: MercadoPagoClient, window: timedelta
) -> tuple[list[int], list[int]]:
    """
    Refresca las credenciales cuyo access token vence dentro de `window`.
    Devuelve (refrescados, fallidos) por user_id; un fallo no corta el lote.
    """
    refreshed: list[int] = []
    failed: list[int] = []
    user_ids = [info.user_id for info in await list_mercadopago_info_expiring_before(db, utcnow() + window)]
    for user_id in user_ids:
        try:
            await refresh_oauth_token(db, mp, user_id)
        except HttpError as e:
            logger.warning("no se pudo refrescar user_id=%s: %s", user_id, e.message)
            failed.append(user_id)
        else:
            refreshed.append(user_id)
    return refreshed, failed

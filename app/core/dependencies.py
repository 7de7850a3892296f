import logging
import secrets
from typing import AsyncIterator, Optional

from fastapi import Cookie, Depends, Header
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, ExpiredSignatureError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.db.session import AsyncSessionLocal
from app.modules.users.models import User
from app.core.config import settings
from app.core.errors import Unauthenticated, Forbidden, InternalError
from app.core.security import decode_token
from app.integrations.mercadopago_client import MercadoPagoClient

logger = logging.getLogger(__name__)

# el token llega por cookie (frontend) o por header Bearer (scripts / tests)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session


def get_mercadopago_client() -> MercadoPagoClient:
    return MercadoPagoClient(
        platform_token=settings.MP_ACCESS_TOKEN,
        client_id=settings.MP_CLIENT_ID,
        client_secret=settings.MP_CLIENT_SECRET,
        redirect_uri=settings.MP_REDIRECT_URI,
        base_url=settings.MP_API_BASE,
        timeout=settings.MP_TIMEOUT_SECONDS,
    )


async def get_current_user(
    bearer: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(None),
    db: AsyncSession = Depends(get_db),
) -> User:
    token = access_token or bearer
    if not token:
        raise Unauthenticated("Autenticación fallida.")
    try:
        payload = decode_token(token)
        user_id = int(payload.get("sub"))
    except ExpiredSignatureError:
        raise Unauthenticated("Autenticación fallida: Token expirado.")
    except (JWTError, TypeError, ValueError):
        raise Unauthenticated("Token inválido o expirado.")

    q = await db.execute(select(User).where(User.id == user_id))
    user = q.scalar_one_or_none()
    if not user:
        raise Unauthenticated("Usuario no encontrado")
    if user.is_deleted:
        raise Forbidden("La cuenta del usuario fue eliminada.")
    return user


def require_role(*roles: str):
    async def _checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise Forbidden(f"Usuario no tiene rol: {', '.join(roles)}.")
        return user
    return _checker


async def require_internal_key(x_internal_key: Optional[str] = Header(None)) -> None:
    if not settings.INTERNAL_API_KEY:
        logger.error("INTERNAL_API_KEY no configurada; endpoint interno deshabilitado")
        raise InternalError("Endpoint interno no configurado")
    if not x_internal_key:
        raise Unauthenticated("Falta el header X-Internal-Key")
    if not secrets.compare_digest(x_internal_key, settings.INTERNAL_API_KEY):
        raise Forbidden("Clave interna inválida")

# -*- coding: utf-8 -*-
"""
Configuración compartida de tests.

Base SQLite en memoria (una por test), MercadoPago falso inyectado por
`dependency_overrides` y fábricas para usuarios, ofertas, credenciales,
reservas y transacciones.
"""
import os

# antes de importar la app: settings se lee al importar
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("BACKEND_URL", "http://api.test")
os.environ.setdefault("FRONTEND_URL", "http://front.test")
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-key")

from datetime import timedelta
from itertools import count
from typing import Any, Dict, Optional

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.dependencies import get_db, get_mercadopago_client
from app.core.security import create_access_token
from app.db.base import Base
from app.integrations.mercadopago_client import MPFailure, MPSuccess
from app.main import app as fastapi_app
from app.modules.class_offers.models import ClassOffer
from app.modules.class_requests.models import ClassRequest, ClassRequestState
from app.modules.transactions.models import MercadopagoInfo, Transaction
from app.modules.users.models import User, UserRole
from app.utils.dates import utcnow


class FakeMercadoPago:
    """
    Doble de `MercadoPagoClient`: registra cada llamada y responde éxito
    salvo que el nombre del método esté en `failing`.
    """

    def __init__(self):
        self.calls: list[tuple[str, tuple]] = []
        self.failing: set[str] = set()
        self.preferences: Dict[str, Dict[str, Any]] = {}
        self.expires_in = 21600
        self._seq = count(1)

    def calls_to(self, name: str) -> list[tuple]:
        return [args for n, args in self.calls if n == name]

    def _fail(self, name: str) -> Optional[MPFailure]:
        if name in self.failing:
            return MPFailure("http_error", status_code=400, data={"message": "bad request"})
        return None

    def _tokens(self) -> MPSuccess:
        n = next(self._seq)
        return MPSuccess({
            "access_token": f"AT-{n}",
            "refresh_token": f"RT-{n}",
            "expires_in": self.expires_in,
        })

    async def create_oauth_token(self, code: str):
        self.calls.append(("create_oauth_token", (code,)))
        return self._fail("create_oauth_token") or self._tokens()

    async def refresh_oauth_token(self, refresh_token: str):
        self.calls.append(("refresh_oauth_token", (refresh_token,)))
        return self._fail("refresh_oauth_token") or self._tokens()

    async def create_preference(self, access_token: str, body: Dict[str, Any]):
        self.calls.append(("create_preference", (access_token, body)))
        failure = self._fail("create_preference")
        if failure:
            return failure
        pref_id = f"PREF-{next(self._seq)}"
        pref = {
            "id": pref_id,
            "init_point": f"https://mp.test/checkout/{pref_id}",
            "items": body["items"],
            "date_created": "2025-01-01T00:00:00.000-03:00",
            "client_id": "123456",
            "back_urls": body["back_urls"],
        }
        self.preferences[pref_id] = pref
        return MPSuccess(pref)

    async def get_preference(self, access_token: str, preference_id: str):
        self.calls.append(("get_preference", (access_token, preference_id)))
        failure = self._fail("get_preference")
        if failure:
            return failure
        if preference_id not in self.preferences:
            return MPFailure("http_error", status_code=404)
        return MPSuccess(self.preferences[preference_id])

    async def refund_payment(self, payment_id: str):
        self.calls.append(("refund_payment", (payment_id,)))
        return self._fail("refund_payment") or MPSuccess(
            {"id": 9001, "payment_id": payment_id, "status": "approved", "amount": 15000}
        )


class Factory:
    def __init__(self, db: AsyncSession):
        self.db = db
        self._seq = count(1)

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.commit()
        return obj

    async def user(self, role: UserRole = UserRole.STUDENT, **kw) -> User:
        n = next(self._seq)
        return await self._save(User(
            username=kw.pop("username", f"user{n}"),
            email=kw.pop("email", f"user{n}@test.cl"),
            first_name=kw.pop("first_name", "Nombre"),
            last_name=kw.pop("last_name", "Apellido"),
            role=role.value,
            **kw,
        ))

    async def student(self, **kw) -> User:
        return await self.user(UserRole.STUDENT, **kw)

    async def teacher(self, **kw) -> User:
        return await self.user(UserRole.TEACHER, **kw)

    async def offer(self, author: User, price: int = 15000, **kw) -> ClassOffer:
        return await self._save(ClassOffer(
            author_id=author.id,
            title=kw.pop("title", "Cálculo I"),
            description=kw.pop("description", "Derivadas e integrales"),
            category=kw.pop("category", "Matemáticas"),
            price=price,
            **kw,
        ))

    async def credential(
        self,
        user: User,
        access_expires_in: timedelta = timedelta(hours=6),
        refresh_expires_in: timedelta = timedelta(days=180),
        access_token: str = "AT-teacher",
        refresh_token: str = "RT-teacher",
    ) -> MercadopagoInfo:
        now = utcnow()
        return await self._save(MercadopagoInfo(
            user_id=user.id,
            access_token=access_token,
            access_token_expiration=now + access_expires_in,
            refresh_token=refresh_token,
            refresh_token_expiration=now + refresh_expires_in,
        ))

    async def class_request(
        self,
        student: User,
        offer: ClassOffer,
        state: ClassRequestState = ClassRequestState.CREATED,
        day: int = 3,
        slot: int = 10,
    ) -> ClassRequest:
        return await self._save(ClassRequest(
            class_offer_id=offer.id,
            user_id=student.id,
            day=day,
            slot=slot,
            state=state,
            price_created_at=offer.price,
        ))

    async def transaction(self, class_request: ClassRequest, **kw) -> Transaction:
        return await self._save(Transaction(
            class_request_id=class_request.id,
            preference_id=kw.pop("preference_id", "PREF-existing"),
            **kw,
        ))


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mp() -> FakeMercadoPago:
    return FakeMercadoPago()


@pytest.fixture
def factory(db) -> Factory:
    return Factory(db)


@pytest.fixture
async def fresh(session_factory):
    """Lee una fila en una sesión nueva (lo que quedó confirmado)."""
    async def _get(model, pk):
        async with session_factory() as session:
            return await session.get(model, pk)
    return _get


@pytest.fixture
async def client(session_factory, mp):
    async def _override_get_db():
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    fastapi_app.dependency_overrides[get_mercadopago_client] = lambda: mp

    transport = httpx.ASGITransport(app=fastapi_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def auth():
    """Headers Bearer para un usuario; la emisión real del JWT no vive aquí."""
    def _headers(user: User) -> Dict[str, str]:
        token = create_access_token({"sub": str(user.id), "role": user.role})
        return {"Authorization": f"Bearer {token}"}
    return _headers

# app/integrations/mercadopago_client.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MPSuccess:
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MPFailure:
    reason: str
    status_code: Optional[int] = None
    data: Dict[str, Any] = field(default_factory=dict)


MPResult = Union[MPSuccess, MPFailure]


class MercadoPagoClient:
    """
    Cliente mínimo de la API de MercadoPago.

    Nunca lanza por errores del proveedor: cada llamada devuelve `MPSuccess`
    o `MPFailure` y el servicio que llama decide cómo traducirlo. Los
    timeouts y errores de red también terminan en `MPFailure`.

    `platform_token` es la credencial propia de la plataforma (reembolsos);
    las preferencias se crean con el token de cada profesor, que se pasa
    explícitamente en cada llamada.
    """

    def __init__(
        self,
        *,
        platform_token: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        base_url: str = "https://api.mercadopago.com",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.platform_token = platform_token
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        access_token: Optional[str] = None,
        json: Optional[Dict[str, Any]] = None,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> MPResult:
        headers = self._headers(access_token)
        if extra_headers:
            headers |= extra_headers
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                r = await client.request(method, f"{self.base_url}{path}", json=json, headers=headers)
        except httpx.TimeoutException:
            logger.warning("MercadoPago %s %s: timeout", method, path)
            return MPFailure("timeout")
        except httpx.HTTPError as e:
            logger.warning("MercadoPago %s %s: %s", method, path, e.__class__.__name__)
            return MPFailure("transport_error")

        try:
            data = r.json()
        except ValueError:
            data = {"error": r.text[:200]}

        if r.status_code >= 400:
            logger.warning("MercadoPago %s %s -> HTTP %s", method, path, r.status_code)
            return MPFailure("http_error", status_code=r.status_code, data=data if isinstance(data, dict) else {})
        if not isinstance(data, dict):
            return MPFailure("unexpected_body", status_code=r.status_code)
        return MPSuccess(data)

    # ---------- OAuth ----------
    async def create_oauth_token(self, code: str) -> MPResult:
        return await self._request("POST", "/oauth/token", json={
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        })

    async def refresh_oauth_token(self, refresh_token: str) -> MPResult:
        return await self._request("POST", "/oauth/token", json={
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        })

    # ---------- Preferencias (con el token del profesor) ----------
    async def create_preference(self, access_token: str, body: Dict[str, Any]) -> MPResult:
        return await self._request("POST", "/checkout/preferences", access_token=access_token, json=body)

    async def get_preference(self, access_token: str, preference_id: str) -> MPResult:
        return await self._request("GET", f"/checkout/preferences/{preference_id}", access_token=access_token)

    # ---------- Reembolsos (con el token de la plataforma) ----------
    async def refund_payment(self, payment_id: str) -> MPResult:
        return await self._request(
            "POST",
            f"/v1/payments/{payment_id}/refunds",
            access_token=self.platform_token,
            json={},
            extra_headers={"X-Idempotency-Key": str(uuid.uuid4())},
        )

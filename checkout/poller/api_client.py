"""HTTP клиент checkout API для ClientPoller"""
from typing import Any, Optional

import aiohttp

from checkout.errors import ApiResponseError


class CheckoutApiClient:
    """Вызывает /checkout/create и /checkout/check с bearer токеном"""

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 15.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        session = self._get_session()
        headers = {"Authorization": f"Bearer {self.token}"}
        async with session.post(f"{self.base_url}{path}", json=body, headers=headers) as response:
            try:
                data = await response.json(content_type=None)
            except ValueError:
                data = None

            if response.status >= 400 or not isinstance(data, dict):
                data = data if isinstance(data, dict) else {}
                raise ApiResponseError(
                    response.status,
                    data.get("error") or "HTTP_ERROR",
                    data.get("message") or f"HTTP {response.status}",
                )
            return data

    async def create_invoice(self, product_id: str, amount: int, description: str = "") -> dict[str, Any]:
        return await self._post(
            "/checkout/create",
            {"productId": product_id, "amount": amount, "description": description},
        )

    async def check_invoice(self, invoice_id: str) -> dict[str, Any]:
        return await self._post("/checkout/check", {"invoiceId": invoice_id})

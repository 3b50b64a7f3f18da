"""
Base gateway client implementing shared concerns: http, retry, logging, mapping.

Concrete providers should subclass and implement provider-specific logic.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from domain.payment.exceptions import GatewayRejected


logger = get_logger(__name__)


class BaseGatewayClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        base_url: str = "",
        headers: Optional[dict[str, str]] = None,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url
        self._headers = headers or {}
        self._timeouts_cfg = timeouts or {"connect": 2.0, "read": 5.0, "write": 5.0, "total": 10.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers,
                timeout=self.timeouts,
                transport=self._transport,
            )
        # Keep open for reuse; explicit aclose() will close.
        yield self._client

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Awaitable[Any]]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _send(self, method: str, path: str, *, json: Optional[dict] = None) -> httpx.Response:
        """Send with retry on transport faults only; HTTP error statuses are returned as-is."""

        async def _do() -> httpx.Response:
            async with self.client() as c:
                return await c.request(method, path, json=json)

        try:
            return await self._retry(_do)
        except httpx.TimeoutException as exc:
            self._log_error("gateway_timeout", method=method, path=path)
            raise GatewayRejected(
                "Payment gateway timed out",
                provider=self.provider,
                provider_code="timeout",
            ) from exc
        except httpx.TransportError as exc:
            self._log_error("gateway_transport_error", method=method, path=path, error=str(exc))
            raise GatewayRejected(
                "Payment gateway unreachable",
                provider=self.provider,
                provider_code="transport_error",
            ) from exc

    @staticmethod
    def _json(resp: httpx.Response) -> dict[str, Any]:
        if not resp.content:
            return {}
        try:
            data = resp.json()
        except ValueError:
            return {"message": resp.text[:200]}
        return data if isinstance(data, dict) else {"data": data}

    # Helpers
    def _map_status(self, provider_status: Optional[str], table: dict[str, dict[str, str]]) -> str:
        mapping = table.get(self.provider, {})
        status = (provider_status or "").upper()
        return mapping.get(status, status.lower() or "unknown")

    def _log(self, event: str, **kwargs) -> None:
        logger.info(event, provider=self.provider, **kwargs)

    def _log_error(self, event: str, **kwargs) -> None:
        logger.error(event, provider=self.provider, **kwargs)

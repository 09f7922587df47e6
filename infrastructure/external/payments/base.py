"""
Base payment client implementing shared concerns: http, retry, logging, error mapping.

Concrete providers should subclass and implement provider-specific logic.
"""
from __future__ import annotations

from typing import Any, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from application.ports.payment_gateway import PolarGateway
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
)


logger = get_logger(__name__)


class BasePaymentClient(PolarGateway):
    provider: str = "base"

    def __init__(
        self,
        *,
        base_url: str,
        headers: Optional[dict[str, str]] = None,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = headers or {}
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
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
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        accept: tuple[int, ...] = (),
    ) -> httpx.Response:
        """
        Send one request with transport-level retries.

        Statuses listed in ``accept`` are returned to the caller as-is; any other
        non-2xx response is mapped to a provider exception.
        """

        async def _send() -> httpx.Response:
            async with self.client() as c:
                return await c.request(method, path, json=json, params=params)

        try:
            resp = await self._retry(_send)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            self._log("provider_transport_error", method=method, path=path, error=str(exc))
            raise PaymentRecoverableError(str(exc) or type(exc).__name__, provider=self.provider) from exc

        self._log("provider_response", method=method, path=path, status_code=resp.status_code)
        if resp.status_code in accept or resp.is_success:
            return resp
        raise self._error_from(resp)

    def _error_from(self, resp: httpx.Response) -> Exception:
        try:
            body = resp.json()
        except ValueError:
            body = {"detail": resp.text}
        detail = body.get("detail") if isinstance(body, dict) else body
        provider_code = body.get("error") if isinstance(body, dict) else None
        message = detail if isinstance(detail, str) else f"Polar API error ({resp.status_code})"
        if resp.status_code == 429 or resp.status_code >= 500:
            return PaymentRecoverableError(
                message,
                provider=self.provider,
                provider_code=provider_code,
                details={"http_status": resp.status_code},
            )
        return PaymentProviderError(
            message,
            provider=self.provider,
            provider_code=provider_code,
            http_status=resp.status_code,
            details={"body": body} if not isinstance(detail, str) else None,
        )

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )

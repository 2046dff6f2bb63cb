"""
Base HTTP client for downstream services: pooled httpx client, bounded
tenacity retries on transient failures, structured logging.
"""
from __future__ import annotations

from typing import Any, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from .exceptions import ExternalServiceError, ExternalServiceUnavailable


logger = get_logger(__name__)

RETRYABLE_STATUS = {429, 502, 503, 504}


class BaseServiceClient:
    service: str = "base"

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 5.0, "write": 5.0, "total": 10.0}
        self._retry_cfg = retry or {"max": 2, "base_backoff": 0.2}
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

    def _default_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeouts,
                headers=self._default_headers(),
                transport=self._transport,
            )
        # kept open for reuse; aclose() closes it
        yield self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base_backoff"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError, ExternalServiceUnavailable)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _post(self, path: str, json: dict[str, Any], *, idempotency_key: Optional[str] = None) -> dict[str, Any]:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else {}

        async def _send() -> dict[str, Any]:
            async with self.client() as http:
                resp = await http.post(path, json=json, headers=headers)
            return self._handle(resp, path)

        try:
            return await self._retry(_send)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise ExternalServiceUnavailable(
                f"{self.service} unreachable: {exc.__class__.__name__}", service=self.service
            ) from exc

    def _handle(self, resp: httpx.Response, path: str) -> dict[str, Any]:
        self._log("downstream_response", path=path, status_code=resp.status_code)
        if resp.status_code in RETRYABLE_STATUS or resp.status_code >= 500:
            raise ExternalServiceUnavailable(
                f"{self.service} returned {resp.status_code}", service=self.service, status_code=resp.status_code
            )
        if resp.status_code >= 400:
            raise ExternalServiceError(
                f"{self.service} rejected request: {resp.status_code}",
                service=self.service,
                status_code=resp.status_code,
                details={"body": resp.text[:500]},
            )
        if not resp.content:
            return {}
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {"data": data}

    def _log(self, event: str, **kwargs) -> None:
        logger.info(event, service=self.service, **kwargs)

"""
Inventory service client.
"""
from __future__ import annotations

from typing import Any, Iterable

from core.settings import InventorySettings
from .base import BaseServiceClient


class InventoryClient(BaseServiceClient):
    service = "inventory"

    @classmethod
    def from_settings(cls, cfg: InventorySettings, **kwargs) -> "InventoryClient":
        return cls(
            base_url=cfg.base_url,
            api_key=cfg.api_key,
            timeouts=cfg.timeouts.model_dump(),
            retry=cfg.retry.model_dump(),
            **kwargs,
        )

    async def decrement(
        self,
        *,
        order_id: str,
        shop_id: str,
        lines: Iterable[tuple[str, int]],
        idempotency_key: str,
    ) -> dict[str, Any]:
        body = {
            "reason": "order_paid",
            "order_id": order_id,
            "shop_id": shop_id,
            "lines": [{"product_ref": ref, "delta": -qty} for ref, qty in lines],
        }
        result = await self._post("/v1/stock/adjustments", body, idempotency_key=idempotency_key)
        self._log("inventory_adjusted", order_id=order_id, idempotency_key=idempotency_key)
        return result

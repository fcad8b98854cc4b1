"""
Odoo JSON-RPC Client
Endpoint: POST {ODOO_URL}/jsonrpc with service "common" (login) or "object" (execute_kw)
"""
import httpx
import logging
import random
from decimal import Decimal
from typing import Optional, Dict, Any, List

from app.core.time_utils import utcnow

from .base import (
    BaseErpClient,
    ErpProduct,
    ErpAuthError,
    ErpRpcError,
    ErpConnectionError,
)

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = ["id", "default_code", "name", "barcode", "qty_available", "active"]


class OdooClient(BaseErpClient):
    """
    Odoo External API Client

    Authenticates with common.authenticate and reuses the returned uid for
    object.execute_kw calls until the session expires.
    """
    ERP_NAME = "odoo"

    def __init__(
        self,
        url: str,
        database: str,
        username: str,
        password: str,
        timeout: float = 30.0,
        session_ttl: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(session_ttl=session_ttl)
        self.url = url.rstrip("/")
        self.database = database
        self.username = username
        self.password = password
        self.timeout = timeout
        self.transport = transport

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "User-Agent": "Colocacion/1.0",
        }

    async def _call(self, service: str, method: str, args: List[Any]) -> Any:
        """Send one JSON-RPC request and return its result"""
        payload = {
            "jsonrpc": "2.0",
            "method": "call",
            "params": {"service": service, "method": method, "args": args},
            "id": random.randint(1, 1_000_000),
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.url}/jsonrpc",
                    headers=self._build_headers(),
                    json=payload,
                )
                self._log_api_call(service, method, response.status_code)
        except httpx.TimeoutException as e:
            raise ErpConnectionError(f"Odoo timeout: {e}") from e
        except httpx.RequestError as e:
            raise ErpConnectionError(f"Odoo request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Odoo HTTP error {response.status_code}: {response.text[:200]}")
            raise ErpConnectionError(f"Odoo HTTP error {response.status_code}")

        data = response.json()
        if data.get("error"):
            error = data["error"]
            message = error.get("data", {}).get("message") or error.get("message", "unknown error")
            if service == "common":
                raise ErpAuthError(f"Odoo Auth Error: {message}")
            raise ErpRpcError(f"Odoo RPC Error: {message}")

        return data.get("result")

    # ========== Authentication ==========

    async def login(self) -> int:
        uid = await self._call(
            "common",
            "authenticate",
            [self.database, self.username, self.password, {}],
        )
        return uid or 0

    async def execute_kw(
        self,
        model: str,
        method: str,
        args: List[Any],
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        uid = await self.authenticate()
        try:
            return await self._call(
                "object",
                "execute_kw",
                [self.database, uid, self.password, model, method, args, kwargs or {}],
            )
        except ErpRpcError as e:
            if "session" in str(e).lower() or "access denied" in str(e).lower():
                self.drop_session()
            raise

    # ========== Products ==========

    def normalize_product(self, raw: Dict[str, Any]) -> ErpProduct:
        """Odoo returns False for empty char fields"""
        return ErpProduct(
            id=raw["id"],
            default_code=raw.get("default_code") or "",
            name=raw.get("name") or "",
            barcode=raw.get("barcode") or None,
            qty_available=Decimal(str(raw.get("qty_available") or 0)),
            active=bool(raw.get("active", True)),
            raw_payload=raw,
        )

    async def get_product(self, erp_id: int) -> Optional[ErpProduct]:
        rows = await self.execute_kw(
            "product.product",
            "search_read",
            [[["id", "=", erp_id]]],
            {"fields": PRODUCT_FIELDS, "limit": 1, "context": {"active_test": False}},
        )
        if not rows:
            return None
        return self.normalize_product(rows[0])

    async def search_product_by_barcode(self, barcode: str) -> Optional[ErpProduct]:
        rows = await self.execute_kw(
            "product.product",
            "search_read",
            [[["barcode", "=", barcode], ["active", "=", True]]],
            {"fields": PRODUCT_FIELDS, "limit": 1},
        )
        if not rows:
            return None
        return self.normalize_product(rows[0])

    async def _default_location_id(self) -> int:
        ids = await self.execute_kw(
            "stock.location",
            "search",
            [[["usage", "=", "internal"], ["active", "=", True]]],
            {"limit": 1},
        )
        return ids[0] if ids else 1

    async def update_stock(self, erp_id: int, quantity: Decimal) -> bool:
        """Stock adjustments go through a validated stock.inventory"""
        logger.info(f"Updating Odoo stock: product {erp_id} -> {quantity}")
        inventory_id = await self.execute_kw(
            "stock.inventory",
            "create",
            [{
                "name": f"Ajuste PDA {utcnow().isoformat()}",
                "product_ids": [[6, 0, [erp_id]]],
                "state": "draft",
            }],
        )
        await self.execute_kw(
            "stock.inventory.line",
            "create",
            [{
                "inventory_id": inventory_id,
                "product_id": erp_id,
                "product_qty": float(quantity),
                "location_id": await self._default_location_id(),
            }],
        )
        await self.execute_kw("stock.inventory", "action_validate", [inventory_id])
        return True

    async def update_location(self, erp_id: int, location_code: str) -> bool:
        logger.info(f"Updating Odoo location: product {erp_id} -> {location_code}")
        result = await self.execute_kw(
            "product.product",
            "write",
            [[erp_id], {"x_location_code": location_code}],
        )
        return bool(result)

    # ========== Health ==========

    async def test_connection(self) -> bool:
        await self.authenticate()
        await self.execute_kw("res.users", "search", [[]], {"limit": 1})
        return True

    async def get_system_info(self) -> Dict[str, Any]:
        rows = await self.execute_kw(
            "ir.config_parameter",
            "search_read",
            [[["key", "=", "base.server_version"]]],
            {"fields": ["value"], "limit": 1},
        )
        return {
            "server_version": rows[0]["value"] if rows else "unknown",
            "database": self.database,
            "url": self.url,
            "uid": self.session_id,
        }

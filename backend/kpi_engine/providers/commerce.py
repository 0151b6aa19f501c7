"""Commerce platform adapter."""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol, Sequence

from .bridge import BridgeClient, BridgeError
from .facts import InventoryItem, parse_inventory_item


class CommerceServiceError(BridgeError):
    """Raised when the commerce bridge fails."""


class CommerceClient(Protocol):
    """Inventory levels and sales velocity from the storefront."""

    async def get_inventory(self) -> Sequence[InventoryItem]:
        ...

    async def test_connection(self) -> bool:
        ...


class HttpCommerceClient(BridgeClient):
    """Commerce adapter backed by the storefront bridge service."""

    error_class = CommerceServiceError
    service_name = "commerce"

    async def get_inventory(self) -> Sequence[InventoryItem]:
        path = "/inventory"
        payload = await self._get(path)
        rows = payload.get("items", []) if isinstance(payload, dict) else payload
        if not isinstance(rows, list):
            raise CommerceServiceError("commerce service inventory response is not a list")
        with self._parsing(path):
            return [parse_inventory_item(row) for row in rows if isinstance(row, dict) and row.get("sku")]


def _demo_inventory() -> list[InventoryItem]:
    return [
        InventoryItem(
            sku="FH-MUG-001",
            title="Farmhouse Mug",
            price=Decimal("18.00"),
            cost=Decimal("6.50"),
            available_quantity=6,
            weekly_sales_units=Decimal("3.5"),
            profit_protection_threshold=Decimal("25"),
            reorder_point=10,
        ),
        InventoryItem(
            sku="FH-SIGN-014",
            title="Rustic Welcome Sign",
            price=Decimal("42.00"),
            cost=Decimal("15.00"),
            available_quantity=40,
            weekly_sales_units=Decimal("1.0"),
            profit_protection_threshold=Decimal("30"),
        ),
        InventoryItem(
            sku="FH-PUMP-207",
            title="Velvet Pumpkin Set",
            price=Decimal("36.00"),
            cost=Decimal("14.00"),
            available_quantity=120,
            weekly_sales_units=Decimal("0.25"),
            q4_item=True,
        ),
        InventoryItem(
            sku="FH-ORN-330",
            title="Gingham Ornament",
            price=Decimal("12.00"),
            cost=Decimal("3.00"),
            available_quantity=0,
            weekly_sales_units=Decimal("2.5"),
            q4_item=True,
        ),
        InventoryItem(
            sku="FH-TOWEL-051",
            title="Embroidered Tea Towel",
            price=Decimal("14.00"),
            cost=Decimal("5.00"),
            available_quantity=85,
            weekly_sales_units=Decimal("0"),
        ),
    ]


class StaticCommerceClient:
    """Fixed inventory for demos and local development."""

    def __init__(self, inventory: Sequence[InventoryItem] | None = None) -> None:
        self._inventory = list(inventory) if inventory is not None else _demo_inventory()

    async def get_inventory(self) -> Sequence[InventoryItem]:
        return list(self._inventory)

    async def test_connection(self) -> bool:
        return True


__all__ = [
    "CommerceClient",
    "CommerceServiceError",
    "HttpCommerceClient",
    "StaticCommerceClient",
]

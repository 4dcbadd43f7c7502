"""
Effective stock and stock status for a product.

Pure functions over persisted fields; nothing here is ever written back.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from catalog.data.models import DIGITAL_PRODUCT_TYPES

LOW_STOCK_THRESHOLD = 10
# Effective stock of a product whose stock is not tracked
UNLIMITED_STOCK = -1


class StockStatus(str, Enum):
    IN_STOCK = "in-stock"
    LOW_STOCK = "low-stock"
    OUT_OF_STOCK = "out-of-stock"


@dataclass(frozen=True)
class StockLevel:
    effective_stock: int
    status: StockStatus

    @property
    def is_tracked(self) -> bool:
        return self.effective_stock != UNLIMITED_STOCK


def is_digital(product: Any) -> bool:
    return product.product_type in DIGITAL_PRODUCT_TYPES


def _classify(units: int, out_of_stock_at_or_below: int) -> StockStatus:
    if units <= out_of_stock_at_or_below:
        return StockStatus.OUT_OF_STOCK
    if units < LOW_STOCK_THRESHOLD:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def compute_stock(product: Any, variants: Iterable[Any]) -> StockLevel:
    """
    Derive (effective stock, status) for ``product``.

    Physical products sum their variants' stock. Digital and gift card
    products ignore variants: unlimited (or unconfigured) stock is reported
    as ``UNLIMITED_STOCK`` and is always in stock, limited stock uses
    ``digital_stock_count``.
    """
    if is_digital(product):
        mode = product.digital_stock_mode or "unlimited"
        count = product.digital_stock_count
        if mode != "limited" or count is None:
            return StockLevel(UNLIMITED_STOCK, StockStatus.IN_STOCK)
        if count == 0:
            return StockLevel(0, StockStatus.OUT_OF_STOCK)
        return StockLevel(count, _classify(count, out_of_stock_at_or_below=-1))

    total = sum(v.stock_count or 0 for v in variants)
    return StockLevel(total, _classify(total, out_of_stock_at_or_below=0))

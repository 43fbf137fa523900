from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import Field, field_validator

from .base import LedgerModel
from .batches import StockLevel


class HistoricalUsage(LedgerModel):
    """Daily usage series for one branch, oldest day first."""
    branch_id: str = Field(description="Branch the usage was recorded at")
    usage: List[int] = Field(default_factory=list, description="Units used per day")


class HistoricalPrice(LedgerModel):
    """Purchase price observed on a given date."""
    date: dt.date = Field(description="Price observation date")
    price: float = Field(ge=0, description="Unit purchase price")


class Product(LedgerModel):
    """A catalog product with its per-branch batch-tracked stock."""
    id: str = Field(description="Unique product identifier")
    name: str = Field(description="Product name")
    supplier_id: str = Field(description="Supplier providing the product")
    min_stock_level: Optional[int] = Field(default=None, ge=0, description="Safety stock threshold per branch")
    purchase_price: Optional[float] = Field(default=None, ge=0, description="Unit purchase price")
    stock_levels: List[StockLevel] = Field(default_factory=list, description="One stock level per branch")
    historical_usage: List[HistoricalUsage] = Field(default_factory=list, description="Per-branch daily usage")
    historical_prices: List[HistoricalPrice] = Field(default_factory=list, description="Purchase price history")

    @field_validator("stock_levels")
    @classmethod
    def _unique_branches(cls, value: List[StockLevel]) -> List[StockLevel]:
        branch_ids = [sl.branch_id for sl in value]
        if len(branch_ids) != len(set(branch_ids)):
            raise ValueError("stock levels must have unique branch ids")
        return value

    def stock_level(self, branch_id: str) -> Optional[StockLevel]:
        return next((sl for sl in self.stock_levels if sl.branch_id == branch_id), None)

    def usage_at(self, branch_id: str) -> List[int]:
        series = next((hu for hu in self.historical_usage if hu.branch_id == branch_id), None)
        return series.usage if series else []

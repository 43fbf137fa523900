from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

from pydantic import Field

from .base import LedgerModel
from .batches import StockLevel
from .predictions import BranchSuggestion, Urgency
from .products import Product


class InventoryItem(Product):
    """Product merged with its latest prediction and a computed total. Never stored."""
    total_stock: int = Field(description="Units held (all branches, or one branch in a scoped view)")
    predicted_usage: Optional[int] = Field(default=None, description="Predicted 30-day usage")
    restock_suggestion: Optional[str] = Field(default=None, description="High-level restock action")
    urgency: Optional[Urgency] = Field(default=None, description="Restocking priority")
    branch_suggestions: Optional[List[BranchSuggestion]] = Field(default=None, description="Per-branch restock amounts")

    def scoped_to(self, branch_id: str) -> "InventoryItem":
        """Project the item onto a single branch's stock."""
        level: Optional[StockLevel] = self.stock_level(branch_id)
        return self.model_copy(update={
            "stock_levels": [level] if level else [],
            "total_stock": level.total if level else 0,
        })


class BranchPerformance(LedgerModel):
    """Per-branch dashboard summary."""
    branch_id: str = Field(description="Branch identifier")
    branch_name: str = Field(description="Branch name")
    total_products: int = Field(description="Distinct products with positive stock at the branch")
    total_stock_units: int = Field(description="Units held at the branch")
    high_urgency_alerts: int = Field(description="High-urgency items affecting the branch")
    top_used_item: Optional[Product] = Field(default=None, description="Product with the most recorded usage at the branch")


class DashboardKpis(LedgerModel):
    """Aggregate dashboard figures for the current filter set."""
    total_products: int = Field(description="Products in view")
    total_stock_units: int = Field(description="Units in view")
    total_inventory_value: float = Field(description="SUM(total stock * purchase price)")
    total_usage_value: float = Field(description="SUM(usage in window * purchase price)")
    stock_turnover: float = Field(description="Usage value / inventory value, 0 when nothing is held")
    nearing_expiry_count: int = Field(description="Products with a batch expiring within the horizon")


class ExpiringBatch(LedgerModel):
    """A batch whose expiry falls inside the scanned window."""
    product_id: str = Field(description="Product identifier")
    product_name: str = Field(description="Product name")
    branch_id: str = Field(description="Branch holding the batch")
    branch_name: str = Field(description="Branch name")
    batch_id: str = Field(description="Batch identifier")
    quantity: int = Field(description="Units in the batch")
    expiry_date: date = Field(description="Batch expiry date")
    days_until_expiry: int = Field(ge=0, description="Whole days until expiry, floored at 0")
    is_urgent: bool = Field(default=False, description="Expires within the urgent threshold")


class MoversResult(LedgerModel):
    """Most and least used products over the dashboard window."""
    top: List[Product] = Field(description="Most used first")
    slow: List[Product] = Field(description="Least used first")
    usage: Dict[str, int] = Field(description="Units used per product id over the window")


class ReorderCandidate(LedgerModel):
    """A suggestion eligible for Quick Reorder preparation."""
    product_id: str = Field(description="Product to reorder")
    product_name: str = Field(description="Product name")
    supplier_id: str = Field(description="Supplier to order from")
    suggested_quantity: int = Field(ge=0, description="Pre-filled order quantity")
    order_name: str = Field(description="Default order reference")


class DashboardView(LedgerModel):
    """Everything the dashboard renders for one filter selection."""
    filters_branch_id: Optional[str] = Field(default=None, description="Branch the view is scoped to")
    usage_window_days: int = Field(description="Trailing days of usage aggregated")
    kpis: DashboardKpis = Field(description="Headline figures")
    movers: MoversResult = Field(description="Top and slow movers")
    branch_performance: List[BranchPerformance] = Field(description="Per-branch summaries")
    expiring_soon: List[ExpiringBatch] = Field(description="Batches expiring within the horizon")
    alert_count: int = Field(description="Unacknowledged high-urgency items in view")

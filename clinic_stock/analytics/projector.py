"""Inventory view projector.

Stateless recomputation of the views the UI renders: inventory items with
predictions merged in, role-scoped views, and dashboard aggregates. Usage
aggregation runs over a long-format pandas frame of the daily usage series.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from clinic_stock.data.models import (
    Branch,
    BranchPerformance,
    DashboardKpis,
    DashboardFilters,
    DashboardView,
    InventoryItem,
    MoversResult,
    PredictionResult,
    Product,
    ReorderCandidate,
    Supplier,
    Urgency,
    User,
)
from clinic_stock.config import get_config
from clinic_stock.ledger.engine import branch_total, expiring_within, total_stock

ALL_BRANCHES = "all"

_USAGE_COLUMNS = ["product_id", "branch_id", "days_ago", "units"]


# ---------- inventory items ----------

def build_inventory_items(
    products: Iterable[Product],
    predictions: Iterable[PredictionResult],
) -> List[InventoryItem]:
    """Merge each product with its prediction (if any) and its total stock."""
    by_product: Dict[str, PredictionResult] = {p.product_id: p for p in predictions}
    items = []
    for product in products:
        prediction = by_product.get(product.id)
        items.append(InventoryItem(
            **dict(product),
            total_stock=total_stock(product),
            predicted_usage=prediction.predicted_usage if prediction else None,
            restock_suggestion=prediction.restock_suggestion if prediction else None,
            urgency=prediction.urgency if prediction else None,
            branch_suggestions=prediction.branch_suggestions if prediction else None,
        ))
    return items


def view_for_user(items: Sequence[InventoryItem], user: User) -> List[InventoryItem]:
    """Admins see everything; Staff see each item reshaped to their own branch."""
    if user.is_admin:
        return list(items)
    return [item.scoped_to(user.branch_id) for item in items]


def filter_for_branch(items: Sequence[InventoryItem], branch_id: Optional[str]) -> List[InventoryItem]:
    """Dashboard branch filter: scope to one branch and drop items with nothing there."""
    if branch_id in (None, ALL_BRANCHES):
        return list(items)
    scoped = (item.scoped_to(branch_id) for item in items)
    return [item for item in scoped if item.total_stock > 0]


def high_urgency_alerts(items: Iterable[InventoryItem], acknowledged: Iterable[str] = ()) -> List[InventoryItem]:
    acknowledged = set(acknowledged)
    return [i for i in items if i.urgency == Urgency.HIGH and i.id not in acknowledged]


# ---------- usage ----------

def _usage_frame(products: Iterable[Product]) -> pd.DataFrame:
    """Long-format usage: one row per (product, branch, day), days_ago=0 is the latest day."""
    rows = []
    for product in products:
        for series in product.historical_usage:
            n = len(series.usage)
            rows.extend(
                (product.id, series.branch_id, n - 1 - i, units)
                for i, units in enumerate(series.usage)
            )
    return pd.DataFrame(rows, columns=_USAGE_COLUMNS)


def usage_by_product(
    products: Sequence[Product],
    window_days: int,
    branch_id: Optional[str] = None,
) -> Dict[str, int]:
    """Units used per product over the trailing ``window_days`` days.

    Args:
        products: Products whose usage series are summed.
        window_days: Number of most recent days to include.
        branch_id: Restrict to one branch (None or "all" for every branch).
    Returns:
        Dict[str, int]: Usage per product id; products without usage map to 0.
    """
    if window_days <= 0:
        raise ValueError(f"window_days must be positive, got {window_days}")

    frame = _usage_frame(products)
    frame = frame[frame["days_ago"] < window_days]
    if branch_id not in (None, ALL_BRANCHES):
        frame = frame[frame["branch_id"] == branch_id]

    totals = frame.groupby("product_id")["units"].sum()
    totals = totals.reindex([p.id for p in products], fill_value=0)
    return {product_id: int(units) for product_id, units in totals.items()}


# ---------- dashboard aggregates ----------

def branch_performance(
    branches: Sequence[Branch],
    items: Sequence[InventoryItem],
    products: Sequence[Product],
    default_min_stock_level: int = 50,
) -> List[BranchPerformance]:
    """Per-branch product count, units held, high-urgency alerts and top-used product."""
    usage = _usage_frame(products).groupby(["branch_id", "product_id"])["units"].sum()
    product_order = [p.id for p in products]
    products_by_id = {p.id: p for p in products}

    performance = []
    for branch in branches:
        held = [(item, branch_total(item, branch.id)) for item in items]
        stocked = [(item, units) for item, units in held if units > 0]

        high_urgency = 0
        for item, units in held:
            if item.urgency != Urgency.HIGH:
                continue
            suggested_here = any(s.branch_id == branch.id for s in item.branch_suggestions or [])
            threshold = item.min_stock_level if item.min_stock_level is not None else default_min_stock_level
            if suggested_here or units < threshold:
                high_urgency += 1

        top_used = None
        if not usage.empty and branch.id in usage.index.get_level_values("branch_id"):
            # reindex to catalog order so ties resolve to the first product listed
            branch_usage = usage.loc[branch.id].reindex(product_order, fill_value=0)
            if branch_usage.max() > 0:
                top_used = products_by_id[branch_usage.idxmax()]

        performance.append(BranchPerformance(
            branch_id=branch.id,
            branch_name=branch.name,
            total_products=len(stocked),
            total_stock_units=sum(units for _, units in stocked),
            high_urgency_alerts=high_urgency,
            top_used_item=top_used,
        ))
    return performance


def dashboard_kpis(
    items: Sequence[InventoryItem],
    products: Sequence[Product],
    usage: Dict[str, int],
    as_of: Optional[date] = None,
    horizon_days: int = 30,
) -> DashboardKpis:
    """Inventory value, usage value, stock turnover and expiry count.

    Missing purchase prices count as 0. Turnover is 0 when nothing of value is held.
    """
    as_of = as_of or date.today()
    prices = {p.id: p.purchase_price or 0.0 for p in products}

    inventory_value = sum(item.total_stock * (item.purchase_price or 0.0) for item in items)
    usage_value = sum(units * prices.get(product_id, 0.0) for product_id, units in usage.items())
    turnover = usage_value / inventory_value if inventory_value > 0 else 0.0

    horizon_end = as_of + timedelta(days=horizon_days)
    nearing_expiry = sum(
        1 for p in products
        if any(
            b.expiry_date is not None and b.expiry_date <= horizon_end
            for level in p.stock_levels for b in level.batches
        )
    )

    return DashboardKpis(
        total_products=len(items),
        total_stock_units=sum(item.total_stock for item in items),
        total_inventory_value=inventory_value,
        total_usage_value=usage_value,
        stock_turnover=turnover,
        nearing_expiry_count=nearing_expiry,
    )


def top_and_slow_movers(products: Sequence[Product], usage: Dict[str, int], n: int = 5) -> MoversResult:
    """Most used ``n`` products first, and least used ``n`` products least-used first."""
    ranked = sorted(products, key=lambda p: usage.get(p.id, 0), reverse=True)
    if n <= 0:
        return MoversResult(top=[], slow=[], usage=dict(usage))
    return MoversResult(
        top=ranked[:n],
        slow=list(reversed(ranked[-n:])),
        usage=dict(usage),
    )


def reorder_candidates(
    items: Iterable[InventoryItem],
    suppliers: Iterable[Supplier],
    user: User,
) -> List[ReorderCandidate]:
    """Suggestions an Admin can turn into a Quick Reorder."""
    if not user.is_admin:
        return []
    quick = {s.id for s in suppliers if s.quick_reorder_enabled}
    candidates = []
    for item in items:
        if item.restock_suggestion is None or item.supplier_id not in quick:
            continue
        if item.predicted_usage is not None:
            quantity = item.predicted_usage
        else:
            quantity = sum(s.restock_amount for s in item.branch_suggestions or [])
        candidates.append(ReorderCandidate(
            product_id=item.id,
            product_name=item.name,
            supplier_id=item.supplier_id,
            suggested_quantity=quantity,
            order_name=f"Reorder for {item.name}",
        ))
    return candidates


def build_dashboard(
    products: Sequence[Product],
    branches: Sequence[Branch],
    predictions: Iterable[PredictionResult],
    filters: Optional[DashboardFilters] = None,
    user: Optional[User] = None,
    acknowledged: Iterable[str] = (),
    as_of: Optional[date] = None,
) -> DashboardView:
    """Recompute every dashboard aggregate for a filter selection.

    Staff users are always scoped to their own branch, whatever the filter says.

    Raises:
        ValueError: If the usage window is not one of the configured windows.
    """
    config = get_config()
    filters = filters or DashboardFilters(usage_window_days=config.default_usage_window_days)
    if filters.usage_window_days not in config.allowed_usage_windows:
        raise ValueError(
            f"Usage window must be one of {config.allowed_usage_windows}, got {filters.usage_window_days}"
        )
    branch_id = filters.branch_id
    if user is not None and not user.is_admin:
        branch_id = user.branch_id
    if branch_id == ALL_BRANCHES:
        branch_id = None

    items = build_inventory_items(products, predictions)
    in_view = filter_for_branch(items, branch_id)
    usage = usage_by_product(products, filters.usage_window_days, branch_id)

    expiring = expiring_within(
        products,
        branches,
        config.expiry_horizon_days,
        as_of=as_of,
        urgent_days=config.expiry_urgent_days,
    )
    if branch_id is not None:
        expiring = [e for e in expiring if e.branch_id == branch_id]

    return DashboardView(
        filters_branch_id=branch_id,
        usage_window_days=filters.usage_window_days,
        kpis=dashboard_kpis(in_view, products, usage, as_of=as_of, horizon_days=config.expiry_horizon_days),
        movers=top_and_slow_movers(products, usage, n=config.movers_top_n),
        branch_performance=branch_performance(
            branches, items, products, default_min_stock_level=config.default_min_stock_level
        ),
        expiring_soon=expiring,
        alert_count=len(high_urgency_alerts(view_for_user(items, user) if user else items, acknowledged)),
    )

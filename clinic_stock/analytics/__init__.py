from .projector import (
    ALL_BRANCHES,
    branch_performance,
    build_dashboard,
    build_inventory_items,
    dashboard_kpis,
    filter_for_branch,
    high_urgency_alerts,
    reorder_candidates,
    top_and_slow_movers,
    usage_by_product,
    view_for_user,
)

__all__ = [
    "ALL_BRANCHES",
    "branch_performance",
    "build_dashboard",
    "build_inventory_items",
    "dashboard_kpis",
    "filter_for_branch",
    "high_urgency_alerts",
    "reorder_candidates",
    "top_and_slow_movers",
    "usage_by_product",
    "view_for_user",
]

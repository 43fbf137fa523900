from .data_filters import (
    DashboardFilters,
    AuditLogFilters,
)

from .base import LedgerModel
from .batches import Batch, StockLevel
from .products import Product, HistoricalUsage, HistoricalPrice
from .branches import Branch
from .suppliers import Supplier
from .users import User
from .audit_logs import AuditLog
from .predictions import (
    Urgency,
    BranchSuggestion,
    PredictionResult,
    PricePredictionResult,
)
from .inventory import (
    InventoryItem,
    BranchPerformance,
    DashboardKpis,
    ExpiringBatch,
    MoversResult,
    ReorderCandidate,
    DashboardView,
)

__all__ = [
    # Filter classes
    "DashboardFilters",
    "AuditLogFilters",
    # Stored entities
    "LedgerModel",
    "Batch",
    "StockLevel",
    "Product",
    "HistoricalUsage",
    "HistoricalPrice",
    "Branch",
    "Supplier",
    "User",
    "AuditLog",
    # Prediction payloads
    "Urgency",
    "BranchSuggestion",
    "PredictionResult",
    "PricePredictionResult",
    # Derived views
    "InventoryItem",
    "BranchPerformance",
    "DashboardKpis",
    "ExpiringBatch",
    "MoversResult",
    "ReorderCandidate",
    "DashboardView",
]

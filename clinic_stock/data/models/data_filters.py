from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class DashboardFilters(BaseModel):
    """Filters for the dashboard aggregates."""
    usage_window_days: int = Field(default=30, gt=0, description="Trailing days of usage to aggregate")
    branch_id: Optional[str] = Field(default=None, description="Branch filter (None for all branches)")


class AuditLogFilters(BaseModel):
    """Filters for audit log queries."""
    action: Optional[str] = Field(default=None, description="Exact action tag")
    product_id: Optional[str] = Field(default=None, description="Product the entry concerns")
    branch_id: Optional[str] = Field(default=None, description="Branch the entry concerns")

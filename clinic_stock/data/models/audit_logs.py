from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from .base import LedgerModel


class AuditLog(LedgerModel):
    """Append-only record of a stock-affecting or administrative action."""
    id: str = Field(description="Unique entry identifier")
    timestamp: datetime = Field(description="When the action happened (UTC)")
    action: str = Field(description="Short action tag, e.g. 'Stock Transferred'")
    details: str = Field(description="Human-readable description")
    product_id: Optional[str] = Field(default=None, description="Product the action concerns")
    branch_id: Optional[str] = Field(default=None, description="Branch the action concerns")

from __future__ import annotations

from pydantic import Field

from .base import LedgerModel


class Supplier(LedgerModel):
    """A supplier of clinic products."""
    id: str = Field(description="Unique supplier identifier")
    name: str = Field(description="Supplier name")
    contact_email: str = Field(description="Ordering contact address")
    quick_reorder_enabled: bool = Field(default=False, description="Allow one-click reorder preparation")

from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import Field

from .base import LedgerModel


class Batch(LedgerModel):
    """A discrete receipt of stock with its own quantity and optional expiry."""
    batch_id: str = Field(description="Unique batch identifier")
    quantity: int = Field(gt=0, description="Units remaining in the batch")
    expiry_date: Optional[date] = Field(default=None, description="Expiry date, if the item expires")
    date_received: date = Field(description="Date the batch was received at its branch")


class StockLevel(LedgerModel):
    """The batches of one product held at one branch."""
    branch_id: str = Field(description="Branch holding the stock")
    batches: List[Batch] = Field(default_factory=list, description="Batches held at the branch")

    @property
    def total(self) -> int:
        return sum(batch.quantity for batch in self.batches)

    def find_batch(self, batch_id: str) -> Optional[Batch]:
        return next((b for b in self.batches if b.batch_id == batch_id), None)

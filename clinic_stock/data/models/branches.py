from __future__ import annotations

from pydantic import Field

from .base import LedgerModel


class Branch(LedgerModel):
    """A clinic location."""
    id: str = Field(description="Unique branch identifier")
    name: str = Field(description="Branch display name")

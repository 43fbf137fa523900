from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, Field

from .base import LedgerModel


class Urgency(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class BranchSuggestion(LedgerModel):
    """Restock amount recommended for one branch."""
    branch_id: str = Field(description="Branch needing action")
    restock_amount: int = Field(ge=0, description="Units to restock at the branch")


class PredictionResult(LedgerModel):
    """Restock prediction for one product, validated at the service boundary."""
    product_id: str = Field(description="Product the prediction is for")
    predicted_usage: int = Field(
        ge=0,
        validation_alias=AliasChoices("predictedUsage", "predictedSales", "predicted_usage"),
        description="Predicted units used across all branches over the next 30 days",
    )
    restock_suggestion: str = Field(description="High-level restock action")
    urgency: Urgency = Field(description="Restocking priority")
    branch_suggestions: Optional[List[BranchSuggestion]] = Field(default=None, description="Per-branch restock amounts")


class PricePredictionResult(LedgerModel):
    """Supplier price trend prediction for one product."""
    product_id: str = Field(description="Product the prediction is for")
    product_name: str = Field(description="Product name")
    prediction_summary: str = Field(description="Human-readable trend summary")
    predicted_change_percentage: float = Field(description="Expected price change in percent")

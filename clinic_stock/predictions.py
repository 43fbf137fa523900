"""Boundary between the external prediction service and the projector.

Raw payloads are validated into typed results here. Prediction is a
best-effort annotation: every failure is logged and audited, and callers
get an empty result instead of an exception.
"""
from __future__ import annotations

import asyncio
from typing import Any, List, Optional

from pydantic import TypeAdapter, ValidationError

from clinic_stock.audit import AuditAction, AuditRecorder
from clinic_stock.config import get_config
from clinic_stock.data.interface import PredictionService
from clinic_stock.data.models import (
    Branch,
    PredictionResult,
    PricePredictionResult,
    Product,
    Supplier,
)
from clinic_stock.errors import ExternalServiceFailure
from clinic_stock.logging import get_logger

logger = get_logger(__name__)

_restock_adapter = TypeAdapter(List[PredictionResult])
_price_adapter = TypeAdapter(List[PricePredictionResult])


def parse_restock_predictions(payload: Any) -> List[PredictionResult]:
    """Validate a raw restock payload.

    Raises:
        ExternalServiceFailure: If the payload does not match the schema.
    """
    try:
        return _restock_adapter.validate_python(payload)
    except ValidationError as exc:
        raise ExternalServiceFailure(f"Invalid restock prediction payload: {exc.error_count()} error(s)") from exc


def parse_price_predictions(payload: Any) -> List[PricePredictionResult]:
    """Validate a raw price-trend payload.

    Raises:
        ExternalServiceFailure: If the payload does not match the schema.
    """
    try:
        return _price_adapter.validate_python(payload)
    except ValidationError as exc:
        raise ExternalServiceFailure(f"Invalid price prediction payload: {exc.error_count()} error(s)") from exc


async def fetch_restock_predictions(
    service: PredictionService,
    products: List[Product],
    branches: List[Branch],
    suppliers: List[Supplier],
    recorder: AuditRecorder,
    timeout: Optional[float] = None,
) -> List[PredictionResult]:
    """Ask the service for restock predictions; never raises."""
    if not products or not branches or not suppliers:
        return []
    timeout = timeout if timeout is not None else get_config().prediction_timeout_seconds

    recorder.record(AuditAction.PREDICTION_STARTED, "Restock prediction analysis initiated.")
    try:
        payload = await asyncio.wait_for(service.predict_restock(products, branches, suppliers), timeout)
        results = parse_restock_predictions(payload)
    except Exception as exc:
        logger.error(f"Restock prediction failed: {exc!r}")
        recorder.record(AuditAction.PREDICTION_FAILED, f"Failed to get restock predictions: {exc!r}")
        return []

    recorder.record(AuditAction.PREDICTION_SUCCESSFUL, f"Generated restock predictions for {len(results)} products.")
    return results


async def fetch_price_predictions(
    service: PredictionService,
    supplier: Supplier,
    products: List[Product],
    recorder: AuditRecorder,
    timeout: Optional[float] = None,
) -> List[PricePredictionResult]:
    """Ask the service for a supplier's price trends; never raises."""
    if not products:
        return []
    timeout = timeout if timeout is not None else get_config().prediction_timeout_seconds

    try:
        payload = await asyncio.wait_for(service.predict_price_trend(supplier, products), timeout)
        return parse_price_predictions(payload)
    except Exception as exc:
        logger.error(f"Price prediction for supplier {supplier.id} failed: {exc!r}")
        recorder.record(
            AuditAction.PRICE_PREDICTION_FAILED,
            f"Failed to get price predictions for supplier \"{supplier.name}\": {exc!r}",
        )
        return []

"""Error taxonomy for ledger, catalog and collaborator failures.

Ledger errors are raised synchronously and caught next to the user action
that caused them. A raised error always means no state was changed.
"""
from __future__ import annotations

from typing import Optional


class ClinicStockError(Exception):
    """Base class for every error the inventory service raises."""


class InvalidQuantity(ClinicStockError, ValueError):
    """A receive/consume/adjust quantity was not a positive integer."""


class InsufficientStock(ClinicStockError):
    """A consume requested more units than the branch holds."""

    def __init__(self, product_id: str, branch_id: str, requested: int, available: int) -> None:
        self.product_id = product_id
        self.branch_id = branch_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Cannot use {requested} units of product {product_id} at branch {branch_id}: "
            f"only {available} available."
        )


class InvalidTransfer(ClinicStockError):
    """Same-branch transfer, unknown batch, or amount outside the batch quantity."""


class ProductNotFound(ClinicStockError, LookupError):
    def __init__(self, product_id: str) -> None:
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class BranchNotFound(ClinicStockError, LookupError):
    def __init__(self, branch_id: str) -> None:
        self.branch_id = branch_id
        super().__init__(f"Branch not found: {branch_id}")


class ReferentialConflict(ClinicStockError):
    """A deletion was blocked by stock, products or users still referencing the entity."""


class ExternalServiceFailure(ClinicStockError):
    """The prediction service failed, timed out, or returned an invalid payload."""


class PersistenceFailure(ClinicStockError):
    """The persistent store rejected a load or save."""

    def __init__(self, message: str, collection: Optional[str] = None) -> None:
        self.collection = collection
        super().__init__(message)


class ConcurrencyConflict(PersistenceFailure):
    """A replace-all was attempted against a collection version that has since moved on."""

    def __init__(self, collection: str, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Collection '{collection}' is at version {actual}, expected {expected}",
            collection=collection,
        )


class AuthenticationFailed(ClinicStockError):
    """Unknown username or wrong password."""

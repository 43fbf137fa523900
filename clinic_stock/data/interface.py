from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Protocol, Sequence

from .models import (
    AuditLog,
    Branch,
    Product,
    Supplier,
    User,
)


# ---- Collections held by the persistent store ----

Collection = Literal["products", "branches", "suppliers", "users", "auditLogs"]

COLLECTIONS: tuple = ("products", "branches", "suppliers", "users", "auditLogs")


# ---- Persistent store protocol ----

class DataStore(Protocol):
    """
    Backend-agnostic key-value collection store.

    Entities are plain JSON-compatible dicts keyed by their ``id``.
    - ``replace_all`` is clear-then-insert and must be atomic: after a failure
      the previous contents are still what the next ``load_all`` returns.
    - Every successful ``replace_all`` bumps the collection version. Passing
      ``expected_version`` turns the write into an optimistic-lock check that
      raises ``ConcurrencyConflict`` instead of silently losing updates.
    """

    def load_all(self, collection: Collection) -> List[Dict[str, Any]]:
        """Return every entity stored in the collection."""
        ...

    def replace_all(
        self,
        collection: Collection,
        items: Sequence[Dict[str, Any]],
        expected_version: Optional[int] = None,
    ) -> int:
        """Replace the collection contents and return the new version."""
        ...

    def version(self, collection: Collection) -> int:
        """Current version of the collection (0 when never written)."""
        ...


# ---- External prediction service ----

class PredictionService(Protocol):
    """
    Remote restock / price-trend predictor.

    Payloads are untrusted: callers validate them before use (see
    ``clinic_stock.predictions``). Either call may raise or hang.
    """

    async def predict_restock(
        self,
        products: List[Product],
        branches: List[Branch],
        suppliers: List[Supplier],
    ) -> List[Dict[str, Any]]:
        """Raw restock predictions, one per product."""
        ...

    async def predict_price_trend(
        self,
        supplier: Supplier,
        products: List[Product],
    ) -> List[Dict[str, Any]]:
        """Raw price-trend predictions for a supplier's products."""
        ...


# ---- Audit sink ----

class AuditSink(Protocol):
    """One-way, append-only destination for audit entries."""

    def append(self, entry: AuditLog) -> None:
        ...

    def entries(self) -> List[AuditLog]:
        """All entries in append order."""
        ...


# ---- Credential verification ----

class Authenticator(Protocol):
    """Salted-hash credential verification."""

    def hash_password(self, password: str) -> str:
        ...

    def verify(self, user: User, password: str) -> bool:
        ...

"""Explicitly owned inventory aggregate.

``InventoryRepository`` holds the running catalog, applies ledger
operations to it, enforces referential rules for catalog management,
records the audit trail and persists through a ``DataStore``. The ledger
functions stay pure; this class is the only place state is replaced.
"""
from __future__ import annotations

import uuid
from datetime import date
from typing import Dict, Iterable, List, Optional, Set

from pydantic import ValidationError

from clinic_stock import ledger
from clinic_stock.analytics.projector import build_inventory_items
from clinic_stock.audit import AuditAction, AuditRecorder, InMemoryAuditSink
from clinic_stock.auth import authenticate
from clinic_stock.data.interface import COLLECTIONS, Authenticator, DataStore, PredictionService
from clinic_stock.data.models import (
    AuditLog,
    Branch,
    HistoricalPrice,
    HistoricalUsage,
    InventoryItem,
    PredictionResult,
    PricePredictionResult,
    Product,
    ReorderCandidate,
    StockLevel,
    Supplier,
    User,
)
from clinic_stock.data.seed_data import build_seed_dataset
from clinic_stock.errors import (
    AuthenticationFailed,
    BranchNotFound,
    ConcurrencyConflict,
    InvalidQuantity,
    PersistenceFailure,
    ProductNotFound,
    ReferentialConflict,
)
from clinic_stock.logging import get_logger
from clinic_stock.predictions import fetch_price_predictions, fetch_restock_predictions

logger = get_logger(__name__)

RECEIVE_REASONS = [
    "Received from supplier",
    "Stock transfer received",
    "Cycle count correction (found stock)",
]

USE_REASONS = [
    "Dispensed for procedure",
    "Damaged or unusable",
    "Expired stock removal",
    "Stock transfer sent",
    "Cycle count correction (lost stock)",
]

_CATALOG_COLLECTIONS = ("products", "branches", "suppliers", "users")


def _require_reason(reason: str) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise ValueError("Please provide a reason for this auditable action.")
    return reason


def _merge_entries(recorder: AuditRecorder, logs: Iterable[AuditLog]) -> None:
    """Append stored entries the recorder has not seen yet."""
    known = {e.id for e in recorder.sink.entries()}
    for entry in logs:
        if entry.id not in known:
            recorder.sink.append(entry)


class InventoryRepository:
    """The catalog of one deployment: products, branches, suppliers and users.

    ``revision`` increases with every accepted mutation. ``save`` checks each
    catalog collection against the version it was loaded at, so a concurrent
    writer causes a ``ConcurrencyConflict`` rather than a silent overwrite.
    """

    def __init__(
        self,
        store: DataStore,
        recorder: Optional[AuditRecorder] = None,
        products: Iterable[Product] = (),
        branches: Iterable[Branch] = (),
        suppliers: Iterable[Supplier] = (),
        users: Iterable[User] = (),
        versions: Optional[Dict[str, Optional[int]]] = None,
    ) -> None:
        self.store = store
        self.recorder = recorder or AuditRecorder()
        self._products: Dict[str, Product] = {p.id: p for p in products}
        self._branches: Dict[str, Branch] = {b.id: b for b in branches}
        self._suppliers: Dict[str, Supplier] = {s.id: s for s in suppliers}
        self._users: Dict[str, User] = {u.id: u for u in users}
        self._versions: Dict[str, Optional[int]] = dict(versions or {})
        self._acknowledged: Set[str] = set()
        self.predictions: List[PredictionResult] = []
        self.revision = 0

    # ---------- loading / saving ----------

    @classmethod
    def load(
        cls,
        store: DataStore,
        recorder: Optional[AuditRecorder] = None,
        seed_as_of: Optional[date] = None,
    ) -> "InventoryRepository":
        """Load every collection, falling back to the seed catalog.

        The seed is used when the store is empty or cannot be read. A read
        failure is logged and audited, never raised.
        """
        failure: Optional[Exception] = None
        try:
            products = [Product.model_validate(r) for r in store.load_all("products")]
            branches = [Branch.model_validate(r) for r in store.load_all("branches")]
            suppliers = [Supplier.model_validate(r) for r in store.load_all("suppliers")]
            users = [User.model_validate(r) for r in store.load_all("users")]
            logs = [AuditLog.model_validate(r) for r in store.load_all("auditLogs")]
            versions: Dict[str, Optional[int]] = {c: store.version(c) for c in COLLECTIONS}
        except (PersistenceFailure, ValidationError) as exc:
            logger.error(f"Loading inventory from the store failed, using seed data: {exc}")
            failure = exc
            products, branches, suppliers, users, logs = [], [], [], [], []
            # versions unknown: the next save cannot be version-checked
            versions = {c: None for c in COLLECTIONS}

        if recorder is None:
            recorder = AuditRecorder(InMemoryAuditSink(logs))
        else:
            _merge_entries(recorder, logs)

        if not products and not branches:
            seed = build_seed_dataset(as_of=seed_as_of)
            products, branches, suppliers, users = seed.products, seed.branches, seed.suppliers, seed.users
            logger.info("Store holds no catalog, seed data loaded")

        repo = cls(store, recorder, products, branches, suppliers, users, versions)
        if failure is not None:
            recorder.record(AuditAction.PERSISTENCE_FAILED, f"Failed to load data, seed data used instead: {failure}")
        recorder.record(AuditAction.SYSTEM_STARTUP, f"Inventory loaded with {len(products)} products across {len(branches)} branches.")
        return repo

    def save(self) -> bool:
        """Replace every catalog collection in the store and append the audit log.

        Every catalog version is checked before anything is written, so a
        concurrent writer leaves the store untouched rather than half
        overwritten. Resolve a conflict with ``reload`` (take the store's
        catalog) or ``refresh_versions`` (keep this one), then save again.

        Returns:
            bool: True when every collection was written. On failure the
            in-memory state stays authoritative and the failure is logged
            and audited.
        """
        try:
            self._check_versions()
        except PersistenceFailure as exc:
            self._save_failed("catalog", exc)
            return False

        payloads = {
            "products": [p.to_record() for p in self._products.values()],
            "branches": [b.to_record() for b in self._branches.values()],
            "suppliers": [s.to_record() for s in self._suppliers.values()],
            "users": [u.to_record() for u in self._users.values()],
        }
        ok = True
        for collection, items in payloads.items():
            ok = self._write(collection, items) and ok
        # audit entries last, so failures above are persisted too
        return self._append_audit_log() and ok

    def _check_versions(self) -> None:
        for collection in _CATALOG_COLLECTIONS:
            expected = self._versions.get(collection)
            if expected is None:
                continue
            actual = self.store.version(collection)
            if actual != expected:
                raise ConcurrencyConflict(collection, expected, actual)

    def _write(self, collection: str, items: List[dict]) -> bool:
        try:
            self._versions[collection] = self.store.replace_all(
                collection, items, expected_version=self._versions.get(collection)
            )
            return True
        except PersistenceFailure as exc:
            self._save_failed(collection, exc)
            return False

    def _append_audit_log(self) -> bool:
        """Write the stored entries plus ours, keyed by id, so nothing persisted is ever dropped."""
        try:
            version = self.store.version("auditLogs")
            stored = self.store.load_all("auditLogs")
            known = {r.get("id") for r in stored}
            new = [e.to_record() for e in self.recorder.sink.entries() if e.id not in known]
            self._versions["auditLogs"] = self.store.replace_all("auditLogs", stored + new, expected_version=version)
            return True
        except PersistenceFailure as exc:
            self._save_failed("auditLogs", exc)
            return False

    def _save_failed(self, what: str, exc: PersistenceFailure) -> None:
        logger.error(f"Saving '{what}' failed, keeping in-memory state: {exc}")
        self.recorder.record(AuditAction.PERSISTENCE_FAILED, f"Failed to save {what}: {exc}")

    def refresh_versions(self) -> None:
        """Adopt the store's current versions so the next save overwrites it with this catalog."""
        self._versions.update({c: self.store.version(c) for c in COLLECTIONS})

    def reload(self) -> None:
        """Replace the in-memory catalog with the store's and adopt its versions.

        Raises:
            PersistenceFailure: If the store cannot be read; nothing is changed.
        """
        try:
            products = [Product.model_validate(r) for r in self.store.load_all("products")]
            branches = [Branch.model_validate(r) for r in self.store.load_all("branches")]
            suppliers = [Supplier.model_validate(r) for r in self.store.load_all("suppliers")]
            users = [User.model_validate(r) for r in self.store.load_all("users")]
            logs = [AuditLog.model_validate(r) for r in self.store.load_all("auditLogs")]
            versions = {c: self.store.version(c) for c in COLLECTIONS}
        except ValidationError as exc:
            raise PersistenceFailure(f"Stored catalog is invalid: {exc.error_count()} error(s)") from exc

        self._products = {p.id: p for p in products}
        self._branches = {b.id: b for b in branches}
        self._suppliers = {s.id: s for s in suppliers}
        self._users = {u.id: u for u in users}
        self._versions = versions
        _merge_entries(self.recorder, logs)
        self.revision += 1
        logger.info(f"Reloaded {len(products)} products across {len(branches)} branches from the store")

    # ---------- lookups ----------

    @property
    def products(self) -> List[Product]:
        return list(self._products.values())

    @property
    def branches(self) -> List[Branch]:
        return list(self._branches.values())

    @property
    def suppliers(self) -> List[Supplier]:
        return list(self._suppliers.values())

    @property
    def users(self) -> List[User]:
        return list(self._users.values())

    @property
    def acknowledged_alerts(self) -> Set[str]:
        return set(self._acknowledged)

    def get_product(self, product_id: str) -> Product:
        try:
            return self._products[product_id]
        except KeyError:
            raise ProductNotFound(product_id) from None

    def get_branch(self, branch_id: str) -> Branch:
        try:
            return self._branches[branch_id]
        except KeyError:
            raise BranchNotFound(branch_id) from None

    def get_supplier(self, supplier_id: str) -> Supplier:
        try:
            return self._suppliers[supplier_id]
        except KeyError:
            raise ReferentialConflict(f"Supplier not found: {supplier_id}") from None

    def snapshot(self) -> List[Product]:
        """The current product values (immutable, safe to hand to the projector)."""
        return self.products

    def inventory_items(self) -> List[InventoryItem]:
        return build_inventory_items(self.products, self.predictions)

    def _commit_product(self, product: Product) -> None:
        self._products[product.id] = product
        self.revision += 1

    # ---------- ledger ----------

    def receive_stock(
        self,
        product_id: str,
        branch_id: str,
        quantity: int,
        reason: str = RECEIVE_REASONS[0],
        expiry_date: Optional[date] = None,
        received_date: Optional[date] = None,
    ) -> Product:
        reason = _require_reason(reason)
        product = self.get_product(product_id)
        branch = self.get_branch(branch_id)
        updated = ledger.receive(product, branch_id, quantity, expiry_date=expiry_date, received_date=received_date)
        self._commit_product(updated)
        expiry = f", expires {expiry_date.isoformat()}" if expiry_date else ""
        self.recorder.record(
            AuditAction.STOCK_RECEIVED,
            f"Product \"{product.name}\" at {branch.name}: {reason} (+{quantity}{expiry}).",
            product_id=product_id,
            branch_id=branch_id,
        )
        return updated

    def use_stock(
        self,
        product_id: str,
        branch_id: str,
        quantity: int,
        reason: str = USE_REASONS[0],
        policy: ledger.ConsumptionPolicy = ledger.ConsumptionPolicy.FEFO,
    ) -> Product:
        reason = _require_reason(reason)
        product = self.get_product(product_id)
        branch = self.get_branch(branch_id)
        updated, draws = ledger.consume(product, branch_id, quantity, policy=policy)
        self._commit_product(updated)
        drawn = ", ".join(f"{d.quantity} from batch {d.batch_id}" for d in draws)
        self.recorder.record(
            AuditAction.STOCK_USED,
            f"Product \"{product.name}\" at {branch.name}: {reason} (-{quantity}; {drawn}).",
            product_id=product_id,
            branch_id=branch_id,
        )
        return updated

    def transfer_stock(
        self,
        product_id: str,
        from_branch_id: str,
        to_branch_id: str,
        batch_id: str,
        amount: int,
        transfer_date: Optional[date] = None,
    ) -> Product:
        product = self.get_product(product_id)
        self.get_branch(from_branch_id)
        self.get_branch(to_branch_id)
        updated = ledger.transfer(product, from_branch_id, to_branch_id, batch_id, amount, transfer_date=transfer_date)
        self._commit_product(updated)
        self.recorder.record(
            AuditAction.STOCK_TRANSFERRED,
            f"{amount} units of Product ID {product_id} (batch {batch_id}) from {from_branch_id} to {to_branch_id}.",
            product_id=product_id,
            branch_id=from_branch_id,
        )
        # one entry per side so each branch finds the transfer by its own id
        self.recorder.record(
            AuditAction.STOCK_TRANSFERRED,
            f"{amount} units of Product ID {product_id} (batch {batch_id}) received at {to_branch_id} from {from_branch_id}.",
            product_id=product_id,
            branch_id=to_branch_id,
        )
        return updated

    def adjust_stock(self, product_id: str, branch_id: str, new_quantity: int, reason: str) -> Product:
        """Set a branch's stock to a counted total."""
        reason = _require_reason(reason)
        product = self.get_product(product_id)
        self.get_branch(branch_id)
        updated, delta = ledger.adjust_to(product, branch_id, new_quantity)
        if delta == 0:
            return product
        self._commit_product(updated)
        self.recorder.record(
            AuditAction.STOCK_ADJUSTED,
            f"Product ID {product_id} at Branch ID {branch_id} set to {new_quantity} ({delta:+d}). Reason: {reason}.",
            product_id=product_id,
            branch_id=branch_id,
        )
        return updated

    # ---------- products ----------

    def add_product(
        self,
        name: str,
        supplier_id: str,
        min_stock_level: Optional[int] = None,
        purchase_price: Optional[float] = None,
        stock_levels: Iterable[StockLevel] = (),
        today: Optional[date] = None,
    ) -> Product:
        self.get_supplier(supplier_id)
        stock_levels = list(stock_levels)
        for level in stock_levels:
            self.get_branch(level.branch_id)
        today = today or date.today()
        product = Product(
            id=f"prod-{uuid.uuid4()}",
            name=name,
            supplier_id=supplier_id,
            min_stock_level=min_stock_level,
            purchase_price=purchase_price,
            stock_levels=stock_levels,
            historical_usage=[HistoricalUsage(branch_id=b.id, usage=[0] * 7) for b in self.branches],
            historical_prices=[HistoricalPrice(date=today, price=purchase_price or 0.0)],
        )
        self._commit_product(product)
        self.recorder.record(AuditAction.PRODUCT_ADDED, f"New product \"{name}\" created.", product_id=product.id)
        return product

    def edit_product(self, product: Product) -> Product:
        """Replace a product's details. Stock only changes through the ledger."""
        current = self.get_product(product.id)
        self.get_supplier(product.supplier_id)
        updated = product.model_copy(update={"stock_levels": current.stock_levels})
        self._commit_product(updated)
        self.recorder.record(
            AuditAction.PRODUCT_EDITED,
            f"Product \"{updated.name}\" (ID: {updated.id}) updated.",
            product_id=updated.id,
        )
        return updated

    def delete_product(self, product_id: str) -> None:
        product = self.get_product(product_id)
        if ledger.total_stock(product) > 0:
            raise ReferentialConflict(
                f"Cannot delete product \"{product.name}\" while stock remains. Use or transfer it first."
            )
        del self._products[product_id]
        self.revision += 1
        self.recorder.record(
            AuditAction.PRODUCT_DELETED,
            f"Product \"{product.name}\" (ID: {product_id}) was deleted.",
            product_id=product_id,
        )

    # ---------- branches ----------

    def add_branch(self, name: str) -> Branch:
        branch = Branch(id=f"branch-{uuid.uuid4()}", name=name)
        self._branches[branch.id] = branch
        self.revision += 1
        self.recorder.record(AuditAction.BRANCH_ADDED, f"New branch \"{name}\" added.", branch_id=branch.id)
        return branch

    def rename_branch(self, branch_id: str, new_name: str) -> Branch:
        branch = self.get_branch(branch_id).model_copy(update={"name": new_name})
        self._branches[branch_id] = branch
        self.revision += 1
        self.recorder.record(
            AuditAction.BRANCH_EDITED, f"Branch ID \"{branch_id}\" renamed to \"{new_name}\".", branch_id=branch_id
        )
        return branch

    def delete_branch(self, branch_id: str) -> None:
        branch = self.get_branch(branch_id)
        if any(ledger.branch_total(p, branch_id) > 0 for p in self._products.values()):
            raise ReferentialConflict(
                "Cannot delete this branch as it has stock. Please transfer or adjust stock to zero first."
            )
        if any(u.branch_id == branch_id for u in self._users.values()):
            raise ReferentialConflict(
                "Cannot delete this branch as it has users assigned to it. Please reassign users first."
            )
        del self._branches[branch_id]
        self.revision += 1
        self.recorder.record(
            AuditAction.BRANCH_DELETED, f"Branch \"{branch.name}\" (ID: {branch_id}) was deleted.", branch_id=branch_id
        )

    # ---------- suppliers ----------

    def add_supplier(self, name: str, contact_email: str, quick_reorder_enabled: bool = False) -> Supplier:
        supplier = Supplier(
            id=f"sup-{uuid.uuid4()}",
            name=name,
            contact_email=contact_email,
            quick_reorder_enabled=quick_reorder_enabled,
        )
        self._suppliers[supplier.id] = supplier
        self.revision += 1
        self.recorder.record(AuditAction.SUPPLIER_ADDED, f"New supplier \"{name}\" added.")
        return supplier

    def edit_supplier(self, supplier_id: str, name: str, contact_email: str) -> Supplier:
        supplier = self.get_supplier(supplier_id).model_copy(update={"name": name, "contact_email": contact_email})
        self._suppliers[supplier_id] = supplier
        self.revision += 1
        self.recorder.record(AuditAction.SUPPLIER_EDITED, f"Supplier ID \"{supplier_id}\" details updated.")
        return supplier

    def set_quick_reorder(self, supplier_id: str, enabled: bool) -> Supplier:
        supplier = self.get_supplier(supplier_id).model_copy(update={"quick_reorder_enabled": enabled})
        self._suppliers[supplier_id] = supplier
        self.revision += 1
        state = "enabled" if enabled else "disabled"
        self.recorder.record(AuditAction.QUICK_REORDER_TOGGLED, f"Quick Reorder {state} for supplier \"{supplier.name}\".")
        return supplier

    def delete_supplier(self, supplier_id: str) -> None:
        supplier = self.get_supplier(supplier_id)
        if any(p.supplier_id == supplier_id for p in self._products.values()):
            raise ReferentialConflict(
                "Cannot delete this supplier. It is currently associated with one or more products. "
                "Please reassign products first."
            )
        del self._suppliers[supplier_id]
        self.revision += 1
        self.recorder.record(
            AuditAction.SUPPLIER_DELETED, f"Supplier \"{supplier.name}\" (ID: {supplier_id}) was deleted."
        )

    def prepare_reorder(self, product_id: str, quantity: int, order_name: str) -> ReorderCandidate:
        """Prepare a reorder for a product whose supplier has Quick Reorder enabled."""
        product = self.get_product(product_id)
        supplier = self.get_supplier(product.supplier_id)
        if not supplier.quick_reorder_enabled:
            raise ReferentialConflict(f"Quick Reorder is not enabled for supplier \"{supplier.name}\".")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0 or not order_name.strip():
            raise InvalidQuantity("Please provide a valid order reference and quantity.")
        candidate = ReorderCandidate(
            product_id=product.id,
            product_name=product.name,
            supplier_id=supplier.id,
            suggested_quantity=quantity,
            order_name=order_name.strip(),
        )
        self.recorder.record(
            AuditAction.REORDER_PREPARED,
            f"Reorder \"{candidate.order_name}\" prepared: {quantity} units of \"{product.name}\" from {supplier.name}.",
            product_id=product.id,
        )
        return candidate

    # ---------- users ----------

    def create_user(
        self,
        name: str,
        username: str,
        password: str,
        role: str,
        authenticator: Authenticator,
        branch_id: Optional[str] = None,
    ) -> User:
        if any(u.username == username for u in self._users.values()):
            raise ReferentialConflict(f"Username \"{username}\" is already taken.")
        if role == "Staff":
            self.get_branch(branch_id)
        else:
            branch_id = None
        user = User(
            id=f"user-{uuid.uuid4()}",
            name=name,
            username=username,
            password_hash=authenticator.hash_password(password),
            role=role,
            branch_id=branch_id,
        )
        self._users[user.id] = user
        self.revision += 1
        branch_info = f" for branch {self._branches[branch_id].name}" if branch_id else ""
        self.recorder.record(
            AuditAction.USER_CREATED, f"New {role} user \"{name}\" created{branch_info}.", branch_id=branch_id
        )
        return user

    def set_password(self, user_id: str, password: str, authenticator: Authenticator) -> User:
        if user_id not in self._users:
            raise ReferentialConflict(f"User not found: {user_id}")
        user = self._users[user_id].model_copy(update={"password_hash": authenticator.hash_password(password)})
        self._users[user_id] = user
        self.revision += 1
        self.recorder.record(AuditAction.PASSWORD_CHANGED, f"Password changed for user \"{user.name}\".")
        return user

    def delete_user(self, user_id: str, acting_user: User) -> None:
        if acting_user.id == user_id:
            raise ReferentialConflict("You cannot delete your own account.")
        user = self._users.pop(user_id, None)
        if user is None:
            raise ReferentialConflict(f"User not found: {user_id}")
        self.revision += 1
        self.recorder.record(AuditAction.USER_DELETED, f"User \"{user.name}\" (ID: {user_id}) was deleted.")

    def login(self, username: str, password: str, authenticator: Authenticator) -> User:
        try:
            user = authenticate(self._users.values(), username, password, authenticator)
        except AuthenticationFailed:
            self.recorder.record(AuditAction.LOGIN_FAILED, f"Failed login attempt for \"{username}\".")
            raise
        self.recorder.record(AuditAction.USER_LOGIN, f"User \"{user.name}\" logged in.", branch_id=user.branch_id)
        return user

    def logout(self, user: User) -> None:
        self.recorder.record(AuditAction.USER_LOGOUT, f"User \"{user.name}\" logged out.", branch_id=user.branch_id)
        self.predictions = []
        self._acknowledged.clear()

    def acknowledge_alert(self, product_id: str) -> None:
        self.get_product(product_id)
        self._acknowledged.add(product_id)
        self.recorder.record(
            AuditAction.ALERT_ACKNOWLEDGED, f"Alert for product {product_id} acknowledged.", product_id=product_id
        )

    # ---------- predictions ----------

    async def refresh_predictions(self, service: PredictionService, timeout: Optional[float] = None) -> List[PredictionResult]:
        """Replace the cached restock predictions. A failure leaves them empty."""
        self.predictions = await fetch_restock_predictions(
            service, self.products, self.branches, self.suppliers, self.recorder, timeout=timeout
        )
        return self.predictions

    async def price_trends(
        self, service: PredictionService, supplier_id: str, timeout: Optional[float] = None
    ) -> List[PricePredictionResult]:
        supplier = self.get_supplier(supplier_id)
        products = [p for p in self._products.values() if p.supplier_id == supplier_id]
        return await fetch_price_predictions(service, supplier, products, self.recorder, timeout=timeout)

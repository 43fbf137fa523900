import asyncio
from datetime import date, timedelta

import pytest

from clinic_stock.audit import AuditAction, AuditRecorder
from clinic_stock.auth import BcryptAuthenticator
from clinic_stock.config import set_config_for_test
from clinic_stock.data.backends.memory_backend import InMemoryDataStore
from clinic_stock.data.models import AuditLogFilters, Batch, StockLevel
from clinic_stock.errors import (
    AuthenticationFailed,
    BranchNotFound,
    InsufficientStock,
    InvalidQuantity,
    InvalidTransfer,
    PersistenceFailure,
    ProductNotFound,
    ReferentialConflict,
)
from clinic_stock.repository import InventoryRepository

AS_OF = date(2025, 1, 1)


class BrokenStore(InMemoryDataStore):
    def load_all(self, collection):
        raise PersistenceFailure("store offline", collection=collection)


class StubPredictionService:
    def __init__(self, restock=None, price=None, error=None):
        self.restock = restock or []
        self.price = price or []
        self.error = error

    async def predict_restock(self, products, branches, suppliers):
        if self.error:
            raise self.error
        return self.restock

    async def predict_price_trend(self, supplier, products):
        if self.error:
            raise self.error
        return self.price


@pytest.fixture(autouse=True)
def config():
    set_config_for_test(log_level="WARNING", password_hash_rounds=4)


@pytest.fixture
def store():
    return InMemoryDataStore()


@pytest.fixture
def repo(store):
    return InventoryRepository.load(store, seed_as_of=AS_OF)


@pytest.fixture
def authenticator():
    return BcryptAuthenticator(rounds=4)


def _actions(repo):
    return [e.action for e in repo.recorder.sink.entries()]


# ---------- load / save ----------

def test_empty_store_loads_seed_catalog(repo):
    assert [b.id for b in repo.branches] == ["branch-1", "branch-2", "branch-3"]
    assert len(repo.products) == 5
    assert _actions(repo) == [AuditAction.SYSTEM_STARTUP]


def test_unreadable_store_falls_back_to_seed_and_audits():
    repo = InventoryRepository.load(BrokenStore(), seed_as_of=AS_OF)
    assert len(repo.products) == 5
    assert _actions(repo) == [AuditAction.PERSISTENCE_FAILED, AuditAction.SYSTEM_STARTUP]


def test_save_then_load_round_trips_catalog_and_audit_log(repo, store):
    repo.receive_stock("prod-1", "branch-1", 10, received_date=AS_OF)
    assert repo.save() is True

    reloaded = InventoryRepository.load(store)

    assert [p.model_dump() for p in reloaded.products] == [p.model_dump() for p in repo.products]
    assert reloaded.users == repo.users
    actions = _actions(reloaded)
    assert actions[:2] == [AuditAction.SYSTEM_STARTUP, AuditAction.STOCK_RECEIVED]
    assert actions[-1] == AuditAction.SYSTEM_STARTUP


def test_concurrent_save_is_rejected_and_audited(repo, store):
    other = InventoryRepository.load(store, seed_as_of=AS_OF)
    assert repo.save() is True

    other.add_branch("Harbour")
    assert other.save() is False
    assert AuditAction.PERSISTENCE_FAILED in _actions(other)
    # the first writer's data is what the store holds
    assert len(store.load_all("branches")) == 3


def test_conflict_on_one_collection_writes_nothing(repo, store):
    store.replace_all("products", [])
    repo.add_branch("Harbour")

    assert repo.save() is False
    assert store.load_all("branches") == []
    assert store.version("branches") == 0
    assert store.load_all("auditLogs") == []


def test_refresh_versions_lets_a_conflicted_repo_save_its_catalog(repo, store):
    other = InventoryRepository.load(store, seed_as_of=AS_OF)
    assert repo.save() is True
    first_writer_ids = {r["id"] for r in store.load_all("auditLogs")}

    other.add_branch("Harbour")
    assert other.save() is False
    assert other.save() is False

    other.refresh_versions()
    assert other.save() is True
    assert len(store.load_all("branches")) == 4
    # the other writer's audit entries are kept alongside ours
    assert first_writer_ids <= {r["id"] for r in store.load_all("auditLogs")}


def test_reload_takes_the_stored_catalog_and_saves_again(repo, store):
    other = InventoryRepository.load(store, seed_as_of=AS_OF)
    repo.add_branch("Harbour")
    assert repo.save() is True

    assert other.save() is False
    other.reload()

    assert [b.name for b in other.branches][-1] == "Harbour"
    other.rename_branch("branch-1", "Downtown Central")
    assert other.save() is True
    assert {b["name"] for b in store.load_all("branches")} >= {"Downtown Central", "Harbour"}


def test_load_with_own_recorder_keeps_stored_audit_log(repo, store):
    repo.receive_stock("prod-1", "branch-1", 10, received_date=AS_OF)
    assert repo.save() is True
    stored_ids = [r["id"] for r in store.load_all("auditLogs")]
    assert len(stored_ids) == 2

    reloaded = InventoryRepository.load(store, recorder=AuditRecorder())
    assert [e.id for e in reloaded.recorder.sink.entries()][:2] == stored_ids
    assert reloaded.save() is True

    after = [r["id"] for r in store.load_all("auditLogs")]
    assert after[:2] == stored_ids
    assert len(after) == 3


# ---------- ledger operations ----------

def test_receive_stock_updates_product_and_audits(repo):
    before = repo.revision
    product = repo.receive_stock("prod-1", "branch-1", 15, expiry_date=AS_OF + timedelta(days=90), received_date=AS_OF)

    assert product.stock_level("branch-1").total == 100
    assert repo.get_product("prod-1") is product
    assert repo.revision == before + 1
    entry = repo.recorder.entries()[0]
    assert (entry.action, entry.product_id, entry.branch_id) == (AuditAction.STOCK_RECEIVED, "prod-1", "branch-1")


def test_use_stock_records_batch_draws(repo):
    repo.use_stock("prod-1", "branch-1", 30)

    level = repo.get_product("prod-1").stock_level("branch-1")
    # batch 2 expires first and is drained before batch 1
    assert [(b.batch_id, b.quantity) for b in level.batches] == [("prod-1-branch-1-1", 55)]
    assert "25 from batch prod-1-branch-1-2" in repo.recorder.entries()[0].details


def test_failed_use_leaves_state_and_audit_untouched(repo):
    before = repo.get_product("prod-1")
    entries_before = len(repo.recorder.sink.entries())

    with pytest.raises(InsufficientStock):
        repo.use_stock("prod-1", "branch-1", 86)

    assert repo.get_product("prod-1") is before
    assert len(repo.recorder.sink.entries()) == entries_before


def test_unknown_references_are_rejected(repo):
    with pytest.raises(ProductNotFound):
        repo.receive_stock("prod-x", "branch-1", 1)
    with pytest.raises(BranchNotFound):
        repo.receive_stock("prod-1", "branch-x", 1)
    with pytest.raises(ValueError):
        repo.use_stock("prod-1", "branch-1", 1, reason="   ")


def test_transfer_stock_is_recorded_against_both_branches(repo):
    repo.transfer_stock("prod-1", "branch-1", "branch-3", "prod-1-branch-1-1", 20, transfer_date=AS_OF)

    product = repo.get_product("prod-1")
    assert product.stock_level("branch-1").total == 65
    assert product.stock_level("branch-3").total == 60

    incoming, outgoing = repo.recorder.entries()[:2]
    assert {incoming.action, outgoing.action} == {AuditAction.STOCK_TRANSFERRED}
    assert outgoing.branch_id == "branch-1"
    assert outgoing.details == "20 units of Product ID prod-1 (batch prod-1-branch-1-1) from branch-1 to branch-3."
    assert incoming.branch_id == "branch-3"
    assert repo.recorder.history_for_branch("prod-1", "branch-3") == [incoming]
    assert repo.recorder.entries(AuditLogFilters(branch_id="branch-3")) == [incoming]
    assert repo.recorder.history_for_branch("prod-1", "branch-1") == [outgoing]


def test_invalid_transfer_keeps_product(repo):
    before = repo.get_product("prod-1")
    with pytest.raises(InvalidTransfer):
        repo.transfer_stock("prod-1", "branch-1", "branch-2", "prod-1-branch-2-1", 5)
    assert repo.get_product("prod-1") is before


def test_adjust_stock_sets_counted_total(repo):
    repo.adjust_stock("prod-1", "branch-1", 80, reason="Cycle count")
    assert repo.get_product("prod-1").stock_level("branch-1").total == 80
    assert "(-5)" in repo.recorder.entries()[0].details

    entries = len(repo.recorder.sink.entries())
    repo.adjust_stock("prod-1", "branch-1", 80, reason="Recount")
    assert len(repo.recorder.sink.entries()) == entries


# ---------- catalog management ----------

def test_add_product_starts_with_empty_usage_per_branch(repo):
    product = repo.add_product(
        "Fluoride Varnish",
        "sup-2",
        purchase_price=12.5,
        stock_levels=[StockLevel(branch_id="branch-2", batches=[
            Batch(batch_id="fv-1", quantity=10, expiry_date=None, date_received=AS_OF),
        ])],
        today=AS_OF,
    )
    assert product.id.startswith("prod-")
    assert [(u.branch_id, u.usage) for u in product.historical_usage] == [
        ("branch-1", [0] * 7), ("branch-2", [0] * 7), ("branch-3", [0] * 7),
    ]
    assert product.historical_prices[0].price == 12.5


def test_edit_product_cannot_change_stock(repo):
    current = repo.get_product("prod-2")
    edited = current.model_copy(update={"name": "Lidocaine 2% (50 pack)", "stock_levels": []})
    result = repo.edit_product(edited)
    assert result.name == "Lidocaine 2% (50 pack)"
    assert result.stock_levels == current.stock_levels


def test_delete_product_with_stock_is_blocked(repo):
    with pytest.raises(ReferentialConflict):
        repo.delete_product("prod-1")

    for level in repo.get_product("prod-4").stock_levels:
        repo.adjust_stock("prod-4", level.branch_id, 0, reason="Discontinued")
    repo.delete_product("prod-4")
    with pytest.raises(ProductNotFound):
        repo.get_product("prod-4")


def test_delete_branch_rules(repo):
    with pytest.raises(ReferentialConflict, match="has stock"):
        repo.delete_branch("branch-3")

    empty = repo.add_branch("Harbour")
    repo.rename_branch(empty.id, "Harbour View")
    assert repo.get_branch(empty.id).name == "Harbour View"
    repo.delete_branch(empty.id)
    with pytest.raises(BranchNotFound):
        repo.get_branch(empty.id)


def test_delete_branch_with_assigned_users_is_blocked(repo, authenticator):
    branch = repo.add_branch("Harbour")
    repo.create_user("Lee", "lee", "s3cret!", "Staff", authenticator, branch_id=branch.id)
    with pytest.raises(ReferentialConflict, match="users assigned"):
        repo.delete_branch(branch.id)


def test_supplier_management(repo):
    with pytest.raises(ReferentialConflict):
        repo.delete_supplier("sup-1")

    supplier = repo.add_supplier("Bright Smiles Co", "hello@brightsmiles.example")
    repo.edit_supplier(supplier.id, "Bright Smiles Ltd", "orders@brightsmiles.example")
    toggled = repo.set_quick_reorder(supplier.id, True)
    assert toggled.quick_reorder_enabled
    assert toggled.name == "Bright Smiles Ltd"
    repo.delete_supplier(supplier.id)
    assert supplier.id not in [s.id for s in repo.suppliers]


def test_prepare_reorder_requires_quick_reorder_supplier(repo):
    candidate = repo.prepare_reorder("prod-1", 40, "PO-1001")
    assert (candidate.supplier_id, candidate.suggested_quantity) == ("sup-1", 40)

    with pytest.raises(ReferentialConflict):
        repo.prepare_reorder("prod-2", 40, "PO-1002")
    with pytest.raises(InvalidQuantity):
        repo.prepare_reorder("prod-1", 0, "PO-1003")


# ---------- users ----------

def test_create_user_and_login(repo, authenticator):
    user = repo.create_user("Lee Park", "lee", "s3cret!", "Staff", authenticator, branch_id="branch-2")
    assert user.password_hash != "s3cret!"

    assert repo.login("lee", "s3cret!", authenticator) == user
    with pytest.raises(AuthenticationFailed):
        repo.login("lee", "wrong", authenticator)

    actions = [e.action for e in repo.recorder.entries()]
    assert actions[:2] == [AuditAction.LOGIN_FAILED, AuditAction.USER_LOGIN]


def test_seed_users_log_in_once_a_password_is_set(repo, authenticator):
    with pytest.raises(AuthenticationFailed):
        repo.login("admin", "", authenticator)
    repo.set_password("user-1", "admin-pass", authenticator)
    assert repo.login("admin", "admin-pass", authenticator).is_admin


def test_user_rules(repo, authenticator):
    with pytest.raises(ReferentialConflict):
        repo.create_user("Dup", "maria", "pw", "Staff", authenticator, branch_id="branch-1")
    with pytest.raises(BranchNotFound):
        repo.create_user("Lost", "lost", "pw", "Staff", authenticator, branch_id="branch-x")

    admin = repo.users[0]
    with pytest.raises(ReferentialConflict):
        repo.delete_user(admin.id, acting_user=admin)
    repo.delete_user("user-4", acting_user=admin)
    assert "user-4" not in [u.id for u in repo.users]


def test_logout_clears_session_state(repo):
    admin = repo.users[0]
    repo.acknowledge_alert("prod-1")
    assert repo.acknowledged_alerts == {"prod-1"}
    repo.logout(admin)
    assert repo.acknowledged_alerts == set()
    assert repo.recorder.entries(AuditLogFilters(action=AuditAction.USER_LOGOUT))


# ---------- predictions ----------

def test_refresh_predictions_merges_into_inventory_items(repo):
    service = StubPredictionService(restock=[{
        "productId": "prod-2",
        "predictedSales": 480,
        "restockSuggestion": "Order 2 cases",
        "urgency": "High",
        "branchSuggestions": [{"branchId": "branch-3", "restockAmount": 120}],
    }])

    results = asyncio.run(repo.refresh_predictions(service))

    assert [r.product_id for r in results] == ["prod-2"]
    items = {i.id: i for i in repo.inventory_items()}
    assert items["prod-2"].predicted_usage == 480
    assert items["prod-1"].urgency is None
    assert _actions(repo)[-2:] == [AuditAction.PREDICTION_STARTED, AuditAction.PREDICTION_SUCCESSFUL]


def test_failed_prediction_leaves_no_predictions(repo):
    repo.predictions = ["stale"]
    service = StubPredictionService(error=ConnectionError("service unavailable"))

    assert asyncio.run(repo.refresh_predictions(service)) == []
    assert repo.predictions == []
    assert _actions(repo)[-1] == AuditAction.PREDICTION_FAILED


def test_price_trends_for_supplier(repo):
    service = StubPredictionService(price=[{
        "productId": "prod-4",
        "productName": "Disposable Prophy Angles (144)",
        "predictionSummary": "Slight increase expected",
        "predictedChangePercentage": 3.5,
    }])
    trends = asyncio.run(repo.price_trends(service, "sup-3"))
    assert trends[0].predicted_change_percentage == 3.5

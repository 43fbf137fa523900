import pytest

from clinic_stock.audit import AuditAction, AuditRecorder, InMemoryAuditSink
from clinic_stock.config import set_config_for_test
from clinic_stock.data.models import AuditLogFilters


@pytest.fixture(autouse=True)
def config():
    set_config_for_test(log_level="WARNING")


@pytest.fixture
def recorder():
    recorder = AuditRecorder()
    recorder.record(AuditAction.STOCK_RECEIVED, "Gloves at Downtown (+10).", product_id="prod-1", branch_id="branch-1")
    recorder.record(AuditAction.STOCK_USED, "Gloves at Westside (-2).", product_id="prod-1", branch_id="branch-2")
    recorder.record(
        AuditAction.STOCK_TRANSFERRED,
        "5 units of Product ID prod-1 (batch b1) from branch-1 to branch-3.",
        product_id="prod-1",
        branch_id="branch-1",
    )
    recorder.record(
        AuditAction.STOCK_TRANSFERRED,
        "5 units of Product ID prod-1 (batch b1) received at branch-3 from branch-1.",
        product_id="prod-1",
        branch_id="branch-3",
    )
    recorder.record(AuditAction.STOCK_RECEIVED, "Lidocaine at Downtown (+4).", product_id="prod-2", branch_id="branch-1")
    return recorder


def test_record_fills_id_and_utc_timestamp():
    entry = AuditRecorder().record(AuditAction.BRANCH_ADDED, "New branch \"Harbour\" added.")
    assert entry.id
    assert entry.timestamp.utcoffset().total_seconds() == 0
    assert entry.product_id is None


def test_entries_are_newest_first(recorder):
    assert [e.details for e in recorder.entries()][0] == "Lidocaine at Downtown (+4)."


def test_entries_filters_combine(recorder):
    filters = AuditLogFilters(action=AuditAction.STOCK_RECEIVED, branch_id="branch-1")
    assert [e.product_id for e in recorder.entries(filters)] == ["prod-2", "prod-1"]
    assert recorder.entries(AuditLogFilters(product_id="prod-9")) == []


def test_action_types_in_first_seen_order(recorder):
    assert recorder.action_types() == [
        AuditAction.STOCK_RECEIVED,
        AuditAction.STOCK_USED,
        AuditAction.STOCK_TRANSFERRED,
    ]


def test_history_for_branch_includes_incoming_transfers(recorder):
    history = recorder.history_for_branch("prod-1", "branch-3")
    assert [e.details for e in history] == ["5 units of Product ID prod-1 (batch b1) received at branch-3 from branch-1."]

    source = recorder.history_for_branch("prod-1", "branch-1")
    assert [e.action for e in source] == [AuditAction.STOCK_TRANSFERRED, AuditAction.STOCK_RECEIVED]


def test_history_for_branch_matches_branch_id_exactly(recorder):
    recorder.record(
        AuditAction.STOCK_TRANSFERRED,
        "1 units of Product ID prod-1 (batch branch-1-x) received at branch-10 from branch-2.",
        product_id="prod-1",
        branch_id="branch-10",
    )
    assert all(e.branch_id == "branch-1" for e in recorder.history_for_branch("prod-1", "branch-1"))
    assert len(recorder.history_for_branch("prod-1", "branch-10")) == 1


def test_sink_is_append_only_from_the_recorder():
    sink = InMemoryAuditSink()
    recorder = AuditRecorder(sink)
    recorder.record(AuditAction.SYSTEM_STARTUP, "Inventory loaded.")
    entries = sink.entries()
    entries.clear()
    assert len(sink.entries()) == 1

"""Append-only audit trail.

Every stock movement and administrative action is recorded here as an
``AuditLog`` with a generated id and a UTC timestamp. Entries go to an
``AuditSink``; the recorder only appends and answers queries, it never
edits or removes what is already there.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from clinic_stock.data.interface import AuditSink
from clinic_stock.data.models import AuditLog, AuditLogFilters
from clinic_stock.logging import get_logger


class AuditAction:
    """Action tags written to the audit log."""
    SYSTEM_STARTUP = "System Startup"
    STOCK_ADJUSTED = "Stock Adjusted"
    STOCK_RECEIVED = "Stock Received"
    STOCK_USED = "Stock Used"
    STOCK_TRANSFERRED = "Stock Transferred"
    PRODUCT_ADDED = "Product Added"
    PRODUCT_EDITED = "Product Edited"
    PRODUCT_DELETED = "Product Deleted"
    BRANCH_ADDED = "Branch Added"
    BRANCH_EDITED = "Branch Edited"
    BRANCH_DELETED = "Branch Deleted"
    SUPPLIER_ADDED = "Supplier Added"
    SUPPLIER_EDITED = "Supplier Edited"
    SUPPLIER_DELETED = "Supplier Deleted"
    QUICK_REORDER_TOGGLED = "Quick Reorder Toggled"
    REORDER_PREPARED = "Reorder Prepared"
    USER_CREATED = "User Created"
    USER_DELETED = "User Deleted"
    PASSWORD_CHANGED = "Password Changed"
    USER_LOGIN = "User Login"
    USER_LOGOUT = "User Logout"
    LOGIN_FAILED = "Login Failed"
    ALERT_ACKNOWLEDGED = "Alert Acknowledged"
    PREDICTION_STARTED = "Prediction Started"
    PREDICTION_SUCCESSFUL = "Prediction Successful"
    PREDICTION_FAILED = "Prediction Failed"
    PRICE_PREDICTION_FAILED = "Price Prediction Failed"
    PERSISTENCE_FAILED = "Persistence Failed"


class InMemoryAuditSink(AuditSink):
    """Keeps entries in a list, in append order."""

    def __init__(self, entries: Optional[Iterable[AuditLog]] = None) -> None:
        self._entries: List[AuditLog] = list(entries or [])

    def append(self, entry: AuditLog) -> None:
        self._entries.append(entry)

    def entries(self) -> List[AuditLog]:
        return list(self._entries)


class AuditRecorder:
    """Creates timestamped audit entries and answers history queries.

    The recorder never edits or removes entries; the sink only ever sees appends.
    """

    def __init__(self, sink: Optional[AuditSink] = None) -> None:
        self.sink = sink or InMemoryAuditSink()
        self.logger = get_logger(__name__)

    def record(
        self,
        action: str,
        details: str,
        product_id: Optional[str] = None,
        branch_id: Optional[str] = None,
    ) -> AuditLog:
        entry = AuditLog(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            action=action,
            details=details,
            product_id=product_id,
            branch_id=branch_id,
        )
        self.sink.append(entry)
        self.logger.info(f"[audit] {action}: {details}")
        return entry

    def entries(self, filters: Optional[AuditLogFilters] = None) -> List[AuditLog]:
        """Entries matching every given filter, newest first."""
        filters = filters or AuditLogFilters()
        matched = [
            e for e in self.sink.entries()
            if (filters.action is None or e.action == filters.action)
            and (filters.product_id is None or e.product_id == filters.product_id)
            and (filters.branch_id is None or e.branch_id == filters.branch_id)
        ]
        return list(reversed(matched))

    def action_types(self) -> List[str]:
        """Distinct action tags in first-seen order."""
        return list(dict.fromkeys(e.action for e in self.sink.entries()))

    def history_for_branch(self, product_id: str, branch_id: str) -> List[AuditLog]:
        """A product's history as seen from one clinic.

        Transfers are recorded once against each side, so incoming and
        outgoing stock both show up here.
        """
        return self.entries(AuditLogFilters(product_id=product_id, branch_id=branch_id))
